"""Checkpoint sinks.

A sink receives full snapshots of the execution tree. The checkpoint manager
calls ``publish`` at most once at a time; sinks signal failure by raising
CheckpointPublishError (or any exception), which the manager logs and drops.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from loom.exceptions import CheckpointPublishError

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Any]


class CheckpointSink(ABC):
    """Abstract base class for checkpoint destinations."""

    @abstractmethod
    async def publish(self, snapshot: Snapshot) -> None:
        """Deliver one snapshot of the execution tree.

        Args:
            snapshot: JSON-safe root node document.
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the sink."""
        pass

    async def __aenter__(self) -> "CheckpointSink":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit - ensures sink is closed."""
        await self.close()


class NoOpSink(CheckpointSink):
    """Silent sink that discards all snapshots."""

    async def publish(self, snapshot: Snapshot) -> None:
        pass


class CallbackSink(CheckpointSink):
    """Sink that invokes a callback for each snapshot.

    Example:
        snapshots = []

        async def record(snapshot):
            snapshots.append(snapshot)

        manager = CheckpointManager(sink=CallbackSink(record), enabled=True)
    """

    def __init__(self, callback: Callable[[Snapshot], Awaitable[None]]) -> None:
        self._callback = callback

    async def publish(self, snapshot: Snapshot) -> None:
        await self._callback(snapshot)


class MemorySink(CheckpointSink):
    """Sink that keeps every snapshot in memory, newest last."""

    def __init__(self) -> None:
        self.snapshots: List[Snapshot] = []

    async def publish(self, snapshot: Snapshot) -> None:
        self.snapshots.append(snapshot)

    @property
    def latest(self) -> Optional[Snapshot]:
        return self.snapshots[-1] if self.snapshots else None


class HttpCheckpointSink(CheckpointSink):
    """POSTs each snapshot as a JSON document to an HTTP endpoint.

    Only the response status is used; the body is read solely for error
    reporting.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the HTTP sink.

        Args:
            url: Endpoint receiving checkpoint POSTs.
            timeout: Request timeout in seconds.
            headers: Extra headers sent with every request.
            transport: Optional httpx transport (e.g. httpx.MockTransport).
        """
        self.url = url
        self._timeout = timeout
        self._headers = headers or {}
        self._transport = transport

    async def publish(self, snapshot: Snapshot) -> None:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self.url, json=snapshot, headers=self._headers)
        except httpx.HTTPError as e:
            raise CheckpointPublishError(
                f"Failed to reach checkpoint endpoint {self.url}", detail=str(e)
            ) from e

        if response.is_error:
            raise CheckpointPublishError(
                "Checkpoint endpoint returned an error",
                status_code=response.status_code,
                detail=response.text,
            )
