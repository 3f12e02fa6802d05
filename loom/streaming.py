"""Streamable values.

A Streamable wraps one token source and offers two views of it:

- ``stream()``: an async iterator of string tokens. Every call returns a new
  iterator that replays tokens already produced and then follows the live
  source, so late consumers see the whole sequence.
- ``value``: an awaitable of the fully accumulated string.

A single background pump drives the source, so consuming one view never
blocks or duplicates the other. This is the seam LLM provider integrations
plug into: return ``Streamable.from_iterable(provider_stream)`` from a
component.
"""

import asyncio
import logging
from collections.abc import AsyncIterable, Iterable
from typing import Any, AsyncIterator, Awaitable, List, Optional, Union

logger = logging.getLogger(__name__)

TokenSource = Union[AsyncIterable, Iterable]


async def iterate_tokens(source: Any) -> AsyncIterator[str]:
    """Iterate a sync or async token source asynchronously.

    A bare string is treated as a single token and None as an empty source.
    """
    if source is None:
        return
    if isinstance(source, str):
        yield source
        return
    if isinstance(source, Streamable):
        async for token in source.stream():
            yield token
        return
    if isinstance(source, AsyncIterable):
        async for token in source:
            yield token
        return
    if isinstance(source, Iterable):
        for token in source:
            yield token
        return
    raise TypeError(f"Cannot stream tokens from {type(source).__name__}")


def _mark_exception_retrieved(future: "asyncio.Future[str]") -> None:
    # Errors reach iterators directly; an unawaited value must not log them again
    if not future.cancelled():
        future.exception()


class Streamable:
    """A lazily started token stream with a separately awaitable value.

    Example:
        async def tokens():
            yield "Hello "
            yield "World"

        streamable = Streamable.from_iterable(tokens())
        async for token in streamable:
            print(token)
        text = await streamable.value  # "Hello World"
    """

    def __init__(self, source: TokenSource) -> None:
        self._source = source
        self._tokens: List[str] = []
        self._finished = False
        self._error: Optional[BaseException] = None
        self._changed: Optional[asyncio.Condition] = None
        self._value: Optional["asyncio.Future[str]"] = None
        self._pump_task: Optional["asyncio.Task[None]"] = None

    @classmethod
    def from_iterable(cls, source: TokenSource) -> "Streamable":
        """Create a streamable from a sync or async iterable of strings."""
        return cls(source)

    @property
    def started(self) -> bool:
        """Whether the background pump has been started."""
        return self._pump_task is not None

    @property
    def finished(self) -> bool:
        """Whether the underlying source is exhausted (or failed)."""
        return self._finished

    @property
    def tokens(self) -> List[str]:
        """Tokens produced so far."""
        return list(self._tokens)

    def start(self) -> None:
        """Start pumping the source in the background.

        Must be called with a running event loop. Starting twice is a no-op.
        The pump task copies the caller's context, so the source runs with
        the context frame active at this call.
        """
        if self._pump_task is not None:
            return
        loop = asyncio.get_running_loop()
        self._changed = asyncio.Condition()
        self._value = loop.create_future()
        self._pump_task = loop.create_task(self._pump())

    async def _notify(self) -> None:
        async with self._changed:
            self._changed.notify_all()

    async def _pump(self) -> None:
        try:
            async for token in iterate_tokens(self._source):
                self._tokens.append(token)
                await self._notify()
        except asyncio.CancelledError:
            self._value.cancel()
            raise
        except Exception as e:
            logger.debug(f"Stream source failed after {len(self._tokens)} tokens: {e}")
            self._error = e
            self._value.set_exception(e)
            self._value.add_done_callback(_mark_exception_retrieved)
        else:
            self._value.set_result("".join(self._tokens))
        finally:
            self._finished = True
            await self._notify()

    @property
    def value(self) -> Awaitable[str]:
        """Awaitable of the accumulated string (starts the pump if needed)."""
        self.start()
        return asyncio.shield(self._value)

    def stream(self) -> AsyncIterator[str]:
        """Return a new iterator over all tokens (starts the pump if needed)."""
        self.start()
        return self._iterate()

    def __aiter__(self) -> AsyncIterator[str]:
        return self.stream()

    async def _iterate(self) -> AsyncIterator[str]:
        index = 0
        while True:
            if index < len(self._tokens):
                yield self._tokens[index]
                index += 1
                continue
            if self._finished:
                if self._error is not None:
                    raise self._error
                return
            async with self._changed:
                await self._changed.wait_for(
                    lambda: index < len(self._tokens) or self._finished
                )

    def __repr__(self) -> str:
        state = "finished" if self._finished else ("running" if self.started else "idle")
        return f"<Streamable {state} tokens={len(self._tokens)}>"
