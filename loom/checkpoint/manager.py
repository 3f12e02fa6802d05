"""Checkpoint manager: execution-tree reconciliation and debounced publishing.

Components report node lifecycle events (add, complete, metadata) as they
happen. Concurrent branches can report a child before its parent, so the
manager keeps:

- an arena of every node keyed by id, and
- an orphan index keyed by the parent id an orphan is waiting for.

Each insert attaches the node to its parent if known (or parks it as an
orphan) and then adopts every orphan waiting on the new node, so the tree
converges regardless of arrival order or depth.

Publishing is best-effort and never blocks or fails the workflow. At most
one write is in flight; requests arriving meanwhile collapse into a single
follow-up write carrying the latest state.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from loom.checkpoint.models import ExecutionNode, now_ms
from loom.checkpoint.serialization import to_jsonable
from loom.checkpoint.sinks import CheckpointSink, HttpCheckpointSink, Snapshot
from loom.config import LoomConfig, get_config

logger = logging.getLogger(__name__)


class CheckpointManager:
    """Tracks the execution tree of one workflow run and publishes snapshots.

    Usage:
        manager = CheckpointManager(sink=MemorySink(), enabled=True)
        root_id = manager.add_node({"component_name": "Root"})
        child_id = manager.add_node({"component_name": "Child"}, root_id)
        manager.complete_node(child_id, "done")
        await manager.wait_for_pending_updates()

    Design principles:
    - Never raise into the workflow because of checkpointing
    - Track nodes in memory even when publishing is disabled
    - One write in flight, at most one queued behind it
    """

    def __init__(
        self,
        sink: Optional[CheckpointSink] = None,
        config: Optional[LoomConfig] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        """Initialize the manager.

        Args:
            sink: Destination for snapshots. Defaults to an HTTP sink
                pointed at the configured checkpoint URL.
            config: Loom configuration (global config if omitted).
            enabled: Override the configured enablement switch. The switch
                is evaluated once, here.
        """
        self._config = config or get_config()
        self.checkpoints_enabled = (
            self._config.checkpoints_enabled if enabled is None else enabled
        )
        self._sink = sink or HttpCheckpointSink(
            self._config.checkpoint_url,
            timeout=self._config.checkpoint_timeout_seconds,
        )
        self._max_length = (
            self._config.max_output_length if self._config.truncate_large_outputs else None
        )

        self._nodes: Dict[str, ExecutionNode] = {}
        self._orphans: Dict[str, List[ExecutionNode]] = {}
        self.root: Optional[ExecutionNode] = None
        self.detached_roots: List[ExecutionNode] = []

        self._active_write: Optional["asyncio.Task[None]"] = None
        self._pending_update = False
        self.publish_count = 0
        self.failed_publish_count = 0

    @property
    def sink(self) -> CheckpointSink:
        return self._sink

    @property
    def nodes(self) -> Mapping[str, ExecutionNode]:
        """All known nodes keyed by id, attached or not."""
        return self._nodes

    @property
    def pending_orphans(self) -> Dict[str, List[str]]:
        """Ids of nodes still waiting for their parent, keyed by parent id."""
        return {
            parent_id: [node.id for node in waiting]
            for parent_id, waiting in self._orphans.items()
        }

    @property
    def is_publishing(self) -> bool:
        return self._active_write is not None

    def get_node(self, node_id: str) -> Optional[ExecutionNode]:
        return self._nodes.get(node_id)

    # ==================== Tree mutations ====================

    def add_node(
        self,
        partial: Optional[Mapping[str, Any]] = None,
        parent_id: Optional[str] = None,
    ) -> str:
        """Register a node and attach it to the tree.

        Args:
            partial: Initial node fields (component_name, props, id, ...).
                An id is generated when absent.
            parent_id: Id of the parent node, which may not be known yet.

        Returns:
            The node id.
        """
        fields = {key: value for key, value in (partial or {}).items() if value is not None}
        if "props" in fields:
            fields["props"] = self._sanitize_mapping(fields["props"])
        node = ExecutionNode(**fields)

        if node.id in self._nodes:
            logger.warning(f"[Checkpoint] Ignoring duplicate node id: {node.id}")
            return node.id

        self._nodes[node.id] = node

        if parent_id:
            node.parent_id = parent_id
            parent = self._nodes.get(parent_id)
            if parent is not None:
                parent.children.append(node)
            else:
                self._orphans.setdefault(parent_id, []).append(node)
        elif self.root is None:
            self.root = node
        else:
            self.detached_roots.append(node)
            logger.warning(
                f"[Checkpoint] Node {node.id} ({node.component_name}) has no parent "
                f"but root is already {self.root.id}; it will not be published"
            )

        # Adopt anything that arrived before this node
        for orphan in self._orphans.pop(node.id, []):
            node.children.append(orphan)

        self._update_checkpoint()
        return node.id

    def complete_node(self, node_id: str, output: Any) -> None:
        """Record the end time and output of a node."""
        node = self._nodes.get(node_id)
        if node is None:
            logger.warning(f"[Checkpoint] Attempted to complete unknown node: {node_id}")
            return
        node.end_time = now_ms()
        node.output = self._sanitize(output)
        self._update_checkpoint()

    def add_metadata(self, node_id: str, metadata: Mapping[str, Any]) -> None:
        """Merge metadata into a node without dropping existing keys."""
        node = self._nodes.get(node_id)
        if node is None:
            logger.warning(f"[Checkpoint] Attempted to annotate unknown node: {node_id}")
            return
        node.metadata = {
            **(node.metadata or {}),
            **self._sanitize_mapping(metadata),
        }
        self._update_checkpoint()

    def _sanitize(self, value: Any) -> Any:
        try:
            return to_jsonable(value, self._max_length)
        except Exception as e:
            logger.warning(
                f"[Checkpoint] Could not serialize {type(value).__name__}, recording a placeholder: {e}"
            )
            return f"<unserializable {type(value).__name__}>"

    def _sanitize_mapping(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        return {str(key): self._sanitize(value) for key, value in values.items()}

    def write(self) -> None:
        """Request a publish of the current tree without changing it."""
        self._update_checkpoint()

    def snapshot(self) -> Optional[Snapshot]:
        """Current root as a JSON-safe document, or None before any root exists."""
        if self.root is None:
            return None
        return self.root.to_snapshot()

    # ==================== Publishing ====================

    def _update_checkpoint(self) -> None:
        if not self.checkpoints_enabled or self.root is None:
            return

        if self._active_write is not None:
            self._pending_update = True
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Flushed by the next mutation or wait_for_pending_updates()
            self._pending_update = True
            logger.debug("[Checkpoint] No running event loop, deferring publish")
            return

        self._pending_update = False
        self._active_write = loop.create_task(self._write_checkpoint())
        self._active_write.add_done_callback(self._on_write_done)

    def _on_write_done(self, task: "asyncio.Task[None]") -> None:
        self._active_write = None
        if self._pending_update:
            self._pending_update = False
            self._update_checkpoint()

    async def _write_checkpoint(self) -> None:
        try:
            snapshot = self.snapshot()
            if snapshot is None:
                return
            await self._sink.publish(snapshot)
            self.publish_count += 1
            logger.debug(f"[Checkpoint] Published snapshot of root {snapshot['id']}")
        except Exception as e:
            self.failed_publish_count += 1
            logger.error(f"[Checkpoint] Failed to save checkpoint: {e}")

    async def wait_for_pending_updates(self) -> None:
        """Wait until every requested publish has been written (or has failed)."""
        while True:
            if self._active_write is not None:
                await asyncio.wait({self._active_write})
                # Let the done callback schedule any follow-up write
                await asyncio.sleep(0)
                continue
            if self._pending_update and self.checkpoints_enabled and self.root is not None:
                self._update_checkpoint()
                continue
            return

    async def close(self) -> None:
        """Flush pending writes and close the sink."""
        await self.wait_for_pending_updates()
        await self._sink.close()
