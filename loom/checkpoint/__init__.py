"""Checkpoint tree tracking and publishing."""

from loom.checkpoint.models import (
    ExecutionNode,
    NodeStatus,
    generate_node_id,
    now_ms,
)
from loom.checkpoint.serialization import to_jsonable, truncate_content
from loom.checkpoint.sinks import (
    CheckpointSink,
    NoOpSink,
    CallbackSink,
    MemorySink,
    HttpCheckpointSink,
)
from loom.checkpoint.manager import CheckpointManager

__all__ = [
    # Models
    "ExecutionNode",
    "NodeStatus",
    "generate_node_id",
    "now_ms",
    # Serialization
    "to_jsonable",
    "truncate_content",
    # Sinks
    "CheckpointSink",
    "NoOpSink",
    "CallbackSink",
    "MemorySink",
    "HttpCheckpointSink",
    # Manager
    "CheckpointManager",
]
