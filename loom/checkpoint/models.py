"""Checkpoint tree models.

One ExecutionNode is recorded per component invocation. Nodes are nested
through ``children`` into a single tree per workflow run, and serialized in
camelCase for the checkpoint sink:

    {id, componentName, parentId?, startTime, endTime?, props, output?,
     children: [...], metadata?}
"""

import time
import uuid
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def now_ms() -> float:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time() * 1000


def generate_node_id() -> str:
    return str(uuid.uuid4())


class NodeStatus(str, Enum):
    """Lifecycle of a node: pending -> running -> completed | failed."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ExecutionNode(BaseModel):
    """Recorded lifecycle of a single component invocation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=generate_node_id)
    component_name: str = "Unknown"
    parent_id: Optional[str] = None
    start_time: Optional[float] = Field(default_factory=now_ms)
    end_time: Optional[float] = None

    # Inputs (minus the children argument) and result
    props: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None

    children: List["ExecutionNode"] = Field(default_factory=list)

    # error, streamCompleted, and anything callers attach
    metadata: Optional[Dict[str, Any]] = None

    @property
    def status(self) -> NodeStatus:
        if self.start_time is None:
            return NodeStatus.PENDING
        if self.end_time is None:
            return NodeStatus.RUNNING
        if self.metadata and self.metadata.get("error") is not None:
            return NodeStatus.FAILED
        return NodeStatus.COMPLETED

    @property
    def is_complete(self) -> bool:
        """Check if node has finished (successfully or with failure)."""
        return self.status in (NodeStatus.COMPLETED, NodeStatus.FAILED)

    @property
    def duration_ms(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time

    def walk(self) -> Iterator["ExecutionNode"]:
        """Depth-first iteration over this node and all descendants."""
        yield self
        for child in self.children:
            yield from child.walk()

    def count_nodes(self) -> int:
        return sum(1 for _ in self.walk())

    def find(self, node_id: str) -> Optional["ExecutionNode"]:
        """Find a descendant (or self) by id."""
        for node in self.walk():
            if node.id == node_id:
                return node
        return None

    def find_by_name(self, component_name: str) -> List["ExecutionNode"]:
        return [node for node in self.walk() if node.component_name == component_name]

    def to_snapshot(self) -> Dict[str, Any]:
        """Serialize the subtree into the JSON document sent to the sink."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def to_summary(self) -> Dict[str, Any]:
        """Generate a human-readable summary of the subtree."""
        return {
            "id": self.id,
            "component": self.component_name,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "nodes": self.count_nodes(),
            "error": (self.metadata or {}).get("error"),
        }
