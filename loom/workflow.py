"""Workflow runner and workflow outputs.

A workflow run installs a fresh WorkflowContext (with its own checkpoint
manager) for the whole tree, executes it, and waits for the last checkpoint
write before returning. Workflow outputs are single-assignment values that
components can set for callers to await once the run produces them.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Tuple

from loom.checkpoint.manager import CheckpointManager
from loom.checkpoint.sinks import CheckpointSink
from loom.config import LoomConfig
from loom.context import CURRENT_NODE, WORKFLOW, ContextRegistry, default_registry
from loom.exceptions import WorkflowOutputError
from loom.resolve import execute

logger = logging.getLogger(__name__)


def generate_workflow_id() -> str:
    return f"wf_{uuid.uuid4().hex[:12]}"


@dataclass
class WorkflowContext:
    """Per-run state reachable through the WORKFLOW context key."""

    checkpoint_manager: CheckpointManager = field(default_factory=CheckpointManager)
    workflow_id: str = field(default_factory=generate_workflow_id)


class Workflow:
    """One executable workflow tree bound to its checkpoint manager.

    Example:
        workflow = Workflow(root(), name="research", sink=MemorySink())
        result = await workflow.run()
        print(workflow.checkpoint_manager.root.to_summary())
    """

    def __init__(
        self,
        element: Any,
        name: Optional[str] = None,
        checkpoint_manager: Optional[CheckpointManager] = None,
        registry: Optional[ContextRegistry] = None,
        sink: Optional[CheckpointSink] = None,
        config: Optional[LoomConfig] = None,
    ) -> None:
        self.element = element
        self.name = name or getattr(element, "name", "") or "workflow"
        self.registry = registry or default_registry
        self.checkpoint_manager = checkpoint_manager or CheckpointManager(
            sink=sink, config=config
        )
        self.context = WorkflowContext(checkpoint_manager=self.checkpoint_manager)

    @property
    def workflow_id(self) -> str:
        return self.context.workflow_id

    async def run(self) -> Any:
        """Execute the tree and return its resolved output.

        Component errors propagate unchanged. Pending checkpoint writes are
        flushed whether the run succeeds or fails.
        """
        logger.info(f"Starting workflow {self.name} ({self.workflow_id})")
        try:
            return await self.registry.with_scope(
                {WORKFLOW: self.context, CURRENT_NODE: None},
                lambda: execute(self.element, self.registry),
            )
        finally:
            await self.checkpoint_manager.wait_for_pending_updates()
            logger.debug(
                f"Workflow {self.workflow_id} finished after "
                f"{self.checkpoint_manager.publish_count} checkpoint publishes"
            )


async def run_workflow(element: Any, **kwargs: Any) -> Any:
    """Run ``element`` as a workflow (keyword arguments as for Workflow)."""
    return await Workflow(element, **kwargs).run()


class WorkflowOutput:
    """A value set once by a component and awaited by anyone."""

    def __init__(self, output_id: str, initial_value: Any = None) -> None:
        self.output_id = output_id
        self.initial_value = initial_value
        self._future: Optional["asyncio.Future[Any]"] = None

    def _get_future(self) -> "asyncio.Future[Any]":
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def is_set(self) -> bool:
        return self._future is not None and self._future.done()

    def set(self, value: Any) -> None:
        """Set the value.

        Raises:
            WorkflowOutputError: If the value was already set.
        """
        future = self._get_future()
        if future.done():
            raise WorkflowOutputError(self.output_id)
        future.set_result(value)

    async def get(self) -> Any:
        return await self._get_future()


def create_workflow_output(
    initial_value: Any = None,
    registry: Optional[ContextRegistry] = None,
) -> Tuple[Callable[[], Awaitable[Any]], Callable[[Any], None]]:
    """Create a workflow output and return its ``(get_value, set_value)`` pair.

    Example:
        get_summary, set_summary = create_workflow_output()

        @component("Summarize")
        async def summarize(text: str) -> str:
            summary = text[:100]
            set_summary(summary)
            return summary
    """
    registry = registry or default_registry
    output = WorkflowOutput(registry.next_output_id(), initial_value)
    registry.workflow_outputs[output.output_id] = output
    return output.get, output.set
