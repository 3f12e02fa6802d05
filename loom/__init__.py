"""Loom: an asynchronous workflow runtime.

Workflows are trees of components. Each component may be asynchronous,
stream string tokens, or fan out to concurrent children. The runtime
resolves arbitrarily nested values (elements, awaitables, lists, dicts,
streams), propagates scoped context to concurrently running branches, and
records a live execution tree that is checkpointed to an external sink.

Key design principle: checkpointing is a passive observer. It never blocks
the workflow, and a failed publish is logged rather than raised.
"""

from loom.config import LoomConfig, get_config, set_config, parse_bool_flag
from loom.logging_config import configure_logging
from loom.exceptions import (
    LoomError,
    ExecutionError,
    ContextStorageError,
    WorkflowOutputError,
    CheckpointPublishError,
)
from loom.elements import Element, create_element, fragment
from loom.streaming import Streamable, iterate_tokens
from loom.context import (
    ContextKey,
    ContextFrame,
    ContextRegistry,
    ContextStorage,
    ContextVarStorage,
    SharedSlotStorage,
    CURRENT_NODE,
    STREAMING,
    WORKFLOW,
    default_registry,
    create_context_key,
    use_context,
    with_scope,
    get_current_frame,
    is_streaming,
)
from loom.resolve import resolve_deep, execute
from loom.checkpoint import (
    CheckpointManager,
    ExecutionNode,
    NodeStatus,
    CheckpointSink,
    NoOpSink,
    CallbackSink,
    MemorySink,
    HttpCheckpointSink,
)
from loom.component import Component, StreamComponent, component, stream_component
from loom.workflow import (
    WorkflowContext,
    Workflow,
    WorkflowOutput,
    run_workflow,
    create_workflow_output,
)

__all__ = [
    # Config
    "LoomConfig",
    "get_config",
    "set_config",
    "parse_bool_flag",
    "configure_logging",
    # Exceptions
    "LoomError",
    "ExecutionError",
    "ContextStorageError",
    "WorkflowOutputError",
    "CheckpointPublishError",
    # Elements and streams
    "Element",
    "create_element",
    "fragment",
    "Streamable",
    "iterate_tokens",
    # Context
    "ContextKey",
    "ContextFrame",
    "ContextRegistry",
    "ContextStorage",
    "ContextVarStorage",
    "SharedSlotStorage",
    "CURRENT_NODE",
    "STREAMING",
    "WORKFLOW",
    "default_registry",
    "create_context_key",
    "use_context",
    "with_scope",
    "get_current_frame",
    "is_streaming",
    # Resolution
    "resolve_deep",
    "execute",
    # Checkpoints
    "CheckpointManager",
    "ExecutionNode",
    "NodeStatus",
    "CheckpointSink",
    "NoOpSink",
    "CallbackSink",
    "MemorySink",
    "HttpCheckpointSink",
    # Components
    "Component",
    "StreamComponent",
    "component",
    "stream_component",
    # Workflows
    "WorkflowContext",
    "Workflow",
    "WorkflowOutput",
    "run_workflow",
    "create_workflow_output",
]
