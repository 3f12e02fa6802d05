"""Scoped execution context propagation.

Concurrently running branches of a workflow each need their own view of
ambient configuration: whether they are streaming, which node is current,
which provider values are in effect. This module provides:

- ContextKey: an identity-compared token naming one slot of configuration.
- ContextFrame: an immutable key/value mapping chained to a parent frame.
  Binding always creates a new frame; existing frames are never mutated.
- ContextStorage: the strategy that tracks which frame is current.
  ContextVarStorage follows asyncio tasks (each task sees the frame that
  was current when it was created). SharedSlotStorage keeps one shared slot
  and is only correct while a single workflow runs at a time.
- ContextRegistry: owns a storage strategy, a root frame and key naming.
  A process-wide ``default_registry`` is used unless another registry is
  passed explicitly.
"""

import inspect
import itertools
import logging
from abc import ABC, abstractmethod
from contextvars import ContextVar
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Generic,
    Iterator,
    Mapping,
    Optional,
    TypeVar,
)

from loom.config import LoomConfig, get_config
from loom.elements import CHILDREN_ARG, Element
from loom.exceptions import ContextStorageError

if TYPE_CHECKING:
    from loom.workflow import WorkflowContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Missing:
    """Sentinel for a key with no binding anywhere in a frame's lineage."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


class ContextKey(Generic[T]):
    """Opaque token identifying one piece of ambient configuration.

    Two keys are equal only if they are the same object, so keys created
    with the same name or default never collide.

    Example:
        ModelContext = create_context_key("gpt-4o", name="model")

        @component("Ask")
        def ask(question: str) -> str:
            return f"{use_context(ModelContext)}: {question}"

        await execute(ModelContext.provider("o3", ask(question="hi")))
    """

    __slots__ = ("default", "name", "_registry")

    def __init__(
        self,
        default: T,
        name: str,
        registry: Optional["ContextRegistry"] = None,
    ) -> None:
        self.default = default
        self.name = name
        self._registry = registry

    def provider(
        self,
        value: T,
        children: Any = None,
        registry: Optional["ContextRegistry"] = None,
    ) -> Element:
        """Build an element that resolves ``children`` with this key bound to ``value``.

        Args:
            value: Value visible to everything resolved inside the provider.
            children: Element(s) or values to resolve inside the scope.
            registry: Registry to scope in. Defaults to the key's registry.

        Raises:
            TypeError: If children is a plain callable. Continuations run
                outside the provider scope, so they are rejected here.
        """
        if callable(children) and not isinstance(children, Element):
            raise TypeError(
                f"Provider for '{self.name}' takes elements or values as children, "
                "not a function"
            )
        key = self

        def invoke(args: Dict[str, Any]) -> Any:
            from loom.resolve import resolve_deep

            scope_registry = registry or key._registry or default_registry
            return scope_registry.with_scope(
                {key: args["value"]},
                lambda: resolve_deep(args.get(CHILDREN_ARG), scope_registry),
            )

        return Element(
            invoke=invoke,
            args={"value": value, CHILDREN_ARG: children},
            name=f"{self.name}.Provider",
        )

    def __repr__(self) -> str:
        return f"ContextKey({self.name!r})"


class ContextFrame:
    """Immutable mapping of context keys to values with parent inheritance."""

    __slots__ = ("_bindings", "_parent")

    def __init__(
        self,
        bindings: Optional[Mapping[ContextKey, Any]] = None,
        parent: Optional["ContextFrame"] = None,
    ) -> None:
        self._bindings = MappingProxyType(dict(bindings or {}))
        self._parent = parent

    @property
    def parent(self) -> Optional["ContextFrame"]:
        """The frame this one inherits from (fixed at creation)."""
        return self._parent

    @property
    def bindings(self) -> Mapping[ContextKey, Any]:
        """Read-only view of the values bound directly on this frame."""
        return self._bindings

    def get(self, key: ContextKey) -> Any:
        """Return the nearest binding for ``key`` or MISSING."""
        frame: Optional[ContextFrame] = self
        while frame is not None:
            if key in frame._bindings:
                return frame._bindings[key]
            frame = frame._parent
        return MISSING

    def extend(self, bindings: Mapping[ContextKey, Any]) -> "ContextFrame":
        """Return a new child frame; this frame is left untouched."""
        return ContextFrame(bindings, parent=self)

    def lineage(self) -> Iterator["ContextFrame"]:
        """Iterate from this frame up to the root."""
        frame: Optional[ContextFrame] = self
        while frame is not None:
            yield frame
            frame = frame._parent

    @property
    def depth(self) -> int:
        return sum(1 for _ in self.lineage()) - 1

    def flatten(self) -> Dict[ContextKey, Any]:
        """Merge the lineage into one dict, innermost bindings winning."""
        merged: Dict[ContextKey, Any] = {}
        for frame in reversed(list(self.lineage())):
            merged.update(frame._bindings)
        return merged

    def __repr__(self) -> str:
        names = ", ".join(key.name for key in self._bindings)
        return f"<ContextFrame depth={self.depth} keys=[{names}]>"


async def _call(fn: Callable[[], Any]) -> Any:
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


class ContextStorage(ABC):
    """Strategy tracking which frame is current."""

    name: str = "abstract"

    @abstractmethod
    def current(self) -> Optional[ContextFrame]:
        """Return the current frame, or None outside any scope."""
        pass

    @abstractmethod
    async def run(self, frame: ContextFrame, fn: Callable[[], Any]) -> Any:
        """Run ``fn`` (sync or async) with ``frame`` installed as current.

        The previous frame is restored when ``fn`` finishes or raises.
        """
        pass


class ContextVarStorage(ContextStorage):
    """Task-scoped storage backed by ``contextvars``.

    asyncio copies the current context into every new task, so branches
    fanned out with ``asyncio.gather`` each keep the frame that was current
    when they started, and restoring a frame in one branch never affects
    another.
    """

    name = "contextvar"

    def __init__(self) -> None:
        self._var: ContextVar[Optional[ContextFrame]] = ContextVar(
            f"loom_context_frame_{id(self):x}", default=None
        )

    def current(self) -> Optional[ContextFrame]:
        return self._var.get()

    async def run(self, frame: ContextFrame, fn: Callable[[], Any]) -> Any:
        token = self._var.set(frame)
        try:
            return await _call(fn)
        finally:
            self._var.reset(token)


class SharedSlotStorage(ContextStorage):
    """Single shared slot, saved and restored around each scope.

    Correct for workflows that run one at a time. Two workflows running
    concurrently in the same process see each other's frames, because the
    slot is swapped whenever either one enters or leaves a scope.
    """

    name = "shared"

    def __init__(self) -> None:
        self._frame: Optional[ContextFrame] = None

    def current(self) -> Optional[ContextFrame]:
        return self._frame

    async def run(self, frame: ContextFrame, fn: Callable[[], Any]) -> Any:
        previous = self._frame
        self._frame = frame
        try:
            return await _call(fn)
        finally:
            self._frame = previous


STORAGE_STRATEGIES = {
    ContextVarStorage.name: ContextVarStorage,
    SharedSlotStorage.name: SharedSlotStorage,
}


def create_storage(name: str) -> ContextStorage:
    """Create a storage strategy by name ("contextvar" or "shared").

    Raises:
        ContextStorageError: If the name is unknown.
    """
    strategy = STORAGE_STRATEGIES.get(name)
    if strategy is None:
        raise ContextStorageError(
            f"Unknown context storage '{name}'. "
            f"Expected one of: {', '.join(sorted(STORAGE_STRATEGIES))}"
        )
    if strategy is SharedSlotStorage:
        logger.warning(
            "Using shared-slot context storage - concurrent workflows in this "
            "process will see each other's context"
        )
    return strategy()


class ContextRegistry:
    """Owner of context state for one runtime instance.

    Holds the storage strategy, the root frame, the key counter and the
    workflow outputs created against it. Independent registries can coexist
    in one process (e.g. one per test).
    """

    def __init__(self, storage: Optional[ContextStorage] = None) -> None:
        self._storage = storage or ContextVarStorage()
        self._root = ContextFrame()
        self._key_counter = itertools.count()
        self._output_counter = itertools.count()
        self._default_workflow: Optional["WorkflowContext"] = None
        self.workflow_outputs: Dict[str, Any] = {}

    @classmethod
    def from_config(cls, config: Optional[LoomConfig] = None) -> "ContextRegistry":
        """Create a registry using the storage strategy named in config."""
        config = config or get_config()
        return cls(storage=create_storage(config.context_storage))

    @property
    def storage(self) -> ContextStorage:
        return self._storage

    @property
    def root(self) -> ContextFrame:
        return self._root

    def create_key(self, default: T, name: Optional[str] = None) -> ContextKey[T]:
        """Create a fresh key; its name is only used for debugging."""
        index = next(self._key_counter)
        return ContextKey(default, name or f"loom.context.{index}", registry=self)

    def next_output_id(self) -> str:
        return f"output_{next(self._output_counter)}"

    def current(self) -> ContextFrame:
        """Return the frame visible to the code running right now."""
        return self._storage.current() or self._root

    def read(self, key: ContextKey[T]) -> T:
        """Return the current value for ``key`` or the key's default."""
        value = self.current().get(key)
        if value is MISSING:
            return key.default
        return value

    def bind(self, bindings: Mapping[ContextKey, Any]) -> ContextFrame:
        """Return a new frame extending the current one (nothing is installed)."""
        return self.current().extend(bindings)

    async def with_scope(
        self, bindings: Mapping[ContextKey, Any], fn: Callable[[], Any]
    ) -> Any:
        """Run ``fn`` with the current frame extended by ``bindings``."""
        return await self._storage.run(self.bind(bindings), fn)

    async def run_in_frame(self, frame: ContextFrame, fn: Callable[[], Any]) -> Any:
        """Run ``fn`` with an explicit, previously captured frame installed."""
        return await self._storage.run(frame, fn)

    def is_streaming(self) -> bool:
        return bool(self.read(STREAMING))

    def current_node_id(self) -> Optional[str]:
        return self.read(CURRENT_NODE)

    def workflow_context(self) -> "WorkflowContext":
        """Return the workflow in scope, falling back to a registry-wide one.

        The fallback lives as long as the registry. Every ``execute()`` made
        outside a Workflow records into its single checkpoint manager, so
        only the first such run becomes its root; later runs are kept as
        detached roots and never published. Use Workflow (or run_workflow)
        for a fresh tree per run.
        """
        workflow = self.read(WORKFLOW)
        if workflow is not None:
            return workflow
        if self._default_workflow is None:
            from loom.workflow import WorkflowContext

            self._default_workflow = WorkflowContext()
        return self._default_workflow


# Built-in keys used by the runtime itself
CURRENT_NODE: ContextKey[Optional[str]] = ContextKey(None, "loom.currentNode")
STREAMING: ContextKey[bool] = ContextKey(False, "loom.streaming")
WORKFLOW: ContextKey[Optional["WorkflowContext"]] = ContextKey(None, "loom.workflow")

# Module-level registry used when none is passed explicitly
default_registry = ContextRegistry.from_config()


def create_context_key(
    default: T,
    name: Optional[str] = None,
    registry: Optional[ContextRegistry] = None,
) -> ContextKey[T]:
    """Create a new context key (see ContextKey for an example)."""
    return (registry or default_registry).create_key(default, name)


def use_context(key: ContextKey[T], registry: Optional[ContextRegistry] = None) -> T:
    """Read the value of ``key`` visible in the current scope."""
    return (registry or default_registry).read(key)


async def with_scope(
    bindings: Mapping[ContextKey, Any],
    fn: Callable[[], Any],
    registry: Optional[ContextRegistry] = None,
) -> Any:
    """Run ``fn`` with ``bindings`` layered over the current frame."""
    return await (registry or default_registry).with_scope(bindings, fn)


def get_current_frame(registry: Optional[ContextRegistry] = None) -> ContextFrame:
    return (registry or default_registry).current()


def is_streaming(registry: Optional[ContextRegistry] = None) -> bool:
    """Whether the current scope asked for streamed (unaccumulated) output."""
    return (registry or default_registry).is_streaming()
