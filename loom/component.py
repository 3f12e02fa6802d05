"""Component wrappers.

A component is a user function wrapped so that every invocation is recorded
as a node in the workflow's checkpoint tree and runs with itself as the
current node. Calling a component does not run it; it builds an Element the
resolver runs later.

    @component("Greet")
    async def greet(name: str) -> str:
        return f"Hello, {name}"

    await execute(greet(name="Ada"))  # "Hello, Ada"

Stream components additionally accept ``stream``: with ``stream=False`` the
token output is drained into a string, with ``stream=True`` an async
iterator of tokens is returned and the node completes when it is exhausted.
"""

import logging
from functools import update_wrapper
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from loom.context import CURRENT_NODE, STREAMING, ContextRegistry, default_registry
from loom.elements import CHILDREN_ARG, Element
from loom.resolve import resolve_deep
from loom.streaming import Streamable, iterate_tokens

logger = logging.getLogger(__name__)

STREAM_ARG = "stream"


def _is_continuation(value: Any) -> bool:
    return callable(value) and not isinstance(value, Element)


class Component:
    """A user function whose invocations are tracked as checkpoint nodes."""

    def __init__(
        self,
        name: str,
        fn: Callable[..., Any],
        registry: Optional[ContextRegistry] = None,
    ) -> None:
        self.name = name
        self.fn = fn
        self._registry = registry
        update_wrapper(self, fn)

    @property
    def registry(self) -> ContextRegistry:
        return self._registry or default_registry

    def __call__(self, **args: Any) -> Element:
        """Build an element for this component with ``args`` bound."""
        return Element(invoke=self.invoke, args=args, name=self.name)

    def _props(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return {key: value for key, value in args.items() if key != CHILDREN_ARG}

    def _call_args(self, args: Dict[str, Any]) -> Dict[str, Any]:
        # A continuation is run by the resolver, never by the component itself
        if _is_continuation(args.get(CHILDREN_ARG)):
            return self._props(args)
        return dict(args)

    def _record_failure(self, manager: Any, node_id: str, error: Exception) -> None:
        logger.debug(f"Component {self.name} ({node_id}) failed: {error}")
        manager.add_metadata(node_id, {"error": str(error)})
        manager.complete_node(node_id, None)

    async def invoke(self, args: Dict[str, Any]) -> Any:
        """Run the component once: record start, resolve output, record end."""
        registry = self.registry
        manager = registry.workflow_context().checkpoint_manager
        node_id = manager.add_node(
            {"component_name": self.name, "props": self._props(args)},
            registry.current_node_id(),
        )
        kwargs = self._call_args(args)

        try:
            result = await registry.with_scope(
                {CURRENT_NODE: node_id},
                lambda: resolve_deep(self.fn(**kwargs), registry),
            )
        except Exception as e:
            self._record_failure(manager, node_id, e)
            raise

        manager.complete_node(node_id, result)
        return result

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class StreamComponent(Component):
    """A component producing string tokens, drained or streamed on request.

    The wrapped function returns a string, a Streamable, or any sync or async
    iterable of strings. It does not receive ``stream`` itself; it can read
    the requested mode with ``is_streaming()``.
    """

    def _call_args(self, args: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = super()._call_args(args)
        kwargs.pop(STREAM_ARG, None)
        return kwargs

    async def invoke(self, args: Dict[str, Any]) -> Any:
        registry = self.registry
        manager = registry.workflow_context().checkpoint_manager
        stream = bool(args.get(STREAM_ARG, False))
        node_id = manager.add_node(
            {"component_name": self.name, "props": self._props(args)},
            registry.current_node_id(),
        )
        kwargs = self._call_args(args)

        async def run() -> Any:
            try:
                source = await resolve_deep(self.fn(**kwargs), registry)
                if not stream:
                    tokens: List[str] = [token async for token in iterate_tokens(source)]
            except Exception as e:
                self._record_failure(manager, node_id, e)
                raise

            if not stream:
                output = "".join(tokens)
                manager.complete_node(node_id, output)
                return output

            # The pump starts here so the source keeps this node's scope
            tracked = Streamable(self._track(source, node_id, manager))
            tracked.start()
            return tracked.stream()

        return await registry.with_scope({CURRENT_NODE: node_id, STREAMING: stream}, run)

    async def _track(self, source: Any, node_id: str, manager: Any) -> AsyncIterator[str]:
        buffer: List[str] = []
        try:
            async for token in iterate_tokens(source):
                buffer.append(token)
                yield token
        except Exception as e:
            logger.debug(f"Stream of {self.name} ({node_id}) failed after {len(buffer)} tokens")
            manager.add_metadata(node_id, {"error": str(e), "streamCompleted": False})
            manager.complete_node(node_id, "".join(buffer))
            raise
        manager.add_metadata(node_id, {"streamCompleted": True})
        manager.complete_node(node_id, "".join(buffer))


def component(
    name: Any = None,
    registry: Optional[ContextRegistry] = None,
) -> Any:
    """Decorator turning a function into a Component.

    Usable bare (``@component``) or with arguments
    (``@component("Name", registry=...)``). The name defaults to the
    function's ``__name__``.
    """
    if callable(name):
        return Component(name.__name__, name)

    def decorator(fn: Callable[..., Any]) -> Component:
        return Component(name or fn.__name__, fn, registry)

    return decorator


def stream_component(
    name: Any = None,
    registry: Optional[ContextRegistry] = None,
) -> Any:
    """Decorator turning a token-producing function into a StreamComponent.

    Example:
        @stream_component("Echo")
        async def echo(text: str):
            for word in text.split():
                yield word + " "

        await execute(echo(text="a b", stream=False))  # "a b "
    """
    if callable(name):
        return StreamComponent(name.__name__, name)

    def decorator(fn: Callable[..., Any]) -> StreamComponent:
        return StreamComponent(name or fn.__name__, fn, registry)

    return decorator
