"""Deep value resolution.

``resolve_deep`` turns an arbitrary value graph into a fully resolved value:

- Streamable: passed through untouched inside a streaming scope, otherwise
  its accumulated value is awaited and resolved.
- Element: invoked, and its output resolved again (so a component that
  returns another component's element flattens transparently). If the
  element carries a continuation ("child function"), the continuation
  receives the resolved output and the tree it returns is resolved in turn.
- Awaitable (coroutine, Future, Task): awaited, and the result resolved again.
- list / tuple: items resolved concurrently, order preserved.
- dict: values resolved concurrently under the same keys.
- Anything else is returned unchanged.

``execute`` is the entry point for running a workflow tree.
"""

import asyncio
import inspect
import logging
from typing import Any, Optional

from loom.context import ContextRegistry, default_registry
from loom.elements import Element
from loom.exceptions import ExecutionError
from loom.streaming import Streamable

logger = logging.getLogger(__name__)


async def resolve_deep(value: Any, registry: Optional[ContextRegistry] = None) -> Any:
    """Recursively resolve ``value`` (see module docstring for the rules)."""
    registry = registry or default_registry

    if isinstance(value, Streamable):
        if registry.is_streaming():
            return value
        return await resolve_deep(await value.value, registry)

    if isinstance(value, Element):
        return await _resolve_element(value, registry)

    if inspect.isawaitable(value):
        return await resolve_deep(await value, registry)

    if isinstance(value, (list, tuple)):
        if not value:
            return value
        resolved = await asyncio.gather(*(resolve_deep(item, registry) for item in value))
        return tuple(resolved) if isinstance(value, tuple) else list(resolved)

    if isinstance(value, dict):
        if not value:
            return value
        keys = list(value.keys())
        resolved = await asyncio.gather(*(resolve_deep(value[key], registry) for key in keys))
        return dict(zip(keys, resolved))

    return value


async def _resolve_element(element: Element, registry: ContextRegistry) -> Any:
    output = await resolve_deep(await element.run(), registry)
    continuation = element.continuation
    if continuation is None:
        return output

    # Runs in the scope that resolved the element, so its nodes share that parent
    next_tree = continuation(output)
    if inspect.isawaitable(next_tree):
        next_tree = await next_tree
    logger.debug(f"Continuation of {element!r} returned {type(next_tree).__name__}")
    return await resolve_deep(next_tree, registry)


async def execute(element: Any, registry: Optional[ContextRegistry] = None) -> Any:
    """Execute a workflow tree and return its fully resolved output.

    Outside a Workflow, components record into the registry's fallback
    workflow context (see ``ContextRegistry.workflow_context``), which is
    shared by every such call.

    Args:
        element: An Element (or any resolvable value) to execute.
        registry: Context registry to run against. Defaults to the
            process-wide registry.

    Returns:
        The resolved output of the tree. If the element has a continuation,
        the resolved output of the tree the continuation returned.

    Raises:
        ExecutionError: If element is None.
    """
    if element is None:
        raise ExecutionError("Cannot execute None - pass an element or value")
    return await resolve_deep(element, registry or default_registry)
