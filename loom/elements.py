"""Executable elements.

An Element is one pending invocation: a callable plus the arguments it will
be called with. Components build elements when called; the resolver runs
them. Authoring surfaces only need to produce Element values.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

# Reserved argument holding a continuation (or nested elements for providers)
CHILDREN_ARG = "children"


@dataclass(frozen=True, eq=False)
class Element:
    """A pending invocation of a component.

    Attributes:
        invoke: Callable receiving ``args`` and returning a value or awaitable.
        args: Arguments bound at construction time.
        name: Human-readable name used in reprs and checkpoints.
    """

    invoke: Callable[[Dict[str, Any]], Any]
    args: Dict[str, Any] = field(default_factory=dict)
    name: str = ""

    @property
    def continuation(self) -> Optional[Callable[[Any], Any]]:
        """The child function chained after this element, if any.

        Only a plain callable counts; nested elements are ordinary values.
        """
        children = self.args.get(CHILDREN_ARG)
        if callable(children) and not isinstance(children, Element):
            return children
        return None

    async def run(self) -> Any:
        """Invoke the element once and return its direct (unresolved) output."""
        result = self.invoke(self.args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"<Element {self.name or getattr(self.invoke, '__name__', 'anonymous')}>"


def create_element(
    invoke: Callable[[Dict[str, Any]], Any], name: str = "", **args: Any
) -> Element:
    """Build an element from any callable taking an args dict."""
    return Element(invoke=invoke, args=args, name=name)


def _fragment_children(args: Dict[str, Any]) -> list:
    return list(args[CHILDREN_ARG])


def fragment(*children: Any) -> Element:
    """Group several values into one element resolving to a list of them."""
    return Element(
        invoke=_fragment_children,
        args={CHILDREN_ARG: list(children)},
        name="Fragment",
    )
