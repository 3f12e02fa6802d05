"""Serialization utilities for checkpoints.

Component props and outputs can be anything; checkpoint snapshots must be
plain JSON. These helpers convert recorded values once, when they are
attached to a node.
"""

import dataclasses
from typing import Any, Optional

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError

from loom.elements import Element
from loom.streaming import Streamable


def truncate_content(
    content: str,
    max_length: int = 50000,
    suffix: str = "... [truncated]",
) -> str:
    """Truncate content if it exceeds max length.

    Args:
        content: The content to potentially truncate
        max_length: Maximum allowed length
        suffix: Suffix to append if truncated

    Returns:
        Original content or truncated version with suffix
    """
    if len(content) <= max_length:
        return content
    return content[: max_length - len(suffix)] + suffix


def to_jsonable(value: Any, max_length: Optional[int] = None) -> Any:
    """Convert a recorded value into JSON-safe data.

    Args:
        value: Prop, output or metadata value
        max_length: If set, strings longer than this are truncated

    Returns:
        Value made of dicts, lists, strings, numbers, booleans and None
    """
    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if max_length is not None:
            return truncate_content(value, max_length)
        return value

    # Unresolved values only appear in props and stream-mode outputs
    if isinstance(value, Element):
        return f"<element {value.name or 'anonymous'}>"

    if isinstance(value, Streamable):
        return "<stream>"

    if isinstance(value, BaseModel):
        try:
            return to_jsonable(value.model_dump(mode="json"), max_length)
        except PydanticSerializationError:
            # Arbitrary-type fields: convert field by field instead
            fields = {name: getattr(value, name) for name in type(value).model_fields}
            return to_jsonable(fields, max_length)

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return to_jsonable(fields, max_length)

    if isinstance(value, dict):
        return {str(key): to_jsonable(item, max_length) for key, item in value.items()}

    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(item, max_length) for item in value]

    if callable(value):
        return f"<function {getattr(value, '__qualname__', type(value).__name__)}>"

    return str(value)
