"""Tests for checkpoint serialization helpers."""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

from loom.checkpoint import to_jsonable, truncate_content
from loom.elements import create_element
from loom.streaming import Streamable


class Query(BaseModel):
    text: str
    limit: int = 10


@dataclass
class Point:
    x: int
    y: int


class Opaque:
    def __str__(self):
        return "opaque-object"


class Holder(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    thing: Opaque
    label: str = ""


def summarize(text):
    return text


class TestTruncateContent:
    """Tests for truncate_content."""

    def test_short_content_unchanged(self):
        """Test content within the limit is returned as-is."""
        assert truncate_content("short", 10) == "short"

    def test_long_content_truncated(self):
        """Test content over the limit is cut and suffixed to the exact limit."""
        result = truncate_content("a" * 100, 30)

        assert len(result) == 30
        assert result.endswith("... [truncated]")

    def test_custom_suffix(self):
        """Test a custom truncation suffix."""
        assert truncate_content("abcdefgh", 5, suffix="~") == "abcd~"


class TestToJsonable:
    """Tests for to_jsonable."""

    def test_primitives(self):
        """Test that JSON primitives pass through."""
        for value in [None, True, 3, 2.5, "text"]:
            assert to_jsonable(value) == value

    def test_pydantic_model(self):
        """Test that pydantic models are dumped in JSON mode."""
        assert to_jsonable(Query(text="hi")) == {"text": "hi", "limit": 10}

    def test_dataclass(self):
        """Test that dataclasses become dicts."""
        assert to_jsonable(Point(1, 2)) == {"x": 1, "y": 2}

    def test_containers(self):
        """Test nested dicts, tuples and sets."""
        result = to_jsonable({"items": (1, Point(0, 0)), "tags": {"only"}, 3: "key"})

        assert result == {"items": [1, {"x": 0, "y": 0}], "tags": ["only"], "3": "key"}

    def test_unresolved_values(self):
        """Test that elements, streams and functions get descriptive strings."""
        element = create_element(lambda args: None, name="Fetch")

        assert to_jsonable(element) == "<element Fetch>"
        assert to_jsonable(Streamable.from_iterable([])) == "<stream>"
        assert to_jsonable(summarize) == "<function summarize>"

    def test_unknown_object_uses_str(self):
        """Test that unknown objects fall back to str()."""
        assert to_jsonable(Opaque()) == "opaque-object"

    def test_nested_strings_truncated(self):
        """Test that max_length applies to strings at any depth."""
        result = to_jsonable({"outer": ["x" * 50]}, max_length=20)

        assert len(result["outer"][0]) == 20

    def test_model_with_arbitrary_type_field(self):
        """Test that models pydantic cannot dump are converted field by field."""
        assert to_jsonable(Holder(thing=Opaque(), label="x")) == {
            "thing": "opaque-object",
            "label": "x",
        }
