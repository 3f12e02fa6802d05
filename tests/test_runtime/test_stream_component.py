"""Tests for StreamComponent in drained and streamed modes."""

import asyncio

import pytest

from loom.checkpoint import NodeStatus
from loom.component import StreamComponent, stream_component
from loom.streaming import Streamable


async def words(*parts, fail_after=None):
    for index, part in enumerate(parts):
        if fail_after is not None and index == fail_after:
            raise RuntimeError("model disconnected")
        await asyncio.sleep(0)
        yield part


async def collect(iterator):
    return [token async for token in iterator]


class TestDrainedMode:
    """Tests for stream=False."""

    @pytest.mark.asyncio
    async def test_tokens_joined(self, registry, manager, run):
        """Test that tokens are drained into one string."""

        @stream_component("Chat", registry=registry)
        def chat(prompt):
            return words("Hello", " ", prompt)

        assert await run(chat(prompt="World", stream=False)) == "Hello World"

        node = manager.root
        assert node.output == "Hello World"
        assert node.props == {"prompt": "World", "stream": False}
        assert node.status == NodeStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_default_is_drained(self, registry, run):
        """Test that omitting stream drains the output."""

        @stream_component("Chat", registry=registry)
        async def chat():
            for token in ["a", "b"]:
                yield token

        assert await run(chat()) == "ab"

    @pytest.mark.asyncio
    async def test_sync_iterable_and_string(self, registry, run):
        """Test that lists of tokens and plain strings are accepted."""

        @stream_component("FromList", registry=registry)
        def from_list():
            return ["x", "y", "z"]

        @stream_component("FromString", registry=registry)
        async def from_string():
            return "whole"

        assert await run(from_list(stream=False)) == "xyz"
        assert await run(from_string(stream=False)) == "whole"

    @pytest.mark.asyncio
    async def test_streamable_source(self, registry, run):
        """Test that a returned Streamable is accumulated."""

        @stream_component("Provider", registry=registry)
        def provider():
            return Streamable.from_iterable(words("s", "t"))

        assert await run(provider(stream=False)) == "st"

    @pytest.mark.asyncio
    async def test_function_sees_mode_not_argument(self, registry, run):
        """Test that the function reads the mode from context and never gets stream."""
        seen = {}

        @stream_component("Mode", registry=registry)
        def mode(**kwargs):
            seen["kwargs"] = kwargs
            seen["streaming"] = registry.is_streaming()
            return "m"

        await run(mode(topic="t", stream=False))

        assert seen == {"kwargs": {"topic": "t"}, "streaming": False}

    @pytest.mark.asyncio
    async def test_drain_failure(self, registry, manager, run):
        """Test that a source failing while drained records the error and re-raises."""

        @stream_component("Flaky", registry=registry)
        def flaky():
            return words("a", "b", fail_after=1)

        with pytest.raises(RuntimeError, match="model disconnected"):
            await run(flaky(stream=False))

        node = manager.root
        assert node.metadata == {"error": "model disconnected"}
        assert node.output is None


class TestStreamedMode:
    """Tests for stream=True."""

    @pytest.mark.asyncio
    async def test_returns_iterator(self, registry, manager, run):
        """Test that streamed output is an async iterator of the tokens."""

        @stream_component("Chat", registry=registry)
        def chat():
            return words("one ", "two ", "three")

        iterator = await run(chat(stream=True))

        assert await collect(iterator) == ["one ", "two ", "three"]
        await manager.wait_for_pending_updates()

        node = manager.root
        assert node.output == "one two three"
        assert node.metadata == {"streamCompleted": True}
        assert node.status == NodeStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_function_sees_streaming(self, registry, run):
        """Test that the function runs with streaming enabled in context."""
        seen = []

        @stream_component("Mode", registry=registry)
        def mode():
            seen.append(registry.is_streaming())
            return ["t"]

        await collect(await run(mode(stream=True)))

        assert seen == [True]

    @pytest.mark.asyncio
    async def test_returned_streamable_not_accumulated(self, registry, manager, run):
        """Test that a Streamable from the function is streamed token by token."""

        @stream_component("Provider", registry=registry)
        def provider():
            return Streamable.from_iterable(words("p", "q"))

        tokens = await collect(await run(provider(stream=True)))

        assert tokens == ["p", "q"]
        await manager.wait_for_pending_updates()
        assert manager.root.output == "pq"

    @pytest.mark.asyncio
    async def test_failure_mid_stream(self, registry, manager, sink, run):
        """Test that a mid-stream failure keeps partial output and reaches the consumer."""

        @stream_component("Flaky", registry=registry)
        def flaky():
            return words("partial ", "output ", "lost", fail_after=2)

        iterator = await run(flaky(stream=True))
        received = []

        with pytest.raises(RuntimeError, match="model disconnected"):
            async for token in iterator:
                received.append(token)
        await manager.wait_for_pending_updates()

        assert received == ["partial ", "output "]
        node = manager.root
        assert node.output == "partial output "
        assert node.metadata == {"error": "model disconnected", "streamCompleted": False}
        assert node.status == NodeStatus.FAILED
        assert sink.latest["metadata"]["streamCompleted"] is False

    @pytest.mark.asyncio
    async def test_node_completes_without_consumer(self, registry, manager):
        """Test that the background pump completes the node even if nobody iterates."""

        @stream_component("Chat", registry=registry)
        def chat():
            return words("a", "b")

        from loom.workflow import Workflow

        await Workflow(chat(stream=True), registry=registry, checkpoint_manager=manager).run()
        await asyncio.sleep(0.02)

        assert manager.root.output == "ab"
        assert manager.root.metadata == {"streamCompleted": True}

    def test_decorator_builds_stream_component(self, registry):
        """Test the stream_component decorator."""

        @stream_component
        def echo():
            return "e"

        assert isinstance(echo, StreamComponent)
        assert echo.name == "echo"
