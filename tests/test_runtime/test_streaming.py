"""Tests for Streamable and token iteration."""

import asyncio

import pytest

from loom.streaming import Streamable, iterate_tokens


async def tokens(*parts, fail_after=None):
    for index, part in enumerate(parts):
        if fail_after is not None and index == fail_after:
            raise RuntimeError("source failed")
        await asyncio.sleep(0)
        yield part


async def collect(iterator):
    return [token async for token in iterator]


class TestIterateTokens:
    """Tests for iterate_tokens."""

    @pytest.mark.asyncio
    async def test_string_is_single_token(self):
        """Test that a bare string is yielded whole."""
        assert await collect(iterate_tokens("hello")) == ["hello"]

    @pytest.mark.asyncio
    async def test_none_is_empty(self):
        """Test that None yields no tokens."""
        assert await collect(iterate_tokens(None)) == []

    @pytest.mark.asyncio
    async def test_sync_and_async_iterables(self):
        """Test that sync and async iterables are both accepted."""
        assert await collect(iterate_tokens(["a", "b"])) == ["a", "b"]
        assert await collect(iterate_tokens(tokens("c", "d"))) == ["c", "d"]

    @pytest.mark.asyncio
    async def test_unsupported_source(self):
        """Test that non-iterable sources raise TypeError."""
        with pytest.raises(TypeError, match="Cannot stream tokens from int"):
            await collect(iterate_tokens(42))


class TestStreamable:
    """Tests for Streamable."""

    @pytest.mark.asyncio
    async def test_value_accumulates(self):
        """Test that value is the concatenation of all tokens."""
        streamable = Streamable.from_iterable(tokens("Hello", " ", "World"))

        assert await streamable.value == "Hello World"
        assert streamable.finished
        assert streamable.tokens == ["Hello", " ", "World"]

    @pytest.mark.asyncio
    async def test_stream_yields_tokens(self):
        """Test that iterating yields each token in order."""
        streamable = Streamable.from_iterable(tokens("a", "b", "c"))

        assert await collect(streamable) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_stream_restartable(self):
        """Test that each stream() call replays the full token sequence."""
        streamable = Streamable.from_iterable(tokens("a", "b"))

        first = await collect(streamable.stream())
        second = await collect(streamable.stream())

        assert first == second == ["a", "b"]

    @pytest.mark.asyncio
    async def test_concurrent_consumers(self):
        """Test that value and several iterators can be consumed at once."""
        streamable = Streamable.from_iterable(tokens("x", "y", "z"))

        value, first, second = await asyncio.gather(
            streamable.value, collect(streamable.stream()), collect(streamable.stream())
        )

        assert value == "xyz"
        assert first == second == ["x", "y", "z"]

    @pytest.mark.asyncio
    async def test_sync_source(self):
        """Test a streamable over a plain list of strings."""
        streamable = Streamable.from_iterable(["1", "2"])

        assert await streamable.value == "12"

    @pytest.mark.asyncio
    async def test_lazy_start(self):
        """Test that nothing is pumped until a view is requested."""
        streamable = Streamable.from_iterable(tokens("a"))

        assert not streamable.started
        await streamable.value
        assert streamable.started

    @pytest.mark.asyncio
    async def test_error_reaches_iterator_after_partial_tokens(self):
        """Test that a failing source surfaces its error after the tokens it produced."""
        streamable = Streamable.from_iterable(tokens("a", "b", "c", fail_after=2))
        received = []

        with pytest.raises(RuntimeError, match="source failed"):
            async for token in streamable:
                received.append(token)

        assert received == ["a", "b"]

    @pytest.mark.asyncio
    async def test_error_reaches_value(self):
        """Test that awaiting the value of a failed source raises its error."""
        streamable = Streamable.from_iterable(tokens("a", "b", fail_after=1))

        with pytest.raises(RuntimeError, match="source failed"):
            await streamable.value

    @pytest.mark.asyncio
    async def test_cancelling_value_wait_keeps_stream(self):
        """Test that cancelling one value waiter does not cancel the stream."""
        gate = asyncio.Event()

        async def slow():
            yield "a"
            await gate.wait()
            yield "b"

        streamable = Streamable.from_iterable(slow())
        waiter = asyncio.ensure_future(streamable.value)
        await asyncio.sleep(0.01)
        waiter.cancel()
        gate.set()

        assert await streamable.value == "ab"

    def test_repr(self):
        """Test the idle repr."""
        assert repr(Streamable.from_iterable([])) == "<Streamable idle tokens=0>"
