"""Tests for SSE channels and the stream session registry."""

import asyncio

import pytest

from helpers import decode_frame, drain, wait_until
from src.core.exceptions import ChannelClosedError
from src.generation.events import ProgressEvent, WaitingEvent
from src.generation.keys import GenerationKey
from src.generation.stream_sessions import SSEChannel, StreamSessionRegistry

KEY = GenerationKey("c1", "m1")


class TestSSEChannel:
    @pytest.mark.asyncio
    async def test_frames_drain_until_close(self):
        channel = SSEChannel()
        channel.write("data: 1\n\n")
        channel.write("data: 2\n\n")
        channel.close()

        frames = [frame async for frame in channel.frames()]

        assert frames == ["data: 1\n\n", "data: 2\n\n"]

    @pytest.mark.asyncio
    async def test_write_after_close_raises(self):
        channel = SSEChannel()
        channel.close()

        with pytest.raises(ChannelClosedError):
            channel.write("data: late\n\n")

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        channel = SSEChannel()
        channel.close()
        channel.close()

        assert [frame async for frame in channel.frames()] == []


class TestStreamSessionRegistry:
    @pytest.mark.asyncio
    async def test_send_delivers_to_live_session(self):
        registry = StreamSessionRegistry(heartbeat_interval=60)
        channel = SSEChannel()
        registry.open(KEY, channel, "u1")

        assert registry.send(KEY, WaitingEvent()) is True
        registry.close(KEY)

        events = await drain(channel)
        assert [e["type"] for e in events] == ["waiting"]

    @pytest.mark.asyncio
    async def test_send_without_session_is_dropped(self):
        registry = StreamSessionRegistry(heartbeat_interval=60)

        assert registry.send(KEY, ProgressEvent(step=1)) is False

    @pytest.mark.asyncio
    async def test_send_to_dead_channel_marks_session_dead(self):
        registry = StreamSessionRegistry(heartbeat_interval=60)
        channel = SSEChannel()
        registry.open(KEY, channel, "u1")
        channel.close()

        assert registry.send(KEY, ProgressEvent(step=1)) is False
        assert registry.get(KEY) is None
        registry.close(KEY)

    @pytest.mark.asyncio
    async def test_second_open_takes_over(self):
        registry = StreamSessionRegistry(heartbeat_interval=60)
        first, second = SSEChannel(), SSEChannel()
        registry.open(KEY, first, "u1")
        first_session = registry.get(KEY)

        registry.open(KEY, second, "u1")

        assert len(registry) == 1
        assert registry.get(KEY).channel is second
        assert first_session.alive is False
        assert first_session.heartbeat_task is None
        assert first.closed
        assert [e["type"] for e in await drain(first)] == ["end"]

        registry.send(KEY, WaitingEvent())
        registry.close(KEY)
        assert [e["type"] for e in await drain(second)] == ["waiting"]

    @pytest.mark.asyncio
    async def test_close_with_stale_channel_keeps_successor(self):
        registry = StreamSessionRegistry(heartbeat_interval=60)
        first, second = SSEChannel(), SSEChannel()
        registry.open(KEY, first, "u1")
        registry.open(KEY, second, "u1")

        assert registry.close(KEY, first) is False
        assert registry.get(KEY).channel is second
        registry.close_all()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        registry = StreamSessionRegistry(heartbeat_interval=60)
        channel = SSEChannel()
        registry.open(KEY, channel, "u1")

        assert registry.close(KEY) is True
        assert registry.close(KEY) is False
        assert channel.closed
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_heartbeat_sends_pings(self):
        registry = StreamSessionRegistry(heartbeat_interval=0.01)
        channel = SSEChannel()
        registry.open(KEY, channel, "u1")

        frames = channel.frames()
        first = decode_frame(await asyncio.wait_for(frames.__anext__(), 1.0))
        second = decode_frame(await asyncio.wait_for(frames.__anext__(), 1.0))
        registry.close(KEY)

        assert first["type"] == "ping"
        assert second["type"] == "ping"

    @pytest.mark.asyncio
    async def test_heartbeat_failure_closes_session(self):
        registry = StreamSessionRegistry(heartbeat_interval=0.01)
        channel = SSEChannel()
        session = registry.open(KEY, channel, "u1")

        # Client went away without the registry noticing
        channel.close()
        await wait_until(lambda: KEY not in registry)

        assert session.alive is False
        assert session.heartbeat_task is None

    @pytest.mark.asyncio
    async def test_close_stops_heartbeat(self):
        registry = StreamSessionRegistry(heartbeat_interval=0.01)
        channel = SSEChannel()
        session = registry.open(KEY, channel, "u1")
        task = session.heartbeat_task

        registry.close(KEY)
        await asyncio.sleep(0.05)

        assert task.cancelled() or task.done()
        assert await drain(channel) == []

    @pytest.mark.asyncio
    async def test_close_conversation(self):
        registry = StreamSessionRegistry(heartbeat_interval=60)
        registry.open(GenerationKey("c1", "m1"), SSEChannel(), "u1")
        registry.open(GenerationKey("c1", "m2"), SSEChannel(), "u1")
        registry.open(GenerationKey("c2", "m1"), SSEChannel(), "u1")

        assert registry.close_conversation("c1") == 2
        assert len(registry) == 1
        registry.close_all()
