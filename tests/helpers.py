"""
Test doubles shared by the generation tests.
"""

import asyncio
import json
from collections import defaultdict
from typing import Optional

from src.generation.events import EventModel
from src.generation.stream_sessions import SSEChannel
from src.storage.models import GenerationResponse, GenerationSnapshot


class FakeGameSource:
    """
    Scripted stand-in for the external game API.

    Yields ``events`` in order, then raises ``error`` if given. With
    ``pause_after=n`` it stops after yielding ``n`` events until
    ``resume`` is set, signalling ``reached`` when it gets there.
    """

    def __init__(
        self,
        events: Optional[list[EventModel]] = None,
        error: Optional[Exception] = None,
        pause_after: Optional[int] = None,
    ):
        self.events = list(events or [])
        self.error = error
        self.pause_after = pause_after
        self.reached = asyncio.Event()
        self.resume = asyncio.Event()
        self.calls: list[tuple[str, str]] = []
        self.finished = False
        self.closed = False

    async def generate(self, prompt: str, target_id: str):
        self.calls.append((prompt, target_id))
        try:
            for index, event in enumerate(self.events):
                if self.pause_after is not None and index == self.pause_after:
                    self.reached.set()
                    await self.resume.wait()
                await asyncio.sleep(0)
                yield event
            if self.error is not None:
                raise self.error
            self.finished = True
        finally:
            self.closed = True


class InMemorySnapshotStore:
    """Append-only snapshot store keeping rows per message in memory."""

    def __init__(self):
        self.rows: dict[str, list[GenerationResponse]] = defaultdict(list)

    def append_generation_response(
        self, conversation_id: str, message_id: str, snapshot: GenerationSnapshot
    ) -> GenerationResponse:
        response = GenerationResponse(
            message_id=message_id,
            conversation_id=conversation_id,
            version=len(self.rows[message_id]) + 1,
            prompt=snapshot.prompt,
            files=list(snapshot.files),
            status=snapshot.status,
            metadata=dict(snapshot.metadata),
            error=snapshot.error,
            created_at="2026-01-25T14:00:00",
        )
        self.rows[message_id].append(response)
        return response


def decode_frame(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n"), frame
    return json.loads(frame[len("data: "):])


async def drain(channel: SSEChannel, timeout: float = 2.0) -> list[dict]:
    """Collect every event written to a channel until it closes."""

    async def _collect():
        return [decode_frame(frame) async for frame in channel.frames()]

    return await asyncio.wait_for(_collect(), timeout)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)
