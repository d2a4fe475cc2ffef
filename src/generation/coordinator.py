"""
Session Coordinator

Rendezvous between a submitted message and the SSE stream the client opens
for it, plus the relay loop that runs a generation:

    submit()      message accepted → pending entry (or immediate start if
                  the stream is already open)
    open_stream() stream connected → take pending entry and start after a
                  short delay, or report ``waiting``
    run_generation()
                  source events → recorder (persist) → session (relay);
                  terminal teardown: ``end``, close channel, drop both
                  registry entries

A client disconnect only tears down delivery. The generation keeps running
and its snapshots are still stored (``DisconnectPolicy.FIRE_AND_FORGET``).
"""

import asyncio
import logging
from enum import Enum
from typing import AsyncGenerator, Protocol

from src.generation.events import (
    CompleteEvent,
    ConnectedEvent,
    EndEvent,
    ErrorEvent,
    EventModel,
    GenerationCompleteEvent,
    GenerationStartedEvent,
    WaitingEvent,
    is_terminal,
)
from src.generation.keys import GenerationKey
from src.generation.pending import PendingGenerationRegistry
from src.generation.recorder import GenerationRecorder, SnapshotStore
from src.generation.stream_sessions import SSEChannel, StreamSessionRegistry
from src.utilities.config import GenerationVariant

logger = logging.getLogger(__name__)


class DisconnectPolicy(str, Enum):
    """What happens to a running generation when its stream disconnects"""

    # Keep generating and persisting; only delivery is torn down
    FIRE_AND_FORGET = "fire_and_forget"


class GenerationSource(Protocol):
    def generate(self, prompt: str, target_id: str) -> AsyncGenerator[EventModel, None]: ...


class SessionCoordinator:
    """
    Drives pending generations and stream sessions for every composite key.

    All state changes happen on the event loop between await points, so the
    registries need no locks.
    """

    disconnect_policy = DisconnectPolicy.FIRE_AND_FORGET

    def __init__(
        self,
        source: GenerationSource,
        store: SnapshotStore,
        pending: PendingGenerationRegistry,
        sessions: StreamSessionRegistry,
        start_delay: float = 0.5,
        api_prefix: str = "/api",
    ):
        """
        Initialize the coordinator.

        Args:
            source: Produces generation events for a prompt
            store: Receives versioned generation snapshots
            pending: Registry of generations waiting for a stream
            sessions: Registry of live stream sessions
            start_delay: Seconds to wait after a stream connects before
                starting its generation, so the client listener is attached
            api_prefix: Prefix used when building stream and preview URLs
        """
        self.source = source
        self.store = store
        self.pending = pending
        self.sessions = sessions
        self.start_delay = start_delay
        self.api_prefix = api_prefix.rstrip("/")
        self._tasks: dict[GenerationKey, asyncio.Task] = {}

    # ========== URLS ==========
    def stream_url(self, key: GenerationKey) -> str:
        return f"{self.api_prefix}/conversations/{key.conversation_id}/messages/{key.message_id}/stream"

    def preview_url(self, conversation_id: str) -> str:
        return f"{self.api_prefix}/conversations/{conversation_id}/preview"

    # ========== STATE QUERIES ==========
    @property
    def active_generations(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    def is_generating(self, key: GenerationKey) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    # ========== ENTRY POINTS ==========
    def submit(
        self,
        conversation_id: str,
        message_id: str,
        prompt: str,
        variant: GenerationVariant = GenerationVariant.SIMPLE2,
    ) -> str:
        """
        Queue a generation for a freshly stored message.

        If a stream is already open for the key, the generation starts right
        away instead of being registered as pending.

        Returns:
            The URL the client should open as an event stream
        """
        key = GenerationKey(conversation_id, message_id)
        if self.sessions.get(key) is not None:
            logger.info(f"Stream already open for {key}; starting generation immediately")
            self._start(key, prompt, delay=0.0)
        else:
            self.pending.register(key, prompt, variant)
        return self.stream_url(key)

    def open_stream(self, conversation_id: str, message_id: str, user_id: str) -> SSEChannel:
        """
        Accept an authenticated stream connection for a message.

        Returns:
            The channel the HTTP response should drain
        """
        key = GenerationKey(conversation_id, message_id)
        channel = SSEChannel()
        self.sessions.open(key, channel, user_id)
        self.sessions.send(key, ConnectedEvent(conversation_id=conversation_id, message_id=message_id))

        if self.is_generating(key):
            logger.info(f"Stream for {key} joined a running generation")
            return channel

        pending = self.pending.take(key)
        if pending is not None:
            self._start(key, pending.prompt, delay=self.start_delay)
        else:
            logger.info(f"No pending generation for {key}; stream is waiting")
            self.sessions.send(key, WaitingEvent())
        return channel

    def handle_disconnect(self, key: GenerationKey, channel: SSEChannel) -> None:
        """
        Tear down delivery for a client that went away.

        The generation for the key, if any, is left running.
        """
        if not self.sessions.close(key, channel):
            return
        self.pending.discard(key)
        if self.is_generating(key):
            logger.info(f"Client left {key} mid-generation; generation continues without a listener")

    def forget_conversation(self, conversation_id: str) -> None:
        """Drop pending entries, sessions and running generations of a deleted conversation."""
        self.pending.discard_conversation(conversation_id)
        self.sessions.close_conversation(conversation_id)
        for key, task in list(self._tasks.items()):
            if key.conversation_id == conversation_id and not task.done():
                task.cancel()

    # ========== GENERATION ==========
    def _start(self, key: GenerationKey, prompt: str, delay: float) -> asyncio.Task:
        existing = self._tasks.get(key)
        if existing is not None and not existing.done():
            logger.warning(f"Generation for {key} already running; not starting another")
            return existing

        task = asyncio.get_running_loop().create_task(
            self.run_generation(key, prompt, delay=delay), name=f"generation:{key}"
        )
        self._tasks[key] = task

        def _forget(finished: asyncio.Task) -> None:
            if self._tasks.get(key) is finished:
                del self._tasks[key]

        task.add_done_callback(_forget)
        return task

    def _persist(self, recorder: GenerationRecorder, event: EventModel) -> None:
        try:
            recorder.record(event)
        except Exception as e:
            logger.error(f"Failed to persist {event.type} for {recorder.key}: {e}", exc_info=True)

    def _to_client(self, key: GenerationKey, event: EventModel, recorder: GenerationRecorder) -> EventModel:
        if not isinstance(event, CompleteEvent):
            return event
        has_html = any(f.type == "html" for f in recorder.files.values())
        return GenerationCompleteEvent(
            files_count=len(recorder.files),
            preview_url=self.preview_url(key.conversation_id) if has_html else None,
            live_url=event.live_url,
        )

    async def run_generation(self, key: GenerationKey, prompt: str, delay: float = 0.0) -> None:
        """
        Run one generation to its terminal event, persisting and relaying
        every event in order, then tear the session down.
        """
        if delay > 0:
            await asyncio.sleep(delay)

        recorder = GenerationRecorder(self.store, key, prompt)
        self.sessions.send(key, GenerationStartedEvent())
        logger.info(f"Generation started for {key}")

        events = self.source.generate(prompt, key.conversation_id)
        try:
            async for event in events:
                self._persist(recorder, event)
                self.sessions.send(key, self._to_client(key, event, recorder))
                if is_terminal(event):
                    break
            else:
                if not recorder.finished:
                    error = ErrorEvent(error="Generation ended without a result")
                    self._persist(recorder, error)
                    self.sessions.send(key, error)

        except asyncio.CancelledError:
            logger.warning(f"Generation for {key} cancelled")
            self._persist(recorder, ErrorEvent(error="Generation cancelled"))
            raise

        except Exception as e:
            logger.error(f"Generation failed for {key}: {e}", exc_info=True)
            error = ErrorEvent(
                error=str(e) or type(e).__name__,
                details=getattr(e, "details", None) or "Failed to generate game using external API",
            )
            self._persist(recorder, error)
            self.sessions.send(key, error)

        finally:
            await events.aclose()
            self._finish(key)

    def _finish(self, key: GenerationKey) -> None:
        self.sessions.send(key, EndEvent())
        self.sessions.close(key)
        self.pending.discard(key)
        logger.info(f"Generation finished for {key}")

    # ========== LIFECYCLE ==========
    async def sweep_pending(self, interval: float) -> None:
        """Periodically purge pending generations whose stream never came."""
        while True:
            await asyncio.sleep(interval)
            self.pending.purge_expired()

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Close every session and give running generations time to finish."""
        closed = self.sessions.close_all()
        tasks = [task for task in self._tasks.values() if not task.done()]
        logger.info(f"Shutting down coordinator ({closed} sessions, {len(tasks)} generations)")
        if not tasks:
            return

        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
