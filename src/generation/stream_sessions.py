"""
Stream Session Registry

Tracks the live SSE connection for each composite key and delivers events
to it. Delivery is best-effort: events for absent or dead sessions are
dropped, never buffered or redelivered.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from src.core.exceptions import ChannelClosedError
from src.generation.events import EndEvent, EventModel, PingEvent
from src.generation.keys import GenerationKey

logger = logging.getLogger(__name__)

_CLOSE = object()


class SSEChannel:
    """
    Writable side of one SSE response.

    Frames written here are drained by the HTTP response body through
    ``frames()``. Once closed, writes raise ``ChannelClosedError`` and the
    response ends after the frames already queued.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def write(self, frame: str) -> None:
        if self.closed:
            raise ChannelClosedError("SSE channel is closed")
        self._queue.put_nowait(frame)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSE)

    async def frames(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item


@dataclass
class StreamSession:
    """A live stream listener for one composite key."""

    key: GenerationKey
    channel: SSEChannel
    user_id: str
    created_at: float = field(default_factory=time.time)
    alive: bool = True
    heartbeat_task: Optional[asyncio.Task] = None

    @property
    def conversation_id(self) -> str:
        return self.key.conversation_id

    @property
    def message_id(self) -> str:
        return self.key.message_id


class StreamSessionRegistry:
    """
    Map of composite key to its live stream session.

    At most one session exists per key. Opening a second stream for a key
    takes over: the earlier session is sent ``end``, marked dead, loses its
    heartbeat and has its channel closed before the new one is stored.
    """

    def __init__(self, heartbeat_interval: float = 30.0):
        """
        Initialize the registry.

        Args:
            heartbeat_interval: Seconds between ping events on each session
        """
        self.heartbeat_interval = heartbeat_interval
        self._sessions: dict[GenerationKey, StreamSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: GenerationKey) -> bool:
        return key in self._sessions

    def get(self, key: GenerationKey) -> Optional[StreamSession]:
        """Return the live session for ``key``, if any."""
        session = self._sessions.get(key)
        if session is None or not session.alive:
            return None
        return session

    def open(self, key: GenerationKey, channel: SSEChannel, user_id: str) -> StreamSession:
        """
        Store a new session for ``key`` and start its heartbeat.

        Must be called from inside the running event loop.
        """
        existing = self._sessions.pop(key, None)
        if existing is not None:
            logger.warning(f"Stream for {key} reopened; closing the previous connection")
            self._retire(existing, farewell=EndEvent())

        session = StreamSession(key=key, channel=channel, user_id=user_id)
        self._sessions[key] = session
        session.heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat(session))
        logger.info(f"Stream session opened for {key} (user={user_id}, {len(self._sessions)} active)")
        return session

    def send(self, key: GenerationKey, event: EventModel) -> bool:
        """
        Deliver ``event`` to the session for ``key``.

        Returns:
            True if the frame was written, False if it was dropped
        """
        session = self._sessions.get(key)
        if session is None or not session.alive:
            logger.debug(f"Dropped {event.type} event for {key}: no live session")
            return False

        # Client-gone is detected by the response body being cancelled, which
        # calls handle_disconnect; a closed channel here means it was retired.
        try:
            session.channel.write(event.to_sse())
            return True
        except ChannelClosedError:
            session.alive = False
            logger.info(f"Stream for {key} went away; marking session dead")
            return False

    def close(self, key: GenerationKey, channel: Optional[SSEChannel] = None) -> bool:
        """
        Mark the session dead, stop its heartbeat, close its channel and
        remove it. Safe to call repeatedly and from any cleanup path.

        Args:
            key: Composite key
            channel: When given, only close if the stored session still owns
                this channel (a replaced connection must not close its successor)

        Returns:
            True if a session was removed
        """
        session = self._sessions.get(key)
        if session is None:
            return False
        if channel is not None and session.channel is not channel:
            return False

        del self._sessions[key]
        self._retire(session)
        logger.info(f"Stream session closed for {key} ({len(self._sessions)} active)")
        return True

    def close_conversation(self, conversation_id: str) -> int:
        """Close every session of a conversation. Returns the count."""
        keys = [key for key in self._sessions if key.conversation_id == conversation_id]
        for key in keys:
            self.close(key)
        return len(keys)

    def close_all(self) -> int:
        """Close every session. Returns the count."""
        keys = list(self._sessions)
        for key in keys:
            self.close(key)
        return len(keys)

    def _retire(self, session: StreamSession, farewell: Optional[EventModel] = None) -> None:
        if farewell is not None and session.alive and not session.channel.closed:
            try:
                session.channel.write(farewell.to_sse())
            except ChannelClosedError:
                pass
        session.alive = False

        task = session.heartbeat_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        session.heartbeat_task = None

        session.channel.close()

    async def _heartbeat(self, session: StreamSession) -> None:
        while session.alive:
            await asyncio.sleep(self.heartbeat_interval)
            if not session.alive:
                return
            # Only the registry closes channels, so this write fails only after a race with _retire.
            try:
                session.channel.write(PingEvent().to_sse())
            except ChannelClosedError:
                logger.info(f"Heartbeat failed for {session.key}; closing session")
                self.close(session.key, session.channel)
                return
