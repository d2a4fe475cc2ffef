"""
Pending Generation Registry

Holds generation requests that were accepted before any stream connected.
A stream that connects later takes its entry and starts the generation.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from src.generation.keys import GenerationKey
from src.utilities.config import GenerationVariant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingGeneration:
    """A deferred generation request waiting for its stream."""

    prompt: str
    variant: GenerationVariant = GenerationVariant.SIMPLE2
    submitted_at: float = field(default_factory=time.time)


class PendingGenerationRegistry:
    """
    Map of composite key to deferred generation request.

    Entries older than ``ttl`` seconds are treated as absent and removed
    the next time the registry is touched (or by ``purge_expired()``), so
    clients that never open their stream cannot grow the map forever.

    All methods are synchronous: they run between await points of the
    event loop and never interleave with each other.
    """

    def __init__(self, ttl: float = 600.0, clock: Callable[[], float] = time.time):
        """
        Initialize the registry.

        Args:
            ttl: Seconds an entry may wait for its stream
            clock: Time source (seconds), injectable for tests
        """
        self.ttl = ttl
        self.clock = clock
        self._entries: dict[GenerationKey, PendingGeneration] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: GenerationKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._is_expired(entry)

    def _is_expired(self, entry: PendingGeneration) -> bool:
        return self.clock() - entry.submitted_at > self.ttl

    def register(
        self,
        key: GenerationKey,
        prompt: str,
        variant: GenerationVariant = GenerationVariant.SIMPLE2,
    ) -> PendingGeneration:
        """Insert or overwrite the entry for ``key``."""
        self.purge_expired()
        entry = PendingGeneration(prompt=prompt, variant=variant, submitted_at=self.clock())
        if key in self._entries:
            logger.info(f"Replacing pending generation for {key}")
        self._entries[key] = entry
        logger.info(f"Registered pending generation for {key} ({len(self._entries)} pending)")
        return entry

    def take(self, key: GenerationKey) -> Optional[PendingGeneration]:
        """Remove and return the entry for ``key``; None if absent or expired."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        if self._is_expired(entry):
            logger.info(f"Pending generation for {key} expired before its stream connected")
            return None
        logger.info(f"Took pending generation for {key}")
        return entry

    def discard(self, key: GenerationKey) -> None:
        """Remove the entry for ``key`` if present."""
        if self._entries.pop(key, None) is not None:
            logger.debug(f"Discarded pending generation for {key}")

    def discard_conversation(self, conversation_id: str) -> int:
        """Remove every entry belonging to a conversation. Returns the count."""
        keys = [key for key in self._entries if key.conversation_id == conversation_id]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.info(f"Discarded {len(keys)} pending generation(s) for conversation {conversation_id}")
        return len(keys)

    def purge_expired(self) -> int:
        """Remove expired entries. Returns the count removed."""
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(f"Purged {len(expired)} expired pending generation(s)")
        return len(expired)
