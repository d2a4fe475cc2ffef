"""
Generation Recorder

Persists versioned snapshots of a generation as its events arrive, so the
result survives whether or not anyone is listening on the stream.
"""

import logging
from typing import Optional, Protocol

from src.generation.events import (
    CompleteEvent,
    ErrorEvent,
    EventModel,
    FileGeneratedEvent,
    GameFile,
)
from src.generation.external_api import DEFAULT_FRAMEWORK, DEFAULT_GAME_TYPE
from src.generation.keys import GenerationKey
from src.storage.models import GenerationResponse, GenerationSnapshot, GenerationStatus

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def append_generation_response(
        self, conversation_id: str, message_id: str, snapshot: GenerationSnapshot
    ) -> GenerationResponse: ...


class GenerationRecorder:
    """
    Turns the event sequence of one generation into stored snapshots.

    - ``file_generated`` → one ``generating`` snapshot with every file so far
    - ``complete`` → one final ``completed`` snapshot
    - ``error`` (event or exception) → one final ``error`` snapshot

    Only one final snapshot is ever written; later terminal events are ignored.
    """

    def __init__(self, store: SnapshotStore, key: GenerationKey, prompt: str):
        self.store = store
        self.key = key
        self.prompt = prompt
        self.files: dict[str, GameFile] = {}
        self.finished = False
        self.versions_written = 0

    def _append(
        self,
        status: GenerationStatus,
        metadata: Optional[dict] = None,
        error: Optional[str] = None,
    ) -> GenerationResponse:
        snapshot = GenerationSnapshot(
            prompt=self.prompt,
            files=list(self.files.values()),
            status=status,
            metadata=metadata or {},
            error=error,
        )
        response = self.store.append_generation_response(
            self.key.conversation_id, self.key.message_id, snapshot
        )
        self.versions_written += 1
        return response

    def record(self, event: EventModel) -> Optional[GenerationResponse]:
        """
        Persist whatever ``event`` implies.

        Returns:
            The snapshot written, or None for events that are not persisted
        """
        if self.finished:
            logger.debug(f"Ignoring {event.type} for {self.key}: generation already recorded")
            return None

        if isinstance(event, FileGeneratedEvent):
            self.files[event.file.path] = event.file
            return self._append(GenerationStatus.GENERATING)

        if isinstance(event, CompleteEvent):
            for game_file in event.files:
                self.files.setdefault(game_file.path, game_file)
            self.finished = True
            metadata = {
                "gameType": DEFAULT_GAME_TYPE,
                "framework": DEFAULT_FRAMEWORK,
                "features": [],
                **event.metadata,
                "liveUrl": event.live_url,
            }
            response = self._append(GenerationStatus.COMPLETED, metadata=metadata)
            logger.info(
                f"Recorded completed generation for {self.key}: "
                f"{len(self.files)} files, version {response.version}"
            )
            return response

        if isinstance(event, ErrorEvent):
            return self.record_failure(event.error, event.details)

        return None

    def record_failure(self, error: str, details: Optional[str] = None) -> Optional[GenerationResponse]:
        """Persist the final ``error`` snapshot (once)."""
        if self.finished:
            return None
        self.finished = True
        metadata = {"details": details} if details else {}
        response = self._append(GenerationStatus.ERROR, metadata=metadata, error=error)
        logger.info(f"Recorded failed generation for {self.key}: {error} (version {response.version})")
        return response
