"""
Generation module for the Claw API.

This module relays game generations from the external API to SSE streams
and persists their versioned snapshots.
"""

from src.generation.coordinator import DisconnectPolicy, SessionCoordinator
from src.generation.events import (
    ClientEvent,
    CompleteEvent,
    ErrorEvent,
    EventModel,
    FileGeneratedEvent,
    GameFile,
    GenerationEvent,
    ProgressEvent,
    parse_client_event,
)
from src.generation.external_api import ExternalGameAPI
from src.generation.keys import GenerationKey
from src.generation.pending import PendingGeneration, PendingGenerationRegistry
from src.generation.recorder import GenerationRecorder
from src.generation.stream_sessions import SSEChannel, StreamSession, StreamSessionRegistry

__all__ = [
    # Coordination
    "SessionCoordinator",
    "DisconnectPolicy",
    "GenerationKey",
    # Events
    "EventModel",
    "GenerationEvent",
    "ClientEvent",
    "ProgressEvent",
    "FileGeneratedEvent",
    "CompleteEvent",
    "ErrorEvent",
    "GameFile",
    "parse_client_event",
    # External API
    "ExternalGameAPI",
    # Registries
    "PendingGeneration",
    "PendingGenerationRegistry",
    "SSEChannel",
    "StreamSession",
    "StreamSessionRegistry",
    # Persistence
    "GenerationRecorder",
]
