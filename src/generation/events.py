"""
Generation event vocabulary.

Two layers share this module:

- The normalized events produced by the external game API adapter
  (``progress``, ``file_generated``, ``complete``, ``error``).
- The client-facing SSE events written to a stream session, one JSON object
  per ``data:`` frame and discriminated by ``type``.

``progress``, ``file_generated`` and ``error`` travel unchanged from the
adapter to the client; ``complete`` is relayed as ``generation_complete``.
"""

import time
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

FILE_TYPES = {
    "html": "html",
    "js": "js",
    "css": "css",
    "json": "json",
    "md": "md",
}

LANGUAGES = {
    "html": "html",
    "js": "javascript",
    "css": "css",
    "json": "json",
    "md": "markdown",
}


def _extension(path: str) -> str:
    return path.rsplit(".", 1)[-1].lower() if "." in path else ""


def file_type_for(path: str) -> str:
    """Map a file name to its game file type (defaults to js)."""
    return FILE_TYPES.get(_extension(path), "js")


def language_for(path: str) -> str:
    """Map a file name to its editor language (defaults to javascript)."""
    return LANGUAGES.get(_extension(path), "javascript")


# ========== FILES ==========
class GameFile(BaseModel):
    """A single generated game file."""

    path: str = Field(..., min_length=1)
    content: str
    type: str
    language: str

    @classmethod
    def from_path(cls, path: str, content: str) -> "GameFile":
        """Build a file, inferring type and language from the extension."""
        return cls(path=path, content=content, type=file_type_for(path), language=language_for(path))


class EventModel(BaseModel):
    """Base for every event; serializes with camelCase field names."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_sse(self) -> str:
        """Encode as a single SSE data frame."""
        return f"data: {self.model_dump_json(by_alias=True, exclude_none=True)}\n\n"


# ========== SESSION LIFECYCLE EVENTS ==========
class ConnectedEvent(EventModel):
    type: Literal["connected"] = "connected"
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    message_id: Optional[str] = Field(default=None, alias="messageId")


class WaitingEvent(EventModel):
    type: Literal["waiting"] = "waiting"
    message: str = "Waiting for generation to start"


class GenerationStartedEvent(EventModel):
    type: Literal["generation_started"] = "generation_started"
    message: str = "Game generation started"


class PingEvent(EventModel):
    type: Literal["ping"] = "ping"
    timestamp: float = Field(default_factory=time.time)


class EndEvent(EventModel):
    type: Literal["end"] = "end"


# ========== GENERATION EVENTS ==========
class ProgressEvent(EventModel):
    type: Literal["progress"] = "progress"
    step: int
    total_steps: Optional[int] = Field(default=None, alias="totalSteps")
    step_name: Optional[str] = Field(default=None, alias="stepName")
    progress: Optional[float] = None
    message: Optional[str] = None


class FileGeneratedEvent(EventModel):
    type: Literal["file_generated"] = "file_generated"
    file: GameFile
    index: Optional[int] = None
    total_files: Optional[int] = Field(default=None, alias="totalFiles")


class CompleteEvent(EventModel):
    """Terminal success from the provider; carries every file seen."""

    type: Literal["complete"] = "complete"
    files: list[GameFile] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    live_url: Optional[str] = Field(default=None, alias="liveUrl")


class ErrorEvent(EventModel):
    type: Literal["error"] = "error"
    error: str
    details: Optional[str] = None


class GenerationCompleteEvent(EventModel):
    """Client-facing form of ``CompleteEvent``."""

    type: Literal["generation_complete"] = "generation_complete"
    progress: float = 100
    files_count: int = Field(..., alias="filesCount")
    preview_url: Optional[str] = Field(default=None, alias="previewUrl")
    live_url: Optional[str] = Field(default=None, alias="liveUrl")


# Produced by the external API adapter
GenerationEvent = Annotated[
    Union[ProgressEvent, FileGeneratedEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]

# Written to stream sessions
ClientEvent = Annotated[
    Union[
        ConnectedEvent,
        WaitingEvent,
        GenerationStartedEvent,
        ProgressEvent,
        FileGeneratedEvent,
        GenerationCompleteEvent,
        ErrorEvent,
        PingEvent,
        EndEvent,
    ],
    Field(discriminator="type"),
]

TERMINAL_TYPES = frozenset({"complete", "error"})

_client_event_adapter = TypeAdapter(ClientEvent)


def parse_client_event(payload: dict[str, Any]) -> EventModel:
    """
    Validate a raw payload against the closed client event vocabulary.

    Raises:
        pydantic.ValidationError: If ``type`` is missing or unknown, or the
            fields do not match the variant.
    """
    return _client_event_adapter.validate_python(payload)


def is_terminal(event: EventModel) -> bool:
    """True for events that end a generation (complete or error)."""
    return getattr(event, "type", None) in TERMINAL_TYPES
