"""
Records persisted by the document store.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from src.generation.events import GameFile


class GenerationStatus(str, Enum):
    """Lifecycle status of a generation snapshot"""

    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class User:
    """A registered user."""

    user_id: str
    username: str
    email: str
    password_hash: str
    created_at: str
    updated_at: str


@dataclass
class Conversation:
    """A conversation owned by one user."""

    conversation_id: str
    user_id: str
    title: str
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        """Convert conversation to dictionary."""
        return asdict(self)


@dataclass
class Message:
    """
    A conversation message.

    ``content`` keeps every edit as ``{"version", "text", "editedAt"}``;
    the last entry is the current text.
    """

    message_id: str
    conversation_id: str
    role: str
    content: list[dict[str, Any]]
    created_at: str
    updated_at: str

    @property
    def text(self) -> str:
        return self.content[-1]["text"] if self.content else ""


@dataclass
class Attachment:
    """A file uploaded with a message. ``data`` is only loaded for downloads."""

    attachment_id: str
    message_id: str
    filename: str
    mimetype: str
    size: int
    uploaded_at: str
    data: Optional[bytes] = None


@dataclass
class GenerationSnapshot:
    """What the recorder hands to the store; the store assigns the version."""

    prompt: str
    files: list[GameFile]
    status: GenerationStatus
    metadata: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class GenerationResponse:
    """One immutable, versioned snapshot of a message's generated game."""

    message_id: str
    conversation_id: str
    version: int
    prompt: str
    files: list[GameFile]
    status: GenerationStatus
    metadata: dict[str, Any]
    error: Optional[str]
    created_at: str

    @property
    def html_file(self) -> Optional[GameFile]:
        """index.html, else the first HTML file, else None."""
        for game_file in self.files:
            if game_file.path == "index.html":
                return game_file
        for game_file in self.files:
            if game_file.type == "html":
                return game_file
        return None
