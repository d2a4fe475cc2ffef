"""
Pydantic models for conversation, message and generation endpoints.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.generation.events import GameFile


class WireModel(BaseModel):
    """Base for response models serialized with camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


# ========== REQUEST MODELS ==========
class CreateConversationRequest(BaseModel):
    """Request model for creating a conversation."""

    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Conversation title (your first game idea/prompt)",
    )

    model_config = ConfigDict(json_schema_extra={"example": {"title": "Space shooter with power-ups"}})

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be empty or only whitespace")
        return v.strip()


class MessageRequest(BaseModel):
    """Request model for sending or editing a message."""

    text: str = Field(..., min_length=1, max_length=5000, description="Game idea or change request")

    model_config = ConfigDict(
        json_schema_extra={"example": {"text": "Build a platformer with a jumping cat and coins"}}
    )

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message cannot be empty or only whitespace")
        return v.strip()


# ========== GENERATION MODELS ==========
class GameFileInfo(BaseModel):
    """File listing entry without content."""

    path: str
    type: str
    language: str


class GamePreview(WireModel):
    """Latest game of a conversation, as shown in listings."""

    status: str = Field(..., description="generating, completed or error")
    files_count: int = Field(..., alias="filesCount")
    preview_url: Optional[str] = Field(default=None, alias="previewUrl")
    files: list[GameFileInfo] = Field(default_factory=list)


class GenerationInfo(WireModel):
    """One stored generation snapshot."""

    version: int = Field(..., description="1-based, gapless per message")
    status: str
    prompt: str
    files: list[GameFile] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    created_at: str = Field(..., alias="createdAt")


class GenerationHistoryResponse(BaseModel):
    """Response model for a message's generation history."""

    success: bool = Field(default=True)
    data: list[GenerationInfo]


# ========== MESSAGE MODELS ==========
class AttachmentInfo(WireModel):
    """A file uploaded with a message (content is fetched from ``downloadUrl``)."""

    id: str
    message_id: str = Field(..., alias="messageId")
    filename: str
    mimetype: str
    size: int = Field(..., description="Size in bytes")
    uploaded_at: str = Field(..., alias="uploadedAt")
    download_url: str = Field(..., alias="downloadUrl")


class AttachmentListResponse(BaseModel):
    success: bool = Field(default=True)
    data: list[AttachmentInfo]


class MessageInfo(WireModel):
    """A message with its content history and latest generation."""

    id: str
    role: str
    text: str = Field(..., description="Current message text")
    content: list[dict[str, Any]] = Field(..., description="Every version of the message text")
    created_at: str = Field(..., alias="createdAt")
    updated_at: str = Field(..., alias="updatedAt")
    latest_generation: Optional[GenerationInfo] = Field(default=None, alias="latestGeneration")
    attachments: list[AttachmentInfo] = Field(default_factory=list)


class MessageResponse(BaseModel):
    """Response model for message edits."""

    success: bool = Field(default=True)
    data: MessageInfo


class SubmitMessageResponse(WireModel):
    """Response model for a submitted message."""

    success: bool = Field(default=True)
    message_id: str = Field(..., alias="messageId")
    stream_url: str = Field(..., alias="streamUrl", description="Open as an event stream to follow the generation")
    attachments: list[AttachmentInfo] = Field(default_factory=list)

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "success": True,
                "messageId": "9b2e4c1a-0f3d-4e7b-8a65-2d1c0b9e8f7a",
                "streamUrl": "/api/conversations/c1/messages/9b2e4c1a-0f3d-4e7b-8a65-2d1c0b9e8f7a/stream",
                "attachments": [],
            }
        },
    )


# ========== CONVERSATION MODELS ==========
class ConversationSummaryInfo(WireModel):
    total_messages: int = Field(..., alias="totalMessages")
    user_messages: int = Field(..., alias="userMessages")
    assistant_messages: int = Field(..., alias="assistantMessages")
    total_files: int = Field(..., alias="totalFiles")
    last_activity: str = Field(..., alias="lastActivity")
    game_status: str = Field(..., alias="gameStatus")


class ConversationInfo(WireModel):
    """A conversation as listed for its owner."""

    id: str
    title: str
    user_id: str = Field(..., alias="userId")
    created_at: str = Field(..., alias="createdAt")
    updated_at: str = Field(..., alias="updatedAt")
    last_game: Optional[GamePreview] = Field(default=None, alias="lastGame")


class ConversationDetail(ConversationInfo):
    """A conversation with all of its messages."""

    messages: list[MessageInfo] = Field(default_factory=list)
    summary: Optional[ConversationSummaryInfo] = None


class ConversationResponse(BaseModel):
    success: bool = Field(default=True)
    data: ConversationInfo
    message: Optional[str] = None


class ConversationListResponse(BaseModel):
    success: bool = Field(default=True)
    data: list[ConversationInfo]


class ConversationDetailResponse(BaseModel):
    success: bool = Field(default=True)
    data: ConversationDetail


class DeleteResponse(BaseModel):
    success: bool = Field(default=True)
    message: str
