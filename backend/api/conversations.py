"""
Conversation API Endpoints

Endpoints for game-generation conversations:
- Conversation CRUD operations
- Message submission with optional attachments (returns the stream URL) and editing
- SSE stream of a message's generation
- Attachment listing and download
- Generation history, live preview and ZIP download
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import HTMLResponse, Response, StreamingResponse

from backend.dependencies import (
    AuthenticatedUser,
    get_attachment_store_dependency,
    get_config_dependency,
    get_conversation_store_dependency,
    get_coordinator_dependency,
    get_current_user,
    get_stream_user,
)
from backend.models.conversations import (
    AttachmentInfo,
    AttachmentListResponse,
    ConversationDetail,
    ConversationDetailResponse,
    ConversationInfo,
    ConversationListResponse,
    ConversationResponse,
    ConversationSummaryInfo,
    CreateConversationRequest,
    DeleteResponse,
    GameFileInfo,
    GamePreview,
    GenerationHistoryResponse,
    GenerationInfo,
    MessageInfo,
    MessageRequest,
    MessageResponse,
    SubmitMessageResponse,
)
from src.generation.coordinator import SessionCoordinator
from src.generation.keys import GenerationKey
from src.storage.attachments import AttachmentStore
from src.storage.conversations import ConversationStore
from src.storage.models import Attachment, Conversation, GenerationResponse, Message
from src.utilities.config import ClawConfig
from src.utilities.game_bundle import build_zip, find_file, inline_assets, media_type_for

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ========== HELPERS ==========
def _owned_conversation(
    conversation_id: str, user: AuthenticatedUser, store: ConversationStore
) -> Conversation:
    """Load a conversation the caller owns; anything else is reported as not found."""
    conversation = store.find_conversation(conversation_id)
    if conversation is None or conversation.user_id != user.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return conversation


def _owned_message(
    conversation_id: str, message_id: str, user: AuthenticatedUser, store: ConversationStore
) -> Message:
    _owned_conversation(conversation_id, user, store)
    message = store.find_message(conversation_id, message_id)
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return message


def _generation_info(response: GenerationResponse) -> GenerationInfo:
    return GenerationInfo(
        version=response.version,
        status=response.status.value,
        prompt=response.prompt,
        files=response.files,
        metadata=response.metadata,
        error=response.error,
        created_at=response.created_at,
    )


def _attachment_info(conversation_id: str, attachment: Attachment, api_prefix: str) -> AttachmentInfo:
    return AttachmentInfo(
        id=attachment.attachment_id,
        message_id=attachment.message_id,
        filename=attachment.filename,
        mimetype=attachment.mimetype,
        size=attachment.size,
        uploaded_at=attachment.uploaded_at,
        download_url=(
            f"{api_prefix.rstrip('/')}/conversations/{conversation_id}"
            f"/messages/{attachment.message_id}/attachments/{attachment.attachment_id}"
        ),
    )


async def _read_uploads(files: list[UploadFile], max_bytes: int) -> list[tuple[str, Optional[str], bytes]]:
    """Read uploaded files into memory, rejecting any larger than ``max_bytes``."""
    uploads = []
    for upload in files:
        data = await upload.read()
        if not upload.filename and not data:
            # Empty file input submitted by a browser form
            continue
        if len(data) > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large ({upload.filename}: {len(data) / 1024 / 1024:.1f}MB). "
                f"Maximum size is {max_bytes / 1024 / 1024:.1f}MB",
            )
        uploads.append((upload.filename or "unknown", upload.content_type, data))
    return uploads


def _message_info(
    message: Message,
    latest: Optional[GenerationResponse] = None,
    attachments: Optional[list[AttachmentInfo]] = None,
) -> MessageInfo:
    return MessageInfo(
        id=message.message_id,
        role=message.role,
        text=message.text,
        content=message.content,
        created_at=message.created_at,
        updated_at=message.updated_at,
        latest_generation=_generation_info(latest) if latest else None,
        attachments=attachments or [],
    )


def _game_preview(
    conversation_id: str, store: ConversationStore, coordinator: SessionCoordinator
) -> Optional[GamePreview]:
    latest = store.latest_game(conversation_id)
    if latest is None:
        return None
    return GamePreview(
        status=latest.status.value,
        files_count=len(latest.files),
        preview_url=coordinator.preview_url(conversation_id) if latest.html_file else None,
        files=[GameFileInfo(path=f.path, type=f.type, language=f.language) for f in latest.files],
    )


def _conversation_info(conversation: Conversation, last_game: Optional[GamePreview] = None) -> ConversationInfo:
    return ConversationInfo(
        id=conversation.conversation_id,
        title=conversation.title,
        user_id=conversation.user_id,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        last_game=last_game,
    )


# ========== CONVERSATION CRUD OPERATIONS ==========
@router.post(
    "/api/conversations",
    response_model=ConversationResponse,
    summary="Create conversation",
    description="Create a new game-generation conversation",
    tags=["Conversations"],
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    request: CreateConversationRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
):
    """
    Create a new conversation.

    Args:
        request: Conversation title
        user: Authenticated caller (injected)
        store: Conversation store (injected)

    Returns:
        ConversationResponse with the created conversation

    Raises:
        HTTPException: If the conversation cannot be stored
    """
    try:
        conversation = store.create_conversation(user.user_id, request.title)
        return ConversationResponse(
            data=_conversation_info(conversation),
            message="Conversation created successfully",
        )

    except Exception as e:
        logger.error(f"Failed to create conversation: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create conversation: {str(e)}",
        )


@router.get(
    "/api/conversations",
    response_model=ConversationListResponse,
    summary="List conversations",
    description="List the caller's conversations with a preview of each latest game",
    tags=["Conversations"],
)
async def list_conversations(
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
    coordinator: SessionCoordinator = Depends(get_coordinator_dependency),
):
    """
    List all conversations of the caller, most recently updated first.
    """
    try:
        conversations = store.list_conversations(user.user_id)
        return ConversationListResponse(
            data=[
                _conversation_info(c, _game_preview(c.conversation_id, store, coordinator))
                for c in conversations
            ]
        )

    except Exception as e:
        logger.error(f"Failed to list conversations: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list conversations: {str(e)}",
        )


@router.get(
    "/api/conversations/{conversation_id}",
    response_model=ConversationDetailResponse,
    summary="Get conversation",
    description="Get a conversation with its messages, latest generation per message and summary",
    tags=["Conversations"],
)
async def get_conversation(
    conversation_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
    attachment_store: AttachmentStore = Depends(get_attachment_store_dependency),
    coordinator: SessionCoordinator = Depends(get_coordinator_dependency),
):
    """
    Get a single conversation.

    Args:
        conversation_id: Conversation ID
        user: Authenticated caller (injected)
        store: Conversation store (injected)
        attachment_store: Attachment store (injected)
        coordinator: Session coordinator (injected)

    Returns:
        ConversationDetailResponse

    Raises:
        HTTPException: 404 if the conversation does not exist or belongs to someone else
    """
    try:
        conversation = _owned_conversation(conversation_id, user, store)
        messages = [
            _message_info(
                m,
                store.latest_generation(m.message_id),
                [
                    _attachment_info(conversation_id, a, coordinator.api_prefix)
                    for a in attachment_store.list_attachments(m.message_id)
                ],
            )
            for m in store.list_messages(conversation_id)
        ]
        summary = store.conversation_summary(conversation_id)

        detail = ConversationDetail(
            **_conversation_info(conversation, _game_preview(conversation_id, store, coordinator)).model_dump(),
            messages=messages,
            summary=ConversationSummaryInfo(**vars(summary)) if summary else None,
        )
        return ConversationDetailResponse(data=detail)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get conversation {conversation_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get conversation: {str(e)}",
        )


@router.delete(
    "/api/conversations/{conversation_id}",
    response_model=DeleteResponse,
    summary="Delete conversation",
    description="Delete a conversation with its messages and generations",
    tags=["Conversations"],
)
async def delete_conversation(
    conversation_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
    coordinator: SessionCoordinator = Depends(get_coordinator_dependency),
):
    """
    Delete a conversation.

    Open streams for its messages are closed and pending generations dropped.
    """
    try:
        _owned_conversation(conversation_id, user, store)
        coordinator.forget_conversation(conversation_id)
        store.delete_conversation(conversation_id)
        return DeleteResponse(message=f"Conversation {conversation_id} deleted")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to delete conversation {conversation_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete conversation: {str(e)}",
        )


# ========== MESSAGES ==========
@router.post(
    "/api/conversations/{conversation_id}/messages",
    response_model=SubmitMessageResponse,
    summary="Send message",
    description="Store a game request (form fields, optional file attachments) and get the URL of its generation stream",
    tags=["Messages"],
    status_code=status.HTTP_201_CREATED,
)
async def submit_message(
    conversation_id: str,
    text: str = Form(..., max_length=5000, description="Game idea or change request"),
    files: Optional[list[UploadFile]] = File(default=None, description="Optional files attached to the message"),
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
    attachment_store: AttachmentStore = Depends(get_attachment_store_dependency),
    config: ClawConfig = Depends(get_config_dependency),
    coordinator: SessionCoordinator = Depends(get_coordinator_dependency),
):
    """
    Send a message and queue its game generation.

    The body is a form (``multipart/form-data`` when files are attached).
    The generation starts once the client opens the returned stream URL,
    or immediately if a stream for the message is already open.

    Args:
        conversation_id: Conversation ID
        text: Message text (the game prompt)
        files: Optional attachments, each at most ``max_attachment_bytes``
        user: Authenticated caller (injected)
        store: Conversation store (injected)
        attachment_store: Attachment store (injected)
        config: Configuration (injected)
        coordinator: Session coordinator (injected)

    Returns:
        SubmitMessageResponse with messageId, streamUrl and stored attachments

    Raises:
        HTTPException: 400 if the text is blank, 404 if the conversation is
            not the caller's, 413 if an attachment is too large

    Example:
        ```javascript
        const formData = new FormData();
        formData.append('text', 'Build a platformer with a jumping cat');
        formData.append('files', sketchFile);

        const response = await fetch(`/api/conversations/${id}/messages`, {
            method: 'POST',
            headers: { Authorization: `Bearer ${token}` },
            body: formData
        });
        const { streamUrl } = await response.json();
        ```
    """
    try:
        _owned_conversation(conversation_id, user, store)
        text = text.strip()
        if not text:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message text is required")

        uploads = await _read_uploads(files or [], config.storage.max_attachment_bytes)

        message = store.append_message(conversation_id, text, role="user")
        if message is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")

        stored = [
            attachment_store.create_attachment(message.message_id, filename, data, mimetype)
            for filename, mimetype, data in uploads
        ]

        stream_url = coordinator.submit(conversation_id, message.message_id, text)
        logger.info(
            f"Message {message.message_id} queued for generation in {conversation_id}"
            f" ({len(stored)} attachment(s))"
        )
        return SubmitMessageResponse(
            message_id=message.message_id,
            stream_url=stream_url,
            attachments=[_attachment_info(conversation_id, a, config.server.api_prefix) for a in stored],
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to submit message: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to submit message: {str(e)}",
        )


@router.put(
    "/api/conversations/{conversation_id}/messages/{message_id}",
    response_model=MessageResponse,
    summary="Edit message",
    description="Edit a message (creates a new content version)",
    tags=["Messages"],
)
async def edit_message(
    conversation_id: str,
    message_id: str,
    request: MessageRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
    attachment_store: AttachmentStore = Depends(get_attachment_store_dependency),
    config: ClawConfig = Depends(get_config_dependency),
):
    try:
        _owned_conversation(conversation_id, user, store)
        message = store.edit_message(conversation_id, message_id, request.text)
        if message is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
        attachments = [
            _attachment_info(conversation_id, a, config.server.api_prefix)
            for a in attachment_store.list_attachments(message_id)
        ]
        return MessageResponse(data=_message_info(message, store.latest_generation(message_id), attachments))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to edit message {message_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to edit message: {str(e)}",
        )


# ========== ATTACHMENTS ==========
@router.get(
    "/api/conversations/{conversation_id}/messages/{message_id}/attachments",
    response_model=AttachmentListResponse,
    summary="List attachments",
    description="Files uploaded with a message",
    tags=["Messages"],
)
async def list_attachments(
    conversation_id: str,
    message_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
    attachment_store: AttachmentStore = Depends(get_attachment_store_dependency),
    config: ClawConfig = Depends(get_config_dependency),
):
    _owned_message(conversation_id, message_id, user, store)
    attachments = attachment_store.list_attachments(message_id)
    return AttachmentListResponse(
        data=[_attachment_info(conversation_id, a, config.server.api_prefix) for a in attachments]
    )


@router.get(
    "/api/conversations/{conversation_id}/messages/{message_id}/attachments/{attachment_id}",
    summary="Download attachment",
    description="Content of one message attachment",
    tags=["Messages"],
)
async def download_attachment(
    conversation_id: str,
    message_id: str,
    attachment_id: str,
    user: AuthenticatedUser = Depends(get_stream_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
    attachment_store: AttachmentStore = Depends(get_attachment_store_dependency),
):
    """
    Download an attachment.

    Accepts the ``token`` query parameter so plain links work.
    """
    _owned_message(conversation_id, message_id, user, store)
    attachment = attachment_store.find_attachment(message_id, attachment_id)
    if attachment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found")

    return Response(
        content=attachment.data,
        media_type=attachment.mimetype,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(attachment.filename)}"},
    )


# ========== GENERATION STREAM ==========
@router.get(
    "/api/conversations/{conversation_id}/messages/{message_id}/stream",
    summary="Stream generation",
    description=(
        "Server-Sent Events stream of a message's game generation. "
        "Accepts the bearer token as the `token` query parameter."
    ),
    tags=["Messages"],
    response_class=StreamingResponse,
)
async def stream_generation(
    conversation_id: str,
    message_id: str,
    user: AuthenticatedUser = Depends(get_stream_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
    coordinator: SessionCoordinator = Depends(get_coordinator_dependency),
):
    """
    Open the event stream for a message.

    Event sequence: connected, then either waiting or generation_started,
    progress and file_generated events, generation_complete or error, and
    finally end. Pings are sent every heartbeat interval.

    Args:
        conversation_id: Conversation ID
        message_id: Message ID
        user: Caller authenticated by header or query token (injected)
        store: Conversation store (injected)
        coordinator: Session coordinator (injected)

    Returns:
        StreamingResponse with SSE events

    Raises:
        HTTPException: 404 if the message is not in one of the caller's conversations
    """
    _owned_message(conversation_id, message_id, user, store)

    key = GenerationKey(conversation_id, message_id)
    channel = coordinator.open_stream(conversation_id, message_id, user.user_id)

    async def event_generator():
        try:
            async for frame in channel.frames():
                yield frame
        finally:
            coordinator.handle_disconnect(key, channel)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get(
    "/api/conversations/{conversation_id}/messages/{message_id}/responses",
    response_model=GenerationHistoryResponse,
    summary="Generation history",
    description="Every stored generation snapshot of a message, oldest first",
    tags=["Messages"],
)
async def list_generation_responses(
    conversation_id: str,
    message_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
):
    _owned_message(conversation_id, message_id, user, store)
    responses = store.list_generation_responses(message_id)
    return GenerationHistoryResponse(data=[_generation_info(r) for r in responses])


# ========== PREVIEW & DOWNLOAD ==========
@router.get(
    "/api/conversations/{conversation_id}/preview",
    response_class=HTMLResponse,
    summary="Preview game",
    description="Latest generated game as a single page with its scripts and styles inlined",
    tags=["Preview"],
)
async def preview_game(
    conversation_id: str,
    user: AuthenticatedUser = Depends(get_stream_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
):
    _owned_conversation(conversation_id, user, store)
    latest = store.latest_game(conversation_id)
    html_file = latest.html_file if latest else None
    if html_file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No playable game yet")
    return HTMLResponse(inline_assets(html_file.content, latest.files))


@router.get(
    "/api/conversations/{conversation_id}/preview/{file_path:path}",
    summary="Preview file",
    description="A single file of the latest generated game",
    tags=["Preview"],
)
async def preview_file(
    conversation_id: str,
    file_path: str,
    user: AuthenticatedUser = Depends(get_stream_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
):
    _owned_conversation(conversation_id, user, store)
    game_file = find_file(store.latest_game_files(conversation_id), file_path)
    if game_file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"File not found: {file_path}")
    return Response(content=game_file.content, media_type=media_type_for(game_file))


@router.get(
    "/api/conversations/{conversation_id}/download",
    summary="Download game",
    description="Latest generated game files as a ZIP archive",
    tags=["Preview"],
)
async def download_game(
    conversation_id: str,
    user: AuthenticatedUser = Depends(get_stream_user),
    store: ConversationStore = Depends(get_conversation_store_dependency),
):
    _owned_conversation(conversation_id, user, store)
    files = store.latest_game_files(conversation_id)
    if not files:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No game files to download")

    logger.info(f"Packing {len(files)} files for download of {conversation_id}")
    return Response(
        content=build_zip(files),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="game-{conversation_id}.zip"'},
    )
