"""
Conversation Store

Conversations, their messages and the versioned generation snapshots
attached to each message, backed by SQLite.
"""

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from src.generation.events import GameFile
from src.storage.database import Database
from src.storage.models import (
    Conversation,
    GenerationResponse,
    GenerationSnapshot,
    GenerationStatus,
    Message,
)

logger = logging.getLogger(__name__)


@dataclass
class ConversationSummary:
    """Aggregate statistics for one conversation."""

    total_messages: int
    user_messages: int
    assistant_messages: int
    total_files: int
    last_activity: str
    game_status: str


class ConversationStore:
    """
    Persists conversations, messages and generation snapshots.

    Generation snapshots are append-only: each call to
    ``append_generation_response`` writes a new row whose version is one
    more than the number of rows already stored for the message.
    """

    def __init__(self, database: Database):
        self.database = database

    # ========== ROW MAPPING ==========
    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            conversation_id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        return Message(
            message_id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=json.loads(row["content_json"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_response(row: sqlite3.Row) -> GenerationResponse:
        return GenerationResponse(
            message_id=row["message_id"],
            conversation_id=row["conversation_id"],
            version=row["version"],
            prompt=row["prompt"],
            files=[GameFile.model_validate(f) for f in json.loads(row["files_json"])],
            status=GenerationStatus(row["status"]),
            metadata=json.loads(row["metadata_json"] or "{}"),
            error=row["error"],
            created_at=row["created_at"],
        )

    # ========== CONVERSATIONS ==========
    def create_conversation(
        self, user_id: str, title: str, conversation_id: Optional[str] = None
    ) -> Conversation:
        """
        Create a new conversation.

        Args:
            user_id: Owning user
            title: Conversation title (usually the first game idea)
            conversation_id: Optional custom ID (generates UUID if None)
        """
        now = datetime.now().isoformat()
        conversation = Conversation(
            conversation_id=conversation_id or str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            created_at=now,
            updated_at=now,
        )
        with self.database.connect() as conn:
            conn.execute(
                """
                INSERT INTO conversations (id, user_id, title, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (conversation.conversation_id, user_id, title, now, now),
            )

        logger.info(f"Created conversation {conversation.conversation_id} for user {user_id}")
        return conversation

    def find_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()
        return self._row_to_conversation(row) if row else None

    def find_conversation_owner(self, conversation_id: str) -> Optional[str]:
        """Return the owning user ID, or None if the conversation does not exist."""
        conversation = self.find_conversation(conversation_id)
        return conversation.user_id if conversation else None

    def list_conversations(self, user_id: str) -> list[Conversation]:
        """List a user's conversations, most recently updated first."""
        with self.database.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM conversations WHERE user_id = ? ORDER BY updated_at DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_conversation(row) for row in rows]

    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation with its messages and snapshots."""
        with self.database.connect() as conn:
            conn.execute(
                "DELETE FROM generation_responses WHERE conversation_id = ?", (conversation_id,)
            )
            cursor = conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
            deleted = cursor.rowcount == 1

        if deleted:
            logger.info(f"Deleted conversation {conversation_id}")
        return deleted

    def _touch(self, conn: sqlite3.Connection, conversation_id: str, now: str) -> None:
        conn.execute("UPDATE conversations SET updated_at = ? WHERE id = ?", (now, conversation_id))

    # ========== MESSAGES ==========
    def append_message(self, conversation_id: str, text: str, role: str = "user") -> Optional[Message]:
        """
        Append a message to a conversation.

        Returns:
            The stored message, or None if the conversation does not exist
        """
        if self.find_conversation(conversation_id) is None:
            logger.warning(f"Conversation not found: {conversation_id}")
            return None

        now = datetime.now().isoformat()
        message = Message(
            message_id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            role=role,
            content=[{"version": 1, "text": text, "editedAt": now}],
            created_at=now,
            updated_at=now,
        )
        with self.database.connect() as conn:
            conn.execute(
                """
                INSERT INTO messages (id, conversation_id, role, content_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (message.message_id, conversation_id, role, json.dumps(message.content), now, now),
            )
            self._touch(conn, conversation_id, now)

        logger.debug(f"Added {role} message {message.message_id} to conversation {conversation_id}")
        return message

    def find_message(self, conversation_id: str, message_id: str) -> Optional[Message]:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM messages WHERE id = ? AND conversation_id = ?",
                (message_id, conversation_id),
            ).fetchone()
        return self._row_to_message(row) if row else None

    def list_messages(self, conversation_id: str) -> list[Message]:
        with self.database.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE conversation_id = ? ORDER BY created_at, rowid",
                (conversation_id,),
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def edit_message(self, conversation_id: str, message_id: str, text: str) -> Optional[Message]:
        """
        Edit a message by appending a new content version.

        Returns:
            The updated message, or None if it does not exist
        """
        message = self.find_message(conversation_id, message_id)
        if message is None:
            return None

        now = datetime.now().isoformat()
        message.content.append({"version": len(message.content) + 1, "text": text, "editedAt": now})
        message.updated_at = now
        with self.database.connect() as conn:
            conn.execute(
                "UPDATE messages SET content_json = ?, updated_at = ? WHERE id = ?",
                (json.dumps(message.content), now, message_id),
            )
            self._touch(conn, conversation_id, now)

        logger.info(f"Edited message {message_id} (now version {len(message.content)})")
        return message

    # ========== GENERATION SNAPSHOTS ==========
    def append_generation_response(
        self, conversation_id: str, message_id: str, snapshot: GenerationSnapshot
    ) -> GenerationResponse:
        """
        Append a new generation snapshot for a message.

        The version is read and written inside one transaction.
        """
        now = datetime.now().isoformat()
        files_json = json.dumps([f.model_dump() for f in snapshot.files])

        with self.database.connect() as conn:
            (count,) = conn.execute(
                "SELECT COUNT(*) FROM generation_responses WHERE message_id = ?", (message_id,)
            ).fetchone()
            version = count + 1
            conn.execute(
                """
                INSERT INTO generation_responses (
                    message_id, conversation_id, version, prompt, files_json,
                    status, metadata_json, error, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message_id,
                    conversation_id,
                    version,
                    snapshot.prompt,
                    files_json,
                    snapshot.status.value,
                    json.dumps(snapshot.metadata),
                    snapshot.error,
                    now,
                ),
            )
            self._touch(conn, conversation_id, now)

        logger.debug(
            f"Saved generation version {version} for message {message_id} "
            f"({snapshot.status.value}, {len(snapshot.files)} files)"
        )
        return GenerationResponse(
            message_id=message_id,
            conversation_id=conversation_id,
            version=version,
            prompt=snapshot.prompt,
            files=list(snapshot.files),
            status=snapshot.status,
            metadata=dict(snapshot.metadata),
            error=snapshot.error,
            created_at=now,
        )

    def list_generation_responses(self, message_id: str) -> list[GenerationResponse]:
        """All snapshots for a message, oldest first."""
        with self.database.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM generation_responses WHERE message_id = ? ORDER BY version",
                (message_id,),
            ).fetchall()
        return [self._row_to_response(row) for row in rows]

    def latest_generation(self, message_id: str) -> Optional[GenerationResponse]:
        with self.database.connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM generation_responses WHERE message_id = ?
                ORDER BY version DESC LIMIT 1
                """,
                (message_id,),
            ).fetchone()
        return self._row_to_response(row) if row else None

    def latest_game(self, conversation_id: str) -> Optional[GenerationResponse]:
        """Most recent snapshot in the conversation that has files."""
        with self.database.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM generation_responses WHERE conversation_id = ?
                ORDER BY id DESC
                """,
                (conversation_id,),
            ).fetchall()
        for row in rows:
            response = self._row_to_response(row)
            if response.files:
                return response
        return None

    def latest_game_files(self, conversation_id: str) -> list[GameFile]:
        latest = self.latest_game(conversation_id)
        return latest.files if latest else []

    def conversation_summary(self, conversation_id: str) -> Optional[ConversationSummary]:
        conversation = self.find_conversation(conversation_id)
        if conversation is None:
            return None

        messages = self.list_messages(conversation_id)
        latest_by_message: dict[str, Any] = {
            message.message_id: self.latest_generation(message.message_id) for message in messages
        }
        total_files = sum(len(r.files) for r in latest_by_message.values() if r is not None)

        game_status = "none"
        if messages:
            last = latest_by_message.get(messages[-1].message_id)
            if last is not None:
                game_status = last.status.value

        return ConversationSummary(
            total_messages=len(messages),
            user_messages=sum(1 for m in messages if m.role == "user"),
            assistant_messages=sum(1 for m in messages if m.role == "assistant"),
            total_files=total_files,
            last_activity=conversation.updated_at,
            game_status=game_status,
        )
