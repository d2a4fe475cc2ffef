"""
Attachment Store

Files uploaded together with a message, kept as BLOBs next to the message
they belong to. Rows go away with their message.
"""

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Optional

from src.storage.database import Database
from src.storage.models import Attachment

logger = logging.getLogger(__name__)

DEFAULT_MIMETYPE = "application/octet-stream"


class AttachmentStore:
    """Persists message attachments."""

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _row_to_attachment(row: sqlite3.Row) -> Attachment:
        keys = row.keys()
        return Attachment(
            attachment_id=row["id"],
            message_id=row["message_id"],
            filename=row["filename"],
            mimetype=row["mimetype"],
            size=row["size"],
            uploaded_at=row["uploaded_at"],
            data=bytes(row["data"]) if "data" in keys else None,
        )

    def create_attachment(
        self, message_id: str, filename: str, data: bytes, mimetype: Optional[str] = None
    ) -> Attachment:
        """
        Store an uploaded file for a message.

        Args:
            message_id: Message the file was sent with
            filename: Name given by the client
            data: File content
            mimetype: Content type given by the client

        Returns:
            The stored attachment, without its content
        """
        attachment = Attachment(
            attachment_id=str(uuid.uuid4()),
            message_id=message_id,
            filename=filename or "unknown",
            mimetype=mimetype or DEFAULT_MIMETYPE,
            size=len(data),
            uploaded_at=datetime.now().isoformat(),
        )
        with self.database.connect() as conn:
            conn.execute(
                """
                INSERT INTO attachments (id, message_id, filename, mimetype, size, data, uploaded_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    attachment.attachment_id,
                    message_id,
                    attachment.filename,
                    attachment.mimetype,
                    attachment.size,
                    sqlite3.Binary(data),
                    attachment.uploaded_at,
                ),
            )

        logger.info(f"Stored attachment {attachment.filename} ({attachment.size} bytes) for message {message_id}")
        return attachment

    def list_attachments(self, message_id: str) -> list[Attachment]:
        """List a message's attachments, oldest first, without their content."""
        with self.database.connect() as conn:
            rows = conn.execute(
                """
                SELECT id, message_id, filename, mimetype, size, uploaded_at
                FROM attachments WHERE message_id = ? ORDER BY uploaded_at, rowid
                """,
                (message_id,),
            ).fetchall()
        return [self._row_to_attachment(row) for row in rows]

    def find_attachment(self, message_id: str, attachment_id: str) -> Optional[Attachment]:
        """Load one attachment of a message, including its content."""
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM attachments WHERE id = ? AND message_id = ?",
                (attachment_id, message_id),
            ).fetchone()
        return self._row_to_attachment(row) if row else None
