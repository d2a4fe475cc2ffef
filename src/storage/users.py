"""
User Store

Registration and lookup of users backed by SQLite.
"""

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Optional

from src.storage.database import Database
from src.storage.models import User

logger = logging.getLogger(__name__)


class UserAlreadyExistsError(ValueError):
    """Raised when registering an email that is already taken."""


class UserStore:
    """Persists users."""

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            user_id=row["id"],
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def create_user(self, username: str, email: str, password_hash: str) -> User:
        """
        Create a new user.

        Raises:
            UserAlreadyExistsError: If the email is already registered
        """
        now = datetime.now().isoformat()
        user = User(
            user_id=str(uuid.uuid4()),
            username=username,
            email=email.lower(),
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.database.connect() as conn:
                conn.execute(
                    """
                    INSERT INTO users (id, username, email, password_hash, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (user.user_id, user.username, user.email, user.password_hash, now, now),
                )
        except sqlite3.IntegrityError as e:
            raise UserAlreadyExistsError(f"User already exists: {email}") from e

        logger.info(f"Created user {user.user_id} ({user.username})")
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        with self.database.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email.lower(),)).fetchone()
        return self._row_to_user(row) if row else None

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self.database.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None
