"""
Pytest configuration and shared fixtures.

Usage:
    pytest tests/ -v
"""

import pytest

from src.storage.attachments import AttachmentStore
from src.storage.conversations import ConversationStore
from src.storage.database import Database
from src.storage.users import UserStore


@pytest.fixture
def database(tmp_path):
    """Fresh SQLite database in a temporary directory."""
    return Database(tmp_path / "data" / "claw.db")


@pytest.fixture
def user_store(database):
    return UserStore(database)


@pytest.fixture
def conversation_store(database):
    return ConversationStore(database)


@pytest.fixture
def attachment_store(database):
    return AttachmentStore(database)


@pytest.fixture
def user(user_store):
    return user_store.create_user("gamer123", "Gamer@Example.com", "not-a-real-hash")


@pytest.fixture
def conversation(conversation_store, user):
    return conversation_store.create_conversation(user.user_id, "Space shooter")


@pytest.fixture
def message(conversation_store, conversation):
    return conversation_store.append_message(conversation.conversation_id, "Build a platformer")
