"""
Claw Backend Dependencies

Shared dependency instances for FastAPI routes.
Uses singleton pattern for the database, stores, external API client and
the session coordinator (which owns the in-memory registries).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.auth.security import decode_token
from src.core.exceptions import AuthenticationError
from src.generation.coordinator import SessionCoordinator
from src.generation.external_api import ExternalGameAPI
from src.generation.pending import PendingGenerationRegistry
from src.generation.stream_sessions import StreamSessionRegistry
from src.storage.attachments import AttachmentStore
from src.storage.conversations import ConversationStore
from src.storage.database import Database
from src.storage.users import UserStore
from src.utilities.config import ClawConfig, get_config

logger = logging.getLogger(__name__)


# ========== GLOBAL INSTANCES (SINGLETONS) ==========
_config: Optional[ClawConfig] = None
_database: Optional[Database] = None
_user_store: Optional[UserStore] = None
_conversation_store: Optional[ConversationStore] = None
_attachment_store: Optional[AttachmentStore] = None
_external_api: Optional[ExternalGameAPI] = None
_coordinator: Optional[SessionCoordinator] = None


def _build_coordinator(
    config: ClawConfig, store: ConversationStore, external_api: ExternalGameAPI
) -> SessionCoordinator:
    return SessionCoordinator(
        source=external_api,
        store=store,
        pending=PendingGenerationRegistry(ttl=config.streaming.pending_ttl),
        sessions=StreamSessionRegistry(heartbeat_interval=config.streaming.heartbeat_interval),
        start_delay=config.streaming.start_delay,
        api_prefix=config.server.api_prefix,
    )


# ========== INITIALIZATION & CLEANUP ==========
def initialize_resources(config: Optional[ClawConfig] = None):
    """
    Initialize shared resources on application startup.

    Called by FastAPI lifespan event.

    Args:
        config: Configuration to use (loads from environment if None)
    """
    global _config, _database, _user_store, _conversation_store, _attachment_store, _external_api, _coordinator

    logger.info("Initializing shared resources...")

    # 1. Load configuration
    _config = config or get_config(from_env=True)
    logger.info(f"✓ Configuration loaded (version: {_config.version})")

    # 2. Open database and stores
    _database = Database(_config.storage.database_path)
    _user_store = UserStore(_database)
    _conversation_store = ConversationStore(_database)
    _attachment_store = AttachmentStore(_database)
    logger.info(f"✓ Database ready ({_config.storage.database_path})")

    # 3. External game API client
    _external_api = ExternalGameAPI(_config.external_api)
    logger.info(f"✓ External game API client ready ({_config.external_api.base_url})")

    # 4. Session coordinator with empty registries
    _coordinator = _build_coordinator(_config, _conversation_store, _external_api)
    logger.info("✓ Session coordinator initialized")

    logger.info("✅ All resources initialized")


def cleanup_resources():
    """
    Cleanup resources on application shutdown.

    Called by FastAPI lifespan event after the coordinator has shut down.
    """
    global _config, _database, _user_store, _conversation_store, _attachment_store, _external_api, _coordinator

    logger.info("Cleaning up resources...")

    # Reset all singletons
    _config = None
    _database = None
    _user_store = None
    _conversation_store = None
    _attachment_store = None
    _external_api = None
    _coordinator = None

    logger.info("✅ Resources cleaned up")


# ========== DEPENDENCY FUNCTIONS ==========
def get_config_dependency() -> ClawConfig:
    """
    Dependency: Get configuration instance.

    Returns:
        ClawConfig instance
    """
    global _config

    if _config is None:
        # Lazy initialization
        _config = get_config(from_env=True)

    return _config


def get_database_dependency(config: ClawConfig = Depends(get_config_dependency)) -> Database:
    """
    Dependency: Get database instance.

    Raises:
        HTTPException: If the database cannot be opened
    """
    global _database

    if _database is None:
        try:
            _database = Database(config.storage.database_path)
            logger.info("Database lazy-loaded successfully")
        except Exception as e:
            logger.error(f"Failed to open database: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Database unavailable: {str(e)}",
            )

    return _database


def get_user_store_dependency(database: Database = Depends(get_database_dependency)) -> UserStore:
    """Dependency: Get user store instance."""
    global _user_store

    if _user_store is None:
        _user_store = UserStore(database)

    return _user_store


def get_conversation_store_dependency(
    database: Database = Depends(get_database_dependency),
) -> ConversationStore:
    """Dependency: Get conversation store instance."""
    global _conversation_store

    if _conversation_store is None:
        _conversation_store = ConversationStore(database)

    return _conversation_store


def get_attachment_store_dependency(database: Database = Depends(get_database_dependency)) -> AttachmentStore:
    """Dependency: Get attachment store instance."""
    global _attachment_store

    if _attachment_store is None:
        _attachment_store = AttachmentStore(database)

    return _attachment_store


def get_external_api_dependency(config: ClawConfig = Depends(get_config_dependency)) -> ExternalGameAPI:
    """Dependency: Get external game API client."""
    global _external_api

    if _external_api is None:
        _external_api = ExternalGameAPI(config.external_api)

    return _external_api


def get_coordinator_dependency(
    config: ClawConfig = Depends(get_config_dependency),
    store: ConversationStore = Depends(get_conversation_store_dependency),
    external_api: ExternalGameAPI = Depends(get_external_api_dependency),
) -> SessionCoordinator:
    """
    Dependency: Get the session coordinator.

    There must be exactly one per process: it owns the pending and stream
    session registries.
    """
    global _coordinator

    if _coordinator is None:
        _coordinator = _build_coordinator(config, store, external_api)
        logger.info("Session coordinator lazy-loaded")

    return _coordinator


def get_initialized_coordinator() -> SessionCoordinator:
    """
    Return the coordinator created by ``initialize_resources()``.

    Raises:
        RuntimeError: If resources have not been initialized
    """
    if _coordinator is None:
        raise RuntimeError("Resources not initialized; call initialize_resources() first")
    return _coordinator


# ========== AUTHENTICATION ==========
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthenticatedUser:
    """Identity extracted from a verified token."""

    user_id: str
    username: Optional[str] = None


def _authenticate(token: Optional[str], config: ClawConfig) -> AuthenticatedUser:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication token is missing or invalid.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = decode_token(token, config.auth)
    except AuthenticationError as e:
        logger.warning(f"Authentication failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication token is missing or invalid.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return AuthenticatedUser(user_id=claims["userId"], username=claims.get("username"))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    config: ClawConfig = Depends(get_config_dependency),
) -> AuthenticatedUser:
    """
    Dependency: Verify the Bearer token of a normal API request.

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    return _authenticate(credentials.credentials if credentials else None, config)


async def get_stream_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    token: Optional[str] = Query(default=None, description="Bearer token for clients that cannot set headers"),
    config: ClawConfig = Depends(get_config_dependency),
) -> AuthenticatedUser:
    """
    Dependency: Verify the caller of an event-stream request.

    EventSource clients cannot set headers, so the token may also come from
    the ``token`` query parameter. The header wins when both are present.

    Raises:
        HTTPException: 401 if no valid token was supplied
    """
    if credentials is not None:
        return _authenticate(credentials.credentials, config)
    return _authenticate(token, config)


# ========== UTILITY FUNCTIONS ==========
def get_registry_stats() -> dict:
    """
    Get in-memory registry sizes from the coordinator.

    Returns:
        Dictionary with pending, stream and generation counts
    """
    if _coordinator is None:
        return {"pendingGenerations": 0, "streamSessions": 0, "activeGenerations": 0}
    return {
        "pendingGenerations": len(_coordinator.pending),
        "streamSessions": len(_coordinator.sessions),
        "activeGenerations": _coordinator.active_generations,
    }
