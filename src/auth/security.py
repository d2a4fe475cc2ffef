"""
Password hashing and JWT credentials.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from src.core.exceptions import AuthenticationError
from src.utilities.config import AuthConfig

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


def create_token(user_id: str, username: str, config: AuthConfig) -> str:
    """
    Issue a signed token carrying ``userId`` and ``username``.

    Args:
        user_id: Authenticated user ID
        username: Display name included for clients
        config: Auth configuration (secret, algorithm, expiry)

    Returns:
        Encoded JWT
    """
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "username": username,
        "iat": now,
        "exp": now + timedelta(days=config.token_expiry_days),
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_token(token: str, config: AuthConfig) -> dict[str, Any]:
    """
    Verify a token and return its claims.

    Raises:
        AuthenticationError: If the token is expired, malformed, wrongly
            signed or has no ``userId`` claim
    """
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid token") from e

    if not payload.get("userId"):
        raise AuthenticationError("Invalid token")
    return payload


def verify_credential(token: str, config: AuthConfig) -> str:
    """Verify a token and return the user ID it was issued for."""
    return decode_token(token, config)["userId"]
