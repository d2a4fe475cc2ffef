"""Tests for password hashing and JWT credentials."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from src.auth.security import (
    create_token,
    decode_token,
    hash_password,
    verify_credential,
    verify_password,
)
from src.core.exceptions import AuthenticationError
from src.utilities.config import AuthConfig


@pytest.fixture
def auth_config():
    return AuthConfig(jwt_secret="test-secret")


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("SecurePass123!")

        assert hashed != "SecurePass123!"
        assert verify_password("SecurePass123!", hashed)
        assert not verify_password("wrong", hashed)

    def test_non_bcrypt_hash_does_not_verify(self):
        assert verify_password("anything", "plain-text") is False


class TestTokens:
    def test_round_trip_claims(self, auth_config):
        token = create_token("u1", "gamer123", auth_config)

        claims = decode_token(token, auth_config)

        assert claims["userId"] == "u1"
        assert claims["username"] == "gamer123"
        assert verify_credential(token, auth_config) == "u1"

    def test_expires_after_configured_days(self, auth_config):
        token = create_token("u1", "gamer123", auth_config)
        claims = decode_token(token, auth_config)

        lifetime = claims["exp"] - claims["iat"]
        assert lifetime == 7 * 24 * 3600

    def test_expired_token_rejected(self, auth_config):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        token = jwt.encode({"userId": "u1", "exp": past}, "test-secret", algorithm="HS256")

        with pytest.raises(AuthenticationError, match="expired"):
            decode_token(token, auth_config)

    def test_wrong_secret_rejected(self, auth_config):
        token = create_token("u1", "gamer123", AuthConfig(jwt_secret="other-secret"))

        with pytest.raises(AuthenticationError):
            decode_token(token, auth_config)

    def test_garbage_rejected(self, auth_config):
        with pytest.raises(AuthenticationError):
            verify_credential("not.a.token", auth_config)

    def test_missing_user_claim_rejected(self, auth_config):
        token = jwt.encode({"username": "gamer123"}, "test-secret", algorithm="HS256")

        with pytest.raises(AuthenticationError):
            decode_token(token, auth_config)
