"""
Test suite for session token handling.

Test Categories:
- Claim reading (valid, empty, malformed tokens)
- Token expiration (exp claim, missing exp)
- Session token store lifecycle (login, logout, headers)
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from jose import jwt

from orderdesk.core.logging import get_operator
from orderdesk.core.security import (
    SecurityError,
    SessionTokenStore,
    TokenError,
    get_token_expiration,
    read_token_claims,
)

# ============================================================================
# Test Fixtures and Utilities
# ============================================================================


@pytest.fixture
def jwt_secret_key() -> str:
    """
    Provide JWT secret key for testing.

    Returns:
        Secret key string for JWT operations
    """
    return "test_secret_key_for_jwt_operations_12345"


@pytest.fixture
def expires_at() -> datetime:
    return datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def valid_token_payload(expires_at) -> dict[str, Any]:
    """
    Provide valid JWT token payload.

    Returns:
        Dictionary with standard JWT claims
    """
    return {
        "sub": "admin@example.com",
        "role": "admin",
        "exp": int(expires_at.timestamp()),
    }


@pytest.fixture
def valid_token(valid_token_payload, jwt_secret_key) -> str:
    return jwt.encode(valid_token_payload, jwt_secret_key, algorithm="HS256")


@pytest.fixture
def token_without_expiry(jwt_secret_key) -> str:
    return jwt.encode({"sub": "admin@example.com"}, jwt_secret_key, algorithm="HS256")


# ============================================================================
# Claim Reading Tests
# ============================================================================


class TestReadTokenClaims:
    """Test reading claims without the signing key."""

    def test_reads_claims(self, valid_token, valid_token_payload) -> None:
        claims = read_token_claims(valid_token)

        assert claims["sub"] == valid_token_payload["sub"]
        assert claims["role"] == "admin"

    def test_empty_token(self) -> None:
        with pytest.raises(TokenError) as exc_info:
            read_token_claims("")

        assert exc_info.value.code == "EMPTY_TOKEN"

    def test_malformed_token(self) -> None:
        with pytest.raises(TokenError) as exc_info:
            read_token_claims("not.a.jwt")

        assert exc_info.value.code == "TOKEN_INVALID"
        assert isinstance(exc_info.value, SecurityError)
        assert "original_error" in exc_info.value.context


class TestTokenExpiration:
    """Test expiry bookkeeping."""

    def test_expiration_from_claim(self, valid_token, expires_at) -> None:
        assert get_token_expiration(valid_token) == expires_at

    def test_no_exp_claim(self, token_without_expiry) -> None:
        assert get_token_expiration(token_without_expiry) is None

    def test_invalid_token_has_no_expiration(self) -> None:
        assert get_token_expiration("garbage") is None


# ============================================================================
# Session Token Store Tests
# ============================================================================


class TestSessionTokenStore:
    """Test the token lifecycle."""

    def test_starts_signed_out(self) -> None:
        store = SessionTokenStore()

        assert not store.is_authenticated
        assert store.token is None
        assert store.authorization_header() == {}
        assert store.is_expired()

    def test_login(self, valid_token, expires_at) -> None:
        store = SessionTokenStore()

        store.login(valid_token)

        assert store.is_authenticated
        assert store.subject == "admin@example.com"
        assert store.expires_at == expires_at
        assert store.authorization_header() == {
            "Authorization": f"Bearer {valid_token}"
        }
        assert get_operator() == "admin@example.com"

    def test_login_with_empty_token(self) -> None:
        with pytest.raises(TokenError):
            SessionTokenStore().login("")

    def test_opaque_token_accepted(self) -> None:
        store = SessionTokenStore("opaque-session-token")

        assert store.is_authenticated
        assert store.subject is None
        assert not store.is_expired()

    def test_logout(self, valid_token) -> None:
        store = SessionTokenStore(valid_token)

        store.logout()

        assert not store.is_authenticated
        assert store.subject is None
        assert store.expires_at is None
        assert get_operator() is None

    def test_is_expired(self, valid_token, expires_at) -> None:
        store = SessionTokenStore(valid_token)

        assert not store.is_expired(now=expires_at - timedelta(seconds=1))
        assert store.is_expired(now=expires_at)

    def test_token_without_expiry_never_expires(self, token_without_expiry) -> None:
        store = SessionTokenStore(token_without_expiry)

        assert not store.is_expired(now=datetime(2100, 1, 1, tzinfo=timezone.utc))
