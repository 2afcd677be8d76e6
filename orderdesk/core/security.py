"""
Session token lifecycle for the order backend.

The back office authenticates against the order backend with a bearer JWT
issued at login. This module keeps that token as process-wide state with an
explicit lifecycle (set at login, cleared at logout) so the persistence gateway
receives it by injection instead of reading ambient storage.

The signing key belongs to the backend, so claims are read unverified and only
used for expiry bookkeeping on this side.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from orderdesk.core.logging import get_logger, set_operator

logger = get_logger(__name__)


class SecurityError(Exception):
    """Base exception for security-related errors."""

    def __init__(self, message: str, code: str, **context):
        super().__init__(message)
        self.code = code
        self.context = context


class TokenError(SecurityError):
    """Exception raised for token-related errors."""
    pass


def read_token_claims(token: str) -> Dict[str, Any]:
    """
    Read the claims of a JWT without verifying its signature.

    Args:
        token: JWT token string

    Returns:
        Dictionary of token claims

    Raises:
        TokenError: If token is empty or malformed
    """
    if not token:
        raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

    try:
        return jwt.get_unverified_claims(token)
    except JWTError as e:
        logger.warning(
            "Malformed session token",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise TokenError(
            "Invalid token",
            code="TOKEN_INVALID",
            original_error=str(e),
        ) from e


def get_token_expiration(token: str) -> Optional[datetime]:
    """
    Get the expiration time of a token.

    Returns:
        Timezone-aware expiration datetime, or None if the token is invalid
        or carries no ``exp`` claim
    """
    try:
        claims = read_token_claims(token)
    except TokenError:
        return None

    exp_timestamp = claims.get("exp")
    if exp_timestamp is None:
        return None
    return datetime.fromtimestamp(exp_timestamp, tz=timezone.utc)


class SessionTokenStore:
    """
    Holder for the signed-in operator's bearer token.

    One instance is created per process and handed to the gateway. ``login``
    sets the token, ``logout`` clears it; the gateway asks for
    ``authorization_header`` on every request.
    """

    def __init__(self, token: Optional[str] = None):
        self._token: Optional[str] = None
        self._subject: Optional[str] = None
        if token:
            self.login(token)

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def subject(self) -> Optional[str]:
        return self._subject

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def login(self, token: str) -> None:
        """
        Store the token issued at login.

        Raises:
            TokenError: If the token is empty
        """
        if not token:
            raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

        self._token = token
        try:
            self._subject = read_token_claims(token).get("sub")
        except TokenError:
            # Opaque tokens are still valid bearer credentials.
            self._subject = None

        set_operator(self._subject)
        logger.info(
            "Session token set",
            subject=self._subject,
            expires_at=self.expires_at.isoformat() if self.expires_at else None,
        )

    def logout(self) -> None:
        """Clear the stored token."""
        had_token = self._token is not None
        self._token = None
        self._subject = None
        set_operator(None)
        logger.info("Session token cleared", had_token=had_token)

    @property
    def expires_at(self) -> Optional[datetime]:
        if self._token is None:
            return None
        return get_token_expiration(self._token)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """
        Check whether the stored token has passed its ``exp`` claim.

        Tokens without an expiry never expire on this side; no token at all
        counts as expired.
        """
        if self._token is None:
            return True
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= expires_at

    def authorization_header(self) -> Dict[str, str]:
        """Headers to attach to a backend request, empty when signed out."""
        if self._token is None:
            return {}
        return {"Authorization": f"Bearer {self._token}"}
