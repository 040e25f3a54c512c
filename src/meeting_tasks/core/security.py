"""JWT bearer-token verification.

Tokens are issued by the external identity provider and signed with a
shared secret. The ``sub`` claim identifies the requesting user; every
pipeline lookup is scoped by it.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from src.meeting_tasks.config import get_settings
from src.meeting_tasks.errors import Unauthorized

# ── JWT Token Creation ────────────────────────────────────────────────────────


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a signed access token for ``user_id``.

    Used by operational scripts and tests; production tokens come from the
    identity provider.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=30))
    to_encode = {
        "sub": user_id,
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


# ── JWT Token Verification ────────────────────────────────────────────────────


def verify_token(token: str) -> dict:
    """Decode and validate a JWT access token.

    Args:
        token: The JWT string (without the ``Bearer`` prefix).

    Returns:
        The decoded payload dict.

    Raises:
        Unauthorized: If the token is invalid, expired, or has no subject.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError:
        raise Unauthorized("Could not validate credentials")
    if not payload.get("sub"):
        raise Unauthorized("Token has no subject")
    return payload


def user_id_from_authorization(header: str | None) -> str:
    """Extract the user id from an ``Authorization: Bearer <jwt>`` header.

    Raises:
        Unauthorized: If the header is missing, malformed, or the token invalid.
    """
    if not header or not header.startswith("Bearer "):
        raise Unauthorized("Not authenticated")
    payload = verify_token(header[7:])
    return str(payload["sub"])
