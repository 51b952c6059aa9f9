"""
Security utilities: JWT handling.

Credentials are verified by the identity provider; this service only checks
the bearer token it issued and reads the user id from ``sub``.
"""

from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
from uuid import UUID

from app.config import get_settings


# ── JWT Token ────────────────────────────────────────────
def create_access_token(user_id: UUID | str, extra_data: dict | None = None) -> str:
    """Create a JWT access token (service-to-service calls and local testing)."""
    settings = get_settings()

    payload = {
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRY_MINUTES),
        "iat": datetime.now(timezone.utc),
    }
    if extra_data:
        payload.update(extra_data)

    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a JWT token. Returns payload or None if invalid."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
        return payload
    except JWTError:
        return None
