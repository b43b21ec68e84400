"""JWT access tokens and magic-link token helpers."""

import hashlib
import secrets
from datetime import timedelta
from typing import Any

from jose import JWTError, jwt

from portal.core.config import get_settings
from portal.models.types import utcnow

settings = get_settings()


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a signed access token carrying ``data``."""
    to_encode = dict(data)
    expire = utcnow() + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode a token, returning None if it is invalid or expired."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def generate_magic_token() -> str:
    """Random URL-safe one-time token."""
    return secrets.token_urlsafe(32)


def hash_magic_token(token: str) -> str:
    """Digest stored in place of the raw token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
