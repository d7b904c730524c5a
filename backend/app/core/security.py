from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from backend.app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"

# Logged-out tokens, kept until they would have expired anyway.
# Process-local: a multi-replica deployment needs a shared store.
_revoked_tokens: dict[str, datetime] = {}
_revoked_lock = threading.Lock()


def create_access_token(
    subject: str,
    expires_delta: timedelta | None = None,
    role: str | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta
        else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode: dict[str, Any] = {"sub": subject, "exp": expire}
    if role:
        to_encode["role"] = role
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Return the token claims; raises ``JWTError`` if invalid or revoked."""
    if is_token_revoked(token):
        raise JWTError("Token has been revoked")
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def revoke_token(token: str) -> None:
    """Deny-list a token until its expiry (logout)."""
    try:
        claims = jwt.get_unverified_claims(token)
        expires = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
    except (JWTError, KeyError, TypeError, ValueError):
        expires = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
    now = datetime.now(timezone.utc)
    with _revoked_lock:
        for stale in [t for t, exp in _revoked_tokens.items() if exp <= now]:
            del _revoked_tokens[stale]
        _revoked_tokens[token] = expires


def is_token_revoked(token: str) -> bool:
    with _revoked_lock:
        return token in _revoked_tokens
