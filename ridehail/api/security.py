"""
Token issuing / verification and password hashing.

Tokens are HS256 JWTs carrying ``sub`` (user id), ``role`` and ``exp``.
Authentication failures are raised as ``AuthError`` and rendered by the
app in the body shape the mobile clients look for::

    {"error": "Token no válido o expirado.", "detalle": {"reason": "jwt expired"}}

The clients redirect to login only when ``reason`` is ``jwt expired``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from ridehail.config import settings
from ridehail.domain.enums import UserRole

TOKEN_ERROR_MESSAGE = "Token no válido o expirado."
REASON_EXPIRED = "jwt expired"
REASON_INVALID = "invalid token"
REASON_MISSING = "no token provided"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class AuthError(Exception):
    """Raised when a request carries no usable token."""

    def __init__(self, reason: str, status_code: int = 401):
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)

    def payload(self) -> dict[str, Any]:
        return {"error": TOKEN_ERROR_MESSAGE, "detalle": {"reason": self.reason}}


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(
    user_id: int, role: UserRole, expires_delta: Optional[timedelta] = None
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims = {"sub": str(user_id), "role": role.value, "exp": expire}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> tuple[int, UserRole]:
    """Return ``(user_id, role)`` or raise ``AuthError``."""
    try:
        claims = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except ExpiredSignatureError:
        raise AuthError(REASON_EXPIRED)
    except JWTError:
        raise AuthError(REASON_INVALID)

    try:
        return int(claims["sub"]), UserRole(claims["role"])
    except (KeyError, ValueError):
        raise AuthError(REASON_INVALID)
