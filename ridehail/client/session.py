"""
Client-side session bookkeeping.

Keeps the ``{token, role}`` pair returned by login, checks the token's
``exp`` claim locally (no signature check -- the server is the authority),
and makes sure an expired session is reported to the application once.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from jose import JWTError, jwt

from ridehail.api.security import REASON_EXPIRED, TOKEN_ERROR_MESSAGE

logger = logging.getLogger(__name__)


def decode_jwt_payload(token: str) -> Optional[dict[str, Any]]:
    """Return the unverified claims of *token*, or None if unreadable."""
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


def is_token_expired(token: str, now: Optional[float] = None) -> bool:
    """True when the token has an ``exp`` claim in the past."""
    payload = decode_jwt_payload(token)
    if not payload or not payload.get("exp"):
        return False
    return payload["exp"] < (now if now is not None else time.time())


def is_expired_token_payload(payload: Any) -> bool:
    """True for the server's expired-token error body."""
    if not isinstance(payload, dict):
        return False
    detail = payload.get("detalle")
    return (
        payload.get("error") == TOKEN_ERROR_MESSAGE
        and isinstance(detail, dict)
        and detail.get("reason") == REASON_EXPIRED
    )


class ExpiryGuard:
    """Calls *on_expired* the first time an expired session is seen."""

    def __init__(self, on_expired: Optional[Callable[[], None]] = None):
        self.on_expired = on_expired
        self.handled = False

    def check(self, payload: Any) -> bool:
        if not is_expired_token_payload(payload):
            return False
        self.trigger()
        return True

    def trigger(self) -> None:
        if self.handled:
            return
        self.handled = True
        logger.info("Session expired")
        if self.on_expired:
            self.on_expired()

    def reset(self) -> None:
        self.handled = False


@dataclass
class Session:
    """
    A restored session is checked on construction, so pass *on_expired*
    here to hear about a token that expired while the app was closed.
    """

    token: Optional[str] = None
    role: Optional[str] = None
    on_expired: Optional[Callable[[], None]] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.guard = ExpiryGuard(self.on_expired)
        if self.token:
            self.valid_token()

    def valid_token(self) -> Optional[str]:
        if not self.token:
            return None
        if is_token_expired(self.token):
            self.clear()
            self.guard.trigger()
            return None
        return self.token

    @property
    def is_authenticated(self) -> bool:
        return self.valid_token() is not None

    @property
    def user_role(self) -> Optional[str]:
        return self.role if self.valid_token() else None

    def login(self, token: str, role: str) -> None:
        self.token = token
        self.role = role
        self.guard.reset()

    def clear(self) -> None:
        self.token = None
        self.role = None

    def logout(self) -> None:
        self.clear()
        self.guard.reset()
