from __future__ import annotations

import hashlib
import hmac
import math
import time

from fastapi import HTTPException, status

from .settings import Settings, get_settings

PUBLIC_NONCE_ACTION = "mlcm_nonce"
ADMIN_NONCE_ACTION = "mlcm_admin_nonce"
ANONYMOUS = "anonymous"


class AuthenticatedUser(dict):
    """Simple mapping storing the claims of an authenticated caller."""

    @property
    def sub(self) -> str:
        return self.get("sub", "")

    @property
    def roles(self) -> list[str]:
        return list(self.get("roles", []))


def decode_token(token: str, settings: Settings | None = None) -> AuthenticatedUser:
    """Resolve a bearer token to the user it identifies.

    Only the configured administrator token is recognised; requests without a
    token, or with any other value, are rejected with ``401``.
    """

    settings = settings or get_settings()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    expected = settings.ADMIN_API_TOKEN
    if expected and hmac.compare_digest(token.encode(), expected.encode()):
        return AuthenticatedUser({"sub": "admin", "roles": ["admin"]})

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


class NonceSigner:
    """Time-bounded HMAC tokens bound to an action and a subject.

    Time is divided into ticks of half the lifetime. A token is accepted for
    the tick it was issued in and the one after, so it stays valid for between
    half and one full lifetime.
    """

    def __init__(self, secret: str, lifetime_seconds: int = 24 * 60 * 60) -> None:
        if not secret:
            raise ValueError("secret must not be empty")
        if lifetime_seconds < 2:
            raise ValueError("lifetime_seconds must be >= 2")
        self._secret = secret.encode("utf-8")
        self._lifetime = lifetime_seconds

    def _now(self) -> float:
        return time.time()

    def _tick(self) -> int:
        return math.ceil(self._now() / (self._lifetime / 2))

    def _sign(self, action: str, subject: str, tick: int) -> str:
        message = f"{action}|{subject}|{tick}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()[:20]

    def create(self, action: str, subject: str = ANONYMOUS) -> str:
        return self._sign(action, subject, self._tick())

    def verify(self, token: str | None, action: str, subject: str = ANONYMOUS) -> bool:
        if not token:
            return False
        tick = self._tick()
        for candidate in (tick, tick - 1):
            expected = self._sign(action, subject, candidate)
            if hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
                return True
        return False


def build_nonce_signer(settings: Settings) -> NonceSigner:
    return NonceSigner(settings.SECRET_KEY, settings.NONCE_LIFETIME_SECONDS)


__all__ = [
    "ADMIN_NONCE_ACTION",
    "ANONYMOUS",
    "AuthenticatedUser",
    "NonceSigner",
    "PUBLIC_NONCE_ACTION",
    "build_nonce_signer",
    "decode_token",
]
