"""Bearer credential sources for the remote sync client.

The credential is issued by the backend at login and stored by the app
(the mobile client keeps it in its secure store).  This engine only reads
it.  Validation belongs to the backend; the client just peeks at the JWT
``exp`` claim so an obviously expired session fails fast without a round
trip.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import jwt as pyjwt

if TYPE_CHECKING:
    from src.config import Settings

logger = logging.getLogger("healthsync.sync.credentials")


class CredentialStore(Protocol):
    """Anything that can hand out the current bearer token."""

    def get_token(self) -> str | None: ...


class StaticCredentialStore:
    """A token supplied up front (environment variable, tests)."""

    def __init__(self, token: str | None) -> None:
        self._token = token.strip() if token else None

    def get_token(self) -> str | None:
        return self._token or None


class FileCredentialStore:
    """A token read from a file on every request.

    Re-reading picks up a token refreshed by another process (e.g. a login
    command) without restarting.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def get_token(self) -> str | None:
        try:
            token = self._path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read auth token from %s: %s", self._path, exc)
            return None
        return token or None


def credentials_from_settings(settings: "Settings") -> CredentialStore:
    """Build the credential store configured in settings."""
    if settings.auth_token:
        return StaticCredentialStore(settings.auth_token)
    if settings.auth_token_file:
        return FileCredentialStore(settings.auth_token_file)
    return StaticCredentialStore(None)


def token_expired(token: str, now: datetime | None = None) -> bool:
    """Return True if ``token`` is a JWT whose ``exp`` is in the past.

    Opaque (non-JWT) tokens and JWTs without ``exp`` are never considered
    expired here; the backend has the final word.
    """
    try:
        claims = pyjwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except pyjwt.InvalidTokenError:
        return False

    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return False
    now = now or datetime.now(timezone.utc)
    return now.timestamp() >= exp
