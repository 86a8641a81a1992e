"""Credential pair and the stores that hold it.

Pattern: Injected Credential Store
-----------------------------------
The access/refresh token pair is the only long-lived mutable state in the
client.  Rather than a module-level token holder that any caller may read or
write, the pair lives behind a small ``CredentialStore`` interface that is
handed to every component that needs it.  The lifecycle is explicit:

  - ``set`` at login (``Authenticator``) and after a successful refresh
    (``TokenRefresher``);
  - ``get`` at the start of every orchestrated operation;
  - ``clear`` at logout.

``CredentialPair`` itself is immutable.  A refresh produces a new pair rather
than mutating the one a concurrent operation may still be holding.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime
import json
import logging
import os
import pathlib
from typing import Any, Protocol

import jwt

logger = logging.getLogger(__name__)


def token_expiry(token: str | None) -> datetime.datetime | None:
    """Return the ``exp`` claim of a JWT-shaped *token* as a UTC datetime.

    The signature is not verified; the token is opaque to the client and this
    is only used to decide when to refresh ahead of time.  Anything that is
    not a three-part token with a numeric ``exp`` yields ``None``.
    """
    if not token or token.count(".") != 2:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    try:
        return datetime.datetime.fromtimestamp(exp, datetime.UTC)
    except (OverflowError, OSError, ValueError):
        return None


@dataclasses.dataclass(frozen=True)
class CredentialPair:
    """The token pair issued at login.

    Attributes:
        access_token:  Short-lived token authorising API calls.
        refresh_token: Longer-lived token used only to mint a new access token.
                       May be absent when the server did not issue one.
        expires_at:    Absolute UTC expiry derived from the server's
                       ``expires_in``, if it sent one.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime.datetime | None = None

    @classmethod
    def from_token_response(
        cls,
        data: dict[str, Any],
        fallback_refresh_token: str | None = None,
    ) -> CredentialPair:
        """Build a pair from a login or refresh response body."""
        expires_in = data.get("expires_in")
        expires_at = None
        if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool):
            try:
                expires_at = datetime.datetime.now(datetime.UTC) + datetime.timedelta(
                    seconds=expires_in
                )
            except (OverflowError, ValueError):
                logger.warning("Ignoring unusable expires_in=%r", expires_in)
        refresh_token = data.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token:
            refresh_token = fallback_refresh_token
        return cls(
            access_token=data["access_token"],
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

    def expiry(self) -> datetime.datetime | None:
        """Known expiry: the stored one, else the access token's ``exp`` claim."""
        if self.expires_at is not None:
            return self.expires_at
        return token_expiry(self.access_token)

    def is_expiring(self, buffer_seconds: float = 60) -> bool:
        """True when the access token expires within *buffer_seconds*.

        An unknown expiry counts as expiring.
        """
        expiry = self.expiry()
        if expiry is None:
            return True
        now = datetime.datetime.now(datetime.UTC)
        return expiry <= now + datetime.timedelta(seconds=buffer_seconds)

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CredentialPair:
        expires_at = data.get("expires_at")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=datetime.datetime.fromisoformat(expires_at) if expires_at else None,
        )

    def __repr__(self) -> str:
        return (
            f"CredentialPair(access_token=<redacted>, "
            f"refresh_token={'<redacted>' if self.refresh_token else None}, "
            f"expires_at={self.expires_at})"
        )


class CredentialStore(Protocol):
    """Where the current ``CredentialPair`` lives."""

    async def get(self) -> CredentialPair | None: ...

    async def set(self, pair: CredentialPair) -> None: ...

    async def clear(self) -> None: ...


class CredentialStoreError(Exception):
    """Raised when persisted credentials cannot be read or written."""


class MemoryCredentialStore:
    """Process-local store; the pair is lost when the process exits."""

    def __init__(self, pair: CredentialPair | None = None) -> None:
        self._pair = pair
        self._lock = asyncio.Lock()

    async def get(self) -> CredentialPair | None:
        async with self._lock:
            return self._pair

    async def set(self, pair: CredentialPair) -> None:
        async with self._lock:
            self._pair = pair

    async def clear(self) -> None:
        async with self._lock:
            self._pair = None


class FileCredentialStore:
    """Persists the pair as JSON in a file readable only by the owner."""

    def __init__(self, path: str | pathlib.Path) -> None:
        self._path = pathlib.Path(path).expanduser()
        self._lock = asyncio.Lock()

    @property
    def path(self) -> pathlib.Path:
        return self._path

    async def get(self) -> CredentialPair | None:
        async with self._lock:
            if not self._path.exists():
                return None
            try:
                data = json.loads(self._path.read_text())
                return CredentialPair.from_dict(data)
            except (OSError, ValueError, KeyError, TypeError) as exc:
                raise CredentialStoreError(
                    f"Cannot read credentials from {self._path}: {exc}"
                ) from exc

    async def set(self, pair: CredentialPair) -> None:
        async with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            try:
                fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
                with os.fdopen(fd, "w") as fh:
                    json.dump(pair.to_dict(), fh)
            except OSError as exc:
                raise CredentialStoreError(
                    f"Cannot write credentials to {self._path}: {exc}"
                ) from exc
            logger.debug("Credentials written to %s", self._path)

    async def clear(self) -> None:
        async with self._lock:
            self._path.unlink(missing_ok=True)
