"""Server-confirmed sessions derived from an access token.

Pattern: Operation-Scoped Session
----------------------------------
Before a business call, the access token is exchanged at the validation
endpoint for a ``session_id``.  When that works, the session id replaces the
raw token as the *effective credential* for the rest of that one operation.
When it does not, nothing is lost: the operation continues with the raw
token.

A ``Session`` is never persisted and never handed to a later operation.  Each
orchestrated call validates afresh, so a session can only be trusted if the
validation that produced it succeeded in the same call.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging

import httpx

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Session:
    """Immutable result of one successful session validation.

    Attributes:
        session_id:  Server-issued identifier used as the effective credential.
        obtained_at: UTC timestamp of the validation call.
        host_name:   Descriptive field from the server, if present.
        role_name:   Descriptive field from the server, if present.
    """

    session_id: str
    obtained_at: datetime.datetime
    host_name: str | None = None
    role_name: str | None = None

    def __str__(self) -> str:
        return f"Session(role={self.role_name}, host={self.host_name}, obtained_at={self.obtained_at:%H:%M:%S})"


class SessionValidationError(Exception):
    """Raised when the validation endpoint does not yield a session id."""


class SessionValidator:
    """Exchanges an access token for a ``Session``."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        path: str = "/api/validate-session",
        payload_field: str = "SessionData",
    ) -> None:
        self._http = http
        self._path = path
        self._payload_field = payload_field

    async def validate(self, credential: str) -> Session:
        """Validate *credential* and return the resulting ``Session``.

        Raises ``SessionValidationError`` on transport errors, non-2xx
        responses and bodies without a ``session_id``.
        """
        try:
            response = await self._http.post(
                self._path,
                json={self._payload_field: credential},
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as exc:
            raise SessionValidationError(f"Session validation request failed: {exc}") from exc

        if not response.is_success:
            raise SessionValidationError(
                f"Session validation rejected with status {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise SessionValidationError("Session validation returned a non-JSON body") from exc

        session_id = data.get("session_id") if isinstance(data, dict) else None
        if not session_id or not isinstance(session_id, str):
            raise SessionValidationError("Session validation response has no session_id")

        session = Session(
            session_id=session_id,
            obtained_at=datetime.datetime.now(datetime.UTC),
            host_name=data.get("host_name"),
            role_name=data.get("role_name"),
        )
        logger.info("Session validated — role=%s", session.role_name)
        return session
