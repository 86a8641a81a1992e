"""Login and logout against the precast API.

Login is the only place a ``CredentialPair`` is created from user input; the
pair is written to the injected ``CredentialStore`` and from then on every
orchestrated request reads it from there.  Logout is the mirror image: stop
the proactive refresher and clear the store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from precast_client.auth.credentials import CredentialPair, CredentialStore

if TYPE_CHECKING:
    from precast_client.auth.refresh_service import TokenRefreshService

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when login fails."""


class Authenticator:
    """Authenticates a user with email and password."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: CredentialStore,
        path: str = "/api/login",
        refresh_service: TokenRefreshService | None = None,
    ) -> None:
        self._http = http
        self._store = store
        self._path = path
        self._refresh_service = refresh_service

    async def login(self, email: str, password: str, ip: str | None = None) -> dict[str, Any]:
        """Log in and store the issued tokens.

        Returns the server's response body (``role``, ``message``...).
        Raises ``AuthenticationError`` on failure.
        """
        payload: dict[str, Any] = {"email": email, "password": password}
        if ip:
            payload["ip"] = ip

        try:
            response = await self._http.post(self._path, json=payload)
        except httpx.RequestError as exc:
            raise AuthenticationError(f"Login request failed: {exc}") from exc

        data = self._json(response)
        if not response.is_success:
            message = data.get("message") or data.get("error") or f"status {response.status_code}"
            raise AuthenticationError(f"Login failed: {message}")
        token = data.get("access_token")
        if not isinstance(token, str) or not token:
            raise AuthenticationError("Login response has no access_token")

        await self._store.set(CredentialPair.from_token_response(data))
        logger.info("User %s logged in — role=%s", email, data.get("role"))

        if self._refresh_service is not None:
            self._refresh_service.start()
        return data

    async def logout(self) -> None:
        if self._refresh_service is not None:
            await self._refresh_service.stop()
        await self._store.clear()
        logger.info("Logged out, credentials cleared")

    # -- private helpers -----------------------------------------------------

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
