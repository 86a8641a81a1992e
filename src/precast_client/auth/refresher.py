"""Access-token refresh with a single in-flight guard.

Pattern: Single-Flight Refresh
-------------------------------
Refresh tokens are single-use (or at least rate-limited) on the server.  If
two operations hit 401 at the same moment and each refreshes on its own, the
second one presents an already-rotated refresh token and fails, logging the
user out for no reason.

``TokenRefresher`` therefore owns one guard for the whole client:

  - The first caller starts the refresh as a separate task and records it as
    *in flight*.
  - Every caller that arrives while it is in flight awaits that same task.
  - A caller that arrives after a refresh has already replaced the access
    token it was using gets the stored pair back without a network call.

Callers await the task through ``asyncio.shield``: cancelling a caller (a
screen going away) does not cancel the refresh, and the guard is released by
the task's own completion, not by whichever caller happened to start it.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from precast_client.auth.credentials import (
    CredentialPair,
    CredentialStore,
    CredentialStoreError,
)

logger = logging.getLogger(__name__)


class TokenRefreshError(Exception):
    """Raised when a refresh attempt does not produce a new access token."""


class TokenRefresher:
    """Exchanges the refresh token for a new access token and persists it."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: CredentialStore,
        path: str = "/api/refresh-token",
        timeout: float = 15.0,
    ) -> None:
        self._http = http
        self._store = store
        self._path = path
        self._timeout = timeout
        self._lock = asyncio.Lock()
        self._in_flight: asyncio.Task[CredentialPair] | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def refresh(
        self,
        refresh_token: str,
        *,
        stale_access_token: str | None = None,
    ) -> CredentialPair:
        """Return a freshly refreshed and persisted ``CredentialPair``.

        *stale_access_token* is the access token the caller was rejected
        with.  If the store already holds a different one, that pair is
        returned as is.

        Raises ``TokenRefreshError`` on any failure.
        """
        async with self._lock:
            task = self._in_flight
            if task is None:
                if stale_access_token is not None:
                    current = await self._current()
                    if current is None:
                        raise TokenRefreshError("Credentials were cleared before refresh")
                    if current.access_token != stale_access_token:
                        logger.info("Access token already refreshed by another operation")
                        return current
                task = asyncio.get_running_loop().create_task(self._refresh(refresh_token))
                task.add_done_callback(self._release)
                self._in_flight = task
            else:
                logger.debug("Joining in-flight token refresh")
        return await asyncio.shield(task)

    # -- private helpers -----------------------------------------------------

    def _release(self, task: asyncio.Task[CredentialPair]) -> None:
        if self._in_flight is task:
            self._in_flight = None
        # Mark the outcome retrieved even if every waiter was cancelled.
        if not task.cancelled():
            task.exception()

    async def _current(self) -> CredentialPair | None:
        try:
            return await self._store.get()
        except CredentialStoreError as exc:
            raise TokenRefreshError(f"Cannot read stored credentials: {exc}") from exc

    async def _refresh(self, refresh_token: str) -> CredentialPair:
        logger.info("Refreshing access token")
        try:
            response = await self._http.post(
                self._path,
                json={"refresh_token": refresh_token},
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except httpx.RequestError as exc:
            raise TokenRefreshError(f"Token refresh request failed: {exc}") from exc

        if not response.is_success:
            logger.warning("Token refresh rejected with status %s", response.status_code)
            raise TokenRefreshError(f"Token refresh rejected with status {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise TokenRefreshError("Token refresh returned a non-JSON body") from exc

        token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            keys = sorted(data) if isinstance(data, dict) else type(data).__name__
            logger.warning("Token refresh response has no usable access_token (keys=%s)", keys)
            raise TokenRefreshError("Token refresh response has no access_token")

        pair = CredentialPair.from_token_response(data, fallback_refresh_token=refresh_token)
        try:
            await self._store.set(pair)
        except CredentialStoreError as exc:
            raise TokenRefreshError(f"Cannot persist refreshed credentials: {exc}") from exc

        logger.info(
            "Access token refreshed — expires_at=%s, rotated_refresh=%s",
            pair.expires_at,
            pair.refresh_token != refresh_token,
        )
        return pair
