"""Background refresh of the access token before it expires.

The orchestrator refreshes reactively, after a 401.  This service refreshes
proactively: it checks the stored pair on start and then every
``interval_seconds``, and refreshes once the access token is within
``buffer_seconds`` of expiring.  It goes through the same ``TokenRefresher``
as the orchestrator, so a background refresh and a 401-driven one never run
side by side.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from precast_client.auth.credentials import CredentialStore, CredentialStoreError
from precast_client.auth.refresher import TokenRefresher, TokenRefreshError

logger = logging.getLogger(__name__)


class TokenRefreshService:
    """Periodically refreshes the stored access token ahead of its expiry."""

    def __init__(
        self,
        store: CredentialStore,
        refresher: TokenRefresher,
        interval_seconds: float = 300,
        buffer_seconds: float = 60,
    ) -> None:
        self._store = store
        self._refresher = refresher
        self._interval = interval_seconds
        self._buffer = buffer_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start checking.  Must be called from a running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Token refresh service started (every %ss)", self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Token refresh service stopped")

    async def check_and_refresh(self) -> bool:
        """Refresh if needed.  Returns False when the service should stop."""
        try:
            pair = await self._store.get()
        except CredentialStoreError as exc:
            logger.warning("Cannot read credentials, will retry: %s", exc)
            return True

        if pair is None or not pair.access_token or not pair.refresh_token:
            logger.info("No tokens stored, stopping refresh service")
            return False

        if not pair.is_expiring(self._buffer):
            logger.debug("Access token still valid until %s", pair.expiry())
            return True

        logger.info("Access token expired or expiring soon, refreshing")
        try:
            await self._refresher.refresh(
                pair.refresh_token,
                stale_access_token=pair.access_token,
            )
        except TokenRefreshError as exc:
            logger.warning("Proactive refresh failed, stopping refresh service: %s", exc)
            return False
        return True

    # -- private helpers -----------------------------------------------------

    async def _run(self) -> None:
        while await self.check_and_refresh():
            await asyncio.sleep(self._interval)
