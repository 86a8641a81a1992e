"""Client façade: one HTTP connection pool, one refresher, one orchestrator.

Screens (or the CLI) construct a ``PrecastClient`` once and call
``request()``; the components behind it share a single
``httpx.AsyncClient`` and, more importantly, a single ``TokenRefresher`` so
the in-flight refresh guard covers every request made through the client.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from precast_client.auth.authenticator import Authenticator
from precast_client.auth.credentials import CredentialStore
from precast_client.auth.refresh_service import TokenRefreshService
from precast_client.auth.refresher import TokenRefresher
from precast_client.auth.session import SessionValidator
from precast_client.http.classifier import ErrorClassifier, Presenter
from precast_client.http.headers import HeaderBuilder
from precast_client.http.operation import OperationOutcome, OperationRequest
from precast_client.http.orchestrator import RequestOrchestrator
from precast_client.settings import Settings

logger = logging.getLogger(__name__)


class PrecastClient:
    """Async context manager wiring the auth components together."""

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        presenter: Presenter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self._http = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            transport=transport,
        )
        self.refresher = TokenRefresher(
            self._http,
            store,
            path=settings.refresh_token_path,
            timeout=settings.refresh_timeout_seconds,
        )
        self.refresh_service = TokenRefreshService(
            store,
            self.refresher,
            interval_seconds=settings.refresh_interval_seconds,
            buffer_seconds=settings.expiry_buffer_seconds,
        )
        self.authenticator = Authenticator(
            self._http,
            store,
            path=settings.login_path,
            refresh_service=self.refresh_service,
        )
        self.orchestrator = RequestOrchestrator(
            self._http,
            store,
            SessionValidator(self._http, path=settings.validate_session_path),
            self.refresher,
            HeaderBuilder(
                scheme=settings.auth_scheme,
                session_header=settings.session_header,
                user_agent=settings.user_agent,
            ),
        )
        self.classifier = ErrorClassifier(presenter) if presenter is not None else None

    async def __aenter__(self) -> PrecastClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.refresh_service.stop()
        await self._http.aclose()

    async def request(self, method: str, url: str, **kwargs: Any) -> OperationOutcome:
        """Shortcut for ``orchestrator.execute(OperationRequest(method, url, ...))``."""
        return await self.orchestrator.execute(OperationRequest(method.upper(), url, **kwargs))
