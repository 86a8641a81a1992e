"""Shared fixtures for tests."""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Awaitable, Callable, Union

import httpx
import pytest

from precast_client.auth.credentials import CredentialPair, MemoryCredentialStore
from precast_client.http.client import PrecastClient
from precast_client.settings import Settings

BASE_URL = "https://api.test"


class FakeApi:
    """Scriptable stand-in for the precast backend, served via ``httpx.MockTransport``.

    By default:
      - validation maps access tokens to session ids via ``session_ids``;
      - refresh pops the next entry of ``refresh_responses``;
      - business endpoints answer 200 when the ``Authorization`` value is in
        ``accepted`` and 401 otherwise, unless ``business`` is replaced.
    """

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.session_ids: dict[str, str] = {}
        self.accepted: set[str] = set()
        self.refresh_responses: list[httpx.Response] = []
        self.refresh_delay = 0.0
        self.login_response = httpx.Response(
            200,
            json={
                "access_token": "T1",
                "refresh_token": "R1",
                "expires_in": 900,
                "message": "Login successful",
                "role": "erector",
            },
        )
        self.business: Callable[
            [httpx.Request], Union[httpx.Response, Awaitable[httpx.Response]]
        ] = self._default_business

    # -- inspection ------------------------------------------------------------

    def paths(self) -> list[str]:
        return [request.url.path for request in self.calls]

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [request for request in self.calls if request.url.path == path]

    def business_calls(self) -> list[httpx.Request]:
        return [r for r in self.calls if not r.url.path.startswith("/api/")]

    # -- transport -------------------------------------------------------------

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if path == "/api/validate-session":
            return self._validate(request)
        if path == "/api/refresh-token":
            if self.refresh_delay:
                await asyncio.sleep(self.refresh_delay)
            if not self.refresh_responses:
                return httpx.Response(401, json={"message": "Invalid refresh token"})
            return self.refresh_responses.pop(0)
        if path == "/api/login":
            return self.login_response
        await asyncio.sleep(0)
        response = self.business(request)
        if inspect.isawaitable(response):
            response = await response
        return response

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def _validate(self, request: httpx.Request) -> httpx.Response:
        token = json.loads(request.content).get("SessionData")
        session_id = self.session_ids.get(token)
        if session_id is None:
            return httpx.Response(401, json={"message": "Invalid session"})
        return httpx.Response(
            200,
            json={
                "session_id": session_id,
                "host_name": "site-7",
                "role_name": "erector",
                "message": "Session valid",
            },
        )

    def _default_business(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") in self.accepted:
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(401, json={"message": "Unauthorized"})


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def settings() -> Settings:
    return Settings(base_url=BASE_URL)


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore(CredentialPair(access_token="T1", refresh_token="R1"))


@pytest.fixture
def make_client(
    fake_api: FakeApi,
    settings: Settings,
    store: MemoryCredentialStore,
) -> Callable[..., PrecastClient]:
    """Return a factory; call it inside the test's event loop."""

    def factory(**kwargs: Any) -> PrecastClient:
        kwargs.setdefault("transport", fake_api.transport())
        return PrecastClient(settings, store, **kwargs)

    return factory


def refresh_ok(access_token: str, refresh_token: str | None = None, expires_in: int = 900) -> httpx.Response:
    body: dict[str, Any] = {"access_token": access_token, "expires_in": expires_in, "message": "ok"}
    if refresh_token:
        body["refresh_token"] = refresh_token
    return httpx.Response(200, json=body)
