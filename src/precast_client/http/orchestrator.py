"""The authenticated-request protocol, in one place.

Pattern: Bounded Auth Retry State Machine
------------------------------------------
Every business call goes through the same sequence:

  1. No access token          -> ``AuthFailure`` (no network calls).
  2. Validate the session     -> session id becomes the effective credential,
                                 or the raw token stays in use.
  3. Attempt A, prefixed auth -> anything but 401 is the answer.
  4. Attempt B, raw auth      -> anything but 401 is the answer.
  5. No refresh token         -> ``AuthFailure``.
  6. Refresh (single-flight)  -> failure is ``AuthFailure``; on success the
                                 new token is persisted and re-validated.
  7. Attempt C, prefixed auth -> anything but 401 is the answer.
  8. Attempt D, raw auth      -> final answer; 401 is ``AuthFailure``.

Only 401 moves the machine forward.  Any other status, error or not, is
returned as ``Success`` for the caller's classifier to interpret, and a send
that never gets a response is a ``TransportFailure``.  Nothing is retried
outside this sequence and no exception other than cancellation leaves
``execute``.
"""

from __future__ import annotations

import logging

import httpx

from precast_client.auth.credentials import CredentialStore, CredentialStoreError
from precast_client.auth.refresher import TokenRefresher, TokenRefreshError
from precast_client.auth.session import SessionValidationError, SessionValidator
from precast_client.http.headers import HeaderBuilder, HeaderVariant
from precast_client.http.operation import (
    AuthFailure,
    AuthFailureReason,
    OperationOutcome,
    OperationRequest,
    PreparedBody,
    Success,
    TransportFailure,
)

logger = logging.getLogger(__name__)

UNAUTHORIZED = 401

_SEND_ERRORS = (httpx.RequestError, httpx.InvalidURL)


class _Unauthorized(Exception):
    """Internal signal: the attempt was answered with 401."""


class RequestOrchestrator:
    """Runs one ``OperationRequest`` through the auth protocol."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: CredentialStore,
        validator: SessionValidator,
        refresher: TokenRefresher,
        headers: HeaderBuilder | None = None,
    ) -> None:
        self._http = http
        self._store = store
        self._validator = validator
        self._refresher = refresher
        self._headers = headers or HeaderBuilder()

    async def execute(self, request: OperationRequest) -> OperationOutcome:
        """Execute *request* and return its normalized outcome."""
        try:
            pair = await self._store.get()
        except CredentialStoreError as exc:
            logger.warning("Credential store unreadable, treating as logged out: %s", exc)
            pair = None
        if pair is None or not pair.access_token:
            logger.info("No access token for %s %s", request.method, request.url)
            return AuthFailure(last_status=None, reason=AuthFailureReason.NO_CREDENTIAL)

        try:
            body = request.prepare()
            # Caller headers must be encodable before anything is sent.
            httpx.Headers({**body.headers(), **request.headers})
        except (TypeError, ValueError, OSError) as exc:
            logger.warning("Cannot encode request for %s %s: %s", request.method, request.url, exc)
            return TransportFailure(cause=exc)

        credential = await self._effective_credential(pair.access_token)
        try:
            return await self._send_both_variants(request, body, credential, "A", "B")
        except _Unauthorized:
            pass
        except _SEND_ERRORS as exc:
            return self._transport_failure(request, exc)

        if not pair.refresh_token:
            logger.info("Rejected with 401 and no refresh token available")
            return AuthFailure(last_status=UNAUTHORIZED, reason=AuthFailureReason.NO_REFRESH_TOKEN)

        try:
            refreshed = await self._refresher.refresh(
                pair.refresh_token,
                stale_access_token=pair.access_token,
            )
        except TokenRefreshError as exc:
            logger.warning("Token refresh failed: %s", exc)
            return AuthFailure(last_status=UNAUTHORIZED, reason=AuthFailureReason.REFRESH_REJECTED)

        credential = await self._effective_credential(refreshed.access_token)
        try:
            return await self._send_both_variants(request, body, credential, "C", "D")
        except _Unauthorized:
            logger.info("%s %s still rejected after refresh", request.method, request.url)
            return AuthFailure(last_status=UNAUTHORIZED, reason=AuthFailureReason.REJECTED)
        except _SEND_ERRORS as exc:
            return self._transport_failure(request, exc)

    # -- private helpers -----------------------------------------------------

    async def _effective_credential(self, access_token: str) -> str:
        try:
            session = await self._validator.validate(access_token)
        except SessionValidationError as exc:
            logger.warning("Session validation failed, using access token: %s", exc)
            return access_token
        return session.session_id

    async def _send_both_variants(
        self,
        request: OperationRequest,
        body: PreparedBody,
        credential: str,
        first_label: str,
        second_label: str,
    ) -> Success:
        """Send prefixed, then raw on 401.  Raises ``_Unauthorized`` if both are 401."""
        for variant, label in (
            (HeaderVariant.PREFIXED, first_label),
            (HeaderVariant.RAW, second_label),
        ):
            response = await self._send(request, body, credential, variant)
            logger.debug(
                "Attempt %s (%s) %s %s -> %s",
                label,
                variant.value,
                request.method,
                request.url,
                response.status_code,
            )
            if response.status_code != UNAUTHORIZED:
                return Success(
                    status=response.status_code,
                    body=response.content,
                    headers=dict(response.headers),
                )
        raise _Unauthorized()

    async def _send(
        self,
        request: OperationRequest,
        body: PreparedBody,
        credential: str,
        variant: HeaderVariant,
    ) -> httpx.Response:
        headers = self._headers.for_variant(
            credential,
            variant,
            include_session_id=request.include_session_id,
            extra={**body.headers(), **request.headers},
        )
        return await self._http.request(
            request.method,
            request.url,
            content=body.content,
            headers=headers,
        )

    @staticmethod
    def _transport_failure(request: OperationRequest, exc: Exception) -> TransportFailure:
        logger.warning("%s %s failed in transport: %s", request.method, request.url, exc)
        return TransportFailure(cause=exc)
