"""Turns terminal operation outcomes into user-visible behaviour.

The orchestrator has already done every retry it is allowed to do by the time
an outcome reaches this module; the classifier only decides what the user
sees.  Presentation itself is delegated to a ``Presenter`` so the same rules
serve the CLI and any other front end.
"""

from __future__ import annotations

import enum
import logging
from typing import Protocol

from precast_client.http.operation import (
    AuthFailure,
    AuthFailureReason,
    OperationOutcome,
    Success,
    TransportFailure,
)

logger = logging.getLogger(__name__)


class Verdict(enum.Enum):
    OK = "ok"
    FORCE_LOGOUT = "force_logout"
    RETRY_LATER = "retry_later"
    BUSINESS_ERROR = "business_error"


class Presenter(Protocol):
    async def alert(self, title: str, message: str) -> None: ...

    async def force_logout(self) -> None: ...


def error_message(outcome: Success) -> str:
    """Best human-readable message from an error response body."""
    fallback = f"Request failed with status {outcome.status}"
    try:
        data = outcome.json()
    except ValueError:
        return outcome.text.strip() or fallback
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


class ErrorClassifier:
    """Applies the alert / logout / pass-through rules to an outcome."""

    def __init__(self, presenter: Presenter) -> None:
        self._presenter = presenter

    @staticmethod
    def classify(outcome: OperationOutcome) -> Verdict:
        if isinstance(outcome, AuthFailure):
            return Verdict.FORCE_LOGOUT
        if isinstance(outcome, TransportFailure):
            return Verdict.RETRY_LATER
        if outcome.status >= 500:
            return Verdict.RETRY_LATER
        if outcome.status >= 400:
            return Verdict.BUSINESS_ERROR
        return Verdict.OK

    async def handle(self, outcome: OperationOutcome, message: str | None = None) -> Verdict:
        """Present *outcome*.  *message* is the caller's intended wording for failures."""
        verdict = self.classify(outcome)
        if verdict is Verdict.OK:
            return verdict

        if isinstance(outcome, AuthFailure):
            if outcome.reason is AuthFailureReason.NO_CREDENTIAL:
                await self._presenter.alert(
                    "Authentication Required", message or "Please login to continue."
                )
            else:
                await self._presenter.alert(
                    "Session Expired", "Your session has expired. Please login again."
                )
            logger.info("Forcing logout (reason=%s)", outcome.reason.value)
            await self._presenter.force_logout()
        elif isinstance(outcome, TransportFailure):
            await self._presenter.alert(
                "Network Error",
                message or "Could not reach the server. Check your connection and try again.",
            )
        elif isinstance(outcome, Success) and verdict is Verdict.RETRY_LATER:
            await self._presenter.alert(
                "Server Error",
                message or "The server is having trouble right now. Please try again later.",
            )
        else:
            await self._presenter.alert("Error", error_message(outcome))
        return verdict
