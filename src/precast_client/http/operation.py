"""What a caller hands to the orchestrator, and what it gets back."""

from __future__ import annotations

import dataclasses
import enum
import json as jsonlib
from typing import Any, Mapping, Union

import httpx

# Placeholder URL for encoding bodies; the real URL is applied per attempt.
_ENCODE_URL = "http://body.invalid/"


@dataclasses.dataclass(frozen=True)
class PreparedBody:
    """A request body encoded once, so every attempt sends the same bytes."""

    content: bytes | None
    content_type: str | None

    def headers(self) -> dict[str, str]:
        return {"Content-Type": self.content_type} if self.content_type else {}


@dataclasses.dataclass(frozen=True)
class OperationRequest:
    """One logical request, as a screen would issue it.

    At most one body form should be given: ``json``, raw ``content``, or a
    multipart/form body via ``data`` and ``files``.  ``files`` follows the
    httpx convention: ``{"field": ("name.jpg", b"...", "image/jpeg")}``.

    Attributes:
        method:             HTTP method.
        url:                Absolute URL or a path relative to the client's base URL.
        headers:            Caller headers; they win over generated auth headers.
        include_session_id: Also send the effective credential under the
                            session header.
    """

    method: str
    url: str
    headers: Mapping[str, str] = dataclasses.field(default_factory=dict)
    json: Any = None
    content: bytes | str | None = None
    data: Mapping[str, Any] | None = None
    files: Mapping[str, Any] | None = None
    include_session_id: bool = True

    def prepare(self) -> PreparedBody:
        """Encode the body once.

        Multipart bodies get their boundary fixed here, and file objects are
        read to the end, so the result can be replayed any number of times.
        """
        if self.json is None and self.content is None and not self.data and not self.files:
            return PreparedBody(content=None, content_type=None)

        encoded = httpx.Request(
            self.method,
            _ENCODE_URL,
            json=self.json,
            content=self.content,
            data=self.data or None,
            files=self.files or None,
        )
        return PreparedBody(
            content=encoded.read(),
            content_type=encoded.headers.get("Content-Type"),
        )


@dataclasses.dataclass(frozen=True)
class Success:
    """The transport completed.  ``status`` may still be any non-401 code."""

    status: int
    body: bytes = b""
    headers: Mapping[str, str] = dataclasses.field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return jsonlib.loads(self.body)


class AuthFailureReason(enum.Enum):
    """Which terminal branch of the auth protocol was reached."""

    NO_CREDENTIAL = "no_credential"
    NO_REFRESH_TOKEN = "no_refresh_token"
    REFRESH_REJECTED = "refresh_rejected"
    REJECTED = "rejected"


@dataclasses.dataclass(frozen=True)
class AuthFailure:
    """The caller must authenticate again."""

    last_status: int | None
    reason: AuthFailureReason


@dataclasses.dataclass(frozen=True)
class TransportFailure:
    """The request never produced a response (DNS, timeout, reset)."""

    cause: Exception

    def __str__(self) -> str:
        return f"TransportFailure({type(self.cause).__name__}: {self.cause})"


OperationOutcome = Union[Success, AuthFailure, TransportFailure]
