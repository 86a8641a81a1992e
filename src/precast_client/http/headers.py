"""Header construction for the backend's two auth conventions.

Pattern: Dual Header Strategy
------------------------------
The backend grew two ways of reading a credential from a request: some
endpoints expect ``Authorization: Bearer <token>``, others expect the bare
token in ``Authorization``.  Which one an endpoint wants cannot be known in
advance, so every request must be expressible in both forms from the same
credential.  ``HeaderBuilder`` produces either form; the orchestrator decides
which one to send.

The builder is pure: no I/O and no state beyond its configuration.
"""

from __future__ import annotations

import enum
from typing import Mapping

DEFAULT_HEADERS: dict[str, str] = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "X-Requested-With": "XMLHttpRequest",
    "User-Agent": "PrecastApp/1.0",
}


class HeaderVariant(enum.Enum):
    """How the credential is encoded in the ``Authorization`` field."""

    PREFIXED = "prefixed"
    RAW = "raw"


class HeaderBuilder:
    """Builds request headers around a credential."""

    def __init__(
        self,
        scheme: str = "Bearer",
        auth_header: str = "Authorization",
        session_header: str = "session_id",
        user_agent: str | None = None,
    ) -> None:
        self._scheme = scheme
        self._auth_header = auth_header
        self._session_header = session_header
        self._base = dict(DEFAULT_HEADERS)
        if user_agent:
            self._base["User-Agent"] = user_agent

    @property
    def session_header(self) -> str:
        return self._session_header

    def build(
        self,
        credential: str | None,
        *,
        use_prefix: bool,
        include_session_id: bool = False,
        extra: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Return base headers plus the auth fields for *credential*.

        Keys in *extra* are applied last and override everything else,
        including the generated auth fields.
        """
        headers = dict(self._base)
        if credential:
            headers[self._auth_header] = (
                f"{self._scheme} {credential}" if use_prefix else credential
            )
            if include_session_id:
                headers[self._session_header] = credential
        if extra:
            _merge_case_insensitive(headers, extra)
        return headers

    def for_variant(
        self,
        credential: str | None,
        variant: HeaderVariant,
        *,
        include_session_id: bool = False,
        extra: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        return self.build(
            credential,
            use_prefix=variant is HeaderVariant.PREFIXED,
            include_session_id=include_session_id,
            extra=extra,
        )


def _merge_case_insensitive(headers: dict[str, str], extra: Mapping[str, str]) -> None:
    # A caller key replaces the same name in any casing.
    for key, value in extra.items():
        for existing in [k for k in headers if k.lower() == key.lower()]:
            del headers[existing]
        headers[key] = value
