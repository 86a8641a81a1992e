"""Client settings loaded from ``config/settings.yaml``.

Every key is optional; missing keys fall back to the production defaults
below.  ``PRECAST_API_BASE_URL`` and ``PRECAST_CREDENTIALS_PATH`` override
the file, which is how the CLI is pointed at a staging server.
"""

from __future__ import annotations

import dataclasses
import os
import pathlib
from typing import Any

import yaml

DEFAULT_SETTINGS_PATH = pathlib.Path(__file__).resolve().parents[2] / "config" / "settings.yaml"


class SettingsError(Exception):
    """Raised when the settings file is unreadable or malformed."""


@dataclasses.dataclass(frozen=True)
class Settings:
    """Resolved client configuration.

    Attributes:
        base_url:                 API root; relative request URLs resolve against it.
        timeout_seconds:          Timeout for validation and business calls.
        refresh_timeout_seconds:  Timeout for the token refresh call.
        login_path:               Login endpoint.
        validate_session_path:    Session validation endpoint.
        refresh_token_path:       Token refresh endpoint.
        auth_scheme:              Prefix used by the prefixed header variant.
        session_header:           Header carrying the duplicated credential.
        user_agent:               ``User-Agent`` sent with every request.
        refresh_interval_seconds: Period of the proactive refresh check.
        expiry_buffer_seconds:    Refresh this long before the token expires.
        credentials_path:         Where the CLI persists the token pair.
    """

    base_url: str = "https://precast.blueinvent.com"
    timeout_seconds: float = 20.0
    refresh_timeout_seconds: float = 15.0
    login_path: str = "/api/login"
    validate_session_path: str = "/api/validate-session"
    refresh_token_path: str = "/api/refresh-token"
    auth_scheme: str = "Bearer"
    session_header: str = "session_id"
    user_agent: str = "PrecastApp/1.0"
    refresh_interval_seconds: float = 300.0
    expiry_buffer_seconds: float = 60.0
    credentials_path: str = "~/.config/precast-client/credentials.json"


_ENV_OVERRIDES = {
    "PRECAST_API_BASE_URL": "base_url",
    "PRECAST_CREDENTIALS_PATH": "credentials_path",
}


def load_settings(path: str | pathlib.Path | None = None) -> Settings:
    """Load settings from *path* (default ``config/settings.yaml``).

    A missing default file is not an error; a missing explicit path is.
    """
    explicit = path is not None
    settings_path = pathlib.Path(path) if explicit else DEFAULT_SETTINGS_PATH

    data: dict[str, Any] = {}
    if settings_path.exists():
        try:
            with open(settings_path) as fh:
                loaded = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise SettingsError(f"Invalid YAML in {settings_path}: {exc}") from exc
        if loaded is not None:
            section = loaded.get("api") if isinstance(loaded, dict) else None
            if not isinstance(section, dict):
                raise SettingsError(f"{settings_path} must contain an 'api' mapping")
            data = dict(section)
    elif explicit:
        raise SettingsError(f"Settings file not found: {settings_path}")

    known = {field.name for field in dataclasses.fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise SettingsError(f"Unknown settings keys: {', '.join(unknown)}")

    for env_var, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[key] = value

    return Settings(**data)
