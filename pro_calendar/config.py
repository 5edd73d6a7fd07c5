"""Environment-driven settings for the calendar client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional

from .timezones import DEFAULT_TIME_ZONE, timezone_is_valid

__all__ = ["CalendarSettings", "ConfigError", "load_env_file"]

API_URL_ENV = "PRO_CALENDAR_API_URL"
API_TOKEN_ENV = "PRO_CALENDAR_API_TOKEN"
TIMEOUT_ENV = "PRO_CALENDAR_TIMEOUT"
FALLBACK_TZ_ENV = "PRO_CALENDAR_FALLBACK_TZ"
DEFAULT_TIMEOUT_SECONDS = 10.0


class ConfigError(RuntimeError):
    """Raised when configuration values are malformed."""


@dataclass(frozen=True)
class CalendarSettings:
    api_url: str
    token: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    fallback_time_zone: str = DEFAULT_TIME_ZONE

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CalendarSettings":
        env = os.environ if environ is None else environ

        api_url = (env.get(API_URL_ENV) or "").strip()
        if not api_url:
            raise ConfigError(f"{API_URL_ENV} must be set to the calendar API base URL.")

        raw_timeout = (env.get(TIMEOUT_ENV) or "").strip()
        timeout = DEFAULT_TIMEOUT_SECONDS
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError as exc:
                raise ConfigError(f"{TIMEOUT_ENV} must be a number, got {raw_timeout!r}.") from exc
            if timeout <= 0:
                raise ConfigError(f"{TIMEOUT_ENV} must be positive, got {raw_timeout!r}.")

        fallback = (env.get(FALLBACK_TZ_ENV) or "").strip() or DEFAULT_TIME_ZONE
        if not timezone_is_valid(fallback):
            raise ConfigError(f"{FALLBACK_TZ_ENV} is not a known IANA timezone: {fallback!r}.")

        token = (env.get(API_TOKEN_ENV) or "").strip() or None
        return cls(api_url=api_url, token=token, timeout=timeout, fallback_time_zone=fallback)


def load_env_file(env_file: str | Path | None = None) -> None:
    """Load environment variables from ``env_file`` if provided.

    When ``env_file`` is :data:`None`, the loader looks for a ``.env`` file in the
    current working directory. Existing environment variables are never overwritten.
    """

    path = Path(env_file) if env_file is not None else Path.cwd() / ".env"
    if not path.exists() or not path.is_file():
        return

    for key, value in _iter_env_entries(path):
        os.environ.setdefault(key, value)


def _iter_env_entries(path: Path) -> Iterable[tuple[str, str]]:
    for raw_line in path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            raise ConfigError(
                f"Invalid line in {path.name!r}: {raw_line!r}. Expected KEY=VALUE format."
            )
        key, raw_value = line.split("=", 1)
        key = key.strip()
        value = raw_value.strip().strip('"').strip("'")
        if not key:
            raise ConfigError(f"Environment variable key is missing in line: {raw_line!r}")
        yield key, value
