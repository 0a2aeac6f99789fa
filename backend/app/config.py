"""Environment driven settings for the events service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from .errors import ConfigError

DEFAULT_DATABASE_URL = "sqlite:///./events.db"
DEFAULT_AGGREGATION_INTERVAL_SECONDS = 60

_TRUE_VALUES = {"1", "t", "true", "y", "yes", "on"}
_FALSE_VALUES = {"0", "f", "false", "n", "no", "off"}


def split_and_trim(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return default


def parse_interval_seconds(value: Optional[str]) -> int:
    """Parse ``AGGREGATION_INTERVAL_SECONDS``; unset means the default of 60."""

    if value is None or not value.strip():
        return DEFAULT_AGGREGATION_INTERVAL_SECONDS
    try:
        seconds = int(value.strip())
    except ValueError as exc:
        raise ConfigError(
            f"invalid AGGREGATION_INTERVAL_SECONDS={value!r}: must be a positive integer"
        ) from exc
    if seconds <= 0:
        raise ConfigError(
            f"invalid range number of AGGREGATION_INTERVAL_SECONDS={value}: must be positive integer"
        )
    return seconds


def _parse_port(value: Optional[str]) -> int:
    if value is None or not value.strip():
        return 8080
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ConfigError(f"invalid PORT={value!r}: must be an integer") from exc


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    aggregation_interval_seconds: int = DEFAULT_AGGREGATION_INTERVAL_SECONDS
    base_path: str = ""
    host: str = "0.0.0.0"
    port: int = 8080
    cors_allow_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    cors_allow_methods: List[str] = field(default_factory=lambda: ["GET", "POST"])
    cors_allow_headers: List[str] = field(
        default_factory=lambda: ["Accept", "Authorization", "Content-Type"]
    )
    cors_allow_credentials: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        base_path = env.get("BASE_PATH", "").strip().rstrip("/")
        if base_path and not base_path.startswith("/"):
            base_path = "/" + base_path
        return cls(
            database_url=env.get("EVENTS_DATABASE_URL") or DEFAULT_DATABASE_URL,
            aggregation_interval_seconds=parse_interval_seconds(
                env.get("AGGREGATION_INTERVAL_SECONDS")
            ),
            base_path=base_path,
            host=env.get("HOST") or "0.0.0.0",
            port=_parse_port(env.get("PORT")),
            cors_allow_origins=split_and_trim(
                env.get("CORS_ALLOW_ORIGINS") or "http://localhost:3000"
            ),
            cors_allow_methods=split_and_trim(env.get("CORS_ALLOW_METHODS") or "GET,POST"),
            cors_allow_headers=split_and_trim(
                env.get("CORS_ALLOW_HEADERS") or "Accept,Authorization,Content-Type"
            ),
            cors_allow_credentials=_parse_bool(env.get("CORS_ALLOW_CREDENTIALS")),
        )
