from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigError
from .utils import normalize_url

ENV_PREFIX = "SEOAGENT_"


@dataclass(frozen=True)
class Settings:
    user_agent: str = "seo-agent/0.1 (+https://example.com)"
    fetch_timeout: float = 15.0
    monitor_interval: float = 30.0
    scheduler_interval: float = 3600.0
    max_pages: int = 10
    history_limit: int = 50
    persisted_history: int = 20
    store_path: Optional[Path] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        overrides = {}
        for name, caster in (
            ("user_agent", str),
            ("fetch_timeout", float),
            ("monitor_interval", float),
            ("scheduler_interval", float),
            ("max_pages", int),
            ("history_limit", int),
            ("persisted_history", int),
            ("store_path", Path),
        ):
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            try:
                overrides[name] = caster(raw)
            except ValueError as exc:
                raise ConfigError(f"Invalid {ENV_PREFIX}{name.upper()}={raw!r}") from exc
        settings = replace(cls(), **overrides)
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.fetch_timeout <= 0:
            raise ConfigError("fetch_timeout must be positive")
        validate_interval(self.monitor_interval)
        validate_interval(self.scheduler_interval)
        if self.max_pages < 1:
            raise ConfigError("max_pages must be at least 1")
        if self.history_limit < 1:
            raise ConfigError("history_limit must be at least 1")
        if self.persisted_history < 0:
            raise ConfigError("persisted_history cannot be negative")


def validate_interval(seconds: float) -> float:
    try:
        value = float(seconds)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid interval: {seconds!r}") from exc
    if not value > 0:
        raise ConfigError(f"Interval must be positive, got {seconds!r}")
    return value


def validate_target_url(url: str) -> str:
    """Normalise ``url`` for monitoring/crawling, rejecting non-web targets."""
    if not isinstance(url, str) or not url.strip():
        raise ConfigError("A URL is required")
    try:
        normalized = normalize_url(url)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    if not normalized.startswith(("http://", "https://")):
        raise ConfigError(f"Unsupported URL scheme: {url!r}")
    return normalized


DEFAULT_SETTINGS = Settings()
