"""todaycal.config_loader

Config loader for todaycal.

- Reads YAML with ``yaml.safe_load``.
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override (``TODAYCAL_CONFIG`` is consulted otherwise).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .constants import (
    DEFAULT_CALENDAR_COLORS,
    DEFAULT_MAX_RECURRENCE_ITERATIONS,
    DEFAULT_REFRESH_INTERVAL_MINUTES,
)
from .models import CalendarSource

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TODAYCAL_CONFIG"
LOG_LEVEL_ENV_VAR = "TODAYCAL_LOG_LEVEL"
DEFAULT_CONFIG_PATH = Path("config") / "config.yaml"

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Typed configuration for todaycal.

    Fields:
        sources: calendar feeds with their display colors
        refresh_interval: minutes between passes, for the caller's timer (>= 1)
        show_expired_events: keep timed events that have already ended
        request_timeout: per-request read timeout in seconds
        max_retries: extra attempts for timeout/network failures
        retry_backoff_factor: base of the exponential retry backoff
        max_recurrence_iterations: cap on occurrences visited per recurring event
        fast_forward_recurrence: skip whole DAILY/WEEKLY periods before iterating
        fetch_concurrency: sources fetched at once (1..3; 1 is sequential)
        timezone: optional IANA zone used for "today"
        log_level: logging level name
    """

    sources: list[CalendarSource] = field(default_factory=list)
    refresh_interval: int = DEFAULT_REFRESH_INTERVAL_MINUTES
    show_expired_events: bool = False
    request_timeout: float = 30.0
    max_retries: int = 0
    retry_backoff_factor: float = 1.5
    max_recurrence_iterations: int = DEFAULT_MAX_RECURRENCE_ITERATIONS
    fast_forward_recurrence: bool = True
    fetch_concurrency: int = 1
    timezone: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced, out-of-range values are clamped and
        every coercion is logged as a warning.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int, minimum: int, maximum: int | None = None) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < minimum:
                logger.warning("Config %s=%d below minimum; coercing to %d", key, value, minimum)
                return minimum
            if maximum is not None and value > maximum:
                logger.warning("Config %s=%d above maximum; coercing to %d", key, value, maximum)
                return maximum
            return value

        def _coerce_float(key: str, default: float, minimum: float) -> float:
            raw = data.get(key, default)
            try:
                value = float(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not a number; using default %s", key, raw, default)
                return default
            if value < minimum:
                logger.warning("Config %s=%s below minimum; coercing to %s", key, value, minimum)
                return minimum
            return value

        timezone = data.get("timezone")
        timezone = str(timezone) if timezone else None

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"
        if log_level not in _VALID_LOG_LEVELS:
            logger.warning("Config log_level=%r unknown; using INFO", log_level)
            log_level = "INFO"

        return cls(
            sources=parse_sources(data.get("sources")),
            refresh_interval=_coerce_int("refresh_interval", DEFAULT_REFRESH_INTERVAL_MINUTES, 1),
            show_expired_events=_coerce_bool(data.get("show_expired_events", False)),
            request_timeout=_coerce_float("request_timeout", 30.0, 1.0),
            max_retries=_coerce_int("max_retries", 0, 0, 5),
            retry_backoff_factor=_coerce_float("retry_backoff_factor", 1.5, 1.0),
            max_recurrence_iterations=_coerce_int(
                "max_recurrence_iterations", DEFAULT_MAX_RECURRENCE_ITERATIONS, 1
            ),
            fast_forward_recurrence=_coerce_bool(data.get("fast_forward_recurrence", True)),
            fetch_concurrency=_coerce_int("fetch_concurrency", 1, 1, 3),
            timezone=timezone,
            log_level=log_level,
        )


def _coerce_bool(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    return bool(raw)


def parse_sources(raw: Any) -> list[CalendarSource]:
    """Build CalendarSources from config entries.

    Entries may be ``{url, color, name}`` mappings or bare URL strings.
    Entries without a color get the next color of the default palette.
    """
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        logger.warning("Config `sources` is not a list; coercing to single-item list")
        raw = [raw]

    sources: list[CalendarSource] = []
    for index, entry in enumerate(raw):
        palette_color = DEFAULT_CALENDAR_COLORS[index % len(DEFAULT_CALENDAR_COLORS)]
        if isinstance(entry, dict):
            url = str(entry.get("url") or "")
            color = str(entry.get("color") or "") or palette_color
            name = entry.get("name")
            sources.append(CalendarSource(url=url, color=color, name=str(name) if name else None))
        else:
            sources.append(CalendarSource(url=str(entry), color=palette_color))
    return sources


def _load_yaml(path: Path) -> Any:
    """Load a YAML document; empty files yield an empty mapping."""
    loaded = yaml.safe_load(path.read_text())
    if loaded is None:
        return {}
    return loaded


def load_config(path: str | None = None) -> Config:
    """Load configuration from a YAML file and return a Config instance.

    Args:
        path: Optional path to the config file. Defaults to ``$TODAYCAL_CONFIG``,
              then ./config/config.yaml (relative to the current directory).

    Returns:
        Config dataclass instance with values from file (or defaults).

    Behavior:
    - If file is missing: returns Config() with defaults.
    - If file exists but top-level is not a mapping: raises ValueError.
    - ``TODAYCAL_LOG_LEVEL`` overrides ``log_level`` from the file.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    p = Path(path or env_path or DEFAULT_CONFIG_PATH)
    logger.debug("Attempting to load config from %s", p)

    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        cfg = Config()
    else:
        raw = _load_yaml(p)
        if not isinstance(raw, dict):
            logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
            raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
        cfg = Config.from_dict(raw)
        logger.info("Loaded configuration from %s (%d sources)", p, len(cfg.sources))

    env_level = os.environ.get(LOG_LEVEL_ENV_VAR)
    if env_level and env_level.upper() in _VALID_LOG_LEVELS:
        cfg.log_level = env_level.upper()

    logger.debug("Configuration values: %s", cfg)
    return cfg
