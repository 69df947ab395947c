"""
Central logging configuration for todaycal.

Keeps todaycal's own loggers verbose when debugging while holding noisy
third-party libraries (HTTP client, event loop) at WARNING.
"""

import logging
import os
from typing import Optional

DEBUG_ENV_VAR = "TODAYCAL_DEBUG"
LOG_LEVEL_ENV_VAR = "TODAYCAL_LOG_LEVEL"

# Third-party loggers and the level they are held at
THIRD_PARTY_LOG_LEVELS: dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "charset_normalizer": logging.WARNING,
    "icalendar": logging.INFO,  # Keep some ICS parsing info
}

# Package modules inherit their level from this logger
TODAYCAL_LOGGER = "todaycal"


def env_debug_enabled() -> bool:
    """Return True when TODAYCAL_DEBUG holds a truthy value."""
    return os.getenv(DEBUG_ENV_VAR, "").strip().lower() in ("1", "true", "yes", "on")


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for todaycal and its third-party dependencies.

    Args:
        debug_mode: Whether to enable debug logging for todaycal modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        TODAYCAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        TODAYCAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_log_level = os.getenv(LOG_LEVEL_ENV_VAR, "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug_enabled():
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    logger_config = dict(THIRD_PARTY_LOG_LEVELS)
    logger_config[TODAYCAL_LOGGER] = logging.DEBUG if final_debug else logging.INFO

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.debug("Debug logging enabled for todaycal modules")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("todaycal", "httpx", "httpcore", "asyncio", "icalendar"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
