"""todaycal - today's agenda aggregated from iCalendar feeds.

Fetches ICS feeds, expands recurring events onto the current local day and
returns a display-ready, ordered list of what is happening today.
"""

__version__ = "0.1.0"

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

from .aggregator import EventAggregator, TodayAgenda, aggregate_today_events
from .config_loader import Config, load_config
from .fetcher import FetchError
from .models import CalendarSource, FormattedEvent, Occurrence, RawEvent, SourceResult
from .parser import ParseError
from .rrule_expander import ExpansionLimitReached

__all__ = [
    "CalendarSource",
    "Config",
    "EventAggregator",
    "ExpansionLimitReached",
    "FetchError",
    "FormattedEvent",
    "Occurrence",
    "ParseError",
    "RawEvent",
    "SourceResult",
    "TodayAgenda",
    "aggregate_today_events",
    "load_config",
]


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorized stderr handler when the root logger has none, then
    sets the root level. TODAYCAL_DEBUG (truthy values: "1", "true", "yes",
    "on") forces DEBUG regardless of ``level_name``.
    """
    debug_env = os.environ.get("TODAYCAL_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message, with only the level colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )
