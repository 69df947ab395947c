"""Command-line entry for todaycal.

Loads configuration, runs one aggregation pass and prints today's agenda.
"""

from __future__ import annotations

import argparse
import asyncio
import datetime
import json
import logging
import os
import sys
from collections.abc import Sequence
from typing import NoReturn, Optional

from . import _init_logging
from .aggregator import aggregate_today_events
from .config_loader import load_config
from .lite_logging import configure_lite_logging
from .models import FormattedEvent

logger = logging.getLogger(__name__)

NO_EVENTS_MESSAGE = "No events scheduled for today"
NO_SOURCES_MESSAGE = "No calendar sources configured"


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the todaycal CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="todaycal",
        description="todaycal - today's events from your calendar feeds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  todaycal                                  # Use ./config/config.yaml or $TODAYCAL_CONFIG
  todaycal --config ~/cal.yaml --json       # JSON output
  todaycal --now 2024-03-01T08:00:00+01:00  # Evaluate as of a fixed instant
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="Path to the YAML configuration file")
    parser.add_argument(
        "--show-expired",
        action="store_true",
        help="Include events that have already ended (overrides show_expired_events)",
    )
    parser.add_argument(
        "--now",
        type=_parse_now,
        metavar="ISO",
        help="Evaluation instant in ISO 8601 format (default: current time)",
    )
    parser.add_argument("--json", action="store_true", help="Print events as a JSON list")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _parse_now(value: str) -> datetime.datetime:
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid ISO datetime: {value!r}") from e


def format_event_line(event: FormattedEvent) -> str:
    """Render one event as ``<time>  <title>  [<n> guests] [join: <url>]``."""
    parts = [event.time, event.title]
    if event.attendee_count:
        parts.append(f"{event.attendee_count} guests")
    if event.has_conference_link:
        parts.append(f"join: {event.conference_link}")
    return "  ".join(parts)


def render_events(events: list[FormattedEvent], as_json: bool) -> str:
    """Render the agenda as text lines or a camelCase JSON list."""
    if as_json:
        return json.dumps([e.model_dump(mode="json", by_alias=True) for e in events], indent=2)
    if not events:
        return NO_EVENTS_MESSAGE
    return "\n".join(format_event_line(e) for e in events)


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Run one aggregation pass and print the result.

    Returns:
        Process exit code
    """
    args = _create_parser().parse_args(argv)

    _init_logging(os.environ.get("TODAYCAL_LOG_LEVEL"))
    cfg = load_config(args.config)
    configure_lite_logging(debug_mode=args.debug or cfg.log_level == "DEBUG")
    if not args.debug and not os.environ.get("TODAYCAL_LOG_LEVEL"):
        logging.getLogger().setLevel(getattr(logging, cfg.log_level, logging.INFO))

    if not cfg.sources:
        print(NO_SOURCES_MESSAGE)
        return 0

    show_expired = args.show_expired or cfg.show_expired_events
    events = asyncio.run(aggregate_today_events(cfg.sources, show_expired, args.now, settings=cfg))
    print(render_events(events, args.json))
    return 0


def main() -> NoReturn:
    """Run the todaycal CLI."""
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()
