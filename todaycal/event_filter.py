"""Day windowing, expiry, ordering and visibility for today's events."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from typing import Optional

from .datetime_utils import local_day_bounds, to_local_datetime
from .models import FormattedEvent, Occurrence, RawEvent

logger = logging.getLogger(__name__)


def occurrence_sort_key(occurrence: Occurrence) -> tuple[bool, datetime.datetime]:
    """All-day events first, then ascending start instant."""
    return (not occurrence.is_all_day, occurrence.start_date)


class EventFilter:
    """Filters occurrences against the local day containing ``now``."""

    def __init__(self, now: datetime.datetime):
        """Initialize event filter.

        Args:
            now: Timezone-aware evaluation instant; its tzinfo defines "local"
        """
        self.now = now
        self.local_tz = now.tzinfo
        self.today = now.date()
        self.day_start, self.day_end = local_day_bounds(now)

    def project_single_event(self, event: RawEvent) -> Optional[Occurrence]:
        """Return an Occurrence for a non-recurring event that falls today.

        All-day events match on their start date. Timed events match when
        the local start lies in ``[day_start, day_end)``; an event that began
        yesterday and runs into today does not match.
        """
        if event.is_all_day:
            if event.start != self.today:
                return None
            start = to_local_datetime(event.start, self.local_tz)
            end = start + event.master_duration
            return Occurrence.from_raw_event(event, start, end)

        start = to_local_datetime(event.start, self.local_tz)
        if not (self.day_start <= start < self.day_end):
            return None

        if event.end is not None and isinstance(event.end, datetime.datetime):
            end = to_local_datetime(event.end, self.local_tz)
        else:
            end = start + event.master_duration
        return Occurrence.from_raw_event(event, start, end)

    def is_on_target_day(self, occurrence: Occurrence) -> bool:
        """Check whether an occurrence's local start day is today."""
        return to_local_datetime(occurrence.start_date, self.local_tz).date() == self.today

    def is_expired(self, occurrence: Occurrence) -> bool:
        """All-day events never expire; timed events expire once they have ended."""
        if occurrence.is_all_day:
            return False
        return occurrence.end_date < self.now

    def sort_occurrences(self, occurrences: Iterable[Occurrence]) -> list[Occurrence]:
        """Stable sort into display order, returning a new list."""
        return sorted(occurrences, key=occurrence_sort_key)


def apply_visibility(events: list[FormattedEvent], show_expired_events: bool) -> list[FormattedEvent]:
    """Drop expired events unless they should be shown; never reorders.

    Args:
        events: Formatted events already in display order
        show_expired_events: Keep expired events when True

    Returns:
        New list with the same relative order
    """
    if show_expired_events:
        return list(events)
    visible = [e for e in events if not e.is_expired]
    hidden = len(events) - len(visible)
    if hidden:
        logger.debug("Hiding %d expired events", hidden)
    return visible
