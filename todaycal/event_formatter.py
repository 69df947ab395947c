"""Display-time formatting and FormattedEvent projection."""

import datetime
from typing import Optional

from .constants import ALL_DAY_LABEL
from .models import FormattedEvent, Occurrence


def format_clock_time(value: datetime.datetime) -> str:
    """Format a wall-clock time as ``h.mm am``.

    Examples:
        >>> format_clock_time(datetime.datetime(2024, 1, 1, 0, 5))
        '12.05 am'
        >>> format_clock_time(datetime.datetime(2024, 1, 1, 13, 30))
        '1.30 pm'
    """
    hour = value.hour % 12 or 12
    meridiem = "am" if value.hour < 12 else "pm"
    return f"{hour}.{value.minute:02d} {meridiem}"


def format_event_time(
    start: datetime.datetime,
    end: datetime.datetime,
    is_all_day: bool,
    local_tz: Optional[datetime.tzinfo] = None,
) -> str:
    """Return the display time for an event.

    Args:
        start: Occurrence start instant
        end: Occurrence end instant
        is_all_day: All-day events render as a fixed label
        local_tz: Zone to render in; defaults to each value's own zone

    Returns:
        ``"All day"`` or ``"<start> - <end>"`` with both sides formatted independently
    """
    if is_all_day:
        return ALL_DAY_LABEL
    if local_tz is not None:
        start = start.astimezone(local_tz)
        end = end.astimezone(local_tz)
    return f"{format_clock_time(start)} - {format_clock_time(end)}"


def format_occurrence(
    occurrence: Occurrence,
    is_expired: bool,
    local_tz: Optional[datetime.tzinfo] = None,
) -> FormattedEvent:
    """Project an Occurrence onto the display contract."""
    return FormattedEvent(
        title=occurrence.title,
        time=format_event_time(
            occurrence.start_date, occurrence.end_date, occurrence.is_all_day, local_tz
        ),
        location=occurrence.location,
        has_conference_link=bool(occurrence.conference_link),
        conference_link=occurrence.conference_link,
        attendee_count=occurrence.attendee_count,
        is_all_day=occurrence.is_all_day,
        calendar_color=occurrence.calendar_color,
        is_expired=is_expired,
        start=occurrence.start_date,
        end=occurrence.end_date,
    )
