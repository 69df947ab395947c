"""Date/time helpers for local-day windowing.

All windowing happens in the timezone carried by the injected ``now``. Bare
dates (all-day values) are placed at local midnight, floating datetimes are
read as local wall time, and aware datetimes are converted.
"""

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

from dateutil import tz as dateutil_tz

logger = logging.getLogger(__name__)


def is_all_day_value(value: Union[date, datetime]) -> bool:
    """Return True for a bare date (no time-of-day component)."""
    return isinstance(value, date) and not isinstance(value, datetime)


def get_local_timezone(tz_name: Optional[str] = None) -> tzinfo:
    """Return the configured IANA zone, or the host's local zone.

    Args:
        tz_name: Optional IANA timezone identifier (e.g. "Europe/Berlin")

    Returns:
        tzinfo instance
    """
    if tz_name:
        try:
            return ZoneInfo(tz_name)
        except Exception as e:
            logger.warning("Unknown timezone %r (%s); using host local time", tz_name, e)
    return dateutil_tz.tzlocal()


def resolve_now(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> datetime:
    """Return a timezone-aware evaluation instant.

    Args:
        now: Injected current instant; naive values are read in the local zone
        tz_name: Optional IANA timezone used when ``now`` is missing or naive

    Returns:
        Timezone-aware datetime
    """
    local_tz = get_local_timezone(tz_name)
    if now is None:
        return datetime.now(local_tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=local_tz)
    return now


def local_day_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Return the local midnight-to-midnight window containing ``now``.

    Args:
        now: Timezone-aware current instant

    Returns:
        (day_start, next_day_start), both aware in ``now``'s timezone
    """
    local_tz = now.tzinfo
    today = now.date()
    day_start = datetime.combine(today, time.min, tzinfo=local_tz)
    day_end = datetime.combine(today + timedelta(days=1), time.min, tzinfo=local_tz)
    return day_start, day_end


def to_local_datetime(value: Union[date, datetime], local_tz: Optional[tzinfo]) -> datetime:
    """Convert a DTSTART/DTEND style value to an aware local datetime.

    Args:
        value: Bare date, floating datetime or aware datetime
        local_tz: Timezone that defines "local"

    Returns:
        Timezone-aware datetime in ``local_tz``
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=local_tz)
    if value.tzinfo is None:
        return value.replace(tzinfo=local_tz)
    return value.astimezone(local_tz)


def local_date_of(value: Union[date, datetime], local_tz: Optional[tzinfo]) -> date:
    """Return the local calendar day of a date or datetime value."""
    if is_all_day_value(value):
        return value  # type: ignore[return-value]
    return to_local_datetime(value, local_tz).date()
