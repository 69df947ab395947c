"""RRULE expansion onto a single target day."""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Optional, Union

from dateutil.rrule import rrule, rruleset, rrulestr

from .constants import DEFAULT_MAX_RECURRENCE_ITERATIONS
from .datetime_utils import is_all_day_value, local_date_of
from .models import Occurrence, RawEvent

logger = logging.getLogger(__name__)

_UNTIL_PATTERN = re.compile(r"UNTIL=(\d{8})(T\d{6})?(Z)?", re.IGNORECASE)

# Frequencies whose period is a fixed number of days
_FIXED_PERIOD_DAYS = {"DAILY": 1, "WEEKLY": 7}


class RecurrenceRuleError(Exception):
    """RRULE could not be interpreted."""


class ExpansionLimitReached(Exception):
    """Iteration cap hit before reaching the target day (informational)."""

    def __init__(self, uid: str, max_iterations: int):
        super().__init__(f"RRULE expansion for {uid!r} exceeded {max_iterations} iterations")
        self.uid = uid
        self.max_iterations = max_iterations


@dataclass
class RRuleExpanderConfig:
    """Settings for RRULE expansion with explicit defaults."""

    max_recurrence_iterations: int = DEFAULT_MAX_RECURRENCE_ITERATIONS
    fast_forward_recurrence: bool = True

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpanderConfig":
        """Extract expansion settings from any object, falling back to defaults."""
        return cls(
            max_recurrence_iterations=int(
                getattr(settings, "max_recurrence_iterations", DEFAULT_MAX_RECURRENCE_ITERATIONS)
            ),
            fast_forward_recurrence=bool(getattr(settings, "fast_forward_recurrence", True)),
        )


class RRuleExpander:
    """Find the occurrence of a recurring event that falls on one day.

    Occurrences are walked in chronological order. The walk stops at the first
    occurrence on the target day, at the first occurrence after it, or when
    the iteration cap is exceeded, so each event yields at most one
    occurrence per day.
    """

    def __init__(self, settings: Any = None) -> None:
        config = RRuleExpanderConfig.from_settings(settings)
        self.max_iterations = max(1, config.max_recurrence_iterations)
        self.fast_forward = config.fast_forward_recurrence

    def expand_for_day(
        self,
        event: RawEvent,
        target_day: date,
        local_tz: Optional[tzinfo],
    ) -> Optional[Occurrence]:
        """Return the event's occurrence on ``target_day``, if any.

        Args:
            event: Recurring RawEvent (non-recurring events yield None)
            target_day: Local calendar day to project onto
            local_tz: Timezone defining local days

        Returns:
            Occurrence without a source color, or None
        """
        if not event.is_recurring:
            return None

        try:
            occurrence_start = self.find_occurrence_start(event, target_day, local_tz)
        except ExpansionLimitReached as e:
            logger.debug("%s; no occurrence for %s", e, target_day)
            return None
        except RecurrenceRuleError as e:
            logger.warning("Skipping recurring event %r: %s", event.uid or event.title, e)
            return None

        if occurrence_start is None:
            return None

        if event.is_all_day:
            start = datetime.combine(occurrence_start.date(), time.min, tzinfo=local_tz)
        else:
            start = occurrence_start.astimezone(local_tz)
        end = start + event.master_duration

        logger.debug(
            "Expanded %r onto %s: %s - %s", event.title, target_day, start.isoformat(), end.isoformat()
        )
        return Occurrence.from_raw_event(event, start, end, is_expanded_instance=True)

    def find_occurrence_start(
        self,
        event: RawEvent,
        target_day: date,
        local_tz: Optional[tzinfo],
    ) -> Optional[datetime]:
        """Walk the series and return the first start on ``target_day``.

        Raises:
            ExpansionLimitReached: More than ``max_iterations`` occurrences visited
            RecurrenceRuleError: The RRULE cannot be parsed
        """
        rule_set = self.build_ruleset(event, target_day, local_tz)

        for step, occurrence in enumerate(rule_set, start=1):
            if step > self.max_iterations:
                raise ExpansionLimitReached(event.uid or event.title, self.max_iterations)

            if event.is_all_day:
                occurrence_day = occurrence.date()
            else:
                occurrence_day = local_date_of(occurrence, local_tz)

            if occurrence_day == target_day:
                return occurrence
            if occurrence_day > target_day:
                return None
        return None

    def build_ruleset(
        self,
        event: RawEvent,
        target_day: date,
        local_tz: Optional[tzinfo],
    ) -> rruleset:
        """Build a dateutil rruleset for the event.

        All-day series use naive midnight datetimes; timed series are aware,
        with floating times read in ``local_tz``. DTSTART is always part of the
        set, as RFC 5545 requires.
        """
        anchor = self._series_anchor(event, local_tz)
        rule_set = rruleset()
        rule_set.rdate(anchor)

        if event.recurrence_rule:
            rule_set.rrule(self._parse_rule(event.recurrence_rule, anchor, target_day, local_tz))

        for value in event.rdates:
            rule_set.rdate(self._align(value, anchor, local_tz))
        for value in event.exdates:
            rule_set.exdate(self._align(value, anchor, local_tz))
        return rule_set

    def _series_anchor(self, event: RawEvent, local_tz: Optional[tzinfo]) -> datetime:
        start = event.start
        if is_all_day_value(start):
            return datetime.combine(start, time.min)
        if start.tzinfo is None:  # type: ignore[union-attr]
            return start.replace(tzinfo=local_tz)  # type: ignore[union-attr,call-arg]
        return start  # type: ignore[return-value]

    def _align(
        self, value: Union[date, datetime], anchor: datetime, local_tz: Optional[tzinfo]
    ) -> datetime:
        """Convert an EXDATE/RDATE value to the anchor's naive/aware form."""
        if anchor.tzinfo is None:
            if is_all_day_value(value):
                return datetime.combine(value, anchor.time())
            if value.tzinfo is not None:  # type: ignore[union-attr]
                return value.astimezone(local_tz).replace(tzinfo=None)  # type: ignore[union-attr]
            return value  # type: ignore[return-value]

        if is_all_day_value(value):
            return datetime.combine(value, anchor.time(), tzinfo=anchor.tzinfo)
        if value.tzinfo is None:  # type: ignore[union-attr]
            return value.replace(tzinfo=local_tz)  # type: ignore[union-attr,call-arg]
        return value  # type: ignore[return-value]

    def _parse_rule(
        self,
        rule_text: str,
        anchor: datetime,
        target_day: date,
        local_tz: Optional[tzinfo],
    ) -> rrule:
        rule_text = normalize_until(rule_text, anchor, local_tz)
        dtstart = self.fast_forward_anchor(rule_text, anchor, target_day) if self.fast_forward else anchor
        try:
            parsed = rrulestr(rule_text, dtstart=dtstart)
        except (ValueError, TypeError) as e:
            raise RecurrenceRuleError(f"Invalid RRULE {rule_text!r}: {e}") from e
        if not isinstance(parsed, rrule):
            raise RecurrenceRuleError(f"Unsupported RRULE {rule_text!r}")
        return parsed

    def fast_forward_anchor(self, rule_text: str, anchor: datetime, target_day: date) -> datetime:
        """Advance the series anchor by whole periods toward ``target_day``.

        Only DAILY and WEEKLY rules without COUNT qualify: their periods are a
        fixed number of days, so shifting DTSTART by whole periods keeps every
        later occurrence in place. The anchor stays at least one full period
        before the target day.
        """
        parts = rule_parts(rule_text)
        freq = parts.get("FREQ", "")
        if "COUNT" in parts or freq not in _FIXED_PERIOD_DAYS:
            return anchor

        try:
            interval = int(parts.get("INTERVAL", "1"))
        except ValueError:
            return anchor
        if interval < 1:
            return anchor

        period_days = interval * _FIXED_PERIOD_DAYS[freq]
        periods = (target_day - anchor.date()).days // period_days - 1
        if periods <= 0:
            return anchor

        shifted = anchor + timedelta(days=periods * period_days)
        logger.debug("Fast-forwarded %s anchor from %s to %s", freq, anchor, shifted)
        return shifted


def rule_parts(rule_text: str) -> dict[str, str]:
    """Split ``FREQ=DAILY;INTERVAL=2`` into an upper-cased mapping."""
    parts: dict[str, str] = {}
    for part in rule_text.upper().removeprefix("RRULE:").split(";"):
        if "=" in part:
            key, value = part.split("=", 1)
            parts[key.strip()] = value.strip()
    return parts


def normalize_until(rule_text: str, anchor: datetime, local_tz: Optional[tzinfo]) -> str:
    """Make UNTIL agree with DTSTART on timezone awareness.

    dateutil rejects an aware DTSTART with a floating UNTIL and the reverse.
    Aware series get a UTC UNTIL (a bare date means the end of that day in the
    series timezone); naive series get a local wall-clock UNTIL.
    """
    match = _UNTIL_PATTERN.search(rule_text)
    if not match:
        return rule_text

    day_part, time_part, utc_marker = match.groups()
    if time_part:
        until = datetime.strptime(day_part + time_part.upper(), "%Y%m%dT%H%M%S")
    else:
        until = datetime.strptime(day_part, "%Y%m%d").replace(hour=23, minute=59, second=59)

    if anchor.tzinfo is not None:
        if utc_marker:
            return rule_text
        until_utc = until.replace(tzinfo=anchor.tzinfo).astimezone(timezone.utc)
        replacement = f"UNTIL={until_utc.strftime('%Y%m%dT%H%M%S')}Z"
    else:
        if not utc_marker:
            return rule_text
        until_local = until.replace(tzinfo=timezone.utc).astimezone(local_tz).replace(tzinfo=None)
        replacement = f"UNTIL={until_local.strftime('%Y%m%dT%H%M%S')}"

    return rule_text[: match.start()] + replacement + rule_text[match.end() :]
