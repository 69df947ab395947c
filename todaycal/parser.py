"""iCalendar parser producing RawEvent models."""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Optional, Union

from icalendar import Calendar, Event as ICalEvent

from .constants import UNTITLED_EVENT_TITLE
from .datetime_utils import is_all_day_value
from .models import RawEvent

logger = logging.getLogger(__name__)


class ParseError(Exception):
    """Raised when feed text is not a well-formed iCalendar document."""


def _as_list(prop: Any) -> list[Any]:
    """Normalize a property that icalendar returns as a single value or a list."""
    if prop is None:
        return []
    if isinstance(prop, list):
        return prop
    return [prop]


def _property_dt(prop: Any) -> Optional[Union[date, datetime, timedelta]]:
    """Return the decoded value of a vDDDTypes-like property."""
    if prop is None:
        return None
    return getattr(prop, "dt", None)


class ICSParser:
    """Parse ICS text into immutable RawEvent models.

    Components that cannot be mapped (for example a VEVENT without DTSTART)
    are skipped with a warning; only a document that cannot be read at all
    raises ParseError.
    """

    def __init__(self, settings: Any = None) -> None:
        self.settings = settings

    def parse(self, ics_content: str, source_url: Optional[str] = None) -> list[RawEvent]:
        """Parse ICS content into RawEvents.

        Args:
            ics_content: Raw ICS text
            source_url: Optional URL, used only in log messages

        Returns:
            RawEvents in document order

        Raises:
            ParseError: If the text is empty or not an iCalendar document
        """
        calendar = self._read_calendar(ics_content)

        calendar_name = calendar.get("X-WR-CALNAME")
        if calendar_name:
            logger.debug("Parsing calendar %r from %s", str(calendar_name), source_url)

        components = list(calendar.walk("VEVENT"))
        overridden_slots = self._collect_overridden_slots(components)

        events: list[RawEvent] = []
        for component in components:
            event = self.parse_event_component(component, overridden_slots)
            if event is not None:
                events.append(event)

        logger.debug(
            "Parsed %d of %d VEVENT components from %s",
            len(events),
            len(components),
            source_url or "<content>",
        )
        return events

    def _read_calendar(self, ics_content: str) -> Calendar:
        if ics_content is None or not ics_content.strip():
            raise ParseError("Empty ICS content")

        if "BEGIN:VCALENDAR" not in ics_content.upper():
            raise ParseError("Content is not an iCalendar document (missing BEGIN:VCALENDAR)")

        try:
            calendar = Calendar.from_ical(ics_content)
        except Exception as e:
            raise ParseError(f"Malformed iCalendar content: {e}") from e

        if getattr(calendar, "name", None) != "VCALENDAR":
            raise ParseError(f"Expected VCALENDAR, found {getattr(calendar, 'name', None)!r}")
        return calendar

    def _collect_overridden_slots(
        self, components: list[ICalEvent]
    ) -> dict[str, list[Union[date, datetime]]]:
        """Map master UID -> RECURRENCE-ID values of its overridden instances."""
        slots: dict[str, list[Union[date, datetime]]] = defaultdict(list)
        for component in components:
            recurrence_id = _property_dt(component.get("RECURRENCE-ID"))
            uid = component.get("UID")
            if recurrence_id is not None and uid is not None:
                slots[str(uid)].append(recurrence_id)  # type: ignore[arg-type]
        return slots

    def parse_event_component(
        self,
        component: ICalEvent,
        overridden_slots: Optional[dict[str, list[Union[date, datetime]]]] = None,
    ) -> Optional[RawEvent]:
        """Parse a single VEVENT into a RawEvent.

        Args:
            component: icalendar VEVENT component
            overridden_slots: RECURRENCE-IDs of overriding instances keyed by UID

        Returns:
            RawEvent, or None when the component cannot be used
        """
        uid = str(component.get("UID", ""))
        try:
            start = _property_dt(component.get("DTSTART"))
            if not isinstance(start, date):
                logger.warning("Event %r missing DTSTART, skipping", uid or "<no-uid>")
                return None

            end = _property_dt(component.get("DTEND"))
            if end is not None and not isinstance(end, date):
                end = None

            duration = _property_dt(component.get("DURATION"))
            if not isinstance(duration, timedelta):
                duration = None

            recurrence_rule = self._extract_rrule(component)
            recurrence_id = _property_dt(component.get("RECURRENCE-ID"))

            rdates = self._collect_dates(component, "RDATE")
            exdates = self._collect_dates(component, "EXDATE")
            if (recurrence_rule or rdates) and recurrence_id is None and overridden_slots:
                exdates.extend(overridden_slots.get(uid, []))

            summary = str(component.get("SUMMARY") or "")
            status = str(component.get("STATUS") or "").upper()

            return RawEvent(
                uid=uid,
                title=summary if summary.strip() else UNTITLED_EVENT_TITLE,
                start=start,
                end=end,
                location=str(component.get("LOCATION") or ""),
                description=str(component.get("DESCRIPTION") or ""),
                is_all_day=is_all_day_value(start),
                recurrence_rule=recurrence_rule,
                duration=duration,
                exdates=tuple(exdates),
                rdates=tuple(rdates),
                recurrence_id=recurrence_id if isinstance(recurrence_id, date) else None,
                attendee_count=self.count_attendees(component),
                is_cancelled=status == "CANCELLED",
            )
        except Exception:
            logger.warning("Failed to parse event component %r, skipping", uid, exc_info=True)
            return None

    def _extract_rrule(self, component: ICalEvent) -> Optional[str]:
        """Return the RRULE value as an iCalendar string, e.g. ``FREQ=DAILY;COUNT=5``."""
        rules = _as_list(component.get("RRULE"))
        if not rules:
            return None
        if len(rules) > 1:
            logger.debug("Event %r has %d RRULEs; using the first", component.get("UID"), len(rules))
        rule = rules[0]
        if hasattr(rule, "to_ical"):
            return rule.to_ical().decode("utf-8")
        return str(rule)

    def _collect_dates(self, component: ICalEvent, name: str) -> list[Union[date, datetime]]:
        """Collect EXDATE/RDATE values as date or datetime objects.

        Each property may hold a comma-separated list; RDATE periods contribute
        their start.
        """
        values: list[Union[date, datetime]] = []
        for prop in _as_list(component.get(name)):
            for entry in getattr(prop, "dts", []):
                value = getattr(entry, "dt", None)
                if isinstance(value, tuple):
                    value = value[0]
                if isinstance(value, date):
                    values.append(value)
        return values

    def count_attendees(self, component: ICalEvent) -> int:
        """Count ATTENDEE properties, including nested lists some producers emit."""
        count = 0
        for attendee in _as_list(component.get("ATTENDEE")):
            count += len(attendee) if isinstance(attendee, list) else 1
        return count
