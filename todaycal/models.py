"""Data models for today's calendar aggregation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from .conference_links import extract_conference_link
from .constants import UNTITLED_EVENT_TITLE

# A DTSTART/DTEND value: a bare date for all-day events, a datetime otherwise
DateOrDateTime = Union[datetime, date]


class CalendarSource(BaseModel):
    """One ICS feed plus the color used to tag its events."""

    url: str = Field(..., description="ICS calendar URL")
    color: str = Field(default="", description="Display color token for this feed")
    name: Optional[str] = Field(default=None, description="Human-readable name")

    model_config = ConfigDict(frozen=True)

    @property
    def is_blank(self) -> bool:
        """Sources without a URL are skipped by the aggregator."""
        return not self.url.strip()

    @property
    def label(self) -> str:
        """Name for log messages."""
        return self.name or self.url


class RawEvent(BaseModel):
    """A single VEVENT as parsed from a feed, before any windowing."""

    uid: str = Field(default="", description="UID of the component")
    title: str = Field(default=UNTITLED_EVENT_TITLE, description="SUMMARY")
    start: DateOrDateTime = Field(..., description="DTSTART value")
    end: Optional[DateOrDateTime] = Field(default=None, description="DTEND value if present")
    location: str = ""
    description: str = ""
    is_all_day: bool = Field(default=False, description="True when DTSTART is a bare date")

    # Recurrence
    recurrence_rule: Optional[str] = Field(default=None, description="RRULE value")
    duration: Optional[timedelta] = Field(default=None, description="DURATION value")
    exdates: tuple[DateOrDateTime, ...] = Field(default=(), description="Excluded starts")
    rdates: tuple[DateOrDateTime, ...] = Field(default=(), description="Additional starts")
    recurrence_id: Optional[DateOrDateTime] = Field(
        default=None, description="RECURRENCE-ID of an overridden instance"
    )

    attendee_count: int = Field(default=0, ge=0)
    is_cancelled: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def is_recurring(self) -> bool:
        """Check if the event carries a repetition rule or extra dates."""
        return bool(self.recurrence_rule) or bool(self.rdates)

    @property
    def master_duration(self) -> timedelta:
        """Length applied to each expanded occurrence.

        DURATION wins over DTEND; with neither the occurrence has zero length.
        """
        if self.duration is not None:
            return self.duration
        if self.end is None or type(self.end) is not type(self.start):
            return timedelta(0)
        if isinstance(self.start, datetime) and (
            (self.start.tzinfo is None) != (self.end.tzinfo is None)  # type: ignore[union-attr]
        ):
            return timedelta(0)
        return max(self.end - self.start, timedelta(0))  # type: ignore[operator]


class Occurrence(BaseModel):
    """A RawEvent projected onto one concrete day, tagged with its source color."""

    uid: str = ""
    title: str
    start_date: datetime
    end_date: datetime
    location: str = ""
    description: str = ""
    is_all_day: bool = False
    conference_link: str = ""
    attendee_count: int = Field(default=0, ge=0)
    calendar_color: str = ""
    is_expanded_instance: bool = Field(
        default=False, description="True if generated from RRULE expansion"
    )

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_raw_event(
        cls,
        event: RawEvent,
        start: datetime,
        end: datetime,
        calendar_color: str = "",
        is_expanded_instance: bool = False,
    ) -> Occurrence:
        """Project a RawEvent onto concrete start/end instants."""
        return cls(
            uid=event.uid,
            title=event.title,
            start_date=start,
            end_date=end,
            location=event.location,
            description=event.description,
            is_all_day=event.is_all_day,
            conference_link=extract_conference_link(event.description, event.location),
            attendee_count=event.attendee_count,
            calendar_color=calendar_color,
            is_expanded_instance=is_expanded_instance,
        )

    def with_color(self, calendar_color: str) -> Occurrence:
        """Return a copy tagged with a source color."""
        return self.model_copy(update={"calendar_color": calendar_color})


class FormattedEvent(BaseModel):
    """Display-ready event returned to the presentation layer.

    Serializes with camelCase keys (``model_dump(by_alias=True)``) for consumers
    that expect the panel's JSON shape.
    """

    title: str
    time: str
    location: str = ""
    has_conference_link: bool = False
    conference_link: str = ""
    attendee_count: int = Field(default=0, ge=0)
    is_all_day: bool = False
    calendar_color: str = ""
    is_expired: bool = False

    # Instants kept for ordering checks and consumers that want raw times
    start: datetime
    end: datetime

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to ISO format."""
        return dt.isoformat()


@dataclass(frozen=True)
class SourceResult:
    """Outcome of fetching, parsing and expanding one source.

    Exactly one of ``occurrences`` (possibly empty) or ``error`` is meaningful:
    a failed source never contributes occurrences.
    """

    source: CalendarSource
    occurrences: tuple[Occurrence, ...] = ()
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, source: CalendarSource, error: Exception) -> SourceResult:
        return cls(source=source, error=error)
