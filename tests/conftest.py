"""Shared fixtures for todaycal tests."""

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone, tzinfo
from types import SimpleNamespace
from typing import Any

import pytest

# Fixed offset keeps tests independent of the host timezone and tz database
LOCAL_TZ = timezone(timedelta(hours=-5), "EST")


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Lightweight settings object used across tests.

    Fields mirror todaycal.config_loader.Config; keep this fixture small.
    """
    return SimpleNamespace(
        request_timeout=5,
        max_retries=0,
        retry_backoff_factor=1.5,
        max_recurrence_iterations=1000,
        fast_forward_recurrence=True,
        fetch_concurrency=1,
        timezone=None,
    )


@pytest.fixture
def local_tz() -> tzinfo:
    return LOCAL_TZ


@pytest.fixture
def now() -> datetime:
    """Thursday 2024-03-14 08:00 local (13:00 UTC)."""
    return datetime(2024, 3, 14, 8, 0, tzinfo=LOCAL_TZ)


@pytest.fixture
def today(now: datetime) -> date:
    return now.date()


def build_vevent(**props: Any) -> str:
    """Build a VEVENT block from keyword properties.

    Property names are upper-cased with underscores turned into dashes, so
    ``recurrence_id="20240314T140000Z"`` becomes ``RECURRENCE-ID:20240314T140000Z``.
    List values repeat the property. Lines with parameters such as
    ``DTSTART;VALUE=DATE:20240314`` go in the ``raw`` list.
    """
    raw_lines = props.pop("raw", [])
    lines = ["BEGIN:VEVENT"]
    for key, value in props.items():
        if isinstance(value, (list, tuple)):
            for item in value:
                lines.append(f"{key.upper().replace('_', '-')}:{item}")
        else:
            lines.append(f"{key.upper().replace('_', '-')}:{value}")
    lines.extend(raw_lines)
    lines.append("END:VEVENT")
    return "\r\n".join(lines)


def build_ics(*vevents: str, calendar_name: str = "Test Calendar") -> str:
    """Wrap VEVENT blocks in a VCALENDAR document."""
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//todaycal//tests//EN",
        f"X-WR-CALNAME:{calendar_name}",
        *vevents,
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"


@pytest.fixture
def vevent() -> Callable[..., str]:
    return build_vevent


@pytest.fixture
def ics() -> Callable[..., str]:
    return build_ics
