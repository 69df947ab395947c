"""End-to-end aggregation over faked HTTP feeds.

Feeds are served by ``httpx.MockTransport`` so the real fetcher, parser,
expander and formatter all run.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from datetime import datetime

import httpx
import pytest

from todaycal.aggregator import EventAggregator, aggregate_today_events
from todaycal.fetcher import ICSFetcher
from todaycal.http_client import create_client
from todaycal.models import CalendarSource

pytestmark = pytest.mark.integration

FEED_A = "https://calendar.example.com/a.ics"
FEED_B = "https://calendar.example.com/b.ics"

Route = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def routes() -> dict[str, Route]:
    return {}


@pytest.fixture
async def fetcher(simple_settings, routes: dict[str, Route]) -> AsyncIterator[ICSFetcher]:
    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request)

    async with create_client(transport=httpx.MockTransport(handler)) as client:
        yield ICSFetcher(simple_settings, client=client)


def serve(body: str) -> Route:
    return lambda request: httpx.Response(200, text=body, headers={"content-type": "text/calendar"})


def time_out(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


class TestScenarios:
    async def test_single_timed_event_with_zoom_link(
        self, fetcher, routes, simple_settings, now: datetime, ics, vevent
    ) -> None:
        # 9:00-10:00 local (UTC-5)
        routes[FEED_A] = serve(
            ics(
                vevent(
                    uid="standup",
                    summary="Standup",
                    dtstart="20240314T140000Z",
                    dtend="20240314T150000Z",
                    description="Join https://zoom.us/j/123",
                )
            )
        )

        events = await aggregate_today_events(
            [CalendarSource(url=FEED_A, color="#3498db")], False, now, settings=simple_settings, fetcher=fetcher
        )

        assert len(events) == 1
        event = events[0]
        assert event.title == "Standup"
        assert event.time == "9.00 am - 10.00 am"
        assert event.has_conference_link is True
        assert event.conference_link == "https://zoom.us/j/123"
        assert event.is_all_day is False
        assert event.is_expired is False
        assert event.calendar_color == "#3498db"

    async def test_all_day_event_sorts_first(
        self, fetcher, routes, simple_settings, now: datetime, ics, vevent
    ) -> None:
        routes[FEED_A] = serve(
            ics(
                vevent(uid="early", summary="Breakfast", dtstart="20240314T130000Z", dtend="20240314T133000Z"),
                vevent(uid="holiday", summary="Pi Day", raw=["DTSTART;VALUE=DATE:20240314"]),
            )
        )

        events = await aggregate_today_events(
            [CalendarSource(url=FEED_A, color="#111")], True, now, settings=simple_settings, fetcher=fetcher
        )

        assert [e.title for e in events] == ["Pi Day", "Breakfast"]
        assert events[0].time == "All day"
        assert events[0].is_all_day is True
        assert events[0].is_expired is False

    async def test_daily_rule_started_three_days_ago_yields_one_occurrence(
        self, fetcher, routes, simple_settings, now: datetime, ics, vevent
    ) -> None:
        routes[FEED_A] = serve(
            ics(
                vevent(
                    uid="daily",
                    summary="Daily sync",
                    dtstart="20240311T150000Z",
                    dtend="20240311T153000Z",
                    rrule="FREQ=DAILY",
                )
            )
        )

        events = await aggregate_today_events(
            [CalendarSource(url=FEED_A, color="#111")], False, now, settings=simple_settings, fetcher=fetcher
        )

        assert len(events) == 1
        assert events[0].time == "10.00 am - 10.30 am"
        assert events[0].start.date() == now.date()

    async def test_one_source_times_out_other_still_shown(
        self, fetcher, routes, simple_settings, now: datetime, ics, vevent, caplog
    ) -> None:
        routes[FEED_A] = time_out
        routes[FEED_B] = serve(
            ics(vevent(uid="b1", summary="Design review", dtstart="20240314T160000Z", dtend="20240314T170000Z"))
        )

        events = await aggregate_today_events(
            [CalendarSource(url=FEED_A, color="#aaa"), CalendarSource(url=FEED_B, color="#bbb")],
            False,
            now,
            settings=simple_settings,
            fetcher=fetcher,
        )

        assert [e.title for e in events] == ["Design review"]
        assert events[0].calendar_color == "#bbb"
        assert "Failed to fetch calendar" in caplog.text

    @pytest.mark.parametrize(("show_expired", "expected"), [(False, ["Later"]), (True, ["Early", "Later"])])
    async def test_expired_event_visibility(
        self, fetcher, routes, simple_settings, now: datetime, ics, vevent, show_expired, expected
    ) -> None:
        # now is 08:00 local; "Early" ran 06:00-07:00 local
        routes[FEED_A] = serve(
            ics(
                vevent(uid="e", summary="Early", dtstart="20240314T110000Z", dtend="20240314T120000Z"),
                vevent(uid="l", summary="Later", dtstart="20240314T180000Z", dtend="20240314T190000Z"),
            )
        )

        events = await aggregate_today_events(
            [CalendarSource(url=FEED_A, color="#111")], show_expired, now, settings=simple_settings, fetcher=fetcher
        )

        assert [e.title for e in events] == expected
        if show_expired:
            assert events[0].is_expired is True


class TestFailureIsolation:
    async def test_malformed_feed_contributes_nothing(
        self, fetcher, routes, simple_settings, now: datetime, ics, vevent
    ) -> None:
        routes[FEED_A] = serve("<html>login required</html>")
        routes[FEED_B] = serve(ics(vevent(uid="ok", summary="Kept", dtstart="20240314T160000Z")))

        events = await aggregate_today_events(
            [FEED_A, FEED_B], False, now, settings=simple_settings, fetcher=fetcher
        )

        assert [e.title for e in events] == ["Kept"]

    async def test_http_error_status_isolated(
        self, fetcher, routes, simple_settings, now: datetime, ics, vevent
    ) -> None:
        routes[FEED_A] = lambda request: httpx.Response(503, text="down")
        routes[FEED_B] = serve(ics(vevent(uid="ok", summary="Kept", dtstart="20240314T160000Z")))

        events = await aggregate_today_events(
            [{"url": FEED_A, "color": "#a"}, {"url": FEED_B, "color": "#b"}],
            False,
            now,
            settings=simple_settings,
            fetcher=fetcher,
        )

        assert [e.title for e in events] == ["Kept"]

    async def test_all_sources_failing_returns_empty(self, fetcher, routes, simple_settings, now) -> None:
        routes[FEED_A] = time_out

        assert await aggregate_today_events([FEED_A], True, now, settings=simple_settings, fetcher=fetcher) == []

    async def test_no_sources_returns_empty(self, simple_settings, now) -> None:
        assert await aggregate_today_events([], False, now, settings=simple_settings) == []

    async def test_blank_url_source_skipped(self, fetcher, routes, simple_settings, now, ics, vevent) -> None:
        routes[FEED_B] = serve(ics(vevent(uid="ok", summary="Kept", dtstart="20240314T160000Z")))

        events = await aggregate_today_events(
            [CalendarSource(url="  "), CalendarSource(url=FEED_B)], False, now, settings=simple_settings, fetcher=fetcher
        )

        assert [e.title for e in events] == ["Kept"]


class TestFeedFeatures:
    async def test_cancelled_and_other_day_events_excluded(
        self, fetcher, routes, simple_settings, now, ics, vevent
    ) -> None:
        routes[FEED_A] = serve(
            ics(
                vevent(uid="c", summary="Cancelled", dtstart="20240314T160000Z", status="CANCELLED"),
                vevent(uid="y", summary="Yesterday", dtstart="20240313T160000Z"),
                vevent(uid="t", summary="Tomorrow", dtstart="20240315T160000Z"),
                vevent(uid="k", summary="Kept", dtstart="20240314T160000Z"),
            )
        )

        events = await aggregate_today_events([FEED_A], False, now, settings=simple_settings, fetcher=fetcher)

        assert [e.title for e in events] == ["Kept"]

    async def test_moved_instance_replaces_series_slot(
        self, fetcher, routes, simple_settings, now, ics, vevent
    ) -> None:
        routes[FEED_A] = serve(
            ics(
                vevent(
                    uid="series",
                    summary="1:1",
                    dtstart="20240311T150000Z",
                    dtend="20240311T153000Z",
                    rrule="FREQ=DAILY",
                ),
                vevent(
                    uid="series",
                    summary="1:1 (moved)",
                    recurrence_id="20240314T150000Z",
                    dtstart="20240314T190000Z",
                    dtend="20240314T193000Z",
                ),
            )
        )

        events = await aggregate_today_events([FEED_A], False, now, settings=simple_settings, fetcher=fetcher)

        assert [(e.title, e.time) for e in events] == [("1:1 (moved)", "2.00 pm - 2.30 pm")]

    async def test_moved_rdate_instance_replaces_extra_date(
        self, fetcher, routes, simple_settings, now, ics, vevent
    ) -> None:
        routes[FEED_A] = serve(
            ics(
                vevent(
                    uid="extra",
                    summary="Review",
                    dtstart="20240301T150000Z",
                    dtend="20240301T153000Z",
                    rdate="20240314T150000Z",
                ),
                vevent(
                    uid="extra",
                    summary="Review (moved)",
                    recurrence_id="20240314T150000Z",
                    dtstart="20240314T190000Z",
                    dtend="20240314T193000Z",
                ),
            )
        )

        events = await aggregate_today_events([FEED_A], False, now, settings=simple_settings, fetcher=fetcher)

        assert [(e.title, e.time) for e in events] == [("Review (moved)", "2.00 pm - 2.30 pm")]

    async def test_attendees_counted(self, fetcher, routes, simple_settings, now, ics, vevent) -> None:
        routes[FEED_A] = serve(
            ics(
                vevent(
                    uid="a",
                    summary="Offsite",
                    dtstart="20240314T160000Z",
                    attendee=["mailto:a@example.com", "mailto:b@example.com"],
                )
            )
        )

        (event,) = await aggregate_today_events([FEED_A], False, now, settings=simple_settings, fetcher=fetcher)

        assert event.attendee_count == 2


class TestOrderingProperties:
    async def test_output_is_all_day_then_ascending_start(
        self, fetcher, routes, simple_settings, now, ics, vevent
    ) -> None:
        routes[FEED_A] = serve(
            ics(
                vevent(uid="3", summary="Three", dtstart="20240314T200000Z"),
                vevent(uid="ad", summary="Holiday", raw=["DTSTART;VALUE=DATE:20240314"]),
                vevent(uid="1", summary="One", dtstart="20240314T140000Z"),
            )
        )
        routes[FEED_B] = serve(ics(vevent(uid="2", summary="Two", dtstart="20240314T170000Z")))

        events = await aggregate_today_events(
            [FEED_A, FEED_B], True, now, settings=simple_settings, fetcher=fetcher
        )

        assert [e.title for e in events] == ["Holiday", "One", "Two", "Three"]
        timed = [e.start for e in events if not e.is_all_day]
        assert timed == sorted(timed)

    async def test_parallel_fetch_keeps_source_order_for_ties(
        self, simple_settings, now, ics, vevent
    ) -> None:
        simple_settings.fetch_concurrency = 3
        bodies = {
            FEED_A: ics(vevent(uid="a", summary="From A", dtstart="20240314T160000Z")),
            FEED_B: ics(vevent(uid="b", summary="From B", dtstart="20240314T160000Z")),
        }

        class SlowFirstFetcher(ICSFetcher):
            async def fetch_ics(self, url: str) -> str:
                await asyncio.sleep(0.05 if url == FEED_A else 0)
                return bodies[url]

        aggregator = EventAggregator(simple_settings, fetcher=SlowFirstFetcher(simple_settings))
        events = await aggregator.aggregate([FEED_A, FEED_B], False, now)

        assert [e.title for e in events] == ["From A", "From B"]
