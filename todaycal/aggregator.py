"""Event aggregation: fetch, parse and expand every source, then merge for display."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Union

from .datetime_utils import resolve_now
from .event_filter import EventFilter, apply_visibility
from .event_formatter import format_occurrence
from .fetcher import FetchError, ICSFetcher
from .models import CalendarSource, FormattedEvent, Occurrence, RawEvent, SourceResult
from .parser import ICSParser, ParseError
from .rrule_expander import RRuleExpander

logger = logging.getLogger(__name__)

SourceLike = Union[CalendarSource, Mapping[str, Any], str]

# Upper bound for parallel source fetches
MAX_FETCH_CONCURRENCY = 3


def coerce_source(source: SourceLike) -> CalendarSource:
    """Accept a CalendarSource, a ``{url, color}`` mapping or a bare URL."""
    if isinstance(source, CalendarSource):
        return source
    if isinstance(source, str):
        return CalendarSource(url=source)
    return CalendarSource(
        url=str(source.get("url") or ""),
        color=str(source.get("color") or ""),
        name=source.get("name"),
    )


class EventAggregator:
    """Drives fetch -> parse -> expand per source and folds the results.

    A source that fails to fetch or parse becomes a failed SourceResult and
    contributes nothing; the other sources are unaffected.
    """

    def __init__(
        self,
        settings: Any = None,
        fetcher: Optional[ICSFetcher] = None,
        parser: Optional[ICSParser] = None,
        expander: Optional[RRuleExpander] = None,
    ):
        """Initialize event aggregator.

        Args:
            settings: Config-like object; missing attributes fall back to defaults
            fetcher: Optional fetcher; when omitted one is created per pass
            parser: Optional ICS parser
            expander: Optional recurrence expander
        """
        self.settings = settings
        self.fetcher = fetcher
        self.parser = parser or ICSParser(settings)
        self.expander = expander or RRuleExpander(settings)

        concurrency = int(getattr(settings, "fetch_concurrency", 1) or 1)
        self.fetch_concurrency = max(1, min(concurrency, MAX_FETCH_CONCURRENCY))

    async def aggregate(
        self,
        sources: Iterable[SourceLike],
        show_expired_events: bool,
        now: Optional[datetime.datetime] = None,
    ) -> list[FormattedEvent]:
        """Run one aggregation pass.

        Args:
            sources: Feeds to read, in configured order
            show_expired_events: Keep events that have already ended
            now: Evaluation instant; defaults to the current local time

        Returns:
            FormattedEvents with all-day events first, then by start time
        """
        now = resolve_now(now, getattr(self.settings, "timezone", None))
        source_list = [coerce_source(s) for s in sources]
        if not source_list:
            logger.debug("No sources configured")
            return []

        event_filter = EventFilter(now)
        results = await self.collect_all(source_list, event_filter)

        failed = [r for r in results if not r.success]
        if failed:
            logger.warning("%d of %d sources failed this pass", len(failed), len(results))

        merged = tuple(o for r in results for o in r.occurrences)
        ordered = event_filter.sort_occurrences(merged)
        formatted = [
            format_occurrence(o, event_filter.is_expired(o), event_filter.local_tz) for o in ordered
        ]
        visible = apply_visibility(formatted, show_expired_events)

        logger.info(
            "Aggregated %d events for %s (%d shown) from %d sources",
            len(formatted),
            event_filter.today.isoformat(),
            len(visible),
            len(results),
        )
        return visible

    async def collect_all(
        self, sources: list[CalendarSource], event_filter: EventFilter
    ) -> list[SourceResult]:
        """Collect SourceResults in source order, skipping blank URLs."""
        active = [s for s in sources if not s.is_blank]
        if len(active) < len(sources):
            logger.debug("Skipping %d sources with blank URLs", len(sources) - len(active))

        if self.fetcher is not None:
            return await self._collect_with(self.fetcher, active, event_filter)

        async with ICSFetcher(self.settings) as fetcher:
            return await self._collect_with(fetcher, active, event_filter)

    async def _collect_with(
        self,
        fetcher: ICSFetcher,
        sources: list[CalendarSource],
        event_filter: EventFilter,
    ) -> list[SourceResult]:
        if self.fetch_concurrency == 1:
            return [await self.collect_source(fetcher, s, event_filter) for s in sources]

        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def bounded(source: CalendarSource) -> SourceResult:
            async with semaphore:
                return await self.collect_source(fetcher, source, event_filter)

        tasks = [asyncio.create_task(bounded(s)) for s in sources]
        try:
            # gather keeps input order, so the merge order matches the sequential path
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # Settle sibling fetches before the caller closes the shared client
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise

    async def collect_source(
        self,
        fetcher: ICSFetcher,
        source: CalendarSource,
        event_filter: EventFilter,
    ) -> SourceResult:
        """Fetch, parse and expand one source into today's occurrences.

        Returns:
            SourceResult; failed when the fetch or parse step raised
        """
        try:
            ics_content = await fetcher.fetch_ics(source.url)
            events = self.parser.parse(ics_content, source_url=source.url)
        except FetchError as e:
            logger.warning("Failed to fetch calendar %s: %s", source.label, e)
            return SourceResult.failed(source, e)
        except ParseError as e:
            logger.warning("Failed to parse calendar %s: %s", source.label, e)
            return SourceResult.failed(source, e)

        occurrences = tuple(
            o.with_color(source.color) for o in self.occurrences_for_today(events, event_filter)
        )
        logger.debug(
            "Source %s: %d events parsed, %d occur today", source.label, len(events), len(occurrences)
        )
        return SourceResult(source=source, occurrences=occurrences)

    def occurrences_for_today(
        self, events: Iterable[RawEvent], event_filter: EventFilter
    ) -> list[Occurrence]:
        """Project parsed events onto the filter's day, preserving document order."""
        occurrences: list[Occurrence] = []
        for event in events:
            if event.is_cancelled:
                logger.debug("Skipping cancelled event %r", event.title)
                continue

            if event.is_recurring:
                occurrence = self.expander.expand_for_day(
                    event, event_filter.today, event_filter.local_tz
                )
            else:
                occurrence = event_filter.project_single_event(event)

            if occurrence is None:
                continue
            if not event_filter.is_on_target_day(occurrence):
                logger.warning("Dropping %r: occurrence falls outside %s", event.title, event_filter.today)
                continue
            occurrences.append(occurrence)
        return occurrences


async def aggregate_today_events(
    sources: Iterable[SourceLike],
    show_expired_events: bool,
    now: Optional[datetime.datetime] = None,
    *,
    settings: Any = None,
    fetcher: Optional[ICSFetcher] = None,
) -> list[FormattedEvent]:
    """Return today's display-ready events from all sources.

    Stateless: nothing is cached between calls. An empty source list, or every
    source failing, yields an empty list rather than an error.

    Args:
        sources: CalendarSources, ``{url, color}`` mappings or bare URLs
        show_expired_events: Keep timed events whose end is before ``now``
        now: Injected evaluation instant, used for "today" and for expiry
        settings: Optional Config-like object
        fetcher: Optional fetcher (e.g. one sharing an HTTP client)

    Returns:
        FormattedEvents: all-day events first, then ascending by start
    """
    aggregator = EventAggregator(settings, fetcher=fetcher)
    return await aggregator.aggregate(sources, show_expired_events, now)


class TodayAgenda:
    """Caller-facing helper that serializes overlapping aggregation passes.

    A refresh requested while another is running waits for it to finish and
    then performs its own complete pass against a fresh ``now``.
    """

    def __init__(self, config: Any, fetcher: Optional[ICSFetcher] = None):
        self.config = config
        self.fetcher = fetcher
        self._lock = asyncio.Lock()

    @property
    def is_refreshing(self) -> bool:
        return self._lock.locked()

    async def refresh(self, now: Optional[datetime.datetime] = None) -> list[FormattedEvent]:
        """Run one pass with the configured sources and visibility toggle."""
        if self._lock.locked():
            logger.debug("Aggregation pass in progress; queuing refresh")
        async with self._lock:
            return await aggregate_today_events(
                getattr(self.config, "sources", []) or [],
                bool(getattr(self.config, "show_expired_events", False)),
                now,
                settings=self.config,
                fetcher=self.fetcher,
            )
