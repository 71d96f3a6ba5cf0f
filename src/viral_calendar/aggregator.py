"""Merge live results from several sources into one ranked day."""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .errors import SourceError
from .models import ALL_SOURCES, AggregateOptions, AggregationReport, DayBucket, Event, SourceStatus
from .normalize import dedupe_by_title, filter_news_events, today_key
from .sources.base import SourceClient

logger = logging.getLogger(__name__)


class Aggregator:
    """
    Fans out to source clients and produces a single "today" bucket.

    All results are filed under the fetch date: not every source exposes
    a publish date, so per-event attribution is not attempted.
    """

    def __init__(
        self,
        clients: Dict[str, SourceClient],
        news_markers: Optional[Sequence[str]] = None,
        today: Callable[[], str] = today_key,
    ):
        self.clients = clients
        self.news_markers = news_markers
        self._today = today

    async def fetch_viral(self, options: Optional[AggregateOptions] = None) -> DayBucket:
        report = await self.fetch_viral_report(options)
        return report.bucket

    async def fetch_viral_report(self, options: Optional[AggregateOptions] = None) -> AggregationReport:
        """
        Fetch, filter, deduplicate and rank.

        Source failures are recorded in the report and never abort the
        aggregation. Duplicate titles keep the copy from the source listed
        first in ``options.sources``.
        """
        options = options or AggregateOptions()
        active, skipped = self._active_clients(options.sources)

        results = await asyncio.gather(*(self._fetch_source(name, client) for name, client in active))

        all_events: List[Event] = []
        counts: Dict[str, int] = {}
        errors: Dict[str, str] = {}
        for (name, _), (events, error) in zip(active, results):
            counts[name] = len(events)
            if error:
                errors[name] = error
            all_events.extend(events)

        filtered = [e for e in all_events if e.post_count >= options.min_score]
        if options.news_only:
            filtered = filter_news_events(filtered, self.news_markers)

        unique = dedupe_by_title(filtered)
        ranked = DayBucket.build(self._today(), unique)
        bucket = DayBucket(date=ranked.date, events=ranked.events[:options.max_results])

        logger.info(
            f"Aggregated {len(all_events)} events from {len(active)} sources: "
            f"{len(filtered)} after filters, {len(bucket.events)} kept"
        )
        return AggregationReport(bucket=bucket, counts=counts, errors=errors, skipped=skipped)

    async def search_all_sources(self, query: str, max_results: int = 30) -> List[Event]:
        """Search every configured source, dedupe by title, rank by engagement."""
        order = ["reddit", "newsapi", "hackernews", "twitter"]
        active, _ = self._active_clients([name for name in order if name in self.clients])

        results = await asyncio.gather(*(self._search_source(name, client, query) for name, client in active))

        merged = dedupe_by_title(event for events in results for event in events)
        ranked = DayBucket.build(self._today(), merged)
        return ranked.events[:max_results]

    def get_sources_status(self) -> List[SourceStatus]:
        statuses = []
        for name, client in self.clients.items():
            configured = client.is_configured()
            statuses.append(SourceStatus(
                name=client.display_name,
                source=name,
                is_available=configured,
                rate_limit_remaining=client.get_rate_limit_status().remaining if configured else 0,
            ))
        return statuses

    def _active_clients(self, sources: Sequence[str]) -> Tuple[List[Tuple[str, SourceClient]], List[str]]:
        names: List[str] = []
        for name in sources:
            expanded = ALL_SOURCES if name == "all" else [name]
            for item in expanded:
                if item not in names:
                    names.append(item)

        active = []
        skipped = []
        for name in names:
            client = self.clients.get(name)
            if client is None:
                logger.warning(f"Unknown source requested: {name}")
                continue
            if not client.is_configured():
                logger.warning(f"Skipping {name}: not configured")
                skipped.append(name)
                continue
            active.append((name, client))
        return active, skipped

    async def _fetch_source(self, name: str, client: SourceClient) -> Tuple[List[Event], Optional[str]]:
        try:
            events = await client.fetch_popular()
            logger.debug(f"{name} returned {len(events)} events")
            return events, None
        except SourceError as e:
            logger.warning(f"{name} fetch failed: {e}")
            return [], str(e)
        except Exception as e:
            logger.exception(f"Unexpected error fetching {name}")
            return [], f"{name}: {e}"

    async def _search_source(self, name: str, client: SourceClient, query: str) -> List[Event]:
        try:
            return await client.search(query, limit=15)
        except SourceError as e:
            logger.warning(f"{name} search failed: {e}")
            return []
        except Exception:
            logger.exception(f"Unexpected error searching {name}")
            return []
