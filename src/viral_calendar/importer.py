"""Historical Reddit backfill with pacing, progress and cancellation."""

import asyncio
import logging
import math
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Set

from .database import LocalCache
from .errors import ImportInProgressError, SourceError, StorageError
from .models import DayBucket, Event, ImportOptions, ImportProgress, ImportState, Timeframe
from .normalize import filter_news_events, today_key
from .ratelimit import RateLimiter
from .sources.reddit import RedditClient

logger = logging.getLogger(__name__)

# Major news and viral subreddits
NEWS_SUBREDDITS = [
    "worldnews",
    "news",
    "politics",
    "science",
    "technology",
    "nottheonion",
    "UpliftingNews",
    "TrueReddit",
    "newsbot",
    "inthenews",
]

UNIT_POST_LIMIT = 25
ALL_TIME_POST_LIMIT = 50
ALL_TIME_LABEL = "r/all (all time viral)"

ProgressCallback = Callable[[ImportProgress], None]


class CancellationToken:
    """Cooperative cancellation flag checked between units of work."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class _Accumulator:
    """Imported events keyed by date, with per-date id dedupe."""

    def __init__(self):
        self.events: Dict[str, List[Event]] = {}
        self._ids: Dict[str, Set[str]] = {}

    def add(self, day: str, posts: List[Event]) -> None:
        bucket = self.events.setdefault(day, [])
        ids = self._ids.setdefault(day, set())
        for post in posts:
            if post.id in ids:
                continue
            ids.add(post.id)
            bucket.append(post)

    @property
    def count(self) -> int:
        return sum(len(events) for events in self.events.values())

    def finalize(self) -> Dict[str, DayBucket]:
        return {day: DayBucket.build(day, events) for day, events in self.events.items() if events}


class HistoricalImporter:
    """
    Backfills the calendar from Reddit top listings.

    Requests are issued one at a time through ``limiter``. Posts are filed
    under the fetch date because the listing endpoints do not expose a
    cheap creation date.
    """

    def __init__(
        self,
        reddit: RedditClient,
        cache: Optional[LocalCache] = None,
        limiter: Optional[RateLimiter] = None,
        quick_limiter: Optional[RateLimiter] = None,
        default_subreddits: Optional[Sequence[str]] = None,
        news_markers: Optional[Sequence[str]] = None,
        today: Callable[[], str] = today_key,
    ):
        self.reddit = reddit
        self.cache = cache
        self.limiter = limiter or RateLimiter.from_millis(2000)
        # Range and topic imports pace at half the backfill delay
        self.quick_limiter = quick_limiter or RateLimiter.from_millis(1000)
        self.default_subreddits = list(default_subreddits or NEWS_SUBREDDITS)
        self.news_markers = news_markers
        self._today = today

    async def import_historical(
        self,
        options: Optional[ImportOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, DayBucket]:
        """
        Walk timeframes (outer) and subreddits (inner), one request per unit.

        ``max_posts`` is an approximate cap: it is checked before each
        timeframe and after each unit, so the unit that crosses it is kept
        whole. A cancelled import returns what it has accumulated so far.
        """
        options = options or ImportOptions()
        subreddits = options.subreddits or self.default_subreddits
        timeframes = options.timeframes
        total_units = len(subreddits) * len(timeframes)

        accumulator = _Accumulator()
        processed = 0
        failures = 0
        cancelled = False

        def emit(completed: int, label: str, state: ImportState, total: int = total_units) -> None:
            if on_progress is None:
                return
            snapshot = ImportProgress(
                total_units=total,
                completed_units=completed,
                current_label=label,
                items_found_so_far=accumulator.count,
                state=state,
            )
            try:
                on_progress(snapshot)
            except Exception as e:
                logger.error(f"Progress callback failed: {e}")

        logger.info(
            f"Starting historical import: {len(subreddits)} subreddits x {len(timeframes)} timeframes, "
            f"min_score={options.min_score}, max_posts={options.max_posts}"
        )

        position = 0
        for t_index, timeframe in enumerate(timeframes):
            if cancelled or processed >= options.max_posts:
                break

            for s_index, subreddit in enumerate(subreddits):
                if cancel_token is not None and cancel_token.cancelled:
                    cancelled = True
                    break

                position = t_index * len(subreddits) + s_index + 1
                emit(position, f"r/{subreddit} ({timeframe})", "running")

                try:
                    async with self.limiter:
                        posts = await self.reddit.get_subreddit_posts(
                            subreddit, sort="top", limit=UNIT_POST_LIMIT, timeframe=timeframe
                        )
                except SourceError as e:
                    failures += 1
                    logger.warning(f"Failed to import from r/{subreddit} ({timeframe}): {e}")
                    continue
                except Exception as e:
                    failures += 1
                    logger.exception(f"Unexpected error importing r/{subreddit} ({timeframe}): {e}")
                    continue

                qualifying = [p for p in posts if p.post_count >= options.min_score]
                accumulator.add(self._today(), qualifying)
                processed += len(qualifying)
                logger.debug(f"r/{subreddit} ({timeframe}): {len(qualifying)}/{len(posts)} posts kept")

                if processed >= options.max_posts:
                    logger.info(f"Reached max_posts ({processed} >= {options.max_posts})")
                    break

        if options.include_all_time and not cancelled:
            if cancel_token is not None and cancel_token.cancelled:
                cancelled = True
            else:
                emit(total_units + 1, ALL_TIME_LABEL, "running", total=total_units + 1)
                try:
                    async with self.limiter:
                        top = await self.reddit.get_popular_posts(limit=ALL_TIME_POST_LIMIT, timeframe="all")
                    accumulator.add(self._today(), [p for p in top if p.post_count >= options.min_score * 2])
                except SourceError as e:
                    failures += 1
                    logger.warning(f"Failed to import from r/all: {e}")
                except Exception as e:
                    failures += 1
                    logger.exception(f"Unexpected error importing r/all: {e}")

        result = accumulator.finalize()
        if options.news_only:
            result = self.filter_news_only(result)

        if cancelled:
            state: ImportState = "cancelled"
        elif failures:
            state = "partially_failed"
        else:
            state = "completed"

        emit(position, "done", state)
        logger.info(
            f"Historical import {state}: {accumulator.count} events over {len(result)} days, "
            f"{failures} failed units"
        )
        return result

    async def import_date_range(
        self,
        start: date,
        end: date,
        min_score: int = 500,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, DayBucket]:
        """Approximate a date range with the smallest Reddit window that spans it."""
        timeframe = self._timeframe_for_range(start, end)
        accumulator = _Accumulator()

        for subreddit in NEWS_SUBREDDITS[:5]:
            if cancel_token is not None and cancel_token.cancelled:
                break
            try:
                async with self.quick_limiter:
                    posts = await self.reddit.get_subreddit_posts(
                        subreddit, sort="top", limit=UNIT_POST_LIMIT, timeframe=timeframe
                    )
            except SourceError as e:
                logger.warning(f"Failed to import from r/{subreddit}: {e}")
                continue
            except Exception as e:
                logger.exception(f"Unexpected error importing r/{subreddit}: {e}")
                continue
            accumulator.add(self._today(), [p for p in posts if p.post_count >= min_score])

        return accumulator.finalize()

    async def import_by_topic(
        self,
        queries: Sequence[str],
        min_score: int = 500,
        limit: int = 25,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, DayBucket]:
        accumulator = _Accumulator()

        for query in queries:
            if cancel_token is not None and cancel_token.cancelled:
                break
            try:
                async with self.quick_limiter:
                    posts = await self.reddit.search_posts(query, limit=limit, sort="top", timeframe="all")
            except SourceError as e:
                logger.warning(f"Failed to search for '{query}': {e}")
                continue
            except Exception as e:
                logger.exception(f"Unexpected error searching for '{query}': {e}")
                continue
            accumulator.add(self._today(), [p for p in posts if p.post_count >= min_score])

        return accumulator.finalize()

    def filter_news_only(self, data: Dict[str, DayBucket]) -> Dict[str, DayBucket]:
        """Keep news events only; days left empty are dropped."""
        filtered = {}
        for day, bucket in data.items():
            events = filter_news_events(bucket.events, self.news_markers)
            if events:
                filtered[day] = DayBucket.build(day, events)
        return filtered

    async def save_to_storage(self, data: Dict[str, DayBucket]) -> Dict[str, DayBucket]:
        return await self._require_cache().merge(data)

    async def load_from_storage(self) -> Dict[str, DayBucket]:
        return await self._require_cache().load()

    async def clear_storage(self) -> None:
        await self._require_cache().clear()

    def _require_cache(self) -> LocalCache:
        if self.cache is None:
            raise StorageError("No local cache configured for the importer")
        return self.cache

    @staticmethod
    def _timeframe_for_range(start: date, end: date) -> Timeframe:
        days = math.ceil((end - start).total_seconds() / 86400)
        if days > 365:
            return "year"
        if days > 30:
            return "month"
        if days > 7:
            return "week"
        return "day"


class ImportRunner:
    """Runs at most one historical import in the background."""

    def __init__(self, importer: HistoricalImporter, store):
        self.importer = importer
        self.store = store
        self.progress = ImportProgress()
        self.last_result: Optional[Dict[str, DayBucket]] = None
        self.last_error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancellationToken] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, options: Optional[ImportOptions] = None) -> asyncio.Task:
        if self.is_running:
            raise ImportInProgressError("An import is already running")

        self._token = CancellationToken()
        self.progress = ImportProgress(state="running")
        self.last_error = None
        self._task = asyncio.create_task(self._run(options or ImportOptions(), self._token))
        return self._task

    def cancel(self) -> bool:
        """Request cancellation. Returns False when nothing is running."""
        if not self.is_running or self._token is None:
            return False
        self._token.cancel()
        logger.info("Import cancellation requested")
        return True

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def close(self) -> None:
        if self.is_running:
            self.cancel()
            await self.wait()

    def _on_progress(self, progress: ImportProgress) -> None:
        self.progress = progress

    async def _run(self, options: ImportOptions, token: CancellationToken) -> None:
        try:
            data = await self.importer.import_historical(options, self._on_progress, token)
            self.last_result = data
            if data:
                await self.store.save_buckets(data, source_type="reddit")
        except Exception as e:
            self.last_error = str(e)
            self.progress = self.progress.model_copy(update={"state": "partially_failed"})
            logger.exception("Background import failed")
