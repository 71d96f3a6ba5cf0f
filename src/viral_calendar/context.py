"""Wiring: build explicit component instances from settings."""

import logging
from datetime import datetime
from typing import Dict, Optional

from .aggregator import Aggregator
from .config import Settings
from .database import LocalCache
from .importer import HistoricalImporter, ImportRunner
from .jobs import JobResult, run_scheduled_fetch
from .models import AggregateOptions, ImportOptions
from .ratelimit import RateLimiter
from .remote import RemoteStore
from .sources import HackerNewsClient, NewsApiClient, RedditClient, SourceClient, XClient
from .store import CalendarStore

logger = logging.getLogger(__name__)


def build_clients(settings: Settings) -> Dict[str, SourceClient]:
    return {
        "reddit": RedditClient(
            base_url=settings.reddit_base_url,
            timeout=settings.reddit_timeout,
            user_agent=settings.reddit_user_agent,
        ),
        "hackernews": HackerNewsClient(
            base_url=settings.hackernews_base_url,
            search_url=settings.hackernews_search_url,
            timeout=settings.hackernews_timeout,
        ),
        "newsapi": NewsApiClient(
            api_key=settings.news_api_key,
            base_url=settings.news_api_base_url,
            timeout=settings.news_api_timeout,
        ),
        "twitter": XClient(
            bearer_token=settings.x_bearer_token,
            base_url=settings.x_api_base_url,
            timeout=settings.x_timeout,
        ),
    }


class AppContext:
    """Everything the API, scheduler and CLI share for one process."""

    def __init__(
        self,
        settings: Settings,
        clients: Optional[Dict[str, SourceClient]] = None,
        cache: Optional[LocalCache] = None,
        remote: Optional[RemoteStore] = None,
        import_limiter: Optional[RateLimiter] = None,
    ):
        self.settings = settings
        self.clients = clients if clients is not None else build_clients(settings)
        self.cache = cache or LocalCache(settings.database_path)
        self.remote = remote or RemoteStore(settings.supabase_url, settings.supabase_key)
        self.store = CalendarStore(self.remote, self.cache)
        self.aggregator = Aggregator(self.clients, news_markers=settings.news_marker_list)
        self.importer = HistoricalImporter(
            self.clients["reddit"],
            cache=self.cache,
            limiter=import_limiter or RateLimiter.from_millis(settings.import_delay_ms),
            quick_limiter=import_limiter,
            default_subreddits=settings.subreddit_list,
            news_markers=settings.news_marker_list,
        )
        self.runner = ImportRunner(self.importer, self.store)
        self.started_at = datetime.now()
        self.last_job: Optional[JobResult] = None

    async def start(self) -> None:
        await self.cache.connect()
        logger.info(
            f"Context ready: remote {'configured' if self.remote.is_configured() else 'not configured'}, "
            f"sources {[name for name, c in self.clients.items() if c.is_configured()]}"
        )

    async def close(self) -> None:
        await self.runner.close()
        for client in self.clients.values():
            await client.close()
        await self.cache.close()

    def aggregate_options(self) -> AggregateOptions:
        return AggregateOptions(
            sources=self.settings.source_list,
            min_score=self.settings.aggregator_min_score,
            news_only=self.settings.news_only,
            max_results=self.settings.aggregator_max_results,
        )

    def import_options(self, **overrides) -> ImportOptions:
        values = {
            "timeframes": self.settings.timeframe_list,
            "min_score": self.settings.import_min_score,
            "max_posts": self.settings.import_max_posts,
            "subreddits": self.settings.subreddit_list,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return ImportOptions(**values)

    async def run_job(self) -> JobResult:
        self.last_job = await run_scheduled_fetch(
            self.aggregator,
            self.store,
            default_sources=self.settings.source_list,
            min_score=self.settings.aggregator_min_score,
            news_only=self.settings.news_only,
            max_results=self.settings.aggregator_max_results,
        )
        return self.last_job
