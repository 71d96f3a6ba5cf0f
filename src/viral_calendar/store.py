"""Read path with remote -> local -> mock fallback, and local-first writes."""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from .database import LocalCache
from .errors import StorageError
from .mock_data import MOCK_DATA, get_mock_day
from .models import DayBucket
from .remote import RemoteStore

logger = logging.getLogger(__name__)

TRENDING_WINDOW_DAYS = 7


class ReadProvider(ABC):
    """One tier of the read path."""

    name: str = ""

    def is_available(self) -> bool:
        return True

    @abstractmethod
    async def get(self, date: str) -> Optional[DayBucket]:
        """Bucket for ``date``, or None when this tier has nothing for it."""


class RemoteProvider(ReadProvider):
    name = "remote"

    def __init__(self, remote: RemoteStore):
        self.remote = remote

    def is_available(self) -> bool:
        return self.remote.is_configured()

    async def get(self, date: str) -> Optional[DayBucket]:
        return await self.remote.get_day_bucket(date)


class LocalCacheProvider(ReadProvider):
    name = "local"

    def __init__(self, cache: LocalCache):
        self.cache = cache

    def is_available(self) -> bool:
        return self.cache.is_connected

    async def get(self, date: str) -> Optional[DayBucket]:
        return await self.cache.get(date)


class MockProvider(ReadProvider):
    name = "mock"

    async def get(self, date: str) -> Optional[DayBucket]:
        return get_mock_day(date)


class FallbackChain:
    """Try providers in order; a failing provider is logged and skipped."""

    def __init__(self, providers: Sequence[ReadProvider]):
        self.providers = list(providers)

    async def resolve(self, date: str) -> Tuple[Optional[DayBucket], Optional[str]]:
        for provider in self.providers:
            if not provider.is_available():
                continue
            try:
                bucket = await provider.get(date)
            except StorageError as e:
                logger.warning(f"{provider.name} read failed for {date}, falling back: {e}")
                continue
            if bucket is not None:
                return bucket, provider.name
        return None, None

    async def get(self, date: str) -> Optional[DayBucket]:
        bucket, _ = await self.resolve(date)
        return bucket


class SaveResult(BaseModel):
    local_days: int = 0
    remote_events: Optional[int] = None
    remote_error: Optional[str] = None


class CalendarStore:
    """
    Calendar reads and writes over the remote store and the local cache.

    Reads prefer the remote store and degrade to local then mock data.
    Writes land in the local cache first; mirroring to the remote store
    is best effort and never undoes the local write.
    """

    def __init__(self, remote: RemoteStore, cache: LocalCache, chain: Optional[FallbackChain] = None):
        self.remote = remote
        self.cache = cache
        self.chain = chain or FallbackChain([
            RemoteProvider(remote),
            LocalCacheProvider(cache),
            MockProvider(),
        ])

    async def resolve_day(self, date: str) -> Tuple[Optional[DayBucket], Optional[str]]:
        return await self.chain.resolve(date)

    async def get_day_bucket(self, date: str) -> Optional[DayBucket]:
        return await self.chain.get(date)

    async def get_month(self, year: int, month: int) -> List[DayBucket]:
        """Days of a month that have content, newest first."""
        if self.remote.is_configured():
            try:
                return await self.remote.get_month(year, month)
            except StorageError as e:
                logger.warning(f"Remote month lookup failed, using local data: {e}")

        prefix = f"{year:04d}-{month:02d}-"
        days = await self._offline_days()
        matching = [bucket for day, bucket in days.items() if day.startswith(prefix) and bucket.has_viral_content]
        return sorted(matching, key=lambda b: b.date, reverse=True)

    async def search(self, query: str, content_type: Optional[str] = None) -> List[DayBucket]:
        """Days with events whose title, summary or hashtag contains ``query``."""
        if self.remote.is_configured():
            try:
                return await self.remote.search(query, content_type)
            except StorageError as e:
                logger.warning(f"Remote search failed, searching local data: {e}")

        needle = query.lower()
        results = []
        for day, bucket in (await self._offline_days()).items():
            matching = [
                event for event in bucket.events
                if (
                    needle in event.title.lower()
                    or needle in event.summary.lower()
                    or (event.hashtag is not None and needle in event.hashtag.lower())
                )
                and (not content_type or content_type == "all" or event.content_type == content_type)
            ]
            if matching:
                results.append(DayBucket.build(day, matching))
        return sorted(results, key=lambda b: b.date, reverse=True)

    async def get_trending_hashtags(self, limit: int = 10) -> List[str]:
        if self.remote.is_configured():
            try:
                return await self.remote.get_trending_hashtags(limit)
            except StorageError as e:
                logger.warning(f"Remote trending hashtags failed, counting local data: {e}")

        days = await self._offline_days()
        recent = sorted(days, reverse=True)[:TRENDING_WINDOW_DAYS]
        counts = Counter(
            event.hashtag
            for day in recent
            for event in days[day].events
            if event.hashtag
        )
        return [tag for tag, _ in counts.most_common(limit)]

    async def save_buckets(self, data: Dict[str, DayBucket], source_type: Optional[str] = None) -> SaveResult:
        """Write to the local cache, then mirror to the remote store if configured."""
        await self.cache.merge(data)
        result = SaveResult(local_days=len(data))

        if not self.remote.is_configured():
            return result

        try:
            result.remote_events = await self.remote.upsert_events(data, source_type)
        except StorageError as e:
            logger.warning(f"Remote mirror failed, local copy kept: {e}")
            result.remote_error = str(e)
        return result

    async def store_live_bucket(self, bucket: DayBucket, source_type: Optional[str] = None) -> SaveResult:
        return await self.save_buckets({bucket.date: bucket}, source_type)

    async def clear_local(self) -> None:
        await self.cache.clear()

    async def _offline_days(self) -> Dict[str, DayBucket]:
        days = dict(MOCK_DATA)
        if self.cache.is_connected:
            try:
                days.update(await self.cache.load())
            except StorageError as e:
                logger.warning(f"Local cache read failed, using mock data only: {e}")
        return days
