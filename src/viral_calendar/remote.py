"""Remote store backed by Supabase (Postgres via PostgREST)."""

import asyncio
import calendar
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

from pydantic import ValidationError
from supabase import Client as SupabaseClient, create_client

from .errors import StorageError
from .models import DayBucket, Event, ImportJob

logger = logging.getLogger(__name__)

T = TypeVar("T")

EVENTS_TABLE = "events"
SUMMARIES_TABLE = "daily_summaries"
SOURCE_CONFIGS_TABLE = "source_configs"
IMPORT_JOBS_TABLE = "import_jobs"

PLACEHOLDER_URL = "your_supabase_url"
PLACEHOLDER_KEY = "your_supabase_anon_key"

SEARCH_LIMIT = 100


def event_to_row(event: Event, published_date: str, source_type: Optional[str] = None) -> Dict[str, Any]:
    return {
        "source_id": event.id,
        "source_type": source_type or event.source,
        "title": event.title,
        "summary": event.summary,
        "url": event.url,
        "post_count": event.post_count,
        "hashtag": event.hashtag,
        "content_type": event.content_type,
        "trending_rank": event.trending_rank,
        "viral_score": event.post_count,
        "published_date": published_date,
    }


def row_to_event(row: Dict[str, Any], rank: int) -> Optional[Event]:
    try:
        return Event(
            id=str(row.get("source_id") or row.get("id")),
            title=row.get("title") or "",
            summary=row.get("summary") or "",
            post_count=row.get("post_count") or 0,
            hashtag=row.get("hashtag"),
            content_type=row.get("content_type") or "news",
            trending_rank=rank,
            source=row.get("source_type") or "manual",
            url=row.get("url"),
        )
    except ValidationError as e:
        logger.warning(f"Skipping malformed remote event row {row.get('id')}: {e}")
        return None


def group_rows_by_date(rows: List[Dict[str, Any]]) -> Dict[str, DayBucket]:
    """Group event rows into ranked day buckets."""
    grouped: Dict[str, List[Event]] = {}
    for row in rows:
        day = row.get("published_date")
        if not day:
            continue
        event = row_to_event(row, rank=len(grouped.get(day, [])) + 1)
        if event is not None:
            grouped.setdefault(str(day), []).append(event)
    return {day: DayBucket.build(day, events) for day, events in grouped.items()}


class RemoteStore:
    """
    Async facade over the synchronous Supabase client.

    Every call runs in a worker thread and any client failure surfaces as
    StorageError, which the read path treats as "try the next tier".
    """

    def __init__(self, url: str = "", key: str = "", client: Optional[SupabaseClient] = None):
        self.url = url
        self.key = key
        self._client = client

    def is_configured(self) -> bool:
        if self._client is not None:
            return True
        return bool(self.url and self.key) and self.url != PLACEHOLDER_URL and self.key != PLACEHOLDER_KEY

    @property
    def client(self) -> SupabaseClient:
        if self._client is None:
            if not self.is_configured():
                raise StorageError("Supabase is not configured (set SUPABASE_URL and SUPABASE_KEY)")
            try:
                self._client = create_client(self.url, self.key)
            except Exception as e:
                raise StorageError(f"Cannot create Supabase client: {e}") from e
        return self._client

    async def _run(self, description: str, call: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(call)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Remote {description} failed: {e}") from e

    # Reads

    async def get_events_by_date(self, date: str) -> List[Event]:
        response = await self._run(
            f"events lookup for {date}",
            lambda: self.client.table(EVENTS_TABLE)
            .select("*")
            .eq("published_date", date)
            .order("viral_score", desc=True)
            .execute(),
        )
        events = [row_to_event(row, rank) for rank, row in enumerate(response.data or [], 1)]
        return [e for e in events if e is not None]

    async def get_day_bucket(self, date: str) -> Optional[DayBucket]:
        events = await self.get_events_by_date(date)
        if not events:
            return None
        return DayBucket.build(date, events)

    async def get_range(self, start: str, end: str) -> Dict[str, DayBucket]:
        response = await self._run(
            f"events range {start}..{end}",
            lambda: self.client.table(EVENTS_TABLE)
            .select("*")
            .gte("published_date", start)
            .lte("published_date", end)
            .order("viral_score", desc=True)
            .execute(),
        )
        return group_rows_by_date(response.data or [])

    async def get_month(self, year: int, month: int) -> List[DayBucket]:
        """Days with content in a month, newest first. ``month`` is 1-based."""
        last_day = calendar.monthrange(year, month)[1]
        grouped = await self.get_range(f"{year:04d}-{month:02d}-01", f"{year:04d}-{month:02d}-{last_day:02d}")
        return sorted(grouped.values(), key=lambda b: b.date, reverse=True)

    async def get_summaries(self, start: str, end: str) -> List[Dict[str, Any]]:
        """Rows of the trigger-maintained daily summary table."""
        response = await self._run(
            "daily summaries lookup",
            lambda: self.client.table(SUMMARIES_TABLE)
            .select("*")
            .gte("date", start)
            .lte("date", end)
            .eq("has_viral_content", True)
            .order("date", desc=True)
            .execute(),
        )
        return response.data or []

    async def search(self, query: str, content_type: Optional[str] = None) -> List[DayBucket]:
        pattern = f"%{query}%"

        def call():
            builder = (
                self.client.table(EVENTS_TABLE)
                .select("*")
                .or_(f"title.ilike.{pattern},summary.ilike.{pattern},hashtag.ilike.{pattern}")
            )
            if content_type and content_type != "all":
                builder = builder.eq("content_type", content_type)
            return builder.order("viral_score", desc=True).limit(SEARCH_LIMIT).execute()

        response = await self._run(f"search for '{query}'", call)
        grouped = group_rows_by_date(response.data or [])
        return sorted(grouped.values(), key=lambda b: b.date, reverse=True)

    async def get_trending_hashtags(self, limit: int = 10) -> List[str]:
        """Most frequent hashtags of the last week.

        Uses the ``get_trending_hashtags`` database function when it
        exists, else counts recent rows client-side.
        """
        try:
            response = await self._run(
                "trending hashtags rpc",
                lambda: self.client.rpc("get_trending_hashtags", {"limit_count": limit}).execute(),
            )
            hashtags = []
            for item in response.data or []:
                tag = item.get("hashtag") if isinstance(item, dict) else item
                if tag:
                    hashtags.append(tag)
            return hashtags[:limit]
        except StorageError as e:
            logger.debug(f"Trending hashtag rpc unavailable, counting rows: {e}")

        since = (datetime.now(timezone.utc) - timedelta(days=7)).strftime("%Y-%m-%d")
        response = await self._run(
            "trending hashtags fallback",
            lambda: self.client.table(EVENTS_TABLE)
            .select("hashtag")
            .not_.is_("hashtag", "null")
            .gte("published_date", since)
            .limit(100)
            .execute(),
        )
        counts = Counter(row["hashtag"] for row in response.data or [] if row.get("hashtag"))
        return [tag for tag, _ in counts.most_common(limit)]

    # Writes

    async def upsert_events(self, data: Dict[str, DayBucket], source_type: Optional[str] = None) -> int:
        rows = [
            event_to_row(event, day, source_type)
            for day, bucket in data.items()
            for event in bucket.events
        ]
        if not rows:
            return 0

        await self._run(
            "events upsert",
            lambda: self.client.table(EVENTS_TABLE).upsert(rows, on_conflict="source_id,source_type").execute(),
        )
        logger.info(f"Upserted {len(rows)} events to remote store")
        return len(rows)

    async def delete_old_events(self, days_to_keep: int = 365) -> None:
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days_to_keep)).strftime("%Y-%m-%d")
        await self._run(
            "old events cleanup",
            lambda: self.client.table(EVENTS_TABLE).delete().lt("published_date", cutoff).execute(),
        )
        logger.info(f"Deleted remote events older than {cutoff}")

    # Import jobs

    async def create_import_job(self, source_type: str, metadata: Optional[dict] = None) -> Optional[str]:
        row = {
            "source_type": source_type,
            "status": "pending",
            "metadata": metadata or {},
        }
        response = await self._run(
            "import job insert",
            lambda: self.client.table(IMPORT_JOBS_TABLE).insert(row).execute(),
        )
        rows = response.data or []
        return str(rows[0]["id"]) if rows and rows[0].get("id") is not None else None

    async def update_import_job(
        self,
        job_id: str,
        status: Optional[str] = None,
        events_imported: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        updates: Dict[str, Any] = {}
        if status is not None:
            updates["status"] = status
            if status in ("completed", "failed"):
                updates["completed_at"] = datetime.now(timezone.utc).isoformat()
        if events_imported is not None:
            updates["events_imported"] = events_imported
        if error_message is not None:
            updates["error_message"] = error_message

        await self._run(
            f"import job {job_id} update",
            lambda: self.client.table(IMPORT_JOBS_TABLE).update(updates).eq("id", job_id).execute(),
        )

    async def record_import_job(self, job: ImportJob) -> None:
        """Insert a finished job row in one call."""
        row = job.model_dump(mode="json", exclude_none=True, exclude={"id"})
        await self._run(
            "import job record",
            lambda: self.client.table(IMPORT_JOBS_TABLE).insert(row).execute(),
        )

    async def get_import_jobs(self, limit: int = 50) -> List[ImportJob]:
        response = await self._run(
            "import jobs lookup",
            lambda: self.client.table(IMPORT_JOBS_TABLE)
            .select("*")
            .order("started_at", desc=True)
            .limit(limit)
            .execute(),
        )
        jobs = []
        for row in response.data or []:
            try:
                jobs.append(ImportJob.model_validate({**row, "id": str(row.get("id"))}))
            except ValidationError as e:
                logger.warning(f"Skipping malformed import job row: {e}")
        return jobs

    # Source configs

    async def get_source_configs(self) -> List[Dict[str, Any]]:
        response = await self._run(
            "source configs lookup",
            lambda: self.client.table(SOURCE_CONFIGS_TABLE).select("*").order("source_type").execute(),
        )
        return response.data or []

    async def get_enabled_sources(self) -> List[str]:
        return [row["source_type"] for row in await self.get_source_configs() if row.get("is_enabled")]

    async def update_source_config(self, source_type: str, **fields: Any) -> None:
        if not fields:
            return
        await self._run(
            f"source config update for {source_type}",
            lambda: self.client.table(SOURCE_CONFIGS_TABLE).update(fields).eq("source_type", source_type).execute(),
        )
