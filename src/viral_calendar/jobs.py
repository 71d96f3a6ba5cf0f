"""Scheduled viral fetch: aggregate, store, and log the run."""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from .aggregator import Aggregator
from .errors import StorageError
from .models import AggregateOptions, ImportJob
from .remote import RemoteStore
from .store import CalendarStore

logger = logging.getLogger(__name__)

JOB_SOURCE_TYPE = "cron"


class JobResult(BaseModel):
    success: bool
    message: str
    events_imported: int = 0
    counts: Dict[str, int] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict)
    sources: List[str] = Field(default_factory=list)


async def resolve_enabled_sources(remote: RemoteStore, default_sources: Sequence[str]) -> List[str]:
    """Enabled sources from the remote ``source_configs`` table, else ``default_sources``."""
    if remote.is_configured():
        try:
            enabled = await remote.get_enabled_sources()
            if enabled:
                return enabled
        except StorageError as e:
            logger.warning(f"Cannot read source configs, using configured sources: {e}")
    return list(default_sources)


async def run_scheduled_fetch(
    aggregator: Aggregator,
    store: CalendarStore,
    default_sources: Sequence[str],
    min_score: int = 500,
    news_only: bool = True,
    max_results: int = 100,
) -> JobResult:
    """
    One run of the periodic job.

    Source failures are reported in the result. The run only counts as a
    failure when no source produced anything and at least one failed.
    """
    started_at = datetime.now(timezone.utc)
    remote = store.remote

    sources = await resolve_enabled_sources(remote, default_sources)
    logger.info(f"Scheduled fetch starting for sources: {sources}")

    report = await aggregator.fetch_viral_report(AggregateOptions(
        sources=sources,
        min_score=min_score,
        news_only=news_only,
        max_results=max_results,
    ))
    bucket = report.bucket
    errors = dict(report.errors)

    if bucket.events:
        try:
            saved = await store.store_live_bucket(bucket)
            if saved.remote_error:
                errors["remote"] = saved.remote_error
        except StorageError as e:
            logger.error(f"Failed to store scheduled fetch: {e}")
            errors["local"] = str(e)

    if remote.is_configured():
        await _update_source_configs(aggregator, remote, list(report.counts))

    success = bool(bucket.events) or not report.errors
    events_imported = len(bucket.events)
    message = f"Imported {events_imported} events"

    if remote.is_configured():
        job = ImportJob(
            status="completed" if success else "failed",
            source_type=JOB_SOURCE_TYPE,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            events_imported=events_imported,
            error_message=", ".join(f"{name}: {error}" for name, error in errors.items()) or None,
            metadata={"cron": True, "counts": report.counts, "skipped": report.skipped},
        )
        try:
            await remote.record_import_job(job)
        except StorageError as e:
            logger.warning(f"Failed to record import job: {e}")

    logger.info(f"Scheduled fetch finished: {message}, errors: {list(errors)}")
    return JobResult(
        success=success,
        message=message,
        events_imported=events_imported,
        counts=report.counts,
        errors=errors,
        sources=sources,
    )


async def _update_source_configs(aggregator: Aggregator, remote: RemoteStore, fetched: List[str]) -> None:
    now = datetime.now(timezone.utc).isoformat()
    for name in fetched:
        client = aggregator.clients.get(name)
        remaining: Optional[int] = client.get_rate_limit_status().remaining if client else None
        try:
            await remote.update_source_config(name, last_fetch_at=now, rate_limit_remaining=remaining)
        except StorageError as e:
            logger.warning(f"Failed to update source config for {name}: {e}")
