"""FastAPI application: calendar reads, live fetch, cron trigger and admin import."""

import hmac
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Header, HTTPException, Query
from pydantic import BaseModel

from .context import AppContext
from .errors import ImportInProgressError, StorageError
from .models import ContentType, DayBucket, Timeframe

logger = logging.getLogger(__name__)

SERVICE_NAME = "Viral Calendar"
VERSION = "1.0.0"


class ImportRequest(BaseModel):
    timeframes: Optional[List[Timeframe]] = None
    min_score: Optional[int] = None
    max_posts: Optional[int] = None
    subreddits: Optional[List[str]] = None
    include_all_time: Optional[bool] = None
    news_only: Optional[bool] = None


def _check_secret(provided: Optional[str], expected: str) -> None:
    """401 unless a secret is configured and matches."""
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _parse_date(value: str) -> str:
    try:
        return datetime.strptime(value, "%Y-%m-%d").strftime("%Y-%m-%d")
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date '{value}', expected YYYY-MM-DD")


def _day_payload(bucket: DayBucket) -> dict:
    return {
        **bucket.model_dump(mode="json"),
        "total_engagement": bucket.total_engagement,
        "intensity": bucket.intensity(),
    }


def create_app(context: AppContext, manage_lifespan: bool = False) -> FastAPI:
    """
    Build the API around an existing context.

    With ``manage_lifespan`` the app opens and closes the context itself;
    otherwise the caller owns it (the server entry point shares it with the
    scheduler).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifespan:
            await context.start()
        try:
            yield
        finally:
            if manage_lifespan:
                await context.close()

    app = FastAPI(title=SERVICE_NAME, version=VERSION, lifespan=lifespan)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": SERVICE_NAME,
            "version": VERSION,
            "status": "running",
        }

    @app.get("/healthz")
    async def healthcheck():
        """Health check endpoint for container orchestration."""
        uptime_seconds = (datetime.now() - context.started_at).total_seconds()

        # Check local cache
        db_healthy = True
        try:
            await context.cache.get_stats()
        except StorageError as e:
            db_healthy = False
            logger.error(f"Local cache health check failed: {e}")

        return {
            "status": "healthy" if db_healthy else "unhealthy",
            "uptime_seconds": int(uptime_seconds),
            "database": "connected" if db_healthy else "disconnected",
            "remote": "configured" if context.remote.is_configured() else "not configured",
            "last_job": context.last_job.model_dump() if context.last_job else None,
        }

    @app.get("/ready")
    async def readiness():
        """Readiness probe for Kubernetes."""
        try:
            await context.cache.get_stats()
            return {"ready": True}
        except StorageError:
            return {"ready": False}

    @app.get("/stats")
    async def stats():
        try:
            cache_stats = await context.cache.get_stats()
        except StorageError as e:
            cache_stats = {"error": str(e)}

        return {
            "uptime_seconds": int((datetime.now() - context.started_at).total_seconds()),
            "sources": context.settings.source_list,
            "cache": cache_stats,
            "import": context.runner.progress.model_dump(),
            "scheduler": {
                "enabled": context.settings.scheduler_enabled,
                "interval_hours": context.settings.cron_interval_hours,
            },
        }

    @app.get("/api/days/{date}")
    async def get_day(date: str):
        date = _parse_date(date)
        bucket, source = await context.store.resolve_day(date)
        if bucket is None:
            raise HTTPException(status_code=404, detail=f"No data for {date}")
        return {"source": source, "day": _day_payload(bucket)}

    @app.get("/api/months/{year}/{month}")
    async def get_month(year: int, month: int):
        if not 1 <= month <= 12:
            raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
        days = await context.store.get_month(year, month)
        return {"year": year, "month": month, "days": [_day_payload(b) for b in days]}

    @app.get("/api/search")
    async def search(
        q: str = Query(..., min_length=1),
        content_type: Optional[ContentType] = Query(default=None, alias="type"),
    ):
        results = await context.store.search(q, content_type)
        return {"query": q, "results": [_day_payload(b) for b in results]}

    @app.get("/api/hashtags/trending")
    async def trending_hashtags(limit: int = Query(default=10, ge=1, le=100)):
        return {"hashtags": await context.store.get_trending_hashtags(limit)}

    @app.get("/api/sources/status")
    async def sources_status():
        return {"sources": [s.model_dump() for s in context.aggregator.get_sources_status()]}

    @app.post("/api/live")
    async def live_fetch():
        report = await context.aggregator.fetch_viral_report(context.aggregate_options())
        if not report.bucket.events:
            raise HTTPException(
                status_code=503,
                detail={"message": "No source produced data", "errors": report.errors},
            )

        errors = dict(report.errors)
        stored = None
        try:
            saved = await context.store.store_live_bucket(report.bucket)
            stored = saved.model_dump()
            if saved.remote_error:
                errors["remote"] = saved.remote_error
        except StorageError as e:
            logger.error(f"Failed to store live fetch: {e}")
            errors["local"] = str(e)

        return {
            "day": _day_payload(report.bucket),
            "counts": report.counts,
            "errors": errors,
            "skipped": report.skipped,
            "stored": stored,
        }

    @app.post("/api/cron/fetch-viral")
    async def cron_fetch(x_cron_secret: Optional[str] = Header(default=None)):
        _check_secret(x_cron_secret, context.settings.cron_secret)
        result = await context.run_job()
        return result.model_dump()

    @app.post("/api/import", status_code=202)
    async def start_import(request: ImportRequest, x_admin_secret: Optional[str] = Header(default=None)):
        _check_secret(x_admin_secret, context.settings.admin_secret)
        options = context.import_options(**request.model_dump())
        try:
            context.runner.start(options)
        except ImportInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return {"started": True, "options": options.model_dump(), "progress": context.runner.progress.model_dump()}

    @app.get("/api/import/progress")
    async def import_progress(x_admin_secret: Optional[str] = Header(default=None)):
        _check_secret(x_admin_secret, context.settings.admin_secret)
        return {
            "running": context.runner.is_running,
            "progress": context.runner.progress.model_dump(),
            "days_imported": len(context.runner.last_result or {}),
            "error": context.runner.last_error,
        }

    @app.post("/api/import/cancel")
    async def cancel_import(x_admin_secret: Optional[str] = Header(default=None)):
        _check_secret(x_admin_secret, context.settings.admin_secret)
        return {"cancelled": context.runner.cancel()}

    @app.delete("/api/cache")
    async def clear_cache(x_admin_secret: Optional[str] = Header(default=None)):
        _check_secret(x_admin_secret, context.settings.admin_secret)
        await context.store.clear_local()
        return {"cleared": True}

    return app
