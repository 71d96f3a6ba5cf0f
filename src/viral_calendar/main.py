"""Main entry point - API server, in-process scheduler and one-shot commands."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

import uvicorn

from .api import create_app
from .config import settings
from .context import AppContext
from .models import ImportProgress, format_post_count
from .normalize import today_key

# Configure structured JSON logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
    datefmt="%Y-%m-%dT%H:%M:%S%z",
)
logger = logging.getLogger(__name__)

# Shutdown flag
_shutdown = asyncio.Event()


async def scheduler_task(context: AppContext) -> None:
    """Run the viral fetch job every ``cron_interval_hours`` until shutdown."""
    interval = context.settings.cron_interval_hours * 3600
    logger.info(f"Scheduler started, interval {context.settings.cron_interval_hours}h")

    while not _shutdown.is_set():
        try:
            result = await context.run_job()
            logger.info(f"Scheduled job: {result.message} ({len(result.errors)} errors)")
        except Exception as e:
            logger.error(f"Scheduled job error: {e}")

        try:
            await asyncio.wait_for(_shutdown.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass  # Normal timeout, run again


async def run_api_server(context: AppContext) -> None:
    """Run the FastAPI server."""
    config = uvicorn.Config(
        create_app(context),
        host=context.settings.api_host,
        port=context.settings.api_port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    # Signals are handled here, not by uvicorn
    server.install_signal_handlers = lambda: None

    try:
        await server.serve()
    except asyncio.CancelledError:
        pass


def handle_shutdown(sig, frame):
    """Signal handler for graceful shutdown."""
    logger.info(f"Received signal {sig}, initiating shutdown...")
    _shutdown.set()


async def serve() -> None:
    logger.info("=" * 60)
    logger.info("Viral Calendar backend starting...")
    logger.info(f"Sources: {settings.source_list}")
    logger.info(f"API: {settings.api_host}:{settings.api_port}")
    logger.info(f"Scheduler: {'every ' + str(settings.cron_interval_hours) + 'h' if settings.scheduler_enabled else 'disabled'}")
    logger.info("=" * 60)

    # Setup signal handlers
    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    context = AppContext(settings)
    await context.start()

    tasks = [asyncio.create_task(run_api_server(context))]
    if settings.scheduler_enabled:
        tasks.append(asyncio.create_task(scheduler_task(context)))

    logger.info(f"Started {len(tasks)} tasks")

    # Wait for shutdown signal
    await _shutdown.wait()

    logger.info("Shutting down...")

    for task in tasks:
        task.cancel()

    await asyncio.gather(*tasks, return_exceptions=True)

    await context.close()

    logger.info("Shutdown complete")


def _log_progress(progress: ImportProgress) -> None:
    logger.info(
        f"[{progress.completed_units}/{progress.total_units}] {progress.current_label} "
        f"- {progress.items_found_so_far} events ({progress.state})"
    )


async def run_import(args: argparse.Namespace) -> int:
    context = AppContext(settings)
    await context.start()
    try:
        options = context.import_options(
            timeframes=args.timeframes.split(",") if args.timeframes else None,
            max_posts=args.max_posts,
            min_score=args.min_score,
            subreddits=args.subreddits.split(",") if args.subreddits else None,
            include_all_time=False if args.no_all_time else None,
            news_only=args.news_only or None,
        )
        data = await context.importer.import_historical(options, on_progress=_log_progress)
        saved = await context.store.save_buckets(data, source_type="reddit")
        events = sum(len(b.events) for b in data.values())
        logger.info(f"Import stored {events} events over {saved.local_days} days")
        if saved.remote_error:
            logger.warning(f"Remote mirror failed: {saved.remote_error}")
        return 0
    finally:
        await context.close()


async def run_fetch(args: argparse.Namespace) -> int:
    context = AppContext(settings)
    await context.start()
    try:
        result = await context.run_job()
        if args.json:
            print(json.dumps(result.model_dump(), indent=2))
        else:
            bucket = await context.store.get_day_bucket(today_key())
            for event in (bucket.events if bucket else []):
                print(f"{event.trending_rank:>3}. [{event.source}] {event.title} ({format_post_count(event.post_count)})")
            print(result.message)
        return 0 if result.success else 1
    finally:
        await context.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="viral-calendar", description="Viral Calendar backend")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Run the API server (default)")

    import_parser = subparsers.add_parser("import", help="Backfill historical Reddit data")
    import_parser.add_argument("--timeframes", help="Comma-separated timeframes, e.g. month,year,all")
    import_parser.add_argument("--subreddits", help="Comma-separated subreddits")
    import_parser.add_argument("--max-posts", type=int, dest="max_posts")
    import_parser.add_argument("--min-score", type=int, dest="min_score")
    import_parser.add_argument("--news-only", action="store_true", dest="news_only")
    import_parser.add_argument("--no-all-time", action="store_true", dest="no_all_time")

    fetch_parser = subparsers.add_parser("fetch", help="Run the viral fetch job once")
    fetch_parser.add_argument("--json", action="store_true", help="Print the job result as JSON")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "import":
        return asyncio.run(run_import(args))
    if args.command == "fetch":
        return asyncio.run(run_fetch(args))

    asyncio.run(serve())
    return 0


def run():
    """Entry point for running the application."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    run()
