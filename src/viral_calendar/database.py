"""SQLite-backed local cache with WAL mode.

The historical data lives in one JSON blob keyed by date. It is always
loaded, merged and saved as a whole.
"""

import aiosqlite
import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from .errors import StorageError
from .models import DayBucket

logger = logging.getLogger(__name__)

HISTORICAL_KEY = "historical_data"


class LocalCache:
    """Async local cache of DayBuckets."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database and create tables."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._connection = await aiosqlite.connect(self.db_path)

            # Enable WAL mode for better concurrency
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")

            await self._create_tables()
        except aiosqlite.Error as e:
            raise StorageError(f"Cannot open local cache {self.db_path}: {e}") from e
        logger.info(f"Local cache connected: {self.db_path}")

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("Local cache closed")

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def _create_tables(self) -> None:
        async with self._lock:
            await self._connection.execute("""
                CREATE TABLE IF NOT EXISTS cache_blobs (
                    key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await self._connection.commit()

    async def load(self) -> Dict[str, DayBucket]:
        """All cached days, keyed by date."""
        async with self._lock:
            return await self._load_unlocked()

    async def get(self, date: str) -> Optional[DayBucket]:
        return (await self.load()).get(date)

    async def save(self, data: Dict[str, DayBucket]) -> None:
        """Replace the whole cache with ``data``."""
        async with self._lock:
            await self._save_unlocked(data)

    async def merge(self, data: Dict[str, DayBucket]) -> Dict[str, DayBucket]:
        """
        Merge ``data`` into the cache and return the merged result.

        The merge is per date: a new bucket replaces the cached bucket for
        the same date entirely, events are not unioned.
        """
        async with self._lock:
            merged = await self._load_unlocked()
            merged.update(data)
            await self._save_unlocked(merged)
        logger.info(f"Merged {len(data)} days into local cache ({len(merged)} total)")
        return merged

    async def clear(self) -> None:
        async with self._lock:
            await self._execute("DELETE FROM cache_blobs WHERE key = ?", (HISTORICAL_KEY,))
            await self._connection.commit()
        logger.info("Local cache cleared")

    async def get_stats(self) -> dict:
        data = await self.load()
        return {
            "days": len(data),
            "events": sum(len(bucket.events) for bucket in data.values()),
            "oldest": min(data) if data else None,
            "newest": max(data) if data else None,
        }

    async def _load_unlocked(self) -> Dict[str, DayBucket]:
        cursor = await self._execute("SELECT payload FROM cache_blobs WHERE key = ?", (HISTORICAL_KEY,))
        row = await cursor.fetchone()
        if not row:
            return {}

        try:
            raw = json.loads(row[0])
            if not isinstance(raw, dict):
                raise ValueError(f"expected an object, got {type(raw).__name__}")
            return {date: DayBucket.model_validate(bucket) for date, bucket in raw.items()}
        except (ValueError, ValidationError) as e:
            logger.error(f"Corrupt local cache payload, ignoring it: {e}")
            return {}

    async def _save_unlocked(self, data: Dict[str, DayBucket]) -> None:
        payload = json.dumps({date: bucket.model_dump(mode="json") for date, bucket in data.items()})
        await self._execute(
            """
            INSERT INTO cache_blobs (key, payload, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at
            """,
            (HISTORICAL_KEY, payload, datetime.now().isoformat()),
        )
        await self._connection.commit()

    async def _execute(self, sql: str, params: tuple = ()):
        if self._connection is None:
            raise StorageError("Local cache is not connected")
        try:
            return await self._connection.execute(sql, params)
        except aiosqlite.Error as e:
            raise StorageError(f"Local cache error: {e}") from e
