"""Hacker News source client.

Uses the free Firebase API for story lists and items, and the Algolia HN
Search API for text search. Neither requires auth.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..errors import SourceError
from ..models import ContentType, Event
from .base import SourceClient

logger = logging.getLogger(__name__)

HN_BASE_URL = "https://hacker-news.firebaseio.com/v0"
HN_SEARCH_URL = "https://hn.algolia.com/api/v1"

HASHTAG = "#HackerNews"

# Rough item creation rate used to map a date onto an item id range
ITEMS_PER_HOUR = 25
DATE_WINDOW_ITEMS = 500
BATCH_SIZE = 50


def classify_hn_story(title: str) -> ContentType:
    title = (title or "").lower()
    if "show hn" in title or "ask hn" in title:
        return "trend"
    return "news"


def story_engagement(score: int, descendants: int) -> int:
    """Upvotes plus comments, comments weighted double."""
    return (score or 0) + (descendants or 0) * 2


def normalize_stories(stories: List[Dict[str, Any]]) -> List[Event]:
    """Rank stories by score and convert them into events."""
    ordered = sorted(stories, key=lambda s: s.get("score") or 0, reverse=True)
    events = []
    for index, story in enumerate(ordered):
        title = story.get("title") or ""
        summary = (story.get("text") or "")[:200] or story.get("url") or ""
        events.append(Event(
            id=f"hn-{story.get('id')}",
            title=title[:80] or "Hacker News Story",
            summary=summary,
            post_count=story_engagement(story.get("score"), story.get("descendants")),
            hashtag=HASHTAG,
            content_type=classify_hn_story(title),
            trending_rank=index + 1,
            source="hackernews",
            url=f"https://news.ycombinator.com/item?id={story.get('id')}",
        ))
    return events


class HackerNewsClient(SourceClient):
    """Top/best story lists, date approximation and Algolia search."""

    source = "hackernews"
    display_name = "Hacker News"
    default_remaining = 1000

    def __init__(
        self,
        base_url: str = HN_BASE_URL,
        search_url: str = HN_SEARCH_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)
        self.search_url = search_url.rstrip("/")

    async def get_top_stories(self, limit: int = 30) -> List[Event]:
        return await self._story_list("/topstories.json", limit)

    async def get_best_stories(self, limit: int = 30) -> List[Event]:
        """Most upvoted recent stories."""
        return await self._story_list("/beststories.json", limit)

    async def get_stories_by_date(
        self,
        day: datetime,
        min_score: int = 50,
        pause: float = 0.1,
    ) -> List[Event]:
        """
        Approximate the stories posted on ``day``.

        HN ids are sequential, so the start id is estimated backwards from
        the current max id, and a window of items after it is scanned in
        batches.
        """
        if day.tzinfo is None:
            day = day.replace(tzinfo=timezone.utc)

        max_item = await self._get_json("/maxitem.json")
        if not isinstance(max_item, int):
            return []

        hours_ago = (datetime.now(timezone.utc) - day).total_seconds() / 3600
        start_id = max(1, int(max_item - hours_ago * ITEMS_PER_HOUR))
        end_id = min(max_item, start_id + DATE_WINDOW_ITEMS)
        item_ids = list(range(start_id, end_id + 1))

        stories: List[Dict[str, Any]] = []
        for offset in range(0, len(item_ids), BATCH_SIZE):
            batch = item_ids[offset:offset + BATCH_SIZE]
            items = await asyncio.gather(*(self._get_item(i) for i in batch))
            stories.extend(
                item for item in items
                if item and item.get("type") == "story" and (item.get("score") or 0) >= min_score
            )
            if offset + BATCH_SIZE < len(item_ids):
                await asyncio.sleep(pause)

        return normalize_stories(stories)[:30]

    async def search_stories(self, query: str, page: int = 0, hits_per_page: int = 20) -> List[Event]:
        data = await self._get_json(
            f"{self.search_url}/search",
            params={
                "query": query,
                "tags": "story",
                "numericFilters": "points>50",
                "page": page,
                "hitsPerPage": hits_per_page,
            },
        )
        hits = data.get("hits", []) if isinstance(data, dict) else []

        events = []
        for index, hit in enumerate(hits):
            title = hit.get("title") or ""
            events.append(Event(
                id=f"hn-{hit.get('objectID')}",
                title=title[:80] or "Hacker News Post",
                summary=(hit.get("story_text") or "")[:200] or hit.get("url") or "",
                post_count=hit.get("points") or 0,
                hashtag=HASHTAG,
                content_type="news",
                trending_rank=index + 1,
                source="hackernews",
                url=f"https://news.ycombinator.com/item?id={hit.get('objectID')}",
            ))
        return events

    async def fetch_popular(self, limit: Optional[int] = None) -> List[Event]:
        return await self.get_top_stories(limit or 30)

    async def search(self, query: str, limit: int = 15) -> List[Event]:
        return await self.search_stories(query, hits_per_page=limit)

    async def _story_list(self, path: str, limit: int) -> List[Event]:
        ids = await self._get_json(path)
        if not isinstance(ids, list):
            return []

        items = await asyncio.gather(*(self._get_item(i) for i in ids[:limit]))
        stories = [item for item in items if item and item.get("type") == "story"]
        return normalize_stories(stories)

    async def _get_item(self, item_id: int) -> Optional[Dict[str, Any]]:
        """Fetch one item; a failed item is dropped rather than failing the list."""
        try:
            item = await self._get_json(f"/item/{item_id}.json")
        except SourceError as e:
            logger.debug(f"HN item {item_id} skipped: {e}")
            return None
        return item if isinstance(item, dict) else None
