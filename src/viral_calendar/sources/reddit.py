"""Reddit source client using the public JSON endpoints (no auth required)."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..errors import SourceError
from ..models import ContentType, Event, Timeframe
from .base import SourceClient, truncate

logger = logging.getLogger(__name__)

REDDIT_BASE_URL = "https://www.reddit.com"
DEFAULT_USER_AGENT = "ViralCalendar/1.0 (by /u/viralcalendar)"

# Subreddits to track for viral content
VIRAL_SUBREDDITS = [
    "all",
    "popular",
    "trending",
    "worldnews",
    "technology",
    "funny",
    "memes",
    "videos",
    "news",
    "entertainment",
    "sports",
    "gaming",
    "science",
]

# Subreddits mixed into the live popular fetch
LIVE_NEWS_SUBREDDITS = ["worldnews", "news", "technology"]

MAX_LIMIT = 100


def classify_reddit_post(is_video: bool, domain: str, score: int) -> ContentType:
    """Guess a content type from post metadata.

    Checked in order: video host, image host, tweet embed, very high score.
    """
    domain = (domain or "").lower()
    if is_video or "youtu" in domain or "v.redd.it" in domain:
        return "video"
    if "i.redd.it" in domain or "imgur" in domain:
        return "meme"
    if domain in ("twitter.com", "x.com") or domain.endswith((".twitter.com", ".x.com")):
        return "tweet"
    if score > 50_000:
        return "trend"
    return "news"


def timeframe_for_age(days: int) -> Timeframe:
    """Smallest Reddit 'top' window that still covers a date ``days`` ago."""
    if days <= 1:
        return "day"
    if days <= 7:
        return "week"
    if days <= 30:
        return "month"
    if days <= 365:
        return "year"
    return "all"


def normalize_listing(children: List[Dict[str, Any]]) -> List[Event]:
    """Convert a Reddit listing's children into events, ranked by position."""
    events = []
    for index, child in enumerate(children):
        data = child.get("data") or {}
        score = data.get("score") or 0
        title = data.get("title") or "Reddit Post"
        subreddit = data.get("subreddit")
        permalink = data.get("permalink")

        events.append(Event(
            id=data.get("id") or f"reddit-{index}",
            title=truncate(title, 80),
            summary=title,
            post_count=score,
            hashtag=f"#r/{subreddit}" if subreddit else None,
            content_type=classify_reddit_post(bool(data.get("is_video")), data.get("domain", ""), score),
            trending_rank=index + 1,
            source="reddit",
            url=f"{REDDIT_BASE_URL}{permalink}" if permalink else data.get("url"),
        ))
    return events


class RedditClient(SourceClient):
    """Reddit listings, search and rate limit tracking."""

    source = "reddit"
    display_name = "Reddit"

    remaining_header = "x-ratelimit-remaining"
    used_header = "x-ratelimit-used"
    reset_header = "x-ratelimit-reset"
    # Reddit reports seconds until the window resets
    reset_is_epoch = False

    def __init__(
        self,
        base_url: str = REDDIT_BASE_URL,
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url,
            timeout=timeout,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    async def get_popular_posts(
        self,
        limit: int = 25,
        timeframe: Timeframe = "day",
        after: Optional[str] = None,
    ) -> List[Event]:
        """Top posts from r/all, the main endpoint for viral content."""
        data = await self._get_json(
            "/r/all/top.json",
            params={"limit": min(limit, MAX_LIMIT), "t": timeframe, "after": after},
        )
        return normalize_listing(self._children(data))

    async def get_subreddit_posts(
        self,
        subreddit: str,
        sort: str = "hot",
        limit: int = 25,
        timeframe: Timeframe = "day",
    ) -> List[Event]:
        params: Dict[str, Any] = {"limit": min(limit, MAX_LIMIT)}
        if sort == "top":
            params["t"] = timeframe

        data = await self._get_json(f"/r/{subreddit}/{sort}.json", params=params)
        return normalize_listing(self._children(data))

    async def search_posts(
        self,
        query: str,
        limit: int = 25,
        sort: str = "relevance",
        timeframe: Timeframe = "all",
    ) -> List[Event]:
        data = await self._get_json(
            "/search.json",
            params={
                "q": query,
                "limit": min(limit, MAX_LIMIT),
                "sort": sort,
                "t": timeframe,
                "type": "link",
            },
        )
        return normalize_listing(self._children(data))

    async def get_trending_subreddits(self) -> List[str]:
        """Default subreddit names, or a built-in list when Reddit is unavailable."""
        try:
            data = await self._get_json("/subreddits/default.json", params={"limit": 20})
        except SourceError as e:
            logger.warning(f"Error fetching trending subreddits: {e}")
            return VIRAL_SUBREDDITS[:10]

        names = []
        for child in self._children(data):
            name = (child.get("data") or {}).get("display_name")
            if name:
                names.append(name)
        return names

    async def get_viral_content_for_date(self, day: datetime, min_score: int = 1000) -> List[Event]:
        """
        Approximate the viral posts of a given day.

        Reddit has no date search, so the smallest 'top' window that covers
        the date is used instead.
        """
        if day.tzinfo is None:
            day = day.replace(tzinfo=timezone.utc)
        age_days = (datetime.now(timezone.utc) - day).days
        timeframe = timeframe_for_age(age_days)

        posts = await self.get_popular_posts(limit=25, timeframe=timeframe)

        for subreddit in ["worldnews", "technology"]:
            try:
                posts.extend(await self.get_subreddit_posts(subreddit, sort="top", limit=10, timeframe=timeframe))
            except SourceError as e:
                logger.warning(f"Skipping r/{subreddit}: {e}")

        unique: Dict[str, Event] = {}
        for post in posts:
            if post.post_count >= min_score:
                unique[post.id] = post

        ranked = sorted(unique.values(), key=lambda e: e.post_count, reverse=True)
        return ranked[:25]

    async def fetch_popular(self, limit: Optional[int] = None) -> List[Event]:
        """r/all top of the day plus the top posts of the main news subreddits."""
        events = await self.get_popular_posts(limit=limit or 25, timeframe="day")

        for subreddit in LIVE_NEWS_SUBREDDITS:
            try:
                events.extend(await self.get_subreddit_posts(subreddit, sort="top", limit=10, timeframe="day"))
            except SourceError as e:
                logger.warning(f"Skipping r/{subreddit} in live fetch: {e}")

        return events

    async def search(self, query: str, limit: int = 15) -> List[Event]:
        return await self.search_posts(query, limit=limit, sort="relevance")

    def _describe_error(self, response: httpx.Response) -> str:
        if response.status_code == 403:
            return "Access forbidden. User-Agent may be required."
        if response.status_code == 404:
            return "Subreddit not found or private."
        return super()._describe_error(response)

    @staticmethod
    def _children(data: Any) -> List[Dict[str, Any]]:
        if not isinstance(data, dict):
            return []
        return (data.get("data") or {}).get("children") or []
