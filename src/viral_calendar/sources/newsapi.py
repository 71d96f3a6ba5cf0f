"""NewsAPI.org source client (API key required, free tier 100 requests/day)."""

import logging
from datetime import datetime, time, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..errors import SourceError
from ..models import ContentType, Event
from .base import SourceClient

logger = logging.getLogger(__name__)

NEWS_API_BASE_URL = "https://newsapi.org/v2"
PLACEHOLDER_KEY = "your_news_api_key_here"

# Popular news sources by category
NEWS_SOURCES = {
    "general": [
        "bbc-news", "cnn", "reuters", "associated-press", "the-wall-street-journal",
        "the-washington-post", "usa-today", "abc-news", "cbs-news", "nbc-news",
    ],
    "tech": [
        "techcrunch", "the-verge", "wired", "ars-technica", "engadget",
        "gizmodo", "hacker-news", "polygon", "recode",
    ],
    "science": [
        "national-geographic", "new-scientist", "next-big-future", "scientific-american",
    ],
    "business": [
        "bloomberg", "business-insider", "fortune", "financial-post",
    ],
    "entertainment": [
        "buzzfeed", "entertainment-weekly", "mtv-news", "the-lad-bible",
    ],
}

MAX_PAGE_SIZE = 100
MAX_SOURCES_PER_REQUEST = 20


def classify_news_article(source_name: str, title: str, description: str) -> ContentType:
    source_name = (source_name or "").lower()
    if any(name in source_name for name in ("buzzfeed", "reddit", "imgur")):
        return "meme"
    if "video" in (title or "").lower() or "video" in (description or "").lower():
        return "video"
    return "news"


def recency_score(published_at: Optional[str], now: Optional[datetime] = None) -> int:
    """
    NewsAPI has no engagement numbers, so newer articles score higher.

    Floors at 1000 so articles still pass typical minimum score filters.
    """
    now = now or datetime.now(timezone.utc)
    try:
        published = datetime.fromisoformat((published_at or "").replace("Z", "+00:00"))
    except ValueError:
        return 1000
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    hours_ago = max(0.0, (now - published).total_seconds() / 3600)
    return max(1000, int(50000 // (hours_ago + 1)))


def normalize_articles(articles: List[Dict[str, Any]], now: Optional[datetime] = None) -> List[Event]:
    events = []
    for index, article in enumerate(articles):
        source_name = (article.get("source") or {}).get("name") or ""
        title = article.get("title") or ""
        description = article.get("description") or ""
        summary = description or (article.get("content") or "")[:200] or title
        url = article.get("url")

        events.append(Event(
            id=f"newsapi-{url or index}",
            title=title[:80] or "News Article",
            summary=summary,
            post_count=recency_score(article.get("publishedAt"), now),
            hashtag="#" + ("".join(source_name.split()) or "News"),
            content_type=classify_news_article(source_name, title, description),
            trending_rank=index + 1,
            source="newsapi",
            url=url,
        ))
    return events


class NewsApiClient(SourceClient):
    """Top headlines and article search."""

    source = "newsapi"
    display_name = "NewsAPI"
    config_hint = "set NEWS_API_KEY"

    def __init__(
        self,
        api_key: str = "",
        base_url: str = NEWS_API_BASE_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        super().__init__(
            base_url=base_url,
            timeout=timeout,
            headers={"X-Api-Key": api_key} if api_key else {},
            transport=transport,
        )

    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key != PLACEHOLDER_KEY

    async def get_top_headlines(
        self,
        category: Optional[str] = None,
        sources: Optional[List[str]] = None,
        page_size: int = 20,
    ) -> List[Event]:
        self.require_configured()
        data = await self._get_json(
            "/top-headlines",
            params={
                "category": category,
                "sources": ",".join(sources) if sources else None,
                "pageSize": min(page_size, MAX_PAGE_SIZE),
                # NewsAPI rejects language together with sources
                "language": None if sources else "en",
            },
        )
        return normalize_articles(self._articles(data))

    async def search_news(
        self,
        query: str,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        sort_by: str = "popularity",
        page_size: int = 20,
    ) -> List[Event]:
        """Search all articles. Free tier only covers the last 30 days."""
        self.require_configured()
        data = await self._get_json(
            "/everything",
            params={
                "q": query,
                "sortBy": sort_by,
                "pageSize": min(page_size, MAX_PAGE_SIZE),
                "language": "en",
                "from": from_date.isoformat() if from_date else None,
                "to": to_date.isoformat() if to_date else None,
            },
        )
        return normalize_articles(self._articles(data))

    async def get_from_sources(
        self,
        sources: List[str],
        page_size: int = 20,
        from_date: Optional[datetime] = None,
    ) -> List[Event]:
        self.require_configured()
        data = await self._get_json(
            "/everything",
            params={
                "sources": ",".join(sources[:MAX_SOURCES_PER_REQUEST]),
                "pageSize": min(page_size, MAX_PAGE_SIZE),
                "language": "en",
                "sortBy": "popularity",
                "from": from_date.strftime("%Y-%m-%d") if from_date else None,
            },
        )
        return normalize_articles(self._articles(data))

    async def get_viral_news_for_date(self, day: datetime, category: Optional[str] = None) -> List[Event]:
        """Headlines plus popularity-sorted searches for trending terms on ``day``."""
        start = datetime.combine(day.date(), time.min)
        end = datetime.combine(day.date(), time.max).replace(microsecond=0)

        articles = await self.get_top_headlines(category=category or "general", page_size=20)

        for term in ["breaking", "viral"]:
            try:
                articles.extend(await self.search_news(term, from_date=start, to_date=end, page_size=10))
            except SourceError as e:
                logger.warning(f"NewsAPI search for '{term}' failed: {e}")

        unique: Dict[str, Event] = {}
        for article in articles:
            unique[article.id] = article

        ranked = sorted(unique.values(), key=lambda e: e.post_count, reverse=True)
        return ranked[:25]

    async def fetch_popular(self, limit: Optional[int] = None) -> List[Event]:
        return await self.get_top_headlines(page_size=limit or 20)

    async def search(self, query: str, limit: int = 15) -> List[Event]:
        return await self.search_news(query, sort_by="popularity", page_size=limit)

    def _rate_limit_message(self) -> str:
        return "Rate limit exceeded. Free tier allows 100 requests/day."

    def _describe_error(self, response: httpx.Response) -> str:
        if response.status_code == 401:
            return "Invalid API key. Please check your NewsAPI key."
        if response.status_code == 426:
            return "This endpoint requires a paid plan."
        return super()._describe_error(response)

    @staticmethod
    def _articles(data: Any) -> List[Dict[str, Any]]:
        if not isinstance(data, dict):
            return []
        return data.get("articles") or []
