"""X (Twitter) API v2 source client. Requires a bearer token."""

import logging
from datetime import datetime, time, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..errors import SourceError
from ..models import ContentType, Event
from .base import SourceClient, truncate

logger = logging.getLogger(__name__)

X_API_BASE_URL = "https://api.twitter.com/2"
PLACEHOLDER_TOKEN = "your_bearer_token_here"

TWEET_FIELDS = "created_at,public_metrics,context_annotations,entities,author_id"
USER_FIELDS = "username,public_metrics,profile_image_url"

VIRAL_QUERY = "min_faves:{min_likes} -is:retweet -is:reply"
MAX_RESULTS = 100


def classify_tweet(urls: List[str], media_types: List[str], like_count: int) -> ContentType:
    """Guess a content type from a tweet's links, media and likes."""
    for url in urls:
        url = (url or "").lower()
        if "youtube" in url or "tiktok" in url or "video" in url:
            return "video"
    if "photo" in media_types:
        return "meme"
    if like_count > 10_000:
        return "trend"
    return "tweet"


def normalize_tweets(payload: Dict[str, Any]) -> List[Event]:
    events = []
    for index, tweet in enumerate(payload.get("data") or []):
        metrics = tweet.get("public_metrics") or {}
        entities = tweet.get("entities") or {}
        like_count = metrics.get("like_count") or 0

        urls = [u.get("expanded_url") or "" for u in entities.get("urls") or []]
        media_types = [m.get("type") for m in entities.get("media") or []]
        hashtags = [h.get("tag") for h in entities.get("hashtags") or [] if h.get("tag")]

        text = tweet.get("text") or ""
        tweet_id = str(tweet.get("id") or f"tweet-{index}")

        events.append(Event(
            id=tweet_id,
            title=truncate(text, 60) or "Viral Tweet",
            summary=text,
            post_count=like_count or metrics.get("retweet_count") or 0,
            hashtag=f"#{hashtags[0]}" if hashtags else None,
            content_type=classify_tweet(urls, media_types, like_count),
            trending_rank=index + 1,
            source="twitter",
            url=f"https://x.com/i/web/status/{tweet_id}",
        ))
    return events


class XClient(SourceClient):
    """Recent search, tweet lookup and a search-based trending fallback."""

    source = "twitter"
    display_name = "X"
    config_hint = "set X_BEARER_TOKEN"

    limit_header = "x-rate-limit-limit"
    remaining_header = "x-rate-limit-remaining"
    reset_header = "x-rate-limit-reset"
    reset_is_epoch = True

    def __init__(
        self,
        bearer_token: str = "",
        base_url: str = X_API_BASE_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bearer_token = bearer_token
        headers = {"Content-Type": "application/json"}
        if bearer_token:
            headers["Authorization"] = f"Bearer {bearer_token}"
        super().__init__(base_url=base_url, timeout=timeout, headers=headers, transport=transport)

    def is_configured(self) -> bool:
        return bool(self.bearer_token) and self.bearer_token != PLACEHOLDER_TOKEN

    async def search_tweets(
        self,
        query: str,
        max_results: int = 25,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        sort_order: str = "relevancy",
    ) -> List[Event]:
        """Recent search. Free tier: 100 requests per 15 minutes per app."""
        self.require_configured()
        data = await self._get_json(
            "/tweets/search/recent",
            params={
                "query": query,
                # The API rejects fewer than 10
                "max_results": max(10, min(max_results, MAX_RESULTS)),
                "tweet.fields": TWEET_FIELDS,
                "user.fields": USER_FIELDS,
                "expansions": "author_id",
                "sort_order": sort_order,
                "start_time": self._iso(start_time),
                "end_time": self._iso(end_time),
            },
        )
        return normalize_tweets(data if isinstance(data, dict) else {})

    async def get_tweets_by_ids(self, ids: List[str]) -> List[Event]:
        self.require_configured()
        if not ids:
            return []
        if len(ids) > MAX_RESULTS:
            logger.warning(f"Maximum {MAX_RESULTS} IDs allowed per request, truncating {len(ids)}")
            ids = ids[:MAX_RESULTS]

        data = await self._get_json(
            "/tweets",
            params={
                "ids": ",".join(ids),
                "tweet.fields": "created_at,public_metrics,context_annotations,entities",
                "user.fields": "username,public_metrics",
            },
        )
        return normalize_tweets(data if isinstance(data, dict) else {})

    async def get_trending_topics(self) -> List[str]:
        """
        Hashtags from popular searches.

        The trends endpoint needs elevated access, so a couple of broad
        searches stand in for it.
        """
        self.require_configured()
        events: List[Event] = []
        for query in ["trending", "viral"]:
            try:
                events.extend(await self.search_tweets(query, max_results=10))
            except SourceError as e:
                logger.warning(f"X search for '{query}' failed: {e}")

        hashtags: List[str] = []
        for event in events:
            if event.hashtag and event.hashtag not in hashtags:
                hashtags.append(event.hashtag)
        return hashtags[:10]

    async def get_viral_content_for_date(self, day: datetime, min_likes: int = 1000) -> List[Event]:
        start = datetime.combine(day.date(), time.min, tzinfo=timezone.utc)
        end = datetime.combine(day.date(), time.max, tzinfo=timezone.utc).replace(microsecond=0)

        tweets = await self.search_tweets(
            VIRAL_QUERY.format(min_likes=min_likes),
            max_results=25,
            start_time=start,
            end_time=end,
        )
        return sorted(tweets, key=lambda e: e.post_count, reverse=True)

    async def fetch_popular(self, limit: Optional[int] = None) -> List[Event]:
        return await self.search_tweets(VIRAL_QUERY.format(min_likes=1000), max_results=limit or 25)

    async def search(self, query: str, limit: int = 15) -> List[Event]:
        return await self.search_tweets(query, max_results=limit)

    def _describe_error(self, response: httpx.Response) -> str:
        if response.status_code == 401:
            return "Authentication failed. Please check your API credentials."
        if response.status_code == 403:
            return "Access forbidden. Your API key may not have permission for this endpoint."
        return super()._describe_error(response)

    @staticmethod
    def _iso(value: Optional[datetime]) -> Optional[str]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
