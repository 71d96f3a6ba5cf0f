"""Tests for the NewsAPI client."""

from datetime import datetime, timezone

import httpx
import pytest

from viral_calendar.errors import NotConfiguredError, RateLimitedError, UpstreamError
from viral_calendar.sources.newsapi import (
    NewsApiClient,
    classify_news_article,
    normalize_articles,
    recency_score,
)

NOW = datetime(2025, 1, 27, 12, 0, tzinfo=timezone.utc)


def article(title, source="Reuters", published="2025-01-27T11:00:00Z", url=None, description="desc"):
    return {
        "source": {"id": None, "name": source},
        "title": title,
        "description": description,
        "url": url or f"https://example.com/{title.replace(' ', '-')}",
        "publishedAt": published,
    }


class TestHeuristics:

    def test_recency_score(self):
        assert recency_score("2025-01-27T12:00:00Z", NOW) == 50000
        assert recency_score("2025-01-27T11:00:00Z", NOW) == 25000
        # Floor for old or unparseable dates
        assert recency_score("2024-01-01T00:00:00Z", NOW) == 1000
        assert recency_score("not a date", NOW) == 1000

    def test_classify(self):
        assert classify_news_article("BuzzFeed", "Quiz", "") == "meme"
        assert classify_news_article("CNN", "Watch the video", "") == "video"
        assert classify_news_article("CNN", "Election results", "Counting continues") == "news"

    def test_normalize(self):
        events = normalize_articles([article("Big Story", source="BBC News")], now=NOW)

        event = events[0]
        assert event.id == "newsapi-https://example.com/Big-Story"
        assert event.hashtag == "#BBCNews"
        assert event.source == "newsapi"
        assert event.summary == "desc"


class TestNewsApiClient:

    async def test_unconfigured_raises_without_request(self, mock_transport):
        transport = mock_transport({})
        client = NewsApiClient(api_key="", transport=transport)

        with pytest.raises(NotConfiguredError):
            await client.fetch_popular()
        await client.close()

        assert transport.requests == []

    async def test_placeholder_key_is_unconfigured(self):
        client = NewsApiClient(api_key="your_news_api_key_here")
        assert not client.is_configured()
        await client.close()

    async def test_headlines_request(self, mock_transport):
        transport = mock_transport({
            "/v2/top-headlines": {"status": "ok", "articles": [article("One"), article("Two")]},
        })
        client = NewsApiClient(api_key="secret", transport=transport)

        events = await client.get_top_headlines(page_size=500)
        await client.close()

        request = transport.requests[0]
        assert request.headers["x-api-key"] == "secret"
        assert request.url.params["pageSize"] == "100"
        assert request.url.params["language"] == "en"
        assert len(events) == 2

    async def test_language_omitted_with_sources(self, mock_transport):
        transport = mock_transport({"/v2/top-headlines": {"articles": []}})
        client = NewsApiClient(api_key="secret", transport=transport)

        await client.get_top_headlines(sources=["bbc-news"])
        await client.close()

        params = transport.requests[0].url.params
        assert params["sources"] == "bbc-news"
        assert "language" not in params

    async def test_401_message(self, mock_transport):
        transport = mock_transport({"/v2/everything": httpx.Response(401, json={"message": "bad key"})})
        client = NewsApiClient(api_key="wrong", transport=transport)

        with pytest.raises(UpstreamError) as exc_info:
            await client.search("anything")
        await client.close()

        assert exc_info.value.status == 401
        assert "Invalid API key" in str(exc_info.value)

    async def test_429_message(self, mock_transport):
        transport = mock_transport({"/v2/top-headlines": httpx.Response(429)})
        client = NewsApiClient(api_key="secret", transport=transport)

        with pytest.raises(RateLimitedError) as exc_info:
            await client.fetch_popular()
        await client.close()

        assert "100 requests/day" in str(exc_info.value)

    async def test_from_sources_request(self, mock_transport):
        transport = mock_transport({"/v2/everything": {"articles": [article("One")]}})
        client = NewsApiClient(api_key="secret", transport=transport)
        sources = [f"source-{i}" for i in range(25)]

        events = await client.get_from_sources(sources, page_size=10, from_date=datetime(2025, 1, 20))
        await client.close()

        params = transport.requests[0].url.params
        assert params["sources"].split(",") == sources[:20]
        assert params["sortBy"] == "popularity"
        assert params["from"] == "2025-01-20"
        assert params["pageSize"] == "10"
        assert len(events) == 1

    async def test_viral_news_for_date(self, mock_transport):
        shared = article("Shared story", published="2025-01-27T09:00:00Z")

        def everything(request):
            if request.url.params["q"] == "viral":
                return httpx.Response(500)
            return httpx.Response(200, json={"articles": [shared, article("Breaking story")]})

        transport = mock_transport({
            "/v2/top-headlines": {"articles": [shared, article("Headline")]},
            "/v2/everything": everything,
        })
        client = NewsApiClient(api_key="secret", transport=transport)

        events = await client.get_viral_news_for_date(datetime(2025, 1, 27, 18, 0))
        await client.close()

        headlines, breaking, viral = transport.requests
        assert headlines.url.params["category"] == "general"
        assert breaking.url.params["q"] == "breaking"
        assert breaking.url.params["from"] == "2025-01-27T00:00:00"
        assert breaking.url.params["to"] == "2025-01-27T23:59:59"
        assert viral.url.params["q"] == "viral"
        # The failed search is skipped and the shared article counted once
        assert sorted(e.title for e in events) == ["Breaking story", "Headline", "Shared story"]
        assert [e.post_count for e in events] == sorted((e.post_count for e in events), reverse=True)
