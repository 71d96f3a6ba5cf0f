"""HTTP surface tests using FastAPI's TestClient."""

import time

import pytest
from fastapi.testclient import TestClient

from viral_calendar.api import create_app
from viral_calendar.config import Settings
from viral_calendar.context import AppContext
from viral_calendar.database import LocalCache
from viral_calendar.errors import StorageError
from viral_calendar.ratelimit import RateLimiter
from viral_calendar.remote import RemoteStore
from viral_calendar.sources.reddit import RedditClient

CRON = {"x-cron-secret": "cron-secret"}
ADMIN = {"x-admin-secret": "admin-secret"}


class FullDiskCache(LocalCache):
    """Local cache that opens fine but rejects every write."""

    async def merge(self, data):
        raise StorageError("disk full")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_path=str(tmp_path / "api.db"),
        cron_secret="cron-secret",
        admin_secret="admin-secret",
        aggregator_sources="reddit,hackernews",
        supabase_url="",
        supabase_key="",
    )


@pytest.fixture
def build_client(settings, fake_source):
    def factory(clients=None, cache_class=LocalCache, **overrides):
        app_settings = settings.model_copy(update=overrides) if overrides else settings
        context = AppContext(
            app_settings,
            clients=clients or {
                "reddit": fake_source("reddit"),
                "hackernews": fake_source("hackernews"),
            },
            cache=cache_class(app_settings.database_path),
            remote=RemoteStore(),
            import_limiter=RateLimiter(0),
        )
        return TestClient(create_app(context, manage_lifespan=True))

    return factory


@pytest.fixture
def client(build_client):
    with build_client() as test_client:
        yield test_client


class TestService:

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"

    def test_healthz(self, client):
        body = client.get("/healthz").json()

        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["remote"] == "not configured"

    def test_ready(self, client):
        assert client.get("/ready").json() == {"ready": True}

    def test_stats(self, client):
        body = client.get("/stats").json()

        assert body["cache"]["days"] == 0
        assert body["import"]["state"] == "idle"


class TestCalendarReads:

    def test_day_from_mock(self, client):
        response = client.get("/api/days/2024-11-05")

        assert response.status_code == 200
        body = response.json()
        assert body["source"] == "mock"
        assert body["day"]["top_hashtag"] == "#Election2024"
        assert body["day"]["intensity"] == "high"

    def test_day_absent(self, client):
        assert client.get("/api/days/1999-01-01").status_code == 404

    def test_day_bad_format(self, client):
        assert client.get("/api/days/yesterday").status_code == 400

    def test_month(self, client):
        body = client.get("/api/months/2024/11").json()

        dates = [d["date"] for d in body["days"]]
        assert dates
        assert all(d.startswith("2024-11-") for d in dates)
        assert dates == sorted(dates, reverse=True)

    def test_month_out_of_range(self, client):
        assert client.get("/api/months/2024/13").status_code == 400

    def test_search(self, client):
        body = client.get("/api/search", params={"q": "election"}).json()

        assert any(day["date"] == "2024-11-05" for day in body["results"])

    def test_search_requires_query(self, client):
        assert client.get("/api/search").status_code == 422

    def test_search_rejects_unknown_type(self, client):
        assert client.get("/api/search", params={"q": "x", "type": "podcast"}).status_code == 422

    def test_trending_hashtags(self, client):
        hashtags = client.get("/api/hashtags/trending", params={"limit": 3}).json()["hashtags"]

        assert 0 < len(hashtags) <= 3

    def test_sources_status(self, client):
        sources = client.get("/api/sources/status").json()["sources"]

        assert {s["source"] for s in sources} == {"reddit", "hackernews"}


class TestLiveFetch:

    def test_live_fetch_is_stored(self, build_client, fake_source, make_event):
        clients = {
            "reddit": fake_source("reddit", [make_event(id="r", title="Live story", post_count=900)]),
            "hackernews": fake_source("hackernews"),
        }
        with build_client(clients) as client:
            response = client.post("/api/live")
            assert response.status_code == 200
            day = response.json()["day"]

            stored = client.get(f"/api/days/{day['date']}").json()

        assert [e["id"] for e in day["events"]] == ["r"]
        assert stored["source"] == "local"

    def test_live_fetch_survives_local_write_failure(self, build_client, fake_source, make_event):
        clients = {
            "reddit": fake_source("reddit", [make_event(id="r", post_count=900)]),
            "hackernews": fake_source("hackernews"),
        }
        with build_client(clients, cache_class=FullDiskCache) as client:
            response = client.post("/api/live")

        assert response.status_code == 200
        body = response.json()
        assert [e["id"] for e in body["day"]["events"]] == ["r"]
        assert body["stored"] is None
        assert "disk full" in body["errors"]["local"]

    def test_live_fetch_without_data(self, build_client, fake_source, upstream_error):
        clients = {
            "reddit": fake_source("reddit", error=upstream_error("reddit")),
            "hackernews": fake_source("hackernews", error=upstream_error("hackernews")),
        }
        with build_client(clients) as client:
            response = client.post("/api/live")

        assert response.status_code == 503
        assert set(response.json()["detail"]["errors"]) == {"reddit", "hackernews"}


class TestCron:

    def test_missing_secret(self, client):
        assert client.post("/api/cron/fetch-viral").status_code == 401

    def test_wrong_secret(self, client):
        assert client.post("/api/cron/fetch-viral", headers={"x-cron-secret": "nope"}).status_code == 401

    def test_unset_secret_rejects_everything(self, build_client):
        with build_client(cron_secret="") as client:
            assert client.post("/api/cron/fetch-viral", headers={"x-cron-secret": ""}).status_code == 401

    def test_runs_job(self, build_client, fake_source, make_event):
        clients = {
            "reddit": fake_source("reddit", [make_event(id="r", post_count=900)]),
            "hackernews": fake_source("hackernews"),
        }
        with build_client(clients) as client:
            response = client.post("/api/cron/fetch-viral", headers=CRON)
            health = client.get("/healthz").json()

        assert response.status_code == 200
        assert response.json()["success"]
        assert response.json()["events_imported"] == 1
        assert health["last_job"]["events_imported"] == 1


class TestAdmin:

    def test_requires_secret(self, client):
        assert client.post("/api/import", json={}).status_code == 401
        assert client.get("/api/import/progress").status_code == 401
        assert client.post("/api/import/cancel").status_code == 401
        assert client.delete("/api/cache").status_code == 401

    def test_import_runs_in_background(self, build_client, fake_source, mock_transport):
        listing = {"data": {"children": [{"data": {
            "id": "p1", "title": "Imported", "score": 5000, "subreddit": "worldnews",
            "permalink": "/r/worldnews/comments/p1/", "domain": "reuters.com",
        }}]}}
        reddit = RedditClient(transport=mock_transport({"/r/worldnews/top.json": listing}))
        clients = {"reddit": reddit, "hackernews": fake_source("hackernews")}

        with build_client(clients) as client:
            response = client.post(
                "/api/import",
                json={"subreddits": ["worldnews"], "timeframes": ["day"], "include_all_time": False},
                headers=ADMIN,
            )
            assert response.status_code == 202
            assert response.json()["options"]["min_score"] == 1000

            progress = {}
            for _ in range(100):
                progress = client.get("/api/import/progress", headers=ADMIN).json()
                if not progress["running"]:
                    break
                time.sleep(0.02)

            stats = client.get("/stats").json()

        assert progress["progress"]["state"] == "completed"
        assert progress["days_imported"] == 1
        assert stats["cache"]["events"] == 1

    def test_cancel_when_idle(self, client):
        assert client.post("/api/import/cancel", headers=ADMIN).json() == {"cancelled": False}

    def test_clear_cache(self, build_client, fake_source, make_event):
        clients = {
            "reddit": fake_source("reddit", [make_event(id="r", post_count=900)]),
            "hackernews": fake_source("hackernews"),
        }
        with build_client(clients) as client:
            client.post("/api/live")
            assert client.get("/stats").json()["cache"]["days"] == 1

            assert client.delete("/api/cache", headers=ADMIN).json() == {"cleared": True}
            assert client.get("/stats").json()["cache"]["days"] == 0
