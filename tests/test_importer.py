"""Tests for the historical importer and the background import runner."""

import asyncio
from datetime import date

import httpx
import pytest

from viral_calendar.errors import ImportInProgressError, StorageError
from viral_calendar.importer import NEWS_SUBREDDITS, CancellationToken, HistoricalImporter, ImportRunner
from viral_calendar.models import DayBucket, ImportOptions
from viral_calendar.sources.reddit import RedditClient

TODAY = "2025-01-27"


def listing(*posts):
    return {"data": {"children": [{"data": p} for p in posts]}}


def post(id, score, subreddit="worldnews", title=None, domain="reuters.com"):
    return {
        "id": id,
        "title": title or f"Post {id}",
        "score": score,
        "subreddit": subreddit,
        "permalink": f"/r/{subreddit}/comments/{id}/",
        "domain": domain,
    }


@pytest.fixture
async def build_importer(mock_transport, no_wait_limiter):
    clients = []

    def factory(routes, cache=None):
        transport = mock_transport(routes)
        reddit = RedditClient(transport=transport)
        clients.append(reddit)
        importer = HistoricalImporter(
            reddit,
            cache=cache,
            limiter=no_wait_limiter,
            quick_limiter=no_wait_limiter,
            today=lambda: TODAY,
        )
        return importer, transport

    yield factory

    for client in clients:
        await client.close()


def requested_paths(transport):
    return [r.url.path for r in transport.requests]


class TestImportHistorical:

    async def test_max_posts_stops_after_unit_that_crosses_it(self, build_importer):
        importer, transport = build_importer({
            "/r/x/top.json": listing(*(post(f"x{i}", 5000, "x") for i in range(5))),
            "/r/y/top.json": listing(post("y1", 5000, "y")),
        })

        data = await importer.import_historical(ImportOptions(
            subreddits=["x", "y"], timeframes=["day"], max_posts=1, include_all_time=False,
        ))

        assert "/r/y/top.json" not in requested_paths(transport)
        assert len(data[TODAY].events) == 5

    async def test_iteration_order_and_progress(self, build_importer):
        importer, transport = build_importer({
            "/r/a/top.json": listing(post("a1", 2000, "a")),
            "/r/b/top.json": listing(post("b1", 3000, "b")),
        })
        snapshots = []

        await importer.import_historical(
            ImportOptions(subreddits=["a", "b"], timeframes=["week", "month"], include_all_time=False),
            on_progress=snapshots.append,
        )

        timeframes = [(r.url.path, r.url.params["t"]) for r in transport.requests]
        assert timeframes == [
            ("/r/a/top.json", "week"),
            ("/r/b/top.json", "week"),
            ("/r/a/top.json", "month"),
            ("/r/b/top.json", "month"),
        ]
        running = [s for s in snapshots if s.state == "running"]
        assert [s.completed_units for s in running] == [1, 2, 3, 4]
        assert all(s.total_units == 4 for s in running)
        assert running[0].current_label == "r/a (week)"
        assert snapshots[-1].state == "completed"

    async def test_items_found_counts_events(self, build_importer):
        importer, _ = build_importer({
            "/r/a/top.json": listing(post("a1", 2000, "a"), post("a2", 2000, "a")),
            "/r/b/top.json": listing(post("b1", 2000, "b")),
        })
        snapshots = []

        await importer.import_historical(
            ImportOptions(subreddits=["a", "b"], timeframes=["day"], include_all_time=False),
            on_progress=snapshots.append,
        )

        assert [s.items_found_so_far for s in snapshots] == [0, 2, 3]

    async def test_min_score_and_duplicate_ids(self, build_importer):
        importer, _ = build_importer({
            "/r/a/top.json": listing(post("same", 2000, "a"), post("low", 10, "a")),
            "/r/b/top.json": listing(post("same", 2000, "a"), post("other", 4000, "b")),
        })

        data = await importer.import_historical(ImportOptions(
            subreddits=["a", "b"], timeframes=["day"], include_all_time=False,
        ))

        assert [e.id for e in data[TODAY].events] == ["other", "same"]

    async def test_buckets_satisfy_rank_invariants(self, build_importer):
        importer, _ = build_importer({
            "/r/a/top.json": listing(post("a1", 1500, "a"), post("a2", 9000, "a")),
        })

        data = await importer.import_historical(ImportOptions(
            subreddits=["a"], timeframes=["day"], include_all_time=False,
        ))

        bucket = data[TODAY]
        assert [e.trending_rank for e in bucket.events] == [1, 2]
        assert bucket.events[0].id == "a2"
        assert bucket.top_hashtag == "#r/a"

    async def test_failed_unit_is_skipped_and_reported(self, build_importer):
        importer, transport = build_importer({
            "/r/a/top.json": httpx.Response(503),
            "/r/b/top.json": listing(post("b1", 2000, "b")),
        })
        snapshots = []

        data = await importer.import_historical(
            ImportOptions(subreddits=["a", "b"], timeframes=["day"], include_all_time=False),
            on_progress=snapshots.append,
        )

        assert len(transport.requests) == 2
        assert [e.id for e in data[TODAY].events] == ["b1"]
        assert snapshots[-1].state == "partially_failed"

    async def test_malformed_listing_does_not_stop_import(self, build_importer):
        importer, transport = build_importer({
            "/r/bad/top.json": listing(post("frac", 12.5, "bad")),
            "/r/good/top.json": listing(post("g1", 2000, "good")),
        })
        snapshots = []

        data = await importer.import_historical(
            ImportOptions(subreddits=["bad", "good"], timeframes=["day"], include_all_time=False),
            on_progress=snapshots.append,
        )

        assert "/r/good/top.json" in requested_paths(transport)
        assert [e.id for e in data[TODAY].events] == ["g1"]
        assert snapshots[-1].state == "partially_failed"

    async def test_unusable_subreddit_name_is_skipped(self, build_importer):
        importer, transport = build_importer({
            "/r/good/top.json": listing(post("g1", 2000, "good")),
        })
        snapshots = []

        data = await importer.import_historical(
            ImportOptions(subreddits=["bad\x00name", "good"], timeframes=["day"], include_all_time=False),
            on_progress=snapshots.append,
        )

        assert requested_paths(transport) == ["/r/good/top.json"]
        assert [e.id for e in data[TODAY].events] == ["g1"]
        assert snapshots[-1].state == "partially_failed"

    async def test_malformed_all_time_listing_keeps_units(self, build_importer):
        importer, _ = build_importer({
            "/r/a/top.json": listing(post("a1", 2000, "a")),
            "/r/all/top.json": listing(post("frac", 9999.5, "all")),
        })

        data = await importer.import_historical(ImportOptions(subreddits=["a"], timeframes=["day"]))

        assert [e.id for e in data[TODAY].events] == ["a1"]

    async def test_all_time_pass_uses_double_threshold(self, build_importer):
        importer, transport = build_importer({
            "/r/a/top.json": listing(),
            "/r/all/top.json": listing(post("big", 2500, "all"), post("medium", 1500, "all")),
        })

        data = await importer.import_historical(ImportOptions(
            subreddits=["a"], timeframes=["day"], min_score=1000,
        ))

        all_request = transport.requests[-1]
        assert all_request.url.params["t"] == "all"
        assert all_request.url.params["limit"] == "50"
        assert [e.id for e in data[TODAY].events] == ["big"]

    async def test_default_subreddits(self, build_importer):
        importer, transport = build_importer({})

        await importer.import_historical(ImportOptions(timeframes=["day"], include_all_time=False))

        assert requested_paths(transport) == [f"/r/{name}/top.json" for name in NEWS_SUBREDDITS]

    async def test_news_only_option(self, build_importer):
        importer, _ = build_importer({
            "/r/funny/top.json": listing(
                post("meme", 5000, "funny", domain="i.redd.it"),
                post("story", 2000, "funny"),
            ),
        })

        data = await importer.import_historical(ImportOptions(
            subreddits=["funny"], timeframes=["day"], include_all_time=False, news_only=True,
        ))

        assert [e.id for e in data[TODAY].events] == ["story"]
        assert data[TODAY].events[0].trending_rank == 1


class TestCancellation:

    async def test_cancel_before_next_unit(self, build_importer):
        token = CancellationToken()
        snapshots = []

        def on_progress(progress):
            snapshots.append(progress)
            if progress.completed_units == 2:
                token.cancel()

        importer, transport = build_importer({
            "/r/a/top.json": listing(post("a1", 2000, "a")),
            "/r/b/top.json": listing(post("b1", 2000, "b")),
            "/r/c/top.json": listing(post("c1", 2000, "c")),
        })

        data = await importer.import_historical(
            ImportOptions(subreddits=["a", "b", "c"], timeframes=["day"]),
            on_progress=on_progress,
            cancel_token=token,
        )

        # The unit that saw the cancel still runs; nothing after it does
        assert requested_paths(transport) == ["/r/a/top.json", "/r/b/top.json"]
        assert sorted(e.id for e in data[TODAY].events) == ["a1", "b1"]
        assert snapshots[-1].state == "cancelled"

    async def test_cancelled_before_start(self, build_importer):
        token = CancellationToken()
        token.cancel()
        importer, transport = build_importer({})

        data = await importer.import_historical(ImportOptions(subreddits=["a"]), cancel_token=token)

        assert transport.requests == []
        assert data == {}


class TestRangeAndTopic:

    @pytest.mark.parametrize("start,end,expected", [
        (date(2025, 1, 1), date(2025, 1, 5), "day"),
        (date(2025, 1, 1), date(2025, 1, 20), "week"),
        (date(2024, 11, 1), date(2025, 1, 20), "month"),
        (date(2023, 1, 1), date(2025, 1, 20), "year"),
    ])
    async def test_date_range_timeframe(self, build_importer, start, end, expected):
        importer, transport = build_importer({})

        await importer.import_date_range(start, end)

        assert len(transport.requests) == 5
        assert {r.url.params["t"] for r in transport.requests} == {expected}

    async def test_import_by_topic(self, build_importer):
        importer, transport = build_importer({
            "/search.json": listing(post("s1", 800), post("s2", 100)),
        })

        data = await importer.import_by_topic(["mars", "moon"], min_score=500)

        assert [r.url.params["q"] for r in transport.requests] == ["mars", "moon"]
        assert transport.requests[0].url.params["t"] == "all"
        assert [e.id for e in data[TODAY].events] == ["s1"]


class TestFilterNewsOnly:

    def test_drops_empty_days_and_never_grows(self, make_event):
        importer = HistoricalImporter(RedditClient())
        data = {
            "2025-01-01": DayBucket.build("2025-01-01", [
                make_event(id="n", content_type="news", post_count=10),
                make_event(id="m", content_type="meme", hashtag="#r/funny", post_count=99),
            ]),
            "2025-01-02": DayBucket.build("2025-01-02", [
                make_event(id="v", content_type="video", hashtag="#r/videos"),
            ]),
        }

        filtered = importer.filter_news_only(data)

        assert list(filtered) == ["2025-01-01"]
        assert [e.id for e in filtered["2025-01-01"].events] == ["n"]
        assert filtered["2025-01-01"].events[0].trending_rank == 1
        for day, bucket in filtered.items():
            assert len(bucket.events) <= len(data[day].events)


class TestStorage:

    async def test_save_merges_per_date(self, build_importer, local_cache, make_event):
        importer, _ = build_importer({}, cache=local_cache)
        first = {
            "2025-01-01": DayBucket.build("2025-01-01", [make_event(id="old")]),
            "2025-01-02": DayBucket.build("2025-01-02", [make_event(id="keep")]),
        }
        second = {"2025-01-01": DayBucket.build("2025-01-01", [make_event(id="new")])}

        await importer.save_to_storage(first)
        await importer.save_to_storage(second)
        loaded = await importer.load_from_storage()

        # Same date is replaced whole, other dates survive
        assert [e.id for e in loaded["2025-01-01"].events] == ["new"]
        assert [e.id for e in loaded["2025-01-02"].events] == ["keep"]

        await importer.clear_storage()
        assert await importer.load_from_storage() == {}

    async def test_storage_without_cache(self, build_importer):
        importer, _ = build_importer({})

        with pytest.raises(StorageError):
            await importer.load_from_storage()


class FakeStore:

    def __init__(self):
        self.saved = []

    async def save_buckets(self, data, source_type=None):
        self.saved.append((data, source_type))


class TestImportRunner:

    async def test_runs_and_stores(self, build_importer):
        importer, _ = build_importer({"/r/a/top.json": listing(post("a1", 2000, "a"))})
        store = FakeStore()
        runner = ImportRunner(importer, store)

        runner.start(ImportOptions(subreddits=["a"], timeframes=["day"], include_all_time=False))
        await runner.wait()

        assert runner.progress.state == "completed"
        assert not runner.is_running
        data, source_type = store.saved[0]
        assert source_type == "reddit"
        assert [e.id for e in data[TODAY].events] == ["a1"]

    async def test_single_import_at_a_time(self, build_importer):
        gate = asyncio.Event()

        async def slow_listing(request):
            await gate.wait()
            return httpx.Response(200, json=listing())

        importer, _ = build_importer({})
        importer.reddit = RedditClient(transport=httpx.MockTransport(slow_listing))
        runner = ImportRunner(importer, FakeStore())

        runner.start(ImportOptions(subreddits=["a"], timeframes=["day"], include_all_time=False))
        with pytest.raises(ImportInProgressError):
            runner.start()

        assert runner.cancel()
        gate.set()
        await runner.wait()
        await importer.reddit.close()

        assert runner.progress.state == "cancelled"
        assert not runner.cancel()
