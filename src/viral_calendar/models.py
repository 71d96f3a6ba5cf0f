"""Pydantic data models for viral events and calendar days."""

from pydantic import BaseModel, Field, model_validator
from typing import Dict, Optional, List, Literal
from datetime import datetime

ContentType = Literal["tweet", "news", "meme", "video", "trend"]
SourceType = Literal["reddit", "hackernews", "newsapi", "twitter", "manual"]
Timeframe = Literal["hour", "day", "week", "month", "year", "all"]
ImportState = Literal["idle", "running", "completed", "partially_failed", "cancelled"]
JobStatus = Literal["pending", "running", "completed", "failed"]

ALL_SOURCES: List[str] = ["reddit", "hackernews", "newsapi", "twitter"]


class Event(BaseModel):
    """A single normalized viral/news item from one upstream source."""

    id: str = Field(..., description="Source-scoped identifier")
    title: str = Field(..., description="Display title")
    summary: str = Field(default="", description="Longer description or full title")
    post_count: int = Field(default=0, description="Engagement proxy used for ranking")
    hashtag: Optional[str] = Field(default=None, description="Representative hashtag")
    content_type: ContentType = Field(default="news", description="Heuristic content category")
    trending_rank: int = Field(default=1, description="1-based rank within its day")
    source: SourceType = Field(default="manual", description="Upstream provider")
    url: Optional[str] = Field(default=None, description="Permalink to the original item")

    def with_rank(self, rank: int) -> "Event":
        """Return a copy carrying a new rank."""
        return self.model_copy(update={"trending_rank": rank})

    class Config:
        frozen = True


class DayBucket(BaseModel):
    """The events attributed to one calendar date.

    ``has_viral_content`` and ``top_hashtag`` are always derived from the
    events, so whatever a caller passes for them is overwritten.
    """

    date: str = Field(..., description="Calendar day (YYYY-MM-DD)")
    events: List[Event] = Field(default_factory=list)
    has_viral_content: bool = False
    top_hashtag: Optional[str] = None

    @model_validator(mode="after")
    def _derive_summary(self) -> "DayBucket":
        self.events = sorted(self.events, key=lambda e: e.trending_rank)
        self.has_viral_content = bool(self.events)
        self.top_hashtag = self.events[0].hashtag if self.events else None
        return self

    @classmethod
    def build(cls, date: str, events: List[Event]) -> "DayBucket":
        """Rank events by descending engagement and wrap them as a day.

        The sort is stable, so equal ``post_count`` values keep their
        arrival order.
        """
        ordered = sorted(events, key=lambda e: e.post_count, reverse=True)
        ranked = [event.with_rank(i) for i, event in enumerate(ordered, 1)]
        return cls(date=date, events=ranked)

    @property
    def total_engagement(self) -> int:
        return sum(e.post_count for e in self.events)

    def intensity(self) -> str:
        """Bucket the day's total engagement for calendar shading."""
        if not self.has_viral_content:
            return "none"
        total = self.total_engagement
        if total > 2_000_000:
            return "high"
        if total > 500_000:
            return "medium"
        return "low"


class ImportProgress(BaseModel):
    """UI-facing snapshot of a running historical import."""

    total_units: int = 0
    completed_units: int = 0
    current_label: str = ""
    items_found_so_far: int = 0
    state: ImportState = "idle"


class RateLimitStatus(BaseModel):
    """Rate limit counters reported by an upstream API."""

    remaining: int
    reset_at: Optional[datetime] = None
    used: Optional[int] = None
    limit: Optional[int] = None


class SourceStatus(BaseModel):
    name: str
    source: SourceType
    is_available: bool
    rate_limit_remaining: int


class ImportJob(BaseModel):
    """A row of the remote import_jobs log."""

    id: Optional[str] = None
    status: JobStatus = "pending"
    source_type: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    events_imported: int = 0
    error_message: Optional[str] = None
    metadata: dict = Field(default_factory=dict)


class AggregateOptions(BaseModel):
    """Options for a live multi-source fetch."""

    sources: List[str] = Field(default_factory=lambda: ["reddit", "hackernews"])
    min_score: int = Field(default=500, ge=0)
    news_only: bool = True
    max_results: int = Field(default=100, ge=0)


class AggregationReport(BaseModel):
    """Result of a live fetch, with per-source bookkeeping."""

    bucket: DayBucket
    counts: Dict[str, int] = Field(default_factory=dict, description="Events returned per source")
    errors: Dict[str, str] = Field(default_factory=dict, description="Failure message per source")
    skipped: List[str] = Field(default_factory=list, description="Requested but unconfigured sources")


class ImportOptions(BaseModel):
    """Options for a historical Reddit backfill."""

    timeframes: List[Timeframe] = Field(default_factory=lambda: ["month", "year", "all"])
    min_score: int = 1000
    max_posts: int = 500
    subreddits: List[str] = Field(default_factory=list)
    include_all_time: bool = Field(default=True, description="Finish with an all-time r/all pass")
    news_only: bool = Field(default=False, description="Drop non-news events before storing")


def format_post_count(count: int) -> str:
    """Format an engagement count for display (e.g. 1.2M, 3.4K)."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)
