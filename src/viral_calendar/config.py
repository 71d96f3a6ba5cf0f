"""Configuration settings using Pydantic."""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Reddit
    reddit_base_url: str = Field(default="https://www.reddit.com", description="Reddit public JSON API")
    reddit_user_agent: str = Field(
        default="ViralCalendar/1.0 (by /u/viralcalendar)",
        description="User-Agent sent to Reddit (required by their API rules)",
    )
    reddit_timeout: float = Field(default=15.0, description="Reddit request timeout in seconds")

    # Hacker News
    hackernews_base_url: str = Field(default="https://hacker-news.firebaseio.com/v0", description="HN Firebase API")
    hackernews_search_url: str = Field(default="https://hn.algolia.com/api/v1", description="HN Algolia search API")
    hackernews_timeout: float = Field(default=10.0, description="Hacker News request timeout in seconds")

    # NewsAPI
    news_api_key: str = Field(default="", description="NewsAPI.org API key")
    news_api_base_url: str = Field(default="https://newsapi.org/v2", description="NewsAPI base URL")
    news_api_timeout: float = Field(default=15.0, description="NewsAPI request timeout in seconds")

    # X / Twitter
    x_bearer_token: str = Field(default="", description="X API v2 bearer token")
    x_api_base_url: str = Field(default="https://api.twitter.com/2", description="X API base URL")
    x_timeout: float = Field(default=10.0, description="X request timeout in seconds")

    # Supabase
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_key: str = Field(default="", description="Supabase service role or anon key")

    # Local cache
    database_path: str = Field(default="./data/viral_calendar.db", description="SQLite cache path")

    # Historical import
    import_delay_ms: int = Field(default=2000, description="Pause between subreddit requests")
    import_min_score: int = Field(default=1000, description="Minimum Reddit score for imported posts")
    import_max_posts: int = Field(default=500, description="Approximate cap on imported posts")
    import_timeframes: str = Field(default="month,year,all", description="Comma-separated Reddit timeframes")
    import_subreddits: str = Field(
        default="worldnews,news,politics,science,technology,nottheonion,UpliftingNews,TrueReddit,newsbot,inthenews",
        description="Comma-separated subreddits to backfill from",
    )

    # Aggregator
    aggregator_sources: str = Field(default="reddit,hackernews", description="Comma-separated default sources")
    aggregator_min_score: int = Field(default=500, description="Minimum engagement for aggregated events")
    aggregator_max_results: int = Field(default=100, description="Maximum events in an aggregated day")
    news_only: bool = Field(default=True, description="Keep only news-like events when aggregating")
    news_markers: str = Field(
        default="news,politics,science,technology",
        description="Hashtag substrings treated as news",
    )

    # Shared secrets
    cron_secret: str = Field(default="", description="Secret expected in the x-cron-secret header")
    admin_secret: str = Field(default="", description="Secret expected in the x-admin-secret header")

    # Scheduler
    scheduler_enabled: bool = Field(default=False, description="Run the viral fetch job in-process")
    cron_interval_hours: float = Field(default=6.0, description="Hours between scheduled fetches")

    # API server
    api_host: str = Field(default="0.0.0.0", description="API bind address")
    api_port: int = Field(default=8080, description="API server port")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def timeframe_list(self) -> List[str]:
        """Parse import timeframes into list."""
        return [t.lower() for t in _split_csv(self.import_timeframes)]

    @property
    def subreddit_list(self) -> List[str]:
        return _split_csv(self.import_subreddits)

    @property
    def source_list(self) -> List[str]:
        return [s.lower() for s in _split_csv(self.aggregator_sources)]

    @property
    def news_marker_list(self) -> List[str]:
        return [m.lower() for m in _split_csv(self.news_markers)]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Global settings instance
settings = Settings()
