from .base import SourceClient
from .reddit import RedditClient
from .hackernews import HackerNewsClient
from .newsapi import NewsApiClient
from .x import XClient

__all__ = [
    "SourceClient",
    "RedditClient", "HackerNewsClient", "NewsApiClient", "XClient",
]
