"""Title normalization, deduplication keys and the news policy filter."""

import re
import unicodedata
import logging
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Sequence

from .models import Event

logger = logging.getLogger(__name__)

DEDUPE_KEY_LENGTH = 30

DEFAULT_NEWS_MARKERS = ("news", "politics", "science", "technology")


def normalize_title(title: str) -> str:
    """
    Normalize a title before comparison.

    Rules:
    - Remove zero-width and invisible Unicode characters
    - NFKC normalization
    - Convert to lowercase
    - Collapse multiple spaces to single space
    """
    if not title:
        return ""

    title = re.sub(r'[\u200b-\u200f\u2028-\u202f\ufeff\u00ad]', '', title)
    title = unicodedata.normalize('NFKC', title)
    title = title.lower()
    title = ' '.join(title.split())

    return title.strip()


def dedupe_key(title: str, length: int = DEDUPE_KEY_LENGTH) -> str:
    """Key used to detect the same story reported by different sources.

    "Breaking News Today" and "breaking news today!!" share a key.
    """
    return re.sub(r'[^a-z0-9]', '', normalize_title(title))[:length]


def dedupe_by_title(events: Iterable[Event]) -> List[Event]:
    """Drop events whose title key was already seen. First occurrence wins."""
    seen = set()
    unique = []
    for event in events:
        key = dedupe_key(event.title)
        if key in seen:
            logger.debug(f"Duplicate title dropped: {event.title[:40]} ({event.source})")
            continue
        seen.add(key)
        unique.append(event)
    return unique


def is_news_event(event: Event, markers: Optional[Sequence[str]] = None) -> bool:
    """News policy: news content type, or a hashtag containing a news marker."""
    if event.content_type == "news":
        return True
    if not event.hashtag:
        return False
    hashtag = event.hashtag.lower()
    return any(marker in hashtag for marker in (markers or DEFAULT_NEWS_MARKERS))


def filter_news_events(events: Iterable[Event], markers: Optional[Sequence[str]] = None) -> List[Event]:
    return [e for e in events if is_news_event(e, markers)]


def date_key(value: date) -> str:
    """Calendar key (YYYY-MM-DD) for a date or datetime."""
    return value.strftime("%Y-%m-%d")


def today_key() -> str:
    """Key for the current UTC day; events are filed under their fetch date."""
    return date_key(datetime.now(timezone.utc))
