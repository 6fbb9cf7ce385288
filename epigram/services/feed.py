from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import unquote

import orjson
from dateutil import parser as date_parser

from ..cache import CacheRepository
from ..config import Settings, get_settings
from ..models.news import NewsArticle

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: tuple[str, ...] = ("general", "technology", "science", "health")

_COMPACT_DATE = re.compile(r"^\d{12}$")
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def parse_categories(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [name.strip().lower() for name in raw.split(",") if name.strip()]


def followed_topics_from_cookie(value: str | None) -> list[str]:
    """Decode the ``followedTopics`` cookie, a URL-encoded JSON array."""
    if not value:
        return []
    try:
        topics = orjson.loads(unquote(value))
    except orjson.JSONDecodeError:
        logger.warning("Ignoring malformed followedTopics cookie")
        return []
    if not isinstance(topics, list):
        return []
    return [str(topic).strip().lower() for topic in topics if str(topic).strip()]


def parse_published_date(value: str | None) -> datetime | None:
    if not value:
        return None
    if _COMPACT_DATE.match(value):
        try:
            parsed = datetime.strptime(value, "%Y%m%d%H%M")
        except ValueError:
            return None
    else:
        try:
            parsed = date_parser.parse(value)
        except (ValueError, TypeError, OverflowError):
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def unique_by(articles: Iterable[NewsArticle], key: str = "title") -> list[NewsArticle]:
    """Drop repeats of ``key``, keeping the first article seen."""
    seen: set[object] = set()
    unique: list[NewsArticle] = []
    for article in articles:
        value = getattr(article, key, None)
        if value in seen:
            continue
        seen.add(value)
        unique.append(article)
    return unique


def sort_by_recency(articles: list[NewsArticle]) -> list[NewsArticle]:
    # stable, so equal or unparseable dates keep their merge order
    return sorted(
        articles,
        key=lambda article: parse_published_date(article.published_date) or _OLDEST,
        reverse=True,
    )


@dataclass(slots=True)
class FeedService:
    cache: CacheRepository
    settings: Settings | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    async def top_articles(self, categories: Sequence[str]) -> list[NewsArticle]:
        merged: list[NewsArticle] = []
        for category in categories or DEFAULT_CATEGORIES:
            bucket = await self.cache.get_topic_bucket(category)
            if not bucket:
                continue
            merged.extend(bucket)
        unique = unique_by(merged, "title")
        return sort_by_recency(unique)[: self.settings.feed_max_articles]
