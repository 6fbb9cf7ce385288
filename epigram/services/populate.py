from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import urlparse

from ..cache import CacheRepository
from ..config import Settings, get_settings
from ..models.news import ListingEntry, NewsArticle, PopulateReport, TopicOutcome
from .exa import ExaClient
from .mediastack import MediastackClient

logger = logging.getLogger(__name__)

TOPICS: tuple[str, ...] = (
    "general",
    "business",
    "entertainment",
    "health",
    "science",
    "sports",
    "technology",
)

# Job boards and link aggregators, not news
EXCLUDED_HOSTS: frozenset[str] = frozenset(
    {"ycombinator.com", "news.ycombinator.com", "jobs.ashbyhq.com"}
)


def filter_listing(
    entries: list[ListingEntry], excluded: frozenset[str] = EXCLUDED_HOSTS
) -> list[ListingEntry]:
    kept: list[ListingEntry] = []
    for entry in entries:
        host = urlparse(entry.url).hostname
        if not host:
            logger.debug("Skipping listing entry without a host: %r", entry.url)
            continue
        if host in excluded:
            logger.debug("Skipping excluded host %s", host)
            continue
        kept.append(entry)
    return kept


def backfill_published_dates(
    articles: list[NewsArticle], entries: list[ListingEntry]
) -> list[NewsArticle]:
    """Prefer the listing's publish time; extracted dates are often the first-ever publication."""
    published = {entry.url: entry.published_at for entry in entries}
    for article in articles:
        listed = published.get(article.url)
        if listed:
            article.published_date = listed
    return articles


@dataclass(slots=True)
class PopulationJob:
    cache: CacheRepository
    settings: Settings | None = None
    listing: MediastackClient | None = None
    extractor: ExaClient | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()
        if self.listing is None:
            self.listing = MediastackClient(settings=self.settings)
        if self.extractor is None:
            self.extractor = ExaClient(settings=self.settings)

    async def run(self, topics: tuple[str, ...] = TOPICS) -> PopulateReport:
        semaphore = asyncio.Semaphore(self.settings.populate_concurrency)

        async def bounded(topic: str) -> int:
            async with semaphore:
                return await self.populate_topic(topic)

        results = await asyncio.gather(
            *(bounded(topic) for topic in topics), return_exceptions=True
        )
        outcomes: list[TopicOutcome] = []
        for topic, result in zip(topics, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("Populating topic %s failed: %r", topic, result)
                outcomes.append(TopicOutcome(topic=topic, error=str(result) or repr(result)))
            else:
                outcomes.append(TopicOutcome(topic=topic, stored=result))
        return PopulateReport(outcomes=outcomes)

    async def populate_topic(self, topic: str) -> int:
        entries = await self.listing.latest(topic, self.settings.per_topic_news_limit)
        kept = filter_listing(entries)
        articles = await self.extractor.get_contents([entry.url for entry in kept])
        backfill_published_dates(articles, kept)
        await self.cache.set_topic_bucket(topic, articles)
        logger.info(
            "Stored %d articles for %s (%d listed, %d excluded)",
            len(articles),
            topic,
            len(entries),
            len(entries) - len(kept),
        )
        return len(articles)
