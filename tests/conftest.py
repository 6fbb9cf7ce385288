from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from epigram.config import Settings
from epigram.models.news import NewsArticle


class InMemoryCache:
    """CacheRepository double keeping everything in dicts."""

    def __init__(self) -> None:
        self.buckets: dict[str, list[NewsArticle]] = {}
        self.memos: dict[str, tuple[str, int]] = {}
        self.bucket_writes: list[str] = []

    async def get_topic_bucket(self, topic: str) -> list[NewsArticle] | None:
        articles = self.buckets.get(topic)
        return list(articles) if articles is not None else None

    async def set_topic_bucket(self, topic: str, articles: list[NewsArticle]) -> None:
        self.bucket_writes.append(topic)
        self.buckets[topic] = list(articles)

    async def get_memo(self, key: str) -> str | None:
        entry = self.memos.get(key)
        return entry[0] if entry else None

    async def set_memo(self, key: str, value: str, ttl_seconds: int) -> None:
        self.memos[key] = (value, ttl_seconds)


class FakeStream:
    def __init__(self, deltas: list[str], delay: float = 0.0) -> None:
        self.delay = delay
        self._chunks = [
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=delta))])
            for delta in deltas
        ]
        # providers finish with an empty choice list carrying usage only
        self._chunks.append(SimpleNamespace(choices=[]))
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk

    async def close(self) -> None:
        self.closed = True


class FakeLLM:
    """Stands in for AsyncOpenAI; every completion streams the same deltas."""

    def __init__(
        self,
        deltas: list[str] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.deltas = deltas or ["Key ", "takeaways ", "here."]
        self.delay = delay
        self.error = error
        self.calls: list[dict] = []
        self.streams: list[FakeStream] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs) -> FakeStream:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        stream = FakeStream(self.deltas, self.delay)
        self.streams.append(stream)
        return stream


def make_article(title: str, published: str | None, url: str | None = None) -> NewsArticle:
    slug = title.lower().replace(" ", "-")
    return NewsArticle(
        id=slug,
        title=title,
        url=url or f"https://news.example/{slug}",
        text=f"Body of {title}",
        favicon="https://news.example/favicon.ico",
        publishedDate=published,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        mediastack_base_url="https://mediastack.test/v1",
        mediastack_api_key="media-key",
        exa_base_url="https://exa.test",
        exa_api_key="exa-key",
        openai_api_key="sk-test",
        cron_secret="cron-secret",
        cron_secret_header="x-epigram-cron-secret",
        ratelimit_storage_uri="async+memory://",
        per_topic_news_limit=10,
        populate_concurrency=2,
    )


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()
