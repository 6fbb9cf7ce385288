"""
Narrow repository over the shared key-value store.

Routes and services only ever talk to ``CacheRepository``; the Redis
implementation is the production one and tests substitute their own.
"""
from __future__ import annotations

import logging
from typing import Protocol

import orjson
from pydantic import ValidationError
from redis.asyncio import Redis

from .config import get_settings
from .models.news import NewsArticle

logger = logging.getLogger(__name__)

TOPIC_PREFIX = "news:"

_redis: Redis | None = None


def topic_key(topic: str) -> str:
    return f"{TOPIC_PREFIX}{topic}"


class CacheRepository(Protocol):
    async def get_topic_bucket(self, topic: str) -> list[NewsArticle] | None: ...

    async def set_topic_bucket(self, topic: str, articles: list[NewsArticle]) -> None: ...

    async def get_memo(self, key: str) -> str | None: ...

    async def set_memo(self, key: str, value: str, ttl_seconds: int) -> None: ...


class RedisCacheRepository:
    def __init__(self, redis: Redis):
        self.redis = redis

    async def get_topic_bucket(self, topic: str) -> list[NewsArticle] | None:
        raw = await self.redis.get(topic_key(topic))
        if raw is None:
            return None
        try:
            payload = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("Discarding unreadable bucket for topic %s", topic)
            return None
        if not isinstance(payload, list):
            logger.warning("Bucket for topic %s is not a list", topic)
            return None
        articles: list[NewsArticle] = []
        for item in payload:
            try:
                articles.append(NewsArticle.model_validate(item))
            except ValidationError as exc:
                logger.warning(
                    "Skipping invalid article in bucket %s: %s", topic, exc.errors()[:1]
                )
        return articles

    async def set_topic_bucket(self, topic: str, articles: list[NewsArticle]) -> None:
        # single SET so readers never observe a partially written bucket
        payload = orjson.dumps([article.to_json() for article in articles])
        await self.redis.set(topic_key(topic), payload)

    async def get_memo(self, key: str) -> str | None:
        value = await self.redis.get(key)
        if isinstance(value, bytes):
            return value.decode()
        return value

    async def set_memo(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.redis.set(key, value, ex=ttl_seconds)


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(get_settings().redis_url, decode_responses=True)
    return _redis


def get_cache_repository() -> CacheRepository:
    return RedisCacheRepository(get_redis())


async def shutdown_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
