"""
Consumer side of the API: fetches the feed and relays streamed insights.

``relay_insight`` accumulates ``data: {"text": ...}`` events into a buffer and
emits it at most once per throttle interval, with a final flush when the
stream ends.
"""
from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

import httpx
import orjson

from .config import Settings, get_settings
from .http_client import get_http_client
from .models.news import InsightSource, NewsArticle
from .urls import build_api_url

logger = logging.getLogger(__name__)

UPDATE_INTERVAL = 0.2


def parse_event_line(line: str) -> str | None:
    """Text delta carried by one stream line, or None for anything else."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    payload = line[len("data:") :].strip()
    if not payload:
        return None
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError:
        logger.warning("Skipping malformed stream line: %.80s", payload)
        return None
    if not isinstance(data, dict) or not isinstance(data.get("text"), str):
        logger.warning("Skipping stream event without text: %.80s", payload)
        return None
    return data["text"]


async def relay_insight(
    lines: AsyncIterator[str],
    interval: float = UPDATE_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
) -> AsyncIterator[str]:
    buffer = ""
    last_emit: float | None = None
    emitted = ""
    async for line in lines:
        delta = parse_event_line(line)
        if not delta:
            continue
        buffer += delta
        now = clock()
        if last_emit is None or now - last_emit >= interval:
            last_emit = now
            emitted = buffer
            yield buffer
    if buffer != emitted:
        yield buffer


@dataclass(slots=True)
class EpigramClient:
    settings: Settings | None = None
    client: httpx.AsyncClient | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    async def top_news(self, categories: list[str] | None = None) -> list[NewsArticle]:
        client = self.client or await get_http_client()
        params = {"categories": ",".join(categories) if categories else None}
        response = await client.get(build_api_url("/api/news", params, self.settings))
        response.raise_for_status()
        return [NewsArticle.model_validate(item) for item in response.json()]

    async def stream_insight(
        self,
        sources: list[InsightSource] | None = None,
        query: str | None = None,
        interval: float = UPDATE_INTERVAL,
    ) -> AsyncIterator[str]:
        client = self.client or await get_http_client()
        url = build_api_url("/api/news/ai-insights", {"query": query}, self.settings)
        body = {"sources": [source.model_dump(exclude_none=True) for source in sources or []]}
        async with client.stream("POST", url, json=body) as response:
            response.raise_for_status()
            async for snapshot in relay_insight(response.aiter_lines(), interval):
                yield snapshot
