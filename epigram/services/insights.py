from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import orjson
from openai import AsyncOpenAI

from ..cache import CacheRepository
from ..config import Settings, get_settings
from ..models.news import InsightSource
from .exa import ExaClient

logger = logging.getLogger(__name__)

MEMO_PREFIX = "ai-insights:"

PROMPT_TEMPLATE = """As an expert journalist and storyteller, analyze these articles and write a clear, structured summary in exactly this format:

KEY TAKEAWAYS:
- 3-4 main points drawn from across all articles
- Each point in 1-2 sentences

MAIN STORY:
- The story told in 4-5 short paragraphs
- At most 2-3 sentences per paragraph, in plain language

KEY FACTS:
- 2-3 notable statistics or facts
- Name the source where relevant

WHAT'S NEXT:
- 2-3 bullet points on likely implications
- Stay grounded in the source material

Keep journalistic integrity while making the content easy to scan.

Source Articles:
{sources}"""

CancelCheck = Callable[[], Awaitable[bool]]

_llm: AsyncOpenAI | None = None


def memo_key(sources: list[InsightSource]) -> str:
    urls = sorted({source.url for source in sources})
    return MEMO_PREFIX + ",".join(urls)


def build_prompt(sources: list[InsightSource], max_chars: int) -> str:
    blocks = [
        f"URL: {source.url}\nContent: {(source.text or '')[:max_chars]}"
        for source in sources
    ]
    return PROMPT_TEMPLATE.format(sources="\n\n".join(blocks))


def format_event(text: str) -> str:
    return f"data: {orjson.dumps({'text': text}).decode()}\n\n"


async def encode_events(deltas: AsyncIterator[str]) -> AsyncIterator[str]:
    async for delta in deltas:
        yield format_event(delta)


def _delta_text(chunk: Any) -> str | None:
    choices = getattr(chunk, "choices", None)
    if not choices:
        return None
    delta = getattr(choices[0], "delta", None)
    return getattr(delta, "content", None)


def get_llm_client() -> AsyncOpenAI:
    global _llm
    if _llm is None:
        _llm = AsyncOpenAI(api_key=get_settings().openai_api_key)
    return _llm


async def shutdown_llm_client() -> None:
    global _llm
    if _llm is not None:
        await _llm.close()
        _llm = None


@dataclass(slots=True)
class InsightService:
    cache: CacheRepository
    settings: Settings | None = None
    search: ExaClient | None = None
    llm: AsyncOpenAI | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()
        if self.search is None:
            self.search = ExaClient(settings=self.settings)

    async def resolve_sources(self, query: str) -> list[InsightSource]:
        return await self.search.search_contents(query)

    async def cached(self, sources: list[InsightSource]) -> str | None:
        key = memo_key(sources)
        text = await self.cache.get_memo(key)
        if text:
            logger.info("Serving memoized insight for %d sources", len(sources))
            return text
        return None

    async def open_stream(self, sources: list[InsightSource]) -> Any:
        """Start the model completion; raises before any byte reaches the client."""
        llm = self.llm or get_llm_client()
        prompt = build_prompt(sources, self.settings.insight_max_source_chars)
        return await llm.chat.completions.create(
            model=self.settings.openai_model_name,
            messages=[{"role": "user", "content": prompt}],
            stream=True,
            timeout=self.settings.insight_max_duration,
        )

    async def relay(
        self,
        stream: Any,
        sources: list[InsightSource],
        is_cancelled: CancelCheck | None = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas from ``stream`` and memoize the full text once it completes."""
        key = memo_key(sources)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.insight_max_duration
        parts: list[str] = []
        completed = False
        try:
            async for chunk in stream:
                if is_cancelled is not None and await is_cancelled():
                    logger.info("Client disconnected, abandoning insight stream")
                    break
                if loop.time() > deadline:
                    logger.warning(
                        "Insight stream exceeded %.0fs, stopping",
                        self.settings.insight_max_duration,
                    )
                    break
                delta = _delta_text(chunk)
                if delta:
                    parts.append(delta)
                    yield delta
            else:
                completed = True
        finally:
            await stream.close()

        if completed and parts:
            await self.cache.set_memo(key, "".join(parts), self.settings.insight_cache_ttl)
