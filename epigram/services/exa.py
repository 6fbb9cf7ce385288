from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from ..config import Settings, get_settings
from ..errors import ProviderError
from ..http_client import get_http_client, upstream_timeout
from ..models.news import InsightSource, NewsArticle


@dataclass(slots=True)
class ExaClient:
    """Content extraction and search against the Exa API."""

    settings: Settings | None = None
    client: httpx.AsyncClient | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    async def get_contents(self, urls: list[str]) -> list[NewsArticle]:
        if not urls:
            return []
        results = await self._post("/contents", {"urls": urls, "text": True})
        return [NewsArticle.model_validate(result) for result in results]

    async def search_contents(self, query: str) -> list[InsightSource]:
        body = {
            "query": query,
            "numResults": self.settings.exa_search_results,
            "contents": {"text": True},
        }
        results = await self._post("/search", body)
        return [
            InsightSource(
                url=result["url"],
                text=result.get("text"),
                title=result.get("title"),
                favicon=result.get("favicon"),
            )
            for result in results
            if result.get("url")
        ]

    async def _post(self, path: str, body: dict[str, Any]) -> list[dict[str, Any]]:
        client = self.client or await get_http_client()
        url = f"{str(self.settings.exa_base_url).rstrip('/')}{path}"
        headers = {"x-api-key": self.settings.exa_api_key or ""}
        response = await client.post(
            url,
            json=body,
            headers=headers,
            timeout=upstream_timeout(self.settings, self.settings.exa_timeout),
        )
        response.raise_for_status()
        payload = response.json()
        results = payload.get("results")
        if not isinstance(results, list):
            raise ProviderError("exa", f"{path} response has no results array")
        return results
