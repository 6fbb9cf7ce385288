from __future__ import annotations

from dataclasses import dataclass

import httpx

from ..config import Settings, get_settings
from ..errors import ProviderError
from ..http_client import get_http_client
from ..models.news import ListingEntry


@dataclass(slots=True)
class MediastackClient:
    settings: Settings | None = None
    client: httpx.AsyncClient | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    async def latest(self, category: str, limit: int) -> list[ListingEntry]:
        client = self.client or await get_http_client()
        url = f"{str(self.settings.mediastack_base_url).rstrip('/')}/news"
        params = {
            "access_key": self.settings.mediastack_api_key or "",
            "languages": "en",
            "countries": "us",
            "categories": category,
            "limit": limit,
        }
        response = await client.get(url, params=params)
        response.raise_for_status()
        payload = response.json()
        if "error" in payload:
            error = payload["error"] or {}
            raise ProviderError("mediastack", str(error.get("message") or error))
        data = payload.get("data")
        if not isinstance(data, list):
            raise ProviderError("mediastack", "listing response has no data array")
        return [ListingEntry.model_validate(entry) for entry in data if entry.get("url")]
