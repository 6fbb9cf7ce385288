import asyncio
import logging

import httpx

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

_client: httpx.AsyncClient | None = None
_client_lock = asyncio.Lock()


def upstream_timeout(settings: Settings, seconds: float | None = None) -> httpx.Timeout:
    """Read/write/pool budget of ``seconds`` (default ``HTTP_TIMEOUT``) with the shared connect budget.

    Exa extraction passes ``EXA_TIMEOUT`` per request; mediastack keeps the client default.
    """
    return httpx.Timeout(
        seconds if seconds is not None else settings.http_timeout,
        connect=settings.http_connect_timeout,
    )


async def get_http_client() -> httpx.AsyncClient:
    """Shared client for mediastack and Exa."""
    global _client

    if _client is None:
        async with _client_lock:
            if _client is None:
                settings = get_settings()
                limits = httpx.Limits(
                    max_connections=settings.http_max_connections,
                    max_keepalive_connections=settings.http_max_keepalive,
                )
                # mediastack and Exa both answer JSON
                _client = httpx.AsyncClient(
                    timeout=upstream_timeout(settings),
                    limits=limits,
                    headers={
                        "User-Agent": settings.http_user_agent,
                        "Accept": "application/json",
                    },
                )
                logger.debug(
                    "Created shared HTTP client (timeout=%ss, connect=%ss, exa=%ss)",
                    settings.http_timeout,
                    settings.http_connect_timeout,
                    settings.exa_timeout,
                )
    return _client


async def shutdown_http_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
