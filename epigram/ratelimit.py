"""Fixed-window rate limiting for the AI-facing routes."""
from __future__ import annotations

import logging

from fastapi import Depends, Request
from limits import RateLimitItemPerSecond
from limits.aio.strategies import FixedWindowRateLimiter
from limits.storage import storage_from_string

from .config import Settings, get_settings
from .errors import RateLimitExceeded

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"

INSIGHT_PREFIX = "ai-insight"
SOURCES_PREFIX = "ai-insight-sources"


def client_identity(request: Request) -> str:
    """Best-effort client IP: first hop of X-Forwarded-For, else a shared sentinel."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return UNKNOWN_CLIENT


class RateLimiter:
    def __init__(self, storage_uri: str, amount: int, window_seconds: int):
        self.item = RateLimitItemPerSecond(amount, window_seconds)
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)

    @classmethod
    def from_settings(cls, settings: Settings) -> RateLimiter:
        return cls(
            settings.ratelimit_storage,
            settings.ratelimit_amount,
            settings.ratelimit_window_seconds,
        )

    async def hit(self, prefix: str, identity: str) -> bool:
        """Count one request; False once the window's quota is spent."""
        return await self.strategy.hit(self.item, f"{prefix}:{identity}")

    async def reset(self) -> None:
        await self.storage.reset()


_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        _limiter = RateLimiter.from_settings(get_settings())
    return _limiter


class RateLimited:
    """Route dependency rejecting callers over quota before anything else runs."""

    def __init__(self, prefix: str):
        self.prefix = prefix

    async def __call__(
        self,
        request: Request,
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> None:
        identity = client_identity(request)
        if not await limiter.hit(self.prefix, identity):
            key = f"{self.prefix}:{identity}"
            logger.info("Rate limit exceeded for %s", key)
            raise RateLimitExceeded(key)
