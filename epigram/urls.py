"""Base URL detection for self-referential requests."""
from __future__ import annotations

from typing import Literal
from urllib.parse import urlencode, urljoin

from .config import Settings, get_settings

Environment = Literal["development", "preview", "production"]

DEFAULT_PORT = 3000


def get_base_url(
    settings: Settings | None = None,
    *,
    port: int | None = None,
) -> str:
    settings = settings or get_settings()
    # Vercel hosts are always served over https
    if settings.vercel_project_production_url:
        return f"https://{settings.vercel_project_production_url}"
    if settings.vercel_url:
        return f"https://{settings.vercel_url}"
    if settings.base_url:
        return settings.base_url.rstrip("/")
    return f"http://localhost:{port or DEFAULT_PORT}"


def build_api_url(
    path: str,
    params: dict[str, str | int | bool | None] | None = None,
    settings: Settings | None = None,
) -> str:
    url = urljoin(get_base_url(settings) + "/", path.lstrip("/"))
    query = {
        key: str(value).lower() if isinstance(value, bool) else str(value)
        for key, value in (params or {}).items()
        if value is not None
    }
    if query:
        url = f"{url}?{urlencode(query)}"
    return url


def get_environment(settings: Settings | None = None) -> Environment:
    settings = settings or get_settings()
    if settings.vercel_env in ("development", "preview", "production"):
        return settings.vercel_env  # type: ignore[return-value]
    if settings.app_env == "production":
        return "production"
    return "development"
