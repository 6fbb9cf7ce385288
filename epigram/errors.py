"""
Error taxonomy for the HTTP surface.

Message constants and exception types live here so routes stay thin; the
handlers registered by ``install_error_handlers`` render them as plain text.
"""
from __future__ import annotations

import logging

import openai
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

logger = logging.getLogger(__name__)

MSG_CRON_SECRET_MISMATCH = "Cron secret doesn't match"
MSG_RATE_LIMITED = "Too many requests"
MSG_QUERY_REQUIRED = "Query is required"
MSG_QUERY_OR_SOURCES_REQUIRED = "Query or sources are required"
MSG_NO_SOURCES = "No sources found for this story."
MSG_POPULATED = "Populated news successfully"
MSG_POPULATE_FAILED = "Failed to populate topics: {topics}"
MSG_INSIGHT_UNAVAILABLE = "Insight generation is unavailable right now"

STATUS_BAD_REQUEST = 400
STATUS_TOO_MANY_REQUESTS = 429
STATUS_BAD_GATEWAY = 502


class EpigramError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CronSecretMismatch(EpigramError):
    status_code = STATUS_BAD_REQUEST

    def __init__(self) -> None:
        super().__init__(MSG_CRON_SECRET_MISMATCH)


class RateLimitExceeded(EpigramError):
    status_code = STATUS_TOO_MANY_REQUESTS

    def __init__(self, key: str) -> None:
        super().__init__(MSG_RATE_LIMITED)
        self.key = key


class ProviderError(EpigramError):
    """An upstream provider answered with something we cannot use."""

    status_code = STATUS_BAD_GATEWAY

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


async def _epigram_error_handler(request: Request, exc: EpigramError) -> PlainTextResponse:
    return PlainTextResponse(exc.message, status_code=exc.status_code)


async def _openai_error_handler(request: Request, exc: openai.APIError) -> PlainTextResponse:
    logger.error("Language model request failed for %s: %s", request.url.path, exc)
    return PlainTextResponse(MSG_INSIGHT_UNAVAILABLE, status_code=STATUS_BAD_GATEWAY)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EpigramError, _epigram_error_handler)
    app.add_exception_handler(openai.APIError, _openai_error_handler)
