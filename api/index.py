from __future__ import annotations

import hmac
import logging
from urllib.parse import quote

import orjson
from fastapi import Cookie, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import (
    ORJSONResponse,
    PlainTextResponse,
    Response,
    StreamingResponse,
)
from mangum import Mangum

from epigram.cache import CacheRepository, get_cache_repository, shutdown_redis
from epigram.config import Settings, get_settings
from epigram.errors import (
    MSG_NO_SOURCES,
    MSG_POPULATE_FAILED,
    MSG_POPULATED,
    MSG_QUERY_OR_SOURCES_REQUIRED,
    MSG_QUERY_REQUIRED,
    STATUS_BAD_GATEWAY,
    STATUS_BAD_REQUEST,
    CronSecretMismatch,
    install_error_handlers,
)
from epigram.http_client import shutdown_http_client
from epigram.middleware import SecurityHeadersMiddleware
from epigram.models import InsightRequest, TopicSelection
from epigram.ratelimit import INSIGHT_PREFIX, SOURCES_PREFIX, RateLimited
from epigram.services import (
    DEFAULT_CATEGORIES,
    TOPICS,
    FeedService,
    InsightService,
    PopulationJob,
    encode_events,
    followed_topics_from_cookie,
    format_event,
    parse_categories,
    shutdown_llm_client,
)
from epigram.urls import get_base_url, get_environment

FOLLOWED_TOPICS_COOKIE = "followedTopics"
FOLLOWED_TOPICS_MAX_AGE = 60 * 60 * 24 * 365

FEED_CACHE_CONTROL = "public, s-maxage=300"
SOURCES_CACHE_CONTROL = "public, max-age=86400"

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Epigram News API",
    version="0.1.0",
    description="Topic news feeds with streamed AI summaries, built for serverless deployment.",
    default_response_class=ORJSONResponse,
)
install_error_handlers(app)
app.add_middleware(SecurityHeadersMiddleware)


def get_feed_service(
    cache: CacheRepository = Depends(get_cache_repository),
    settings: Settings = Depends(get_settings),
) -> FeedService:
    return FeedService(cache=cache, settings=settings)


def get_population_job(
    cache: CacheRepository = Depends(get_cache_repository),
    settings: Settings = Depends(get_settings),
) -> PopulationJob:
    return PopulationJob(cache=cache, settings=settings)


def get_insight_service(
    cache: CacheRepository = Depends(get_cache_repository),
    settings: Settings = Depends(get_settings),
) -> InsightService:
    return InsightService(cache=cache, settings=settings)


def verify_cron_secret(
    request: Request, settings: Settings = Depends(get_settings)
) -> None:
    presented = request.headers.get(settings.cron_secret_header)
    expected = settings.cron_secret
    if not presented or not expected:
        raise CronSecretMismatch()
    if not hmac.compare_digest(presented.encode(), expected.encode()):
        raise CronSecretMismatch()


def event_response(text: str) -> Response:
    return Response(content=format_event(text), media_type="text/event-stream")


@app.get("/health", tags=["system"])
async def healthcheck(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    return {"status": "ok", "environment": get_environment(settings)}


@app.get("/api/news", tags=["news"])
async def news_feed(
    categories: str | None = Query(
        None, description="Comma separated topics, e.g. general,technology"
    ),
    followed_topics: str | None = Cookie(None, alias=FOLLOWED_TOPICS_COOKIE),
    service: FeedService = Depends(get_feed_service),
):
    topics = (
        parse_categories(categories)
        or followed_topics_from_cookie(followed_topics)
        or list(DEFAULT_CATEGORIES)
    )
    articles = await service.top_articles(topics)
    return ORJSONResponse(
        [article.to_json() for article in articles],
        headers={"Cache-Control": FEED_CACHE_CONTROL},
    )


@app.get(
    "/api/news/populate",
    tags=["news"],
    dependencies=[Depends(verify_cron_secret)],
    response_class=PlainTextResponse,
)
async def populate_news(job: PopulationJob = Depends(get_population_job)):
    report = await job.run()
    failed = report.failed_topics
    if failed:
        logger.warning("Population finished with failed topics: %s", failed)
        return PlainTextResponse(
            MSG_POPULATE_FAILED.format(topics=", ".join(failed)),
            status_code=STATUS_BAD_GATEWAY,
        )
    return PlainTextResponse(MSG_POPULATED)


@app.get(
    "/api/news/ai-insights/sources",
    tags=["insights"],
    dependencies=[Depends(RateLimited(SOURCES_PREFIX))],
)
async def insight_sources(
    query: str | None = Query(None, description="Free text search for related coverage"),
    service: InsightService = Depends(get_insight_service),
):
    if not query or not query.strip():
        return ORJSONResponse({"error": MSG_QUERY_REQUIRED}, status_code=STATUS_BAD_REQUEST)
    sources = await service.resolve_sources(query.strip())
    return ORJSONResponse(
        {"sources": [source.model_dump() for source in sources]},
        headers={"Cache-Control": SOURCES_CACHE_CONTROL},
    )


@app.post(
    "/api/news/ai-insights",
    tags=["insights"],
    dependencies=[Depends(RateLimited(INSIGHT_PREFIX))],
)
async def ai_insights(
    request: Request,
    body: InsightRequest | None = None,
    query: str | None = Query(None),
    service: InsightService = Depends(get_insight_service),
):
    """Stream a summary of the sources as server-sent events.

    Events arrive incrementally only under an ASGI server such as uvicorn.
    The Mangum ``handler`` buffers the whole body before Lambda returns it,
    so clients there receive every event at once; incremental delivery on
    Lambda needs response streaming in front of the app.
    """
    sources = body.sources if body else []
    if not sources:
        if not query or not query.strip():
            return ORJSONResponse(
                {"error": MSG_QUERY_OR_SOURCES_REQUIRED}, status_code=STATUS_BAD_REQUEST
            )
        sources = await service.resolve_sources(query.strip())
    if not sources:
        return event_response(MSG_NO_SOURCES)

    cached = await service.cached(sources)
    if cached:
        return event_response(cached)

    stream = await service.open_stream(sources)
    return StreamingResponse(
        encode_events(service.relay(stream, sources, request.is_disconnected)),
        media_type="text/event-stream",
    )


@app.get("/api/topics", tags=["topics"])
async def list_topics(
    followed_topics: str | None = Cookie(None, alias=FOLLOWED_TOPICS_COOKIE),
):
    followed = [topic for topic in followed_topics_from_cookie(followed_topics) if topic in TOPICS]
    return {"topics": list(TOPICS), "followed": followed}


@app.put("/api/topics", tags=["topics"])
async def follow_topics(selection: TopicSelection):
    topics = list(dict.fromkeys(topic.strip().lower() for topic in selection.topics))
    unknown = [topic for topic in topics if topic not in TOPICS]
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown topics: {', '.join(unknown)}")
    response = ORJSONResponse({"topics": list(TOPICS), "followed": topics})
    response.set_cookie(
        FOLLOWED_TOPICS_COOKIE,
        quote(orjson.dumps(topics).decode()),
        max_age=FOLLOWED_TOPICS_MAX_AGE,
        path="/",
    )
    return response


@app.on_event("startup")
async def on_startup() -> None:
    settings = get_settings()
    logger.info(
        "Epigram API starting (environment=%s, base_url=%s)",
        get_environment(settings),
        get_base_url(settings),
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await shutdown_http_client()
    await shutdown_redis()
    await shutdown_llm_client()


handler = Mangum(app)
