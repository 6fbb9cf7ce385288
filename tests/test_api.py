import logging
from urllib.parse import quote

import httpx
import openai
import pytest
import pytest_asyncio
from conftest import make_article

from api.index import (
    app,
    get_insight_service,
    get_population_job,
    on_startup,
)
from epigram.cache import get_cache_repository
from epigram.config import get_settings
from epigram.models.news import InsightSource, PopulateReport, TopicOutcome
from epigram.ratelimit import RateLimiter, get_rate_limiter
from epigram.services.insights import InsightService, memo_key


class StubSearch:
    def __init__(self, sources: list[InsightSource]) -> None:
        self.sources = sources
        self.queries: list[str] = []

    async def search_contents(self, query: str) -> list[InsightSource]:
        self.queries.append(query)
        return self.sources


class StubJob:
    def __init__(self, report: PopulateReport) -> None:
        self.report = report
        self.runs = 0

    async def run(self) -> PopulateReport:
        self.runs += 1
        return self.report


@pytest.fixture
def search() -> StubSearch:
    return StubSearch([InsightSource(url="https://a.example/story", text="Report")])


@pytest_asyncio.fixture
async def api(cache, settings, llm, search):
    limiter = RateLimiter("async+memory://", amount=5, window_seconds=60)
    app.dependency_overrides[get_cache_repository] = lambda: cache
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_insight_service] = lambda: InsightService(
        cache=cache, settings=settings, search=search, llm=llm
    )
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(api, settings) -> None:
    settings.vercel_env = "preview"

    response = await api.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "environment": "preview"}
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"


@pytest.mark.asyncio
async def test_news_feed_merges_requested_categories(api, cache) -> None:
    cache.buckets["general"] = [make_article("Older", "2024-05-01T00:00:00Z")]
    cache.buckets["technology"] = [make_article("Newer", "2024-05-02T00:00:00Z")]

    response = await api.get("/api/news", params={"categories": "general,technology"})

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, s-maxage=300"
    payload = response.json()
    assert [item["title"] for item in payload] == ["Newer", "Older"]
    assert payload[0]["publishedDate"] == "2024-05-02T00:00:00Z"


@pytest.mark.asyncio
async def test_news_feed_falls_back_to_followed_topics_cookie(api, cache) -> None:
    cache.buckets["general"] = [make_article("General story", "2024-05-01T00:00:00Z")]
    cache.buckets["sports"] = [make_article("Sports story", "2024-05-01T00:00:00Z")]

    response = await api.get(
        "/api/news",
        headers={"Cookie": "followedTopics=" + quote('["Sports"]')},
    )

    assert [item["title"] for item in response.json()] == ["Sports story"]


@pytest.mark.asyncio
async def test_populate_rejects_bad_secret(api) -> None:
    job = StubJob(PopulateReport())
    app.dependency_overrides[get_population_job] = lambda: job

    response = await api.get(
        "/api/news/populate", headers={"x-epigram-cron-secret": "wrong"}
    )
    missing = await api.get("/api/news/populate")

    assert response.status_code == 400
    assert response.text == "Cron secret doesn't match"
    assert missing.status_code == 400
    assert job.runs == 0


@pytest.mark.asyncio
async def test_populate_reports_success_and_failures(api) -> None:
    ok = StubJob(PopulateReport(outcomes=[TopicOutcome(topic="general", stored=4)]))
    app.dependency_overrides[get_population_job] = lambda: ok
    headers = {"x-epigram-cron-secret": "cron-secret"}

    response = await api.get("/api/news/populate", headers=headers)

    assert response.status_code == 200
    assert response.text == "Populated news successfully"

    broken = StubJob(
        PopulateReport(
            outcomes=[
                TopicOutcome(topic="general", stored=4),
                TopicOutcome(topic="sports", error="timeout"),
            ]
        )
    )
    app.dependency_overrides[get_population_job] = lambda: broken

    response = await api.get("/api/news/populate", headers=headers)

    assert response.status_code == 502
    assert response.text == "Failed to populate topics: sports"


@pytest.mark.asyncio
async def test_sources_requires_query(api) -> None:
    response = await api.get("/api/news/ai-insights/sources")

    assert response.status_code == 400
    assert response.json() == {"error": "Query is required"}


@pytest.mark.asyncio
async def test_sources_returns_search_results(api, search) -> None:
    response = await api.get("/api/news/ai-insights/sources", params={"query": "tariffs"})

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, max-age=86400"
    assert response.json()["sources"][0]["url"] == "https://a.example/story"
    assert search.queries == ["tariffs"]


@pytest.mark.asyncio
async def test_sources_rate_limited_per_client(api) -> None:
    headers = {"x-forwarded-for": "203.0.113.9"}
    statuses = [
        (
            await api.get(
                "/api/news/ai-insights/sources", params={"query": "x"}, headers=headers
            )
        ).status_code
        for _ in range(6)
    ]
    rejected = await api.get(
        "/api/news/ai-insights/sources", params={"query": "x"}, headers=headers
    )
    other = await api.get(
        "/api/news/ai-insights/sources",
        params={"query": "x"},
        headers={"x-forwarded-for": "198.51.100.4"},
    )

    assert statuses == [200, 200, 200, 200, 200, 429]
    assert rejected.text == "Too many requests"
    assert other.status_code == 200


@pytest.mark.asyncio
async def test_insight_streams_then_serves_memo(api, cache, llm) -> None:
    body = {"sources": [{"url": "https://a.example/story", "text": "Report"}]}

    streamed = await api.post("/api/news/ai-insights", json=body)
    memoized = await api.post("/api/news/ai-insights", json=body)

    assert streamed.status_code == 200
    assert streamed.headers["content-type"].startswith("text/event-stream")
    assert streamed.text == (
        'data: {"text":"Key "}\n\n'
        'data: {"text":"takeaways "}\n\n'
        'data: {"text":"here."}\n\n'
    )
    assert memoized.text == 'data: {"text":"Key takeaways here."}\n\n'
    assert len(llm.calls) == 1
    key = memo_key([InsightSource(url="https://a.example/story")])
    assert cache.memos[key][0] == "Key takeaways here."


@pytest.mark.asyncio
async def test_insight_model_failure_is_bad_gateway(api, cache, llm) -> None:
    llm.error = openai.APIConnectionError(
        request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    )
    body = {"sources": [{"url": "https://a.example/story", "text": "Report"}]}

    response = await api.post("/api/news/ai-insights", json=body)

    assert response.status_code == 502
    assert response.text == "Insight generation is unavailable right now"
    assert cache.memos == {}


@pytest.mark.asyncio
async def test_insight_resolves_sources_from_query(api, search, llm) -> None:
    response = await api.post("/api/news/ai-insights", params={"query": "tariffs"})

    assert response.status_code == 200
    assert search.queries == ["tariffs"]
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_insight_without_sources_skips_model(api, search, llm) -> None:
    search.sources = []

    response = await api.post("/api/news/ai-insights", params={"query": "nothing"})

    assert response.text == 'data: {"text":"No sources found for this story."}\n\n'
    assert llm.calls == []


@pytest.mark.asyncio
async def test_insight_requires_query_or_sources(api, llm) -> None:
    response = await api.post("/api/news/ai-insights", json={"sources": []})

    assert response.status_code == 400
    assert llm.calls == []


@pytest.mark.asyncio
async def test_insight_rate_limit_runs_before_validation(api) -> None:
    for _ in range(5):
        await api.post("/api/news/ai-insights", json={"sources": []})

    response = await api.post("/api/news/ai-insights", json={"sources": []})

    assert response.status_code == 429


@pytest.mark.asyncio
async def test_follow_topics_sets_cookie(api) -> None:
    response = await api.put("/api/topics", json={"topics": ["Science", "health", "science"]})

    assert response.status_code == 200
    assert response.json()["followed"] == ["science", "health"]
    cookie = response.headers["set-cookie"]
    assert cookie.startswith("followedTopics=%5B%22science%22%2C%22health%22%5D")
    assert "Max-Age=31536000" in cookie
    assert "Path=/" in cookie


@pytest.mark.asyncio
async def test_follow_topics_rejects_unknown(api) -> None:
    response = await api.put("/api/topics", json={"topics": ["crypto"]})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_topics_reads_cookie(api) -> None:
    response = await api.get(
        "/api/topics",
        headers={"Cookie": "followedTopics=" + quote('["science","crypto"]')},
    )

    assert response.json()["followed"] == ["science"]
    assert "technology" in response.json()["topics"]


@pytest.mark.asyncio
async def test_startup_logs_environment_and_base_url(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="api.index"):
        await on_startup()

    assert "environment=" in caplog.text
    assert "base_url=http" in caplog.text


@pytest.mark.asyncio
async def test_insight_docs_note_buffered_lambda_delivery(api) -> None:
    schema = (await api.get("/openapi.json")).json()

    description = schema["paths"]["/api/news/ai-insights"]["post"]["description"]
    assert "uvicorn" in description
    assert "Mangum" in description
