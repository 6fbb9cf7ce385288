from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NewsArticle(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = Field(default=None, description="Provider document id")
    title: str = Field(default="", description="Article headline")
    url: str = Field(description="Canonical article URL")
    text: str | None = Field(default=None, description="Extracted article body")
    summary: str | None = Field(default=None, description="Short teaser or dek")
    image: str | None = Field(default=None, description="Lead image URL")
    favicon: str | None = Field(default=None, description="Publisher favicon URL")
    published_date: str | None = Field(
        default=None,
        alias="publishedDate",
        description="Provider timestamp, ISO-8601 or YYYYMMDDHHmm",
    )

    @field_validator("title", mode="before")
    @classmethod
    def _blank_title(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ListingEntry(BaseModel):
    """One row of the mediastack ``/news`` listing."""

    model_config = ConfigDict(extra="allow")

    url: str
    title: str | None = None
    source: str | None = None
    published_at: str | None = None


class InsightSource(BaseModel):
    url: str = Field(description="Source document URL")
    text: str | None = Field(default=None, description="Source document text")
    title: str | None = None
    favicon: str | None = None


class InsightRequest(BaseModel):
    sources: list[InsightSource] = Field(default_factory=list)


class TopicSelection(BaseModel):
    topics: list[str] = Field(default_factory=list)


class TopicOutcome(BaseModel):
    topic: str
    stored: int = Field(default=0, description="Articles written to the bucket")
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PopulateReport(BaseModel):
    outcomes: list[TopicOutcome] = Field(default_factory=list)

    @property
    def failed_topics(self) -> list[str]:
        return [outcome.topic for outcome in self.outcomes if not outcome.ok]
