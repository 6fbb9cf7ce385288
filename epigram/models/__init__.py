from .news import (
    InsightRequest,
    InsightSource,
    ListingEntry,
    NewsArticle,
    PopulateReport,
    TopicOutcome,
    TopicSelection,
)

__all__ = [
    "InsightRequest",
    "InsightSource",
    "ListingEntry",
    "NewsArticle",
    "PopulateReport",
    "TopicOutcome",
    "TopicSelection",
]
