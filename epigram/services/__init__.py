from .exa import ExaClient
from .feed import (
    DEFAULT_CATEGORIES,
    FeedService,
    followed_topics_from_cookie,
    parse_categories,
    parse_published_date,
    sort_by_recency,
    unique_by,
)
from .insights import (
    InsightService,
    encode_events,
    format_event,
    memo_key,
    shutdown_llm_client,
)
from .mediastack import MediastackClient
from .populate import EXCLUDED_HOSTS, TOPICS, PopulationJob

__all__ = [
    "DEFAULT_CATEGORIES",
    "EXCLUDED_HOSTS",
    "TOPICS",
    "ExaClient",
    "FeedService",
    "InsightService",
    "MediastackClient",
    "PopulationJob",
    "encode_events",
    "followed_topics_from_cookie",
    "format_event",
    "memo_key",
    "parse_categories",
    "parse_published_date",
    "shutdown_llm_client",
    "sort_by_recency",
    "unique_by",
]
