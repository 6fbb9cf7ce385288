"""Epigram: topic news feeds with streamed AI summaries."""

__version__ = "0.1.0"
