"""Schema RAG agent package."""

from .config import AggregationConfig, RetrievalConfig

__all__ = ["AggregationConfig", "RetrievalConfig"]
