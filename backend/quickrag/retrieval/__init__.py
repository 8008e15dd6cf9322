"""Retrieval orchestration components."""

from .vector_index import SearchResult, VectorIndex
from .search import QueryService

__all__ = [
    "SearchResult",
    "VectorIndex",
    "QueryService",
]
