"""Search orchestration."""

from __future__ import annotations

import time
from typing import Any

from quickrag.core.logging import get_logger
from quickrag.db.store import UnitStore
from quickrag.ingest.embeddings import EmbeddingProvider
from quickrag.retrieval.vector_index import SearchResult, VectorIndex

logger = get_logger(__name__)


class QueryService:
    """Embeds a query and ranks stored units by cosine similarity."""

    def __init__(self, store: UnitStore, provider: EmbeddingProvider) -> None:
        self.store = store
        self.provider = provider
        self.vector_index: VectorIndex | None = None

    def _ensure_index(self) -> VectorIndex:
        if self.vector_index is None:
            self.vector_index = VectorIndex()
            self.vector_index.rebuild(self.store)
            logger.debug("Loaded %d vectors into memory", self.vector_index.size)
        return self.vector_index

    async def query(self, query_text: str, top_k: int = 5) -> dict[str, Any]:
        start_time = time.perf_counter()
        index = self._ensure_index()
        vector = await self.provider.embed(query_text)
        hits = index.search(vector, top_k=top_k)
        logger.info(
            "Query returned %d results in %dms",
            len(hits),
            (time.perf_counter() - start_time) * 1000,
        )
        return {"query": query_text, "results": [self._build_result(hit, rank) for rank, hit in enumerate(hits)]}

    def _build_result(self, hit: SearchResult, rank: int) -> dict[str, Any]:
        unit = hit.unit
        return {
            "rank": rank,
            "id": unit.id,
            "score": hit.score,
            "file_path": unit.file_path,
            "start_line": unit.start_line,
            "end_line": unit.end_line,
            "text": unit.text,
        }


__all__ = ["QueryService"]
