"""Vector index abstraction."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from quickrag.db.store import StoredUnit, UnitStore


@dataclass(slots=True)
class SearchResult:
    unit: StoredUnit
    score: float


class VectorIndex:
    """Simple in-memory vector index using cosine similarity."""

    def __init__(self) -> None:
        self.dim: int | None = None
        self._units: list[StoredUnit] = []
        self._vectors: list[list[float]] = []

    @property
    def size(self) -> int:
        return len(self._vectors)

    def upsert(self, units: Sequence[StoredUnit], vectors: Sequence[Sequence[float]]) -> None:
        if not units:
            return
        if len(units) != len(vectors):
            raise ValueError("Units and vectors must have the same length")
        for vector in vectors:
            if self.dim is None:
                self.dim = len(vector)
            if len(vector) != self.dim:
                raise ValueError("Vector dimension mismatch")
        self._units.extend(units)
        self._vectors.extend(_normalized(vector) for vector in vectors)

    def search(self, vector: Sequence[float], top_k: int = 5) -> list[SearchResult]:
        if not self._vectors:
            return []
        if len(vector) != self.dim:
            raise ValueError(f"Query vector dimension {len(vector)} does not match index dimension {self.dim}")
        query = _normalized(vector)
        scores = [(idx, _dot(self._vectors[idx], query)) for idx in range(len(self._vectors))]
        scores.sort(key=lambda item: item[1], reverse=True)
        limit = min(top_k, len(scores))
        return [SearchResult(unit=self._units[idx], score=score) for idx, score in scores[:limit]]

    def rebuild(self, store: UnitStore) -> None:
        self._units = []
        self._vectors = []
        self.dim = None
        for unit, vector in store.iter_vectors():
            self.upsert([unit], [vector])


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def _normalized(vector: Sequence[float]) -> list[float]:
    norm = math.sqrt(_dot(vector, vector))
    if norm == 0:
        return list(vector)
    return [value / norm for value in vector]


__all__ = ["VectorIndex", "SearchResult"]
