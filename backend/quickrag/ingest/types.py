"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(slots=True, frozen=True)
class TextUnit:
    """Bounded span of a document produced by a chunker.

    ``text`` is the trimmed span; offsets cover the untrimmed span
    ``[start_offset, end_offset)``. Line numbers are 1-indexed.
    """

    text: str
    source_path: str
    start_line: int
    end_line: int
    start_offset: int
    end_offset: int

    @property
    def id(self) -> str:
        return f"{self.source_path}:{self.start_line}:{self.end_line}"


@dataclass(slots=True, frozen=True)
class PlannedUnit:
    """Unit that passed deduplication, paired with its fingerprint."""

    unit: TextUnit
    fingerprint: str


@dataclass(slots=True)
class IndexedUnit:
    """Unit ready to be written to the store."""

    unit: TextUnit
    fingerprint: str
    vector: list[float]

    @property
    def id(self) -> str:
        return self.unit.id


@dataclass(slots=True)
class Batch:
    """Group of units submitted together to the embedding backend."""

    units: list[PlannedUnit]
    sequence_number: int
    estimated_tokens: int
    estimated_chars: int

    @property
    def texts(self) -> list[str]:
        return [planned.unit.text for planned in self.units]


@dataclass(slots=True, frozen=True)
class FileInfo:
    """Source file seen by the scanner; ``mtime`` is in milliseconds."""

    path: str
    mtime: float


@dataclass(slots=True, frozen=True)
class ChunkOptions:
    target_size: int
    overlap: int


@dataclass(slots=True, frozen=True)
class BatchLimits:
    max_count: int
    max_chars: int
    max_tokens: int


@dataclass(slots=True)
class SyncPlan:
    """Outcome of reconciling a directory snapshot with the file index."""

    to_index: list[str] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.to_index and not self.to_delete


class RunState(str, Enum):
    SCANNING = "scanning"
    RECONCILING = "reconciling"
    PREPARING = "preparing"
    EMBEDDING = "embedding"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class IndexReport:
    """Aggregated statistics for one indexing run."""

    state: RunState = RunState.SCANNING
    files_scanned: int = 0
    files_indexed: int = 0
    files_deleted: int = 0
    units_new: int = 0
    units_skipped: int = 0
    units_below_minimum: int = 0
    units_total: int = 0
    detail: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "state": self.state.value,
            "files_scanned": self.files_scanned,
            "files_indexed": self.files_indexed,
            "files_deleted": self.files_deleted,
            "units_new": self.units_new,
            "units_skipped": self.units_skipped,
            "units_below_minimum": self.units_below_minimum,
            "units_total": self.units_total,
            "detail": self.detail,
        }


__all__ = [
    "TextUnit",
    "PlannedUnit",
    "IndexedUnit",
    "Batch",
    "FileInfo",
    "ChunkOptions",
    "BatchLimits",
    "SyncPlan",
    "RunState",
    "IndexReport",
]
