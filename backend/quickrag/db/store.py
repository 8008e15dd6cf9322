"""Persistent unit store."""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from array import array
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

from quickrag.core.errors import StoreError
from quickrag.core.logging import get_logger
from quickrag.db.sqlite import SQLiteDatabase, iter_rows
from quickrag.ingest.types import IndexedUnit
from quickrag.utils.time import now_ms

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS units (
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  id TEXT NOT NULL,
  text TEXT NOT NULL,
  file_path TEXT NOT NULL,
  start_line INTEGER NOT NULL,
  end_line INTEGER NOT NULL,
  start_offset INTEGER NOT NULL,
  end_offset INTEGER NOT NULL,
  hash TEXT NOT NULL,
  vector BLOB NOT NULL,
  created_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_units_hash ON units(hash);
CREATE INDEX IF NOT EXISTS idx_units_file_path ON units(file_path);

CREATE TABLE IF NOT EXISTS file_index (
  file_path TEXT PRIMARY KEY,
  mtime REAL NOT NULL,
  indexed_at INTEGER NOT NULL
);
"""

VECTOR_ITEMSIZE = array("f").itemsize
VECTOR_SIZE_SQL = "SELECT length(vector) FROM units LIMIT 1"

DROP_SQL = """
DROP TABLE IF EXISTS units;
DROP TABLE IF EXISTS file_index;
"""


@dataclass(slots=True)
class StoredUnit:
    id: str
    text: str
    file_path: str
    start_line: int
    end_line: int


@dataclass(slots=True)
class FileStats:
    file_path: str
    units: int
    mtime: float | None
    indexed_at: int | None


class UnitStore(ABC):
    """Contract the indexing pipeline relies on to persist units and file records."""

    @abstractmethod
    def get_known_fingerprints(self) -> set[str]:
        ...

    @abstractmethod
    def get_file_records(self) -> dict[str, float]:
        """Map of file path to the modification time recorded when it was indexed."""

    @abstractmethod
    def delete_units_for_path(self, path: str) -> None:
        ...

    @abstractmethod
    def upsert_file_record(self, path: str, mtime: float) -> None:
        ...

    @abstractmethod
    def delete_file_record(self, path: str) -> None:
        ...

    @abstractmethod
    def write_units(self, units: Sequence[IndexedUnit]) -> None:
        ...

    @abstractmethod
    def count_units(self) -> int:
        ...

    @abstractmethod
    def vector_dimensions(self) -> int | None:
        """Length of the stored vectors, or ``None`` while the store is empty."""

    @abstractmethod
    def clear(self) -> None:
        ...

    @abstractmethod
    def file_stats(self) -> list[FileStats]:
        ...

    @abstractmethod
    def iter_vectors(self) -> Iterator[tuple[StoredUnit, list[float]]]:
        ...

    def close(self) -> None:
        return None


class SQLiteUnitStore(UnitStore):
    """SQLite implementation; every ``sqlite3.Error`` surfaces as ``StoreError``."""

    def __init__(self, db_path: Path, must_exist: bool = False) -> None:
        self.db = SQLiteDatabase(db_path)
        if must_exist and not self.db.db_path.exists():
            raise StoreError(f"Index database not found: {self.db.db_path}")
        with _store_errors("initialise schema"):
            self.db.ensure_schema(SCHEMA_SQL)

    def get_known_fingerprints(self) -> set[str]:
        with _store_errors("read fingerprints"):
            rows = self.db.query("SELECT DISTINCT hash FROM units")
        return {row["hash"] for row in rows}

    def get_file_records(self) -> dict[str, float]:
        with _store_errors("read file records"):
            rows = self.db.query("SELECT file_path, mtime FROM file_index")
        return {row["file_path"]: float(row["mtime"]) for row in rows}

    def delete_units_for_path(self, path: str) -> None:
        with _store_errors(f"delete units for {path}"):
            with self.db.transaction() as cursor:
                cursor.execute("DELETE FROM units WHERE file_path = ?", [path])

    def upsert_file_record(self, path: str, mtime: float) -> None:
        with _store_errors(f"update file record for {path}"):
            with self.db.transaction() as cursor:
                cursor.execute("DELETE FROM file_index WHERE file_path = ?", [path])
                cursor.execute(
                    "INSERT INTO file_index (file_path, mtime, indexed_at) VALUES (?, ?, ?)",
                    [path, mtime, now_ms()],
                )

    def delete_file_record(self, path: str) -> None:
        with _store_errors(f"delete file record for {path}"):
            with self.db.transaction() as cursor:
                cursor.execute("DELETE FROM file_index WHERE file_path = ?", [path])

    def write_units(self, units: Sequence[IndexedUnit]) -> None:
        if not units:
            return
        sizes = {len(item.vector) for item in units}
        if len(sizes) > 1:
            raise StoreError(f"Cannot write vectors of mixed dimensions: {sorted(sizes)}")
        (size,) = sizes
        now = now_ms()
        with _store_errors(f"write {len(units)} units"):
            with self.db.transaction() as cursor:
                stored = _stored_dimensions(cursor)
                if stored is not None and stored != size:
                    raise StoreError(
                        f"Index holds {stored}-dimensional vectors, got {size}; "
                        "re-run with the original embedding model or with --clear"
                    )
                cursor.executemany(
                    """
                    INSERT INTO units (
                      id, text, file_path, start_line, end_line,
                      start_offset, end_offset, hash, vector, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            item.id,
                            item.unit.text,
                            item.unit.source_path,
                            item.unit.start_line,
                            item.unit.end_line,
                            item.unit.start_offset,
                            item.unit.end_offset,
                            item.fingerprint,
                            as_bytes(item.vector),
                            now,
                        )
                        for item in units
                    ],
                )
        logger.debug("Wrote %d units", len(units))

    def count_units(self) -> int:
        with _store_errors("count units"):
            count = self.db.scalar("SELECT COUNT(*) FROM units")
        return int(count or 0)

    def vector_dimensions(self) -> int | None:
        with _store_errors("read vector dimensions"):
            size = self.db.scalar(VECTOR_SIZE_SQL)
        return None if size is None else size // VECTOR_ITEMSIZE

    def clear(self) -> None:
        with _store_errors("clear index"):
            self.db.recreate(DROP_SQL, SCHEMA_SQL)
        logger.info("Cleared index at %s", self.db.db_path)

    def file_stats(self) -> list[FileStats]:
        with _store_errors("read file stats"):
            rows = self.db.query(
                """
                SELECT paths.file_path, COUNT(units.seq) AS units,
                       file_index.mtime, file_index.indexed_at
                FROM (
                  SELECT file_path FROM file_index
                  UNION SELECT file_path FROM units
                ) AS paths
                LEFT JOIN units ON units.file_path = paths.file_path
                LEFT JOIN file_index ON file_index.file_path = paths.file_path
                GROUP BY paths.file_path
                ORDER BY paths.file_path
                """
            )
        return [
            FileStats(
                file_path=row["file_path"],
                units=int(row["units"]),
                mtime=row["mtime"],
                indexed_at=row["indexed_at"],
            )
            for row in rows
        ]

    def iter_vectors(self) -> Iterator[tuple[StoredUnit, list[float]]]:
        with _store_errors("read vectors"):
            cursor = self.db.execute(
                "SELECT id, text, file_path, start_line, end_line, vector FROM units ORDER BY seq"
            )
            for row in iter_rows(cursor):
                unit = StoredUnit(
                    id=row["id"],
                    text=row["text"],
                    file_path=row["file_path"],
                    start_line=row["start_line"],
                    end_line=row["end_line"],
                )
                yield unit, from_bytes(row["vector"])

    def close(self) -> None:
        self.db.close()


def as_bytes(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def from_bytes(blob: bytes) -> list[float]:
    floats = array("f")
    floats.frombytes(blob)
    return list(floats)


def _stored_dimensions(cursor: sqlite3.Cursor) -> int | None:
    row = cursor.execute(VECTOR_SIZE_SQL).fetchone()
    return None if row is None else row[0] // VECTOR_ITEMSIZE


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Re-raise ``sqlite3.Error`` from the wrapped block as ``StoreError``."""
    try:
        yield
    except sqlite3.Error as exc:
        raise StoreError(f"Failed to {action}: {exc}") from exc


__all__ = [
    "UnitStore",
    "SQLiteUnitStore",
    "StoredUnit",
    "FileStats",
    "SCHEMA_SQL",
    "as_bytes",
    "from_bytes",
]
