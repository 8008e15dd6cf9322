"""Tests for the SQLite unit store."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from quickrag.core.errors import StoreError
from quickrag.db.store import SQLiteUnitStore
from quickrag.ingest.types import IndexedUnit, TextUnit
from quickrag.retrieval.vector_index import VectorIndex
from quickrag.utils.hashing import fingerprint


def _indexed(text: str, path: str, line: int, vector: list[float]) -> IndexedUnit:
    unit = TextUnit(text=text, source_path=path, start_line=line, end_line=line, start_offset=0, end_offset=len(text))
    return IndexedUnit(unit=unit, fingerprint=fingerprint(text), vector=vector)


@pytest.fixture
def store(tmp_path: Path) -> SQLiteUnitStore:
    unit_store = SQLiteUnitStore(tmp_path / "index.rag")
    yield unit_store
    unit_store.close()


def test_write_and_count_units(store: SQLiteUnitStore) -> None:
    store.write_units(
        [
            _indexed("alpha", "/a.md", 1, [1.0, 0.0]),
            _indexed("beta", "/a.md", 2, [0.0, 1.0]),
            _indexed("gamma", "/b.md", 1, [0.5, 0.5]),
        ]
    )
    assert store.count_units() == 3
    assert store.get_known_fingerprints() == {fingerprint("alpha"), fingerprint("beta"), fingerprint("gamma")}
    stored = list(store.iter_vectors())
    assert [unit.id for unit, _ in stored] == ["/a.md:1:1", "/a.md:2:2", "/b.md:1:1"]
    assert stored[2][1] == [0.5, 0.5]


def test_delete_units_for_path_is_scoped(store: SQLiteUnitStore) -> None:
    store.write_units([_indexed("alpha", "/a.md", 1, [1.0]), _indexed("gamma", "/b.md", 1, [0.5])])
    store.delete_units_for_path("/a.md")
    assert [unit.file_path for unit, _ in store.iter_vectors()] == ["/b.md"]


def test_file_records_are_replaced(store: SQLiteUnitStore) -> None:
    store.upsert_file_record("/a.md", 1000.0)
    store.upsert_file_record("/a.md", 2000.0)
    store.upsert_file_record("/b.md", 3000.0)
    assert store.get_file_records() == {"/a.md": 2000.0, "/b.md": 3000.0}
    store.delete_file_record("/b.md")
    assert store.get_file_records() == {"/a.md": 2000.0}


def test_file_stats_and_clear(store: SQLiteUnitStore) -> None:
    store.write_units([_indexed("alpha", "/a.md", 1, [1.0]), _indexed("beta", "/a.md", 2, [0.0])])
    store.upsert_file_record("/a.md", 1000.0)
    store.upsert_file_record("/empty.md", 1000.0)
    stats = {item.file_path: item.units for item in store.file_stats()}
    assert stats == {"/a.md": 2, "/empty.md": 0}
    store.clear()
    assert store.count_units() == 0
    assert store.get_file_records() == {}


def test_vector_dimensions_are_enforced(store: SQLiteUnitStore) -> None:
    assert store.vector_dimensions() is None
    store.write_units([_indexed("alpha", "/a.md", 1, [1.0, 0.0, 0.0])])
    assert store.vector_dimensions() == 3

    with pytest.raises(StoreError, match="3-dimensional"):
        store.write_units([_indexed("beta", "/b.md", 1, [1.0, 0.0])])
    with pytest.raises(StoreError, match="mixed"):
        store.write_units([_indexed("beta", "/b.md", 1, [1.0, 0.0]), _indexed("gamma", "/b.md", 2, [1.0])])
    assert store.count_units() == 1

    store.clear()
    store.write_units([_indexed("beta", "/b.md", 1, [1.0, 0.0])])
    assert store.vector_dimensions() == 2


def test_missing_database_is_reported(tmp_path: Path) -> None:
    with pytest.raises(StoreError):
        SQLiteUnitStore(tmp_path / "missing.rag", must_exist=True)


def test_sqlite_failures_become_store_errors(store: SQLiteUnitStore) -> None:
    store.db.execute("DROP TABLE units")
    with pytest.raises(StoreError) as excinfo:
        store.count_units()
    assert isinstance(excinfo.value.__cause__, sqlite3.Error)


def test_vector_index_ranks_by_cosine(store: SQLiteUnitStore) -> None:
    store.write_units(
        [
            _indexed("east", "/a.md", 1, [1.0, 0.0]),
            _indexed("north", "/a.md", 2, [0.0, 3.0]),
            _indexed("north east", "/a.md", 3, [1.0, 1.0]),
        ]
    )
    index = VectorIndex()
    index.rebuild(store)
    assert index.size == 3
    results = index.search([0.0, 1.0], top_k=2)
    assert [hit.unit.text for hit in results] == ["north", "north east"]
    assert results[0].score == pytest.approx(1.0)
    with pytest.raises(ValueError):
        index.search([1.0, 0.0, 0.0])
