"""Tests for directory scanning and reconciliation."""

import os
from pathlib import Path

import pytest

from quickrag.ingest.sync import reconcile, scan_directory
from quickrag.ingest.types import FileInfo


def test_scan_matches_default_patterns(corpus: Path) -> None:
    (corpus / ".git").mkdir()
    (corpus / ".git" / "HEAD.txt").write_text("ref", encoding="utf-8")
    files = scan_directory(corpus)
    names = [Path(info.path).name for info in files]
    assert names == ["guide.md", "ideas.txt"]
    assert all(os.path.isabs(info.path) for info in files)


def test_scan_reports_mtime_in_milliseconds(corpus: Path) -> None:
    guide = corpus / "guide.md"
    os.utime(guide, (1_700_000_000, 1_700_000_000))
    info = next(item for item in scan_directory(corpus) if item.path.endswith("guide.md"))
    assert info.mtime == pytest.approx(1_700_000_000_000)


def test_scan_honours_include_and_exclude(corpus: Path) -> None:
    files = scan_directory(corpus, include="*.txt,*.md", exclude="*/notes/*")
    assert [Path(info.path).name for info in files] == ["guide.md"]


def test_scan_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        scan_directory(tmp_path / "missing")


def test_reconcile_classifies_files() -> None:
    current = [FileInfo("/a.md", 1.0), FileInfo("/b.md", 2.0), FileInfo("/c.md", 3.0)]
    persisted = {"/a.md": 1.0, "/b.md": 1.5, "/gone.md": 4.0}
    plan = reconcile(current, persisted)
    assert plan.to_index == ["/b.md", "/c.md"]
    assert plan.to_delete == ["/gone.md"]
    assert plan.unchanged == ["/a.md"]
    assert not plan.is_noop


def test_reconcile_unchanged_directory_is_noop() -> None:
    current = [FileInfo("/a.md", 1.0)]
    plan = reconcile(current, {"/a.md": 1.0})
    assert plan.is_noop
