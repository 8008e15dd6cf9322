"""Directory scanning and file index reconciliation."""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from quickrag.core.logging import get_logger
from quickrag.ingest.types import FileInfo, SyncPlan
from quickrag.utils.time import mtime_ms

logger = get_logger(__name__)

DEFAULT_INCLUDE = "*.{txt,md,markdown}"
DEFAULT_EXCLUDE = ""

SKIP_DIRS = frozenset({".git", ".svn", ".hg", "node_modules", "__pycache__", ".venv", "venv", ".cache"})


def scan_directory(
    root: Path,
    include: str | None = DEFAULT_INCLUDE,
    exclude: str | None = DEFAULT_EXCLUDE,
) -> list[FileInfo]:
    """Enumerate indexable files under ``root`` with their modification times.

    Paths are absolute and returned in sorted order so runs are reproducible.
    """
    base = root.expanduser().resolve()
    if not base.is_dir():
        raise FileNotFoundError(f"Directory not found: {root}")
    files: list[FileInfo] = []
    for dirpath, dirnames, filenames in os.walk(base):
        dirnames[:] = sorted(name for name in dirnames if name not in SKIP_DIRS)
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            relative = path.relative_to(base).as_posix()
            if not _matches_patterns(relative, include, exclude):
                continue
            try:
                stat = path.stat()
            except OSError as exc:
                logger.warning("Skipping %s: %s", path, exc)
                continue
            files.append(FileInfo(path=os.fspath(path), mtime=mtime_ms(stat.st_mtime)))
    files.sort(key=lambda info: info.path)
    return files


def reconcile(current_files: Sequence[FileInfo], persisted: Mapping[str, float]) -> SyncPlan:
    """Classify files as new/modified (to index), deleted, or unchanged.

    Detection is mtime-based only: a file rewritten with an identical mtime is
    treated as unchanged.
    """
    plan = SyncPlan()
    seen: set[str] = set()
    for info in current_files:
        seen.add(info.path)
        previous = persisted.get(info.path)
        if previous is None or previous != info.mtime:
            plan.to_index.append(info.path)
        else:
            plan.unchanged.append(info.path)
    plan.to_delete = sorted(path for path in persisted if path not in seen)
    return plan


def _matches_patterns(relative: str, include: str | None, exclude: str | None) -> bool:
    # leading slash lets "*/dir/*" patterns match top-level directories
    rooted = f"/{relative}"
    if exclude and any(fnmatch.fnmatch(rooted, pattern) for pattern in _expand_patterns(exclude)):
        return False
    if include:
        return any(fnmatch.fnmatch(rooted, pattern) for pattern in _expand_patterns(include))
    return True


def _expand_patterns(pattern: str) -> list[str]:
    patterns: list[str] = []
    for part in _split_top_level(pattern):
        part = part.strip()
        if not part:
            continue
        if "{" in part and "}" in part:
            prefix = part[: part.index("{")]
            suffix = part[part.index("}") + 1 :]
            options = part[part.index("{") + 1 : part.index("}")].split(",")
            for option in options:
                patterns.append(f"{prefix}{option.strip()}{suffix}")
        else:
            patterns.append(part)
    return patterns or [pattern]


def _split_top_level(pattern: str) -> Iterable[str]:
    """Split on commas that are not inside a brace group."""
    depth = 0
    current: list[str] = []
    for char in pattern:
        if char == "{":
            depth += 1
        elif char == "}":
            depth = max(0, depth - 1)
        if char == "," and depth == 0:
            yield "".join(current)
            current = []
        else:
            current.append(char)
    yield "".join(current)


__all__ = ["DEFAULT_INCLUDE", "DEFAULT_EXCLUDE", "SKIP_DIRS", "scan_directory", "reconcile"]
