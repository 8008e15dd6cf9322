"""Test fixtures for QuickRAG."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user config and provider credentials out of every test."""
    for key in list(os.environ):
        if key.startswith("QUICKRAG_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("VOYAGE_API_KEY", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."


@pytest.fixture
def corpus(tmp_path: Path) -> Path:
    """Small directory of documents with distinct content."""
    root = tmp_path / "docs"
    (root / "notes").mkdir(parents=True)
    (root / "guide.md").write_text(
        "# Guide\n\nInstall the tool before anything else.\n\nRun the index command on a folder.\n",
        encoding="utf-8",
    )
    (root / "notes" / "ideas.txt").write_text(
        "Ideas for later.\n\nCache embeddings between runs.\n\nShow progress while indexing.\n",
        encoding="utf-8",
    )
    (root / "notes" / "image.png").write_bytes(b"\x89PNG\r\n")
    return root
