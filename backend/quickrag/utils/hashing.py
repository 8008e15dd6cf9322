"""Hashing utilities."""

from __future__ import annotations

import hashlib


def sha256_text(text: str) -> str:
    """Return hex digest for UTF-8 encoded text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def fingerprint(text: str) -> str:
    """Content identity of a unit: digest of its trimmed text."""
    return sha256_text(text.strip())


__all__ = ["sha256_text", "fingerprint"]
