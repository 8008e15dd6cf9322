"""Exception taxonomy for the indexing pipeline."""

from __future__ import annotations


class QuickRAGError(Exception):
    """Base class for all QuickRAG failures."""


class ConfigurationError(QuickRAGError):
    """Invalid settings detected before any work begins."""


class BatchTooLargeError(QuickRAGError):
    """A single unit cannot fit in any batch under the configured limits."""

    def __init__(self, unit_id: str, chars: int, tokens: int, max_chars: int, max_tokens: int) -> None:
        self.unit_id = unit_id
        self.chars = chars
        self.tokens = tokens
        super().__init__(
            f"Unit {unit_id} is too large for batch limits "
            f"({chars} chars > {max_chars} or {tokens} tokens > {max_tokens})"
        )


class EmbeddingError(QuickRAGError):
    """The embedding backend failed and the retry budget was exhausted."""


class StoreError(QuickRAGError):
    """A read or write against the unit store failed."""


__all__ = [
    "QuickRAGError",
    "ConfigurationError",
    "BatchTooLargeError",
    "EmbeddingError",
    "StoreError",
]
