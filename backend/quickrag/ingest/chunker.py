"""Chunking utilities."""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from bisect import bisect_right
from typing import Iterator, Sequence

from quickrag.core.errors import ConfigurationError
from quickrag.ingest.types import ChunkOptions, TextUnit
from quickrag.utils.tokens import estimate_tokens

SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ", "")

SENTENCE_LOOKBACK = 100
_SENTENCE_END_RE = re.compile(r"[.!?](?:\s+|$)")
_ABBREVIATION_RE = re.compile(
    r"\b(Dr|Mr|Mrs|Ms|Prof|Sr|Jr|vs|etc|Inc|Ltd|Corp|St|Ave|Blvd|Rd)\.$",
    re.IGNORECASE,
)


class LineIndex:
    """Maps character offsets to line numbers via a table of line starts."""

    def __init__(self, text: str) -> None:
        starts = [0]
        position = 0
        for line in text.split("\n"):
            position += len(line) + 1
            starts.append(position)
        self._starts = starts

    def line_of(self, offset: int) -> int:
        """Return the 1-indexed line containing ``offset``."""
        last = max(0, len(self._starts) - 2)
        if offset <= 0:
            return 1
        if offset >= self._starts[-1]:
            return last + 1
        return min(bisect_right(self._starts, offset) - 1, last) + 1


def validate_chunk_options(options: ChunkOptions) -> None:
    if options.target_size <= 0:
        raise ConfigurationError("chunk size must be greater than 0")
    if options.overlap < 0:
        raise ConfigurationError("chunk overlap must be non-negative")
    if options.overlap >= options.target_size:
        raise ConfigurationError("chunk overlap must be less than chunk size")


class Chunker(ABC):
    """Splits one document into an ordered sequence of bounded units."""

    name: str = "base"

    def chunk(self, text: str, source_path: str, options: ChunkOptions) -> list[TextUnit]:
        return list(self.iter_units(text, source_path, options))

    def iter_units(self, text: str, source_path: str, options: ChunkOptions) -> Iterator[TextUnit]:
        validate_chunk_options(options)
        if not text or not text.strip():
            return
        lines = LineIndex(text)
        start = 0
        length = len(text)
        while start < length:
            end = self._next_end(text, start, options)
            trimmed = text[start:end].strip()
            if trimmed:
                yield TextUnit(
                    text=trimmed,
                    source_path=source_path,
                    start_line=lines.line_of(start),
                    end_line=lines.line_of(end - 1),
                    start_offset=start,
                    end_offset=end,
                )
            if end >= length:
                break
            next_start = max(start + 1, self._next_start(text, start, end, options))
            start = end if next_start >= end else next_start

    @abstractmethod
    def _next_end(self, text: str, start: int, options: ChunkOptions) -> int:
        """Return the exclusive end offset of the unit starting at ``start``."""

    @abstractmethod
    def _next_start(self, text: str, start: int, end: int, options: ChunkOptions) -> int:
        """Return the overlap-adjusted start of the following unit."""


class RecursiveTokenChunker(Chunker):
    """Boundary-aware splitter with budgets measured in estimated tokens.

    Each step re-runs the full recursive split over the remaining suffix and
    keeps only the first group. The rest of the split is recomputed on the
    next step, so chunking a document costs roughly O(units * length). This is
    a known inefficiency; caching the tail groups would shift the boundaries.
    """

    name = "recursive-token"

    def _next_end(self, text: str, start: int, options: ChunkOptions) -> int:
        head = split_span(text[start:], options.target_size)[0]
        return start + max(len(head), 1)

    def _next_start(self, text: str, start: int, end: int, options: ChunkOptions) -> int:
        chunk = text[start:end]
        if options.overlap <= 0:
            return end
        tokens = estimate_tokens(chunk)
        ratio = min(options.overlap / tokens, 0.5) if tokens else 0.5
        return end - math.floor(len(chunk) * ratio)


class SimpleChunker(Chunker):
    """Fixed-size character windows that prefer to end on a sentence boundary."""

    name = "simple"

    def _next_end(self, text: str, start: int, options: ChunkOptions) -> int:
        end = min(start + options.target_size, len(text))
        if end >= len(text):
            return end
        search_start = max(start, end - SENTENCE_LOOKBACK)
        for match in _SENTENCE_END_RE.finditer(text, search_start, end):
            position = match.start()
            if _ABBREVIATION_RE.search(text[max(0, position - 5) : position + 1]):
                continue
            return position + 1
        return end

    def _next_start(self, text: str, start: int, end: int, options: ChunkOptions) -> int:
        # a sentence cut can leave a unit shorter than the overlap; keep at most half
        return end - min(options.overlap, (end - start) // 2)


def split_span(span: str, budget: int, separators: Sequence[str] = SEPARATORS) -> list[str]:
    """Recursively split ``span`` into groups of at most ``budget`` estimated tokens.

    The first group is always a prefix of ``span``.
    """
    tokens = estimate_tokens(span)
    if tokens <= budget:
        return [span]
    for separator in separators:
        pieces = list(span) if separator == "" else span.split(separator)
        if len(pieces) < 2:
            continue
        groups = _regroup(pieces, separator, budget)
        if len(groups) > 1:
            result: list[str] = []
            for group in groups:
                result.extend(split_span(group, budget, separators))
            return result
    # One unbreakable token: cut proportionally, possibly mid-word.
    return [span[: math.floor(len(span) * budget / tokens)]]


def _regroup(pieces: Sequence[str], separator: str, budget: int) -> list[str]:
    groups: list[str] = []
    current = ""
    started = False
    for piece in pieces:
        candidate = current + separator + piece if started else piece
        if estimate_tokens(candidate) <= budget or (started and not current.strip()):
            current = candidate
            started = True
        elif started:
            groups.append(current)
            current = piece
        else:
            groups.append(piece)
    if started:
        groups.append(current)
    return groups


_CHUNKERS: dict[str, type[Chunker]] = {
    RecursiveTokenChunker.name: RecursiveTokenChunker,
    SimpleChunker.name: SimpleChunker,
}


def create_chunker(strategy: str = RecursiveTokenChunker.name) -> Chunker:
    try:
        return _CHUNKERS[strategy]()
    except KeyError:
        supported = ", ".join(sorted(_CHUNKERS))
        raise ConfigurationError(f"Unknown chunker type: {strategy}. Supported types: {supported}") from None


def filter_small_units(units: Sequence[TextUnit], minimum: int) -> tuple[list[TextUnit], int]:
    """Drop units whose trimmed text is shorter than ``minimum`` characters."""
    if minimum <= 0:
        return list(units), 0
    kept = [unit for unit in units if len(unit.text) >= minimum]
    return kept, len(units) - len(kept)


__all__ = [
    "Chunker",
    "RecursiveTokenChunker",
    "SimpleChunker",
    "LineIndex",
    "SEPARATORS",
    "create_chunker",
    "filter_small_units",
    "split_span",
    "validate_chunk_options",
]
