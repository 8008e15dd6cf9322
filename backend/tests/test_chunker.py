"""Tests for chunker."""

import pytest

from quickrag.core.errors import ConfigurationError
from quickrag.ingest.chunker import (
    LineIndex,
    RecursiveTokenChunker,
    SimpleChunker,
    create_chunker,
    filter_small_units,
    split_span,
)
from quickrag.ingest.types import ChunkOptions, TextUnit
from quickrag.utils.hashing import fingerprint
from quickrag.utils.tokens import estimate_tokens


def _document(paragraphs: int = 12) -> str:
    parts = []
    for idx in range(paragraphs):
        parts.append(
            f"Section {idx} talks about indexing. It has a few sentences; some are longer, "
            f"with commas and clauses. Number {idx} ends here!"
        )
    return "\n\n".join(parts)


def test_empty_text_yields_no_units() -> None:
    chunker = RecursiveTokenChunker()
    assert chunker.chunk("", "a.md", ChunkOptions(target_size=10, overlap=2)) == []
    assert chunker.chunk("  \n\n ", "a.md", ChunkOptions(target_size=10, overlap=2)) == []


def test_short_text_is_a_single_unit(sample_text: str) -> None:
    units = RecursiveTokenChunker().chunk(sample_text, "a.md", ChunkOptions(target_size=100, overlap=10))
    assert len(units) == 1
    unit = units[0]
    assert unit.text == sample_text
    assert (unit.start_line, unit.end_line) == (1, 5)
    assert unit.id == "a.md:1:5"


def test_sentence_scenario_overlaps_and_progresses() -> None:
    text = "Sentence one. Sentence two. Sentence three."
    units = RecursiveTokenChunker().chunk(text, "s.txt", ChunkOptions(target_size=5, overlap=1))
    assert len(units) >= 2
    assert all(estimate_tokens(unit.text) <= 5 for unit in units)
    first, second = units[0], units[1]
    assert first.start_offset < second.start_offset < first.end_offset


def test_units_cover_the_whole_document() -> None:
    text = _document()
    units = RecursiveTokenChunker().chunk(text, "doc.md", ChunkOptions(target_size=20, overlap=4))
    assert units[0].start_offset == 0
    assert units[-1].end_offset == len(text)
    for previous, current in zip(units, units[1:]):
        if current.start_offset > previous.end_offset:
            assert text[previous.end_offset : current.start_offset].strip() == ""


def test_units_respect_token_budget() -> None:
    units = RecursiveTokenChunker().chunk(_document(), "doc.md", ChunkOptions(target_size=20, overlap=4))
    assert len(units) > 1
    assert all(estimate_tokens(unit.text) <= 20 for unit in units)


def test_overlap_is_at_most_half_of_previous_unit() -> None:
    units = RecursiveTokenChunker().chunk(_document(), "doc.md", ChunkOptions(target_size=15, overlap=14))
    for previous, current in zip(units, units[1:]):
        overlap = max(0, previous.end_offset - current.start_offset)
        assert overlap <= (previous.end_offset - previous.start_offset) / 2
        assert current.start_offset > previous.start_offset


def test_chunking_is_deterministic() -> None:
    text = _document(6)
    options = ChunkOptions(target_size=18, overlap=3)
    first = RecursiveTokenChunker().chunk(text, "doc.md", options)
    second = RecursiveTokenChunker().chunk(text, "doc.md", options)
    assert [(u.start_offset, u.end_offset) for u in first] == [(u.start_offset, u.end_offset) for u in second]
    assert [fingerprint(u.text) for u in first] == [fingerprint(u.text) for u in second]


def test_unbreakable_token_terminates() -> None:
    text = "x" * 500
    units = RecursiveTokenChunker().chunk(text, "long.txt", ChunkOptions(target_size=1, overlap=0))
    assert units
    assert units[-1].end_offset == len(text)


def test_split_span_first_group_is_prefix() -> None:
    span = "alpha beta gamma.\n\ndelta epsilon zeta eta theta.\n\niota"
    groups = split_span(span, 4)
    assert span.startswith(groups[0])
    assert all(estimate_tokens(group) <= 4 for group in groups)


def test_line_index_maps_offsets() -> None:
    index = LineIndex("one\ntwo\nthree")
    assert index.line_of(0) == 1
    assert index.line_of(4) == 2
    assert index.line_of(8) == 3
    assert index.line_of(100) == 3


@pytest.mark.parametrize(
    "options",
    [
        ChunkOptions(target_size=0, overlap=0),
        ChunkOptions(target_size=10, overlap=-1),
        ChunkOptions(target_size=10, overlap=10),
    ],
)
def test_invalid_options_are_rejected(options: ChunkOptions) -> None:
    with pytest.raises(ConfigurationError):
        RecursiveTokenChunker().chunk("some text", "a.md", options)


def test_simple_chunker_skips_abbreviations() -> None:
    text = "Ask Dr. Smith about it. Then leave quietly and go home now please."
    units = SimpleChunker().chunk(text, "s.txt", ChunkOptions(target_size=40, overlap=0))
    assert units[0].text == "Ask Dr. Smith about it."
    assert units[1].text.startswith("Then")
    assert units[-1].end_offset == len(text)


def test_simple_chunker_overlap_bound() -> None:
    text = _document(4)
    units = SimpleChunker().chunk(text, "doc.md", ChunkOptions(target_size=60, overlap=40))
    assert all(unit.end_offset - unit.start_offset <= 60 for unit in units)
    for previous, current in zip(units, units[1:]):
        assert previous.end_offset - current.start_offset <= (previous.end_offset - previous.start_offset) // 2
        assert current.start_offset > previous.start_offset


def test_create_chunker_by_name() -> None:
    assert isinstance(create_chunker("simple"), SimpleChunker)
    assert isinstance(create_chunker("recursive-token"), RecursiveTokenChunker)
    with pytest.raises(ConfigurationError):
        create_chunker("semantic")


def test_filter_small_units() -> None:
    units = [
        TextUnit(text=text, source_path="a.md", start_line=1, end_line=1, start_offset=0, end_offset=len(text))
        for text in ("tiny", "long enough text")
    ]
    kept, dropped = filter_small_units(units, 5)
    assert [unit.text for unit in kept] == ["long enough text"]
    assert dropped == 1
    assert filter_small_units(units, 0) == (units, 0)
