"""Tests for fingerprint deduplication."""

import pytest

from quickrag.ingest.dedupe import KnownFingerprints, filter_units
from quickrag.ingest.types import TextUnit
from quickrag.utils.hashing import fingerprint


def _unit(text: str, path: str = "a.md", line: int = 1) -> TextUnit:
    return TextUnit(text=text, source_path=path, start_line=line, end_line=line, start_offset=0, end_offset=len(text))


def test_fingerprint_ignores_surrounding_whitespace() -> None:
    assert fingerprint("  hello\n") == fingerprint("hello")
    assert fingerprint("hello") != fingerprint("hello!")


@pytest.mark.asyncio
async def test_filter_skips_known_and_repeated_units() -> None:
    known = KnownFingerprints([fingerprint("stored already")])
    units = [_unit("stored already"), _unit("fresh", line=2), _unit("fresh", path="b.md", line=7)]
    result = await filter_units(units, known)
    assert [planned.unit.source_path for planned in result.unique] == ["a.md"]
    assert result.unique[0].unit.text == "fresh"
    assert result.skipped == 2
    assert fingerprint("fresh") in known


@pytest.mark.asyncio
async def test_shared_set_spans_calls() -> None:
    known = KnownFingerprints()
    first = await filter_units([_unit(f"unit {idx}", line=idx) for idx in range(250)], known)
    second = await filter_units([_unit(f"unit {idx}", path="b.md", line=idx) for idx in range(240, 260)], known)
    assert len(first.unique) == 250
    assert [planned.unit.text for planned in second.unique] == [f"unit {idx}" for idx in range(250, 260)]
    assert second.skipped == 10
    assert len(known) == 260
