"""Tests for batch planning."""

import random

import pytest

from quickrag.core.errors import BatchTooLargeError, ConfigurationError
from quickrag.ingest.batching import plan_batches
from quickrag.ingest.types import BatchLimits, PlannedUnit, TextUnit
from quickrag.utils.hashing import fingerprint
from quickrag.utils.tokens import estimate_tokens


def _planned(text: str, idx: int = 0) -> PlannedUnit:
    unit = TextUnit(text=text, source_path="a.md", start_line=idx + 1, end_line=idx + 1, start_offset=0, end_offset=len(text))
    return PlannedUnit(unit=unit, fingerprint=fingerprint(text))


def test_empty_input_has_no_batches() -> None:
    assert plan_batches([], BatchLimits(max_count=2, max_chars=10, max_tokens=10)) == []


def test_count_limit_closes_batches() -> None:
    units = [_planned(f"w{idx}", idx) for idx in range(5)]
    batches = plan_batches(units, BatchLimits(max_count=2, max_chars=1000, max_tokens=1000))
    assert [len(batch.units) for batch in batches] == [2, 2, 1]
    assert [batch.sequence_number for batch in batches] == [1, 2, 3]
    assert [text for batch in batches for text in batch.texts] == [f"w{idx}" for idx in range(5)]


def test_char_and_token_sums_are_tracked() -> None:
    units = [_planned("one two", 0), _planned("three four", 1), _planned("five", 2)]
    batches = plan_batches(units, BatchLimits(max_count=10, max_chars=17, max_tokens=100))
    assert [batch.texts for batch in batches] == [["one two", "three four"], ["five"]]
    assert batches[0].estimated_chars == 17
    assert batches[0].estimated_tokens == 4


def test_planned_batches_satisfy_all_limits() -> None:
    rng = random.Random(7)
    words = ["alpha", "be", "gamma", "delta", "epsilonic", "z"]
    units = [
        _planned(" ".join(rng.choice(words) for _ in range(rng.randint(1, 12))), idx)
        for idx in range(300)
    ]
    limits = BatchLimits(max_count=7, max_chars=200, max_tokens=40)
    batches = plan_batches(units, limits)
    for batch in batches:
        assert len(batch.units) <= limits.max_count
        assert sum(len(text) for text in batch.texts) <= limits.max_chars
        assert sum(estimate_tokens(text) for text in batch.texts) <= limits.max_tokens
    assert [planned for batch in batches for planned in batch.units] == units


def test_oversized_unit_is_rejected() -> None:
    units = [_planned("fine", 0), _planned("far too many words for this tiny limit", 1)]
    with pytest.raises(BatchTooLargeError) as excinfo:
        plan_batches(units, BatchLimits(max_count=5, max_chars=1000, max_tokens=3))
    assert excinfo.value.unit_id == "a.md:2:2"


def test_invalid_limits_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        plan_batches([_planned("x")], BatchLimits(max_count=0, max_chars=10, max_tokens=10))
