"""Token-aware batch planning for embedding requests."""

from __future__ import annotations

from typing import Sequence

from quickrag.core.errors import BatchTooLargeError, ConfigurationError
from quickrag.ingest.types import Batch, BatchLimits, PlannedUnit
from quickrag.utils.tokens import estimate_tokens


def validate_batch_limits(limits: BatchLimits) -> None:
    for name in ("max_count", "max_chars", "max_tokens"):
        if getattr(limits, name) < 1:
            raise ConfigurationError(f"batch limit {name} must be at least 1")


def plan_batches(units: Sequence[PlannedUnit], limits: BatchLimits) -> list[Batch]:
    """Greedily pack units into batches numbered from 1, preserving order.

    A unit that alone exceeds the character or token limit raises
    :class:`BatchTooLargeError`; it is never truncated or dropped.
    """
    validate_batch_limits(limits)
    batches: list[Batch] = []
    current: list[PlannedUnit] = []
    chars = 0
    tokens = 0

    for planned in units:
        unit_chars = len(planned.unit.text)
        unit_tokens = estimate_tokens(planned.unit.text)
        if unit_chars > limits.max_chars or unit_tokens > limits.max_tokens:
            raise BatchTooLargeError(
                planned.unit.id, unit_chars, unit_tokens, limits.max_chars, limits.max_tokens
            )
        fits = (
            len(current) < limits.max_count
            and chars + unit_chars <= limits.max_chars
            and tokens + unit_tokens <= limits.max_tokens
        )
        if current and not fits:
            batches.append(_close(current, len(batches) + 1, tokens, chars))
            current, chars, tokens = [], 0, 0
        current.append(planned)
        chars += unit_chars
        tokens += unit_tokens

    if current:
        batches.append(_close(current, len(batches) + 1, tokens, chars))
    return batches


def _close(units: list[PlannedUnit], sequence_number: int, tokens: int, chars: int) -> Batch:
    return Batch(units=units, sequence_number=sequence_number, estimated_tokens=tokens, estimated_chars=chars)


__all__ = ["plan_batches", "validate_batch_limits"]
