"""Cheap token estimation used for sizing decisions."""

from __future__ import annotations

import math
from typing import Iterable

# space, tab, LF, CR, NBSP
_WHITESPACE = frozenset(" \t\n\r\u00a0")


def estimate_tokens(text: str) -> int:
    """Approximate the token count of ``text`` from its word count.

    Long words (more than five characters on average) are weighted by 1.3.
    This is a heuristic; callers must leave margin in their budgets.
    """
    if not text:
        return 0
    words = 0
    in_word = False
    for char in text:
        if char in _WHITESPACE:
            in_word = False
        elif not in_word:
            words += 1
            in_word = True
    if words == 0:
        return 0
    tokens_per_word = 1.3 if len(text) / words > 5 else 1.0
    return math.ceil(words * tokens_per_word)


def estimate_tokens_batch(texts: Iterable[str]) -> int:
    return sum(estimate_tokens(text) for text in texts)


__all__ = ["estimate_tokens", "estimate_tokens_batch"]
