"""Deduplication helpers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from quickrag.ingest.types import PlannedUnit, TextUnit
from quickrag.utils.hashing import fingerprint

YIELD_INTERVAL = 100


class KnownFingerprints:
    """Fingerprints already present in the store or accepted earlier in a run.

    One instance belongs to one indexing run and is passed explicitly to every
    stage that needs it.
    """

    def __init__(self, initial: Iterable[str] = ()) -> None:
        self._hashes: set[str] = set(initial)

    def __contains__(self, digest: object) -> bool:
        return digest in self._hashes

    def __len__(self) -> int:
        return len(self._hashes)

    def add(self, digest: str) -> None:
        self._hashes.add(digest)


@dataclass(slots=True)
class DedupeResult:
    unique: list[PlannedUnit] = field(default_factory=list)
    skipped: int = 0


async def filter_units(units: Sequence[TextUnit], known: KnownFingerprints) -> DedupeResult:
    """Keep units whose fingerprint is new, recording each accepted fingerprint in ``known``.

    Yields to the event loop every ``YIELD_INTERVAL`` units; this does not
    affect ordering or results.
    """
    result = DedupeResult()
    for index, unit in enumerate(units):
        digest = fingerprint(unit.text)
        if digest in known:
            result.skipped += 1
        else:
            known.add(digest)
            result.unique.append(PlannedUnit(unit=unit, fingerprint=digest))
        if index and index % YIELD_INTERVAL == 0:
            await asyncio.sleep(0)
    return result


__all__ = ["KnownFingerprints", "DedupeResult", "filter_units", "YIELD_INTERVAL"]
