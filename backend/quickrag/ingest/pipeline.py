"""Ingest pipeline orchestration."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path

from quickrag.core.config import Settings
from quickrag.core.errors import StoreError
from quickrag.core.logging import get_logger
from quickrag.core.metrics import INDEX_DURATION, INDEX_SIZE
from quickrag.db.store import UnitStore
from quickrag.ingest.batching import plan_batches
from quickrag.ingest.chunker import Chunker, create_chunker, filter_small_units
from quickrag.ingest.dedupe import KnownFingerprints, filter_units
from quickrag.ingest.embeddings import EmbeddingProvider
from quickrag.ingest.executor import BatchExecutor, EmbedFn
from quickrag.ingest.sync import reconcile, scan_directory
from quickrag.ingest.types import FileInfo, IndexReport, PlannedUnit, RunState, SyncPlan

logger = get_logger(__name__)


@dataclass(slots=True)
class PreparedRun:
    """Units and file records accumulated across every file of a run."""

    units: list[PlannedUnit] = field(default_factory=list)
    files: list[FileInfo] = field(default_factory=list)


class IndexPipeline:
    """Bring the unit store in line with a source directory.

    One run moves through ``SCANNING -> RECONCILING -> PREPARING -> EMBEDDING
    -> WRITING -> DONE``; any failure moves it to ``FAILED`` and re-raises.
    Unique units from all files are batched together rather than per file.
    """

    def __init__(
        self,
        store: UnitStore,
        embedder: EmbeddingProvider | EmbedFn,
        settings: Settings,
        chunker: Chunker | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.chunk_options = settings.chunk_options()
        self.batch_limits = settings.batch_limits()
        self.chunker = chunker or create_chunker(settings.chunk_strategy)
        embed = embedder.embed_batch if isinstance(embedder, EmbeddingProvider) else embedder
        self.executor = BatchExecutor(
            embed,
            max_concurrent=settings.max_concurrent_embeddings,
            timeout=settings.embed_timeout_seconds,
        )
        self.state = RunState.SCANNING
        self.report = IndexReport()

    async def run(self, root: Path, clear: bool = False) -> IndexReport:
        self.report = IndexReport()
        self.state = RunState.SCANNING
        started = time.perf_counter()
        logger.info("Indexing %s with %s chunker", root, self.chunker.name)
        try:
            await self._run(root, clear)
        except Exception as exc:
            self._transition(RunState.FAILED)
            self.report.detail = str(exc)
            INDEX_DURATION.labels(outcome="failed").observe(time.perf_counter() - started)
            logger.error(
                "Indexing failed: %s (files indexed: %d, files deleted: %d, units skipped: %d)",
                exc,
                self.report.files_indexed,
                self.report.files_deleted,
                self.report.units_skipped,
            )
            raise
        INDEX_DURATION.labels(outcome="done").observe(time.perf_counter() - started)
        return self.report

    async def _run(self, root: Path, clear: bool) -> None:
        report = self.report
        files = scan_directory(root, self.settings.include_glob, self.settings.exclude_glob)
        report.files_scanned = len(files)
        logger.info("Found %d files under %s", len(files), root)

        self._transition(RunState.RECONCILING)
        if clear:
            self.store.clear()
        plan = reconcile(files, {} if clear else self.store.get_file_records())
        logger.info(
            "%d files to index, %d to delete, %d unchanged",
            len(plan.to_index),
            len(plan.to_delete),
            len(plan.unchanged),
        )
        if plan.unchanged:
            report.units_skipped = self._count_stored_units(plan.unchanged)
        if plan.is_noop:
            logger.info("All files are already indexed and up to date")
            self._finish()
            return

        self._transition(RunState.PREPARING)
        prepared = await self._prepare(plan, {info.path: info for info in files})

        self._transition(RunState.EMBEDDING)
        batches = plan_batches(prepared.units, self.batch_limits)
        logger.info("Embedding %d units in %d batches", len(prepared.units), len(batches))
        indexed = await self.executor.execute(batches)

        self._transition(RunState.WRITING)
        self.store.write_units(indexed)
        report.units_new = len(indexed)
        for info in prepared.files:
            self.store.upsert_file_record(info.path, info.mtime)
        self._finish()

    async def _prepare(self, plan: SyncPlan, files: dict[str, FileInfo]) -> PreparedRun:
        report = self.report
        for path in plan.to_delete:
            if self._discard(path, drop_record=True):
                report.files_deleted += 1
        for path in plan.to_index:
            self._discard(path, drop_record=False)

        known = KnownFingerprints(self.store.get_known_fingerprints())
        prepared = PreparedRun()
        for path in plan.to_index:
            try:
                content = await asyncio.to_thread(_read_text, path)
            except OSError as exc:
                logger.warning("Could not read %s: %s", path, exc)
                continue
            units = self.chunker.chunk(content, path, self.chunk_options)
            units, dropped = filter_small_units(units, self.settings.min_chunk_size)
            result = await filter_units(units, known)
            report.units_below_minimum += dropped
            report.units_skipped += result.skipped
            report.files_indexed += 1
            prepared.units.extend(result.unique)
            prepared.files.append(files[path])
            logger.debug(
                "%s: %d units, %d new, %d already indexed",
                path,
                len(units),
                len(result.unique),
                result.skipped,
            )
        return prepared

    def _discard(self, path: str, drop_record: bool) -> bool:
        try:
            self.store.delete_units_for_path(path)
            if drop_record:
                self.store.delete_file_record(path)
        except StoreError as exc:
            logger.warning("Could not remove stale entries for %s: %s", path, exc)
            return False
        return True

    def _count_stored_units(self, paths: list[str]) -> int:
        counts = {item.file_path: item.units for item in self.store.file_stats()}
        return sum(counts.get(path, 0) for path in paths)

    def _finish(self) -> None:
        self.report.units_total = self.store.count_units()
        INDEX_SIZE.set(self.report.units_total)
        self._transition(RunState.DONE)
        logger.info(
            "Added %d new units (%d already existed). Total units in index: %d",
            self.report.units_new,
            self.report.units_skipped,
            self.report.units_total,
        )

    def _transition(self, state: RunState) -> None:
        logger.info("State %s -> %s", self.state.value, state.value)
        self.state = state
        self.report.state = state


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        return fh.read()


__all__ = ["IndexPipeline", "PreparedRun"]
