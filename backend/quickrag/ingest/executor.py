"""Concurrency-bounded submission of batches to an embedding backend."""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Awaitable, Callable, Sequence, Union

from quickrag.core.errors import ConfigurationError, EmbeddingError
from quickrag.core.logging import get_logger
from quickrag.core.metrics import EMBED_BATCHES, EMBED_RETRIES
from quickrag.ingest.types import Batch, IndexedUnit

logger = get_logger(__name__)

Vectors = list[list[float]]
EmbedFn = Callable[[list[str]], Union[Vectors, Awaitable[Vectors]]]

DEFAULT_MAX_DEPTH = 3
DEFAULT_TIMEOUT_SECONDS = 120.0


class BatchExecutor:
    """Runs batches through ``embed`` with at most ``max_concurrent`` calls in flight.

    Waiting batches are admitted in FIFO order as slots free up. A failed call
    is bisected and each half retried with one less level of depth; output
    order always matches input unit order.
    """

    def __init__(
        self,
        embed: EmbedFn,
        max_concurrent: int,
        max_depth: int = DEFAULT_MAX_DEPTH,
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if max_concurrent < 1:
            raise ConfigurationError("max concurrent embeddings must be at least 1")
        if max_depth < 0:
            raise ConfigurationError("retry depth must be non-negative")
        self._embed = embed
        self._is_async = inspect.iscoroutinefunction(embed) or inspect.iscoroutinefunction(
            getattr(embed, "__call__", None)
        )
        self.max_concurrent = max_concurrent
        self.max_depth = max_depth
        self.timeout = timeout

    async def execute(self, batches: Sequence[Batch]) -> list[IndexedUnit]:
        if not batches:
            return []
        total = len(batches)
        slots = asyncio.Semaphore(self.max_concurrent)

        async def admit(batch: Batch) -> tuple[int, Vectors]:
            async with slots:
                return batch.sequence_number, await self._run_batch(batch, total)

        tasks = [asyncio.create_task(admit(batch)) for batch in batches]
        completed: list[tuple[int, Vectors]] = []
        try:
            for next_done in asyncio.as_completed(tasks):
                completed.append(await next_done)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error("Embedding aborted after %d/%d batches", len(completed), total)
            raise

        completed.sort(key=lambda item: item[0])
        by_number = {batch.sequence_number: batch for batch in batches}
        indexed: list[IndexedUnit] = []
        for sequence_number, vectors in completed:
            batch = by_number[sequence_number]
            for planned, vector in zip(batch.units, vectors):
                indexed.append(IndexedUnit(unit=planned.unit, fingerprint=planned.fingerprint, vector=vector))
        return indexed

    async def _run_batch(self, batch: Batch, total: int) -> Vectors:
        texts = batch.texts
        logger.info(
            "Starting batch %d/%d (%d texts, ~%d tokens)",
            batch.sequence_number,
            total,
            len(texts),
            batch.estimated_tokens,
        )
        started = time.perf_counter()
        try:
            vectors = await asyncio.wait_for(self.embed_with_retry(texts, self.max_depth), self.timeout)
        except asyncio.TimeoutError as exc:
            EMBED_BATCHES.labels(status="failed").inc()
            raise EmbeddingError(
                f"Batch {batch.sequence_number} timed out after {self.timeout:g}s"
            ) from exc
        except EmbeddingError as exc:
            EMBED_BATCHES.labels(status="failed").inc()
            logger.error("Error in batch %d: %s", batch.sequence_number, exc)
            raise
        EMBED_BATCHES.labels(status="ok").inc()
        logger.info(
            "Completed batch %d/%d in %dms",
            batch.sequence_number,
            total,
            (time.perf_counter() - started) * 1000,
        )
        return vectors

    async def embed_with_retry(self, texts: list[str], max_depth: int) -> Vectors:
        """Embed ``texts``, bisecting on failure until ``max_depth`` is spent.

        Halves are retried one after the other so a batch never holds more
        than its single admission slot.
        """
        try:
            return await self._attempt(texts)
        except Exception as exc:
            if max_depth == 0 or len(texts) <= 1:
                if isinstance(exc, EmbeddingError):
                    raise
                raise EmbeddingError(f"Embedding failed for {len(texts)} texts: {exc}") from exc
            middle = len(texts) // 2
            EMBED_RETRIES.inc()
            logger.warning(
                "Batch failed, splitting into %d and %d texts and retrying (%s)",
                middle,
                len(texts) - middle,
                exc,
            )
            left = await self.embed_with_retry(texts[:middle], max_depth - 1)
            right = await self.embed_with_retry(texts[middle:], max_depth - 1)
            return left + right

    async def _attempt(self, texts: list[str]) -> Vectors:
        if self._is_async:
            vectors = await self._embed(texts)
        else:
            vectors = await asyncio.to_thread(self._embed, texts)
        vectors = list(vectors)
        if len(vectors) != len(texts):
            raise EmbeddingError(f"Backend returned {len(vectors)} vectors for {len(texts)} texts")
        return vectors


__all__ = ["BatchExecutor", "EmbedFn", "DEFAULT_MAX_DEPTH", "DEFAULT_TIMEOUT_SECONDS"]
