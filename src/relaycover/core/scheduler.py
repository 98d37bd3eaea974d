"""
Bounded-concurrency batch scheduling.

[BatchScheduler][relaycover.core.scheduler.BatchScheduler] partitions an
identity list into contiguous batches and runs at most ``max_concurrent``
of them at a time inside an ``asyncio.TaskGroup``. Batches are started in
index order; a waiting batch starts as soon as any running batch finishes.

Exactly one completion notification is emitted, after the last batch
finishes, unless the run was cancelled first. A batch that raises is
logged and counted as finished so the rest of the run proceeds.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence


DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_CONCURRENT = 4

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Batch:
    """A contiguous slice of the identity list.

    Attributes:
        index: Zero-based position of the batch.
        identities: Identities in this batch, in input order.
    """

    index: int
    identities: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.identities)


@dataclass(slots=True)
class BatchProgress:
    """Counters of one scheduler run.

    All counters are reset at the start of each run via ``reset()``.
    """

    total: int = field(default=0)
    started: int = field(default=0)
    finished: int = field(default=0)
    failed: int = field(default=0)
    _monotonic_start: float = field(default=0.0, repr=False)

    def reset(self, total: int = 0) -> None:
        self._monotonic_start = time.monotonic()
        self.total = total
        self.started = 0
        self.finished = 0
        self.failed = 0

    @property
    def remaining(self) -> int:
        return self.total - self.finished

    @property
    def elapsed(self) -> float:
        """Seconds elapsed since the run started, rounded to 1 decimal."""
        return round(time.monotonic() - self._monotonic_start, 1)


class BatchScheduler:
    """Run batches of identities with a concurrency ceiling.

    Args:
        batch_size: Maximum identities per batch.
        max_concurrent: Maximum batches in flight at once.

    Raises:
        ValueError: If either bound is smaller than 1.

    Examples:
        ```python
        scheduler = BatchScheduler(batch_size=50, max_concurrent=4)

        async def run_batch(batch: Batch) -> None:
            await SubscriptionSession(pool, batch.identities, relays, kinds).run()

        await scheduler.run(followees, run_batch, on_complete=lambda: print("done"))
        ```
    """

    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"Batch size must be >= 1, got {batch_size}")
        if max_concurrent < 1:
            raise ValueError(f"Max concurrent batches must be >= 1, got {max_concurrent}")
        self._batch_size = batch_size
        self._max_concurrent = max_concurrent
        self._cancelled = False
        self._running = False
        self._tasks: set[asyncio.Task[None]] = set()
        self.progress = BatchProgress()

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @staticmethod
    def partition(identities: Sequence[str], batch_size: int) -> list[Batch]:
        """Split ``identities`` into ``ceil(len / batch_size)`` contiguous batches."""
        if batch_size < 1:
            raise ValueError(f"Batch size must be >= 1, got {batch_size}")
        return [
            Batch(index=i, identities=tuple(identities[start : start + batch_size]))
            for i, start in enumerate(range(0, len(identities), batch_size))
        ]

    async def run(
        self,
        identities: Sequence[str],
        run_batch: Callable[[Batch], Awaitable[None]],
        *,
        on_start: Callable[[Batch], None] | None = None,
        on_finish: Callable[[Batch], None] | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> int:
        """Run every batch of ``identities`` through ``run_batch``.

        Args:
            identities: Identities to schedule.
            run_batch: Coroutine function processing one batch.
            on_start: Called when a batch acquires a concurrency slot.
            on_finish: Called when a batch finishes, successfully or not.
            on_complete: Called once after the last batch finishes; never
                called if the run is cancelled.

        Returns:
            Number of batches that finished.

        Raises:
            RuntimeError: If the scheduler is already running.
        """
        if self._running:
            raise RuntimeError("Batch scheduler already running")
        self._running = True
        self._cancelled = False

        batches = self.partition(identities, self._batch_size)
        self.progress.reset(total=len(batches))
        semaphore = asyncio.Semaphore(self._max_concurrent)

        logger.debug(
            "batches_scheduled identities=%s batches=%s max_concurrent=%s",
            len(identities),
            len(batches),
            self._max_concurrent,
        )

        async def worker(batch: Batch) -> None:
            async with semaphore:
                if self._cancelled:
                    return
                self.progress.started += 1
                if on_start is not None:
                    on_start(batch)
                try:
                    await run_batch(batch)
                except Exception as e:
                    self.progress.failed += 1
                    logger.warning("batch_failed index=%s error=%s", batch.index, e)
                if self._cancelled:
                    return
                self.progress.finished += 1
                if on_finish is not None:
                    on_finish(batch)

        try:
            async with asyncio.TaskGroup() as tg:
                for batch in batches:
                    task = tg.create_task(worker(batch))
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
        finally:
            self._running = False

        if self._cancelled:
            logger.debug("batches_cancelled finished=%s", self.progress.finished)
            return self.progress.finished

        logger.debug(
            "batches_completed finished=%s failed=%s duration=%s",
            self.progress.finished,
            self.progress.failed,
            self.progress.elapsed,
        )
        if on_complete is not None:
            on_complete()
        return self.progress.finished

    def cancel(self) -> None:
        """Stop the run: waiting batches never start, running ones are cancelled."""
        self._cancelled = True
        for task in list(self._tasks):
            task.cancel()
