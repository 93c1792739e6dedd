"""
Concurrency harness: runs one worker per child and joins them.

All workers are created up front and parked on an asyncio.Barrier. The
harness is the last party of the barrier, so every worker is released in
the same event-loop step, which maximizes the number of workers that read
the same parent version and race to commit its successor.

Lifecycle:
    create tasks -> barrier (all ready) -> run -> join (bounded) -> report

Invariants:
    - No worker starts before every worker is waiting at the barrier
    - If the deadline expires before the barrier trips, no worker starts
    - A worker cancelled before the barrier never starts
    - A cancelled worker stops at its next await; writes are atomic, so it
      leaves no partial state
    - A worker that raises aborts the whole run; its siblings are cancelled
    - No locks and no shared counters; the barrier and the join are the
      only coordination

How to change safely:
    - Keep the timeout budget shared between the barrier and the join
    - Always cancel and await leftover tasks before returning
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Sequence

from .occ.results import Outcome, WorkerResult

logger = logging.getLogger(__name__)

WorkerFn = Callable[[str], Awaitable[WorkerResult]]


@dataclass
class HarnessReport:
    """Result of one harness run.

    Attributes:
        results: Worker results keyed by worker id (finished workers only)
        unfinished: Worker ids that did not finish before the timeout
        elapsed_seconds: Wall time from release to join
        released: Whether the barrier released the workers. False means
            no worker ever started.
    """

    results: Dict[str, WorkerResult] = field(default_factory=dict)
    unfinished: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    released: bool = False

    @property
    def completed(self) -> bool:
        """Whether every worker finished."""
        return not self.unfinished

    @property
    def committed(self) -> List[str]:
        """Ids of workers that committed their mutation."""
        return [wid for wid, r in self.results.items() if r.committed]

    @property
    def anomalies(self) -> List[WorkerResult]:
        """Results of workers aborted by an anomalous empty read."""
        return [r for r in self.results.values() if r.outcome is Outcome.ANOMALOUS_EMPTY_READ]

    @property
    def total_attempts(self) -> int:
        return sum(r.attempts for r in self.results.values())


class ConcurrencyHarness:
    """Spawns, releases and joins one worker per child id.

    Attributes:
        worker: Coroutine function run for each worker id
        timeout: Overall budget in seconds for reaching the barrier plus
            joining every worker

    Example:
        >>> harness = ConcurrencyHarness(lambda cid: controller_for(cid).run(), timeout=60)
        >>> report = await harness.run(["child-0", "child-1"])
        >>> report.completed
        True
    """

    def __init__(self, worker: WorkerFn, timeout: float = 60.0) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.worker = worker
        self.timeout = timeout

    async def run(self, worker_ids: Sequence[str]) -> HarnessReport:
        """Run all workers concurrently and wait for them.

        Args:
            worker_ids: One id per worker; ids must be unique

        Returns:
            HarnessReport with per-worker results and unfinished ids

        Raises:
            ValueError: If worker ids are not unique
            Exception: Whatever a worker raised (fatal errors abort the run)
        """
        if len(set(worker_ids)) != len(worker_ids):
            raise ValueError("Worker ids must be unique")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        barrier = asyncio.Barrier(len(worker_ids) + 1)
        released = asyncio.Event()
        report = HarnessReport()

        tasks: Dict[asyncio.Task, str] = {
            asyncio.create_task(self._guarded(wid, barrier, released), name=f"worker-{wid}"): wid
            for wid in worker_ids
        }

        try:
            try:
                async with asyncio.timeout_at(deadline):
                    await barrier.wait()
            except TimeoutError:
                # The barrier may have tripped in the same step the deadline hit
                if not released.is_set():
                    await barrier.abort()
                    report.unfinished = list(worker_ids)
                    logger.error(
                        f"Timed out after {self.timeout}s before all workers were released"
                    )
                    return report

            report.released = True
            started = loop.time()
            logger.debug(f"Released {len(worker_ids)} workers")

            pending = set(tasks)
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending,
                    timeout=remaining,
                    return_when=asyncio.FIRST_EXCEPTION,
                )
                for task in done:
                    if task.cancelled():
                        continue
                    error = task.exception()
                    if error is not None:
                        logger.error(
                            f"Worker {tasks[task]} failed, aborting run: {error}",
                            extra={"worker_id": tasks[task]},
                        )
                        raise error
                    result = task.result()
                    if result is not None:
                        report.results[tasks[task]] = result

            report.elapsed_seconds = loop.time() - started
            report.unfinished = [tasks[t] for t in tasks if tasks[t] not in report.results]

            if report.unfinished:
                logger.error(
                    f"Timed out after {self.timeout}s waiting for workers: "
                    f"{', '.join(report.unfinished)}",
                    extra={"unfinished": report.unfinished},
                )
            return report

        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _guarded(
        self,
        worker_id: str,
        barrier: asyncio.Barrier,
        released: asyncio.Event,
    ) -> WorkerResult | None:
        try:
            await barrier.wait()
        except asyncio.BrokenBarrierError:
            logger.debug(f"Worker {worker_id} not started, barrier aborted")
            return None
        released.set()
        return await self.worker(worker_id)
