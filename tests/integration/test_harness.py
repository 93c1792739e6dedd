"""
Integration tests for the concurrency harness.

Tests cover:
- Concurrent workers against the in-memory store
- Timeouts and unfinished workers
- Fatal worker errors and cancellation
"""

import asyncio

import pytest

from occprobe.errors import FatalStoreError
from occprobe.harness import ConcurrencyHarness
from occprobe.occ import ConditionalWriter, LogReader, Outcome, RetryController, WorkerResult
from occprobe.record import VersionedRecord
from occprobe.store.memory import InMemoryStore


def success(worker_id: str) -> WorkerResult:
    return WorkerResult(worker_id=worker_id, outcome=Outcome.SUCCESS, attempts=1)


class TestConcurrencyHarness:
    """Tests for ConcurrencyHarness."""

    @pytest.fixture
    def store(self):
        return InMemoryStore()

    async def seeded(self, store):
        """Connect the store and create parent and five children."""
        await store.connect()
        for entity_id in ["parent"] + [f"child-{n}" for n in range(5)]:
            await store.transact_write([VersionedRecord.create(entity_id)])

    def controllers(self, store):
        reader = LogReader(store)
        writer = ConditionalWriter(store)

        async def run(child_id):
            return await RetryController(child_id, "parent", reader, writer).run()

        return run

    @pytest.mark.asyncio
    async def test_two_workers_commit(self, store):
        """Two racing workers both commit; parent gains two versions."""
        await self.seeded(store)
        harness = ConcurrencyHarness(self.controllers(store), timeout=5)

        report = await harness.run(["child-0", "child-1"])

        assert report.completed
        assert report.released
        assert sorted(report.committed) == ["child-0", "child-1"]
        assert store.versions("parent") == [0, 1, 2]
        assert store.versions("child-0") == [0, 1]
        assert store.versions("child-1") == [0, 1]

    @pytest.mark.asyncio
    async def test_released_workers_contend(self):
        """Workers released together read the same parent, so some must retry."""
        store = InMemoryStore(latency=0.01)
        await self.seeded(store)
        harness = ConcurrencyHarness(self.controllers(store), timeout=5)
        ids = [f"child-{n}" for n in range(5)]

        report = await harness.run(ids)

        assert len(report.committed) == 5
        assert report.total_attempts > 5
        assert sorted(r.parent_version for r in report.results.values()) == [1, 2, 3, 4, 5]
        assert [r.action for r in store.records("parent")][0] == "create"
        assert sorted(r.action for r in store.records("parent")[1:]) == ids

    @pytest.mark.asyncio
    async def test_timeout_reports_unfinished(self):
        """Slow workers are reported as unfinished and cancelled."""
        cancelled = []

        async def worker(worker_id):
            if worker_id == "slow":
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    cancelled.append(worker_id)
                    raise
            return success(worker_id)

        report = await ConcurrencyHarness(worker, timeout=0.2).run(["fast", "slow"])

        assert not report.completed
        assert report.unfinished == ["slow"]
        assert list(report.results) == ["fast"]
        assert cancelled == ["slow"]

    @pytest.mark.asyncio
    async def test_fatal_error_aborts_run(self):
        """A worker exception propagates and cancels its siblings."""
        cancelled = []

        async def worker(worker_id):
            if worker_id == "bad":
                raise FatalStoreError("rejected")
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(worker_id)
                raise

        with pytest.raises(FatalStoreError):
            await ConcurrencyHarness(worker, timeout=5).run(["a", "bad", "b"])

        assert set(cancelled) <= {"a", "b"}
        assert asyncio.all_tasks() == {asyncio.current_task()}

    @pytest.mark.asyncio
    async def test_cancelling_harness_cancels_workers(self):
        """Cancelling the run cancels every worker before it returns."""
        running = []
        cancelled = []

        async def worker(worker_id):
            running.append(worker_id)
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(worker_id)
                raise

        task = asyncio.create_task(ConcurrencyHarness(worker, timeout=5).run(["a", "b"]))
        while len(running) < 2:
            await asyncio.sleep(0.01)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert sorted(cancelled) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected(self):
        harness = ConcurrencyHarness(lambda wid: success(wid), timeout=1)

        with pytest.raises(ValueError):
            await harness.run(["child-0", "child-0"])

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            ConcurrencyHarness(lambda wid: success(wid), timeout=0)


class LateBarrier(asyncio.Barrier):
    """Barrier whose 'late' worker arrives a second after everyone else."""

    async def wait(self):
        task = asyncio.current_task()
        if task is not None and task.get_name() == "worker-late":
            await asyncio.sleep(1)
        return await super().wait()


class TestHarnessBarrierTimeout:
    """Tests for deadlines that expire around the release barrier."""

    @pytest.mark.asyncio
    async def test_deadline_before_barrier_starts_nothing(self, monkeypatch):
        """A party missing the deadline means no worker body ever runs."""
        monkeypatch.setattr("occprobe.harness.asyncio.Barrier", LateBarrier)
        started = []

        async def worker(worker_id):
            started.append(worker_id)
            return success(worker_id)

        report = await ConcurrencyHarness(worker, timeout=0.1).run(["early", "late"])

        assert started == []
        assert not report.released
        assert report.unfinished == ["early", "late"]
        assert report.results == {}
        assert asyncio.all_tasks() == {asyncio.current_task()}

    @pytest.mark.asyncio
    async def test_deadline_as_barrier_trips(self):
        """A worker that started is never reported as not released."""
        started = []
        cancelled = []

        async def worker(worker_id):
            started.append(worker_id)
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(worker_id)
                raise

        report = await ConcurrencyHarness(worker, timeout=1e-9).run(["a", "b", "c"])

        assert report.released == bool(started)
        assert sorted(report.unfinished) == ["a", "b", "c"]
        assert report.results == {}
        assert sorted(cancelled) == sorted(started)

    @pytest.mark.asyncio
    async def test_aborted_barrier_never_starts_worker(self):
        """A worker waiting on an aborted barrier returns None without running."""
        started = []

        async def worker(worker_id):
            started.append(worker_id)
            return success(worker_id)

        harness = ConcurrencyHarness(worker, timeout=1)
        barrier = asyncio.Barrier(2)
        released = asyncio.Event()

        waiting = asyncio.create_task(harness._guarded("a", barrier, released))
        await asyncio.sleep(0)
        await barrier.abort()

        assert await waiting is None
        assert started == []
        assert not released.is_set()
