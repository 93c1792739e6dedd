"""
Unit tests for the conditional writer and log reader.

Tests cover:
- Rejection classification
- Uniqueness under concurrent writes
- Anomalous empty reads
"""

import asyncio

import pytest

from occprobe.occ.reader import LogReader
from occprobe.occ.results import Outcome
from occprobe.occ.writer import ConditionalWriter, classify_rejection
from occprobe.record import VersionedRecord
from occprobe.store.base import ReadConsistency, ReasonCode, TransactionReason
from occprobe.store.memory import InMemoryStore


def reasons(*codes):
    return [TransactionReason(code) for code in codes]


class TestClassifyRejection:
    """Tests for classify_rejection."""

    def test_condition_failed_is_retryable(self):
        assert classify_rejection(reasons(ReasonCode.CONDITION_FAILED, ReasonCode.NONE)) is (
            Outcome.RETRYABLE_CONFLICT
        )

    def test_conflict_is_retryable(self):
        assert classify_rejection(reasons(ReasonCode.NONE, ReasonCode.CONFLICT)) is (
            Outcome.RETRYABLE_CONFLICT
        )

    def test_other_is_fatal(self):
        assert classify_rejection(reasons(ReasonCode.OTHER, ReasonCode.NONE)) is Outcome.FATAL

    def test_other_beside_conflict_is_fatal(self):
        """An unexpected reason on any item wins over a conflict."""
        assert classify_rejection(reasons(ReasonCode.CONFLICT, ReasonCode.OTHER)) is Outcome.FATAL

    def test_no_reasons_is_fatal(self):
        assert classify_rejection([]) is Outcome.FATAL
        assert classify_rejection(reasons(ReasonCode.NONE, ReasonCode.NONE)) is Outcome.FATAL


class TestConditionalWriter:
    """Tests for ConditionalWriter."""

    @pytest.fixture
    def store(self):
        return InMemoryStore()

    @pytest.mark.asyncio
    async def test_write_success(self, store):
        """All items commit together."""
        await store.connect()
        writer = ConditionalWriter(store)

        result = await writer.write(
            [VersionedRecord.create("parent"), VersionedRecord.create("child-0")]
        )

        assert result.ok
        assert result.reasons == ()
        assert store.versions("parent") == [0]
        assert store.versions("child-0") == [0]

    @pytest.mark.asyncio
    async def test_write_conflict(self, store):
        """An existing key yields a retryable conflict and writes nothing."""
        await store.connect()
        writer = ConditionalWriter(store)
        await writer.write([VersionedRecord.create("parent")])

        result = await writer.write(
            [VersionedRecord("parent", 0, "child-0"), VersionedRecord("child-0", 1, "parent")]
        )

        assert result.outcome is Outcome.RETRYABLE_CONFLICT
        assert len(result.reasons) == 2
        assert store.versions("child-0") == []

    @pytest.mark.asyncio
    async def test_write_transaction_conflict(self, store):
        """A store-reported transaction conflict is retryable."""
        await store.connect()
        store.inject_rejection(ReasonCode.CONFLICT)

        result = await ConditionalWriter(store).write([VersionedRecord.create("parent")])

        assert result.outcome is Outcome.RETRYABLE_CONFLICT

    @pytest.mark.asyncio
    async def test_write_fatal(self, store):
        """Any other rejection reason is fatal, not retried."""
        await store.connect()
        store.inject_rejection(ReasonCode.OTHER, raw_code="ValidationError")

        result = await ConditionalWriter(store).write([VersionedRecord.create("parent")])

        assert result.outcome is Outcome.FATAL
        assert result.reasons[0].raw_code == "ValidationError"

    @pytest.mark.asyncio
    async def test_empty_write_rejected(self, store):
        await store.connect()

        with pytest.raises(ValueError):
            await ConditionalWriter(store).write([])

    @pytest.mark.asyncio
    async def test_concurrent_writes_exactly_one_wins(self, store):
        """Two writers targeting the same (id, version): one success, one conflict."""
        await store.connect()
        writer = ConditionalWriter(store)
        await writer.write([VersionedRecord.create("parent")])

        results = await asyncio.gather(
            writer.write([VersionedRecord("parent", 1, "child-0"), VersionedRecord("child-0", 1, "parent")]),
            writer.write([VersionedRecord("parent", 1, "child-1"), VersionedRecord("child-1", 1, "parent")]),
        )

        outcomes = sorted(r.outcome.value for r in results)
        assert outcomes == [Outcome.RETRYABLE_CONFLICT.value, Outcome.SUCCESS.value]
        assert store.versions("parent") == [0, 1]


class TestLogReader:
    """Tests for LogReader."""

    @pytest.fixture
    def store(self):
        return InMemoryStore()

    @pytest.mark.asyncio
    async def test_read_latest(self, store):
        """Reader returns the head of the version log."""
        await store.connect()
        await store.transact_write([VersionedRecord.create("parent")])
        await store.transact_write([VersionedRecord("parent", 1, "child-2")])

        result = await LogReader(store).read_latest("parent")

        assert result.ok
        assert result.record == VersionedRecord("parent", 1, "child-2")

    @pytest.mark.asyncio
    async def test_empty_read_is_anomaly(self, store):
        """An empty latest query is an anomaly, never a plain miss."""
        await store.connect()
        await store.transact_write([VersionedRecord.create("parent")])
        store.inject_empty_reads("parent", count=1)

        result = await LogReader(store, ReadConsistency.EVENTUAL).read_latest("parent")

        assert result.outcome is Outcome.ANOMALOUS_EMPTY_READ
        assert result.entity_id == "parent"
        assert result.record is None
