"""
In-memory key-value store implementation for testing.

This module provides a simple in-memory store backend for:
- Unit tests
- Integration tests
- Local runs without an AWS account

Invariants:
    - All data is lost on process exit
    - transact_write() checks and applies every item without yielding to
      the event loop in between, so a transaction is atomic
    - Reads never observe a partially applied transaction

How to change safely:
    - This is test-only code, changes don't affect DynamoDB runs
    - Keep interface compatible with KeyValueStore protocol
    - Fault injection must never corrupt stored data, only what callers see
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional, Sequence
import logging

from ..record import VersionedRecord
from .base import (
    ReadConsistency,
    ReasonCode,
    StoreConnectionError,
    TransactionReason,
    TransactionRejected,
)

logger = logging.getLogger(__name__)

# DynamoDB spellings, so rejections look the same in logs for both backends
_RAW_CODES = {
    ReasonCode.NONE: "None",
    ReasonCode.CONFLICT: "TransactionConflict",
    ReasonCode.CONDITION_FAILED: "ConditionalCheckFailed",
    ReasonCode.OTHER: "ValidationError",
}


class InMemoryStore:
    """In-memory implementation of KeyValueStore for testing.

    Besides ordinary storage it can inject the faults the probe exists to
    detect:

    - inject_empty_reads(): latest-version queries for an id return nothing
      even though records exist
    - inject_rejection(): the next transactions are cancelled with a given
      reason

    Attributes:
        latency: Seconds each operation sleeps before touching data. A
            non-zero value interleaves concurrent workers between their
            read and their write.

    Example:
        >>> store = InMemoryStore()
        >>> await store.connect()
        >>> store.inject_empty_reads("parent", count=1)
        >>> await store.query_latest("parent", ReadConsistency.STRONG)  # None
    """

    def __init__(self, latency: float = 0.0) -> None:
        """Initialize in-memory store.

        Args:
            latency: Per-operation delay in seconds
        """
        self.latency = latency
        self._tables: Dict[str, Dict[int, VersionedRecord]] = defaultdict(dict)
        self._connected = False
        self._empty_reads: Dict[str, Optional[int]] = {}
        self._rejections: List[TransactionReason] = []
        self.read_count = 0
        self.write_count = 0

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._tables.clear()
        self._empty_reads.clear()
        self._rejections.clear()
        logger.debug("InMemoryStore closed")

    async def get_item(self, entity_id: str, version: int) -> Optional[VersionedRecord]:
        """Point read of one (id, version)."""
        await self._pause()
        self.read_count += 1
        return self._tables.get(entity_id, {}).get(version)

    async def query_latest(
        self,
        entity_id: str,
        consistency: ReadConsistency = ReadConsistency.STRONG,
    ) -> Optional[VersionedRecord]:
        """Return the greatest version for an id, honouring injected faults.

        Consistency is accepted for protocol compatibility; committed data
        is always visible immediately in memory.
        """
        await self._pause()
        self.read_count += 1

        if self._take_empty_read(entity_id):
            logger.debug("Injected empty read", extra={"entity_id": entity_id})
            return None

        versions = self._tables.get(entity_id)
        if not versions:
            return None
        return versions[max(versions)]

    async def transact_write(self, records: Sequence[VersionedRecord]) -> None:
        """Atomically put records guarded by key uniqueness.

        Raises:
            TransactionRejected: If any key exists or a rejection is injected
        """
        await self._pause()

        # No await below this point: check and apply form one atomic step
        if self._rejections:
            injected = self._rejections.pop(0)
            reasons = [injected] + [
                TransactionReason(ReasonCode.NONE, _RAW_CODES[ReasonCode.NONE])
                for _ in records[1:]
            ]
            raise TransactionRejected(reasons)

        reasons = []
        for record in records:
            if record.version in self._tables.get(record.id, {}):
                reasons.append(
                    TransactionReason(
                        ReasonCode.CONDITION_FAILED,
                        _RAW_CODES[ReasonCode.CONDITION_FAILED],
                        "The conditional request failed",
                    )
                )
            else:
                reasons.append(TransactionReason(ReasonCode.NONE, _RAW_CODES[ReasonCode.NONE]))

        if any(r.code is not ReasonCode.NONE for r in reasons):
            raise TransactionRejected(reasons)

        for record in records:
            self._tables[record.id][record.version] = record
        self.write_count += 1

        logger.debug(
            "Transaction committed to in-memory store",
            extra={"items": [str(r) for r in records]},
        )

    async def _pause(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected")
        if self.latency:
            await asyncio.sleep(self.latency)
        else:
            await asyncio.sleep(0)

    def _take_empty_read(self, entity_id: str) -> bool:
        if entity_id not in self._empty_reads:
            return False
        remaining = self._empty_reads[entity_id]
        if remaining is None:
            return True
        if remaining <= 1:
            del self._empty_reads[entity_id]
        else:
            self._empty_reads[entity_id] = remaining - 1
        return True

    # Fault injection

    def inject_empty_reads(self, entity_id: str, count: Optional[int] = None) -> None:
        """Make latest-version queries for an id return nothing.

        Args:
            entity_id: Entity whose queries should come back empty
            count: Number of queries affected (None means every query)
        """
        self._empty_reads[entity_id] = count

    def inject_rejection(self, code: ReasonCode, count: int = 1, raw_code: str = "") -> None:
        """Cancel the next transactions with the given first-item reason.

        Args:
            code: Reason reported for the first item
            count: Number of transactions to cancel
            raw_code: Backend code to report (defaults to DynamoDB's spelling)
        """
        reason = TransactionReason(code, raw_code or _RAW_CODES[code])
        self._rejections.extend([reason] * count)

    # Testing helpers

    def put_direct(self, record: VersionedRecord) -> None:
        """Store a record bypassing all checks (testing helper)."""
        self._tables[record.id][record.version] = record

    def versions(self, entity_id: str) -> List[int]:
        """Get the sorted committed versions of an id (testing helper)."""
        return sorted(self._tables.get(entity_id, {}))

    def records(self, entity_id: str) -> List[VersionedRecord]:
        """Get all records of an id in version order (testing helper)."""
        table = self._tables.get(entity_id, {})
        return [table[v] for v in sorted(table)]

    def entity_ids(self) -> List[str]:
        """Get all ids that have at least one record (testing helper)."""
        return sorted(k for k, v in self._tables.items() if v)
