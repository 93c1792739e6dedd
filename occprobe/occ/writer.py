"""
Conditional writer: submits versioned records as one atomic transaction.

Each item is guarded by "no record with this (id, version) exists". That
precondition is what turns a stale read into a detectable conflict: two
workers that computed the same next parent version cannot both commit.

Classification of a cancelled transaction:
    - every reported reason is NONE, CONFLICT or CONDITION_FAILED, and at
      least one is not NONE  -> RETRYABLE_CONFLICT
    - any item reports OTHER, or no per-item reasons   -> FATAL

Invariants:
    - A rejected transaction applied none of its items
    - The writer never retries; retrying is the controller's decision

How to change safely:
    - Adding a retryable reason widens what the retry loop absorbs silently;
      make sure the new reason cannot hide a store defect
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..record import VersionedRecord
from ..store.base import KeyValueStore, ReasonCode, TransactionReason, TransactionRejected
from .results import Outcome, WriteResult

logger = logging.getLogger(__name__)

RETRYABLE_REASONS = frozenset({ReasonCode.CONFLICT, ReasonCode.CONDITION_FAILED})


def classify_rejection(reasons: Sequence[TransactionReason]) -> Outcome:
    """Decide whether a cancelled transaction may be retried.

    Args:
        reasons: Per-item reasons reported by the store

    Returns:
        RETRYABLE_CONFLICT or FATAL
    """
    codes = {r.code for r in reasons}
    if not codes & RETRYABLE_REASONS:
        return Outcome.FATAL
    if ReasonCode.OTHER in codes:
        return Outcome.FATAL
    return Outcome.RETRYABLE_CONFLICT


class ConditionalWriter:
    """Atomic multi-item writer with per-item uniqueness preconditions.

    Example:
        >>> writer = ConditionalWriter(store)
        >>> result = await writer.write([parent.next("child-0"), child.next("parent")])
        >>> result.outcome
        <Outcome.SUCCESS: 'success'>
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def write(self, records: Sequence[VersionedRecord]) -> WriteResult:
        """Write all records atomically.

        Args:
            records: Ordered records to commit together

        Returns:
            WriteResult tagged SUCCESS, RETRYABLE_CONFLICT or FATAL

        Raises:
            ValueError: If records is empty
            StoreError: On transport failures
        """
        if not records:
            raise ValueError("Cannot write an empty transaction")

        items = tuple(records)
        try:
            await self.store.transact_write(items)
        except TransactionRejected as e:
            outcome = classify_rejection(e.reasons)
            if outcome is Outcome.FATAL:
                logger.error(
                    f"Transaction rejected for a non-retryable reason: {e}",
                    extra={"items": [str(r) for r in items]},
                )
            else:
                logger.debug(
                    f"Transaction conflicted: {e}",
                    extra={"items": [str(r) for r in items]},
                )
            return WriteResult(outcome, items, tuple(e.reasons))

        return WriteResult(Outcome.SUCCESS, items)
