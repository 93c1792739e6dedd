"""
Retry controller: one worker's optimistic read-modify-write loop.

Each worker owns one child entity. It commits, in a single transaction,
the next version of its child and the next version of the shared parent.
Workers race on the parent; the loser of a race sees a retryable conflict,
re-reads the parent and tries again.

    child_next = latest(child).next("parent")          # once
    loop:
        parent_next = latest(parent).next(child_id)
        write [parent_next, child_next]
        SUCCESS            -> done
        RETRYABLE_CONFLICT -> loop
        FATAL              -> raise FatalStoreError

An ANOMALOUS_EMPTY_READ on either read ends the worker at once, without a
retry and without writing anything.

Invariants:
    - The child item is computed once and resubmitted unchanged
    - At most one transaction of this worker ever commits
    - Anomalies are reported, never retried
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import FatalStoreError, RetryLimitExceeded
from .reader import LogReader
from .results import Outcome, ReadResult, WorkerResult
from .writer import ConditionalWriter

logger = logging.getLogger(__name__)

PARENT_ACTION = "parent"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy for conflicting writes.

    Attributes:
        max_attempts: Ceiling on write attempts per worker. None keeps
            retrying for as long as contention lasts.
    """

    max_attempts: int | None = None

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def allows(self, attempts: int) -> bool:
        """Whether another attempt may follow `attempts` failed ones."""
        return self.max_attempts is None or attempts < self.max_attempts


class RetryController:
    """Drives one child's mutation of itself and the shared parent.

    Attributes:
        child_id: Child entity owned by this worker (also the worker id)
        parent_id: Shared parent entity
        reader: Latest-version reader
        writer: Conditional writer
        policy: Retry policy

    Example:
        >>> controller = RetryController("child-0", "parent", reader, writer)
        >>> result = await controller.run()
        >>> result.outcome
        <Outcome.SUCCESS: 'success'>
    """

    def __init__(
        self,
        child_id: str,
        parent_id: str,
        reader: LogReader,
        writer: ConditionalWriter,
        policy: RetryPolicy | None = None,
    ) -> None:
        self.child_id = child_id
        self.parent_id = parent_id
        self.reader = reader
        self.writer = writer
        self.policy = policy or RetryPolicy()

    async def run(self) -> WorkerResult:
        """Run the read-modify-write loop until it commits or aborts.

        Returns:
            WorkerResult tagged SUCCESS or ANOMALOUS_EMPTY_READ

        Raises:
            FatalStoreError: If the store rejects a write for an unexpected reason
            RetryLimitExceeded: If the retry policy's ceiling is reached
            StoreError: On transport failures
        """
        child = await self.reader.read_latest(self.child_id)
        if not child.ok:
            return self._abort(child, attempts=0)
        child_next = child.record.next(PARENT_ACTION)

        attempts = 0
        while True:
            parent = await self.reader.read_latest(self.parent_id)
            if not parent.ok:
                return self._abort(parent, attempts)
            parent_next = parent.record.next(self.child_id)

            attempts += 1
            result = await self.writer.write([parent_next, child_next])

            if result.outcome is Outcome.SUCCESS:
                committed = WorkerResult(
                    worker_id=self.child_id,
                    outcome=Outcome.SUCCESS,
                    attempts=attempts,
                    parent_version=parent_next.version,
                )
                logger.debug(
                    f"Worker {self.child_id} committed {parent_next} and {child_next}",
                    extra=committed.to_dict(),
                )
                return committed

            if result.outcome is Outcome.FATAL:
                raise FatalStoreError(
                    f"Worker {self.child_id}: write of {parent_next} rejected "
                    f"[{', '.join(str(r) for r in result.reasons) or 'no reasons'}]",
                    reasons=result.reasons,
                )

            if not self.policy.allows(attempts):
                raise RetryLimitExceeded(self.child_id, attempts)

    def _abort(self, read: ReadResult, attempts: int) -> WorkerResult:
        aborted = WorkerResult(
            worker_id=self.child_id,
            outcome=Outcome.ANOMALOUS_EMPTY_READ,
            attempts=attempts,
            anomalous_entity=read.entity_id,
        )
        logger.warning(
            f"Read anomaly for id: {read.entity_id} - abort worker {self.child_id}",
            extra=aborted.to_dict(),
        )
        return aborted
