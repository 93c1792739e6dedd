"""
Tagged results of the OCC read, write and worker operations.

Reads, writes and whole workers return a result tagged with an Outcome
instead of raising, so the retry loop branches on the outcome directly.
Only infrastructure failures travel as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..record import VersionedRecord
from ..store.base import TransactionReason


class Outcome(Enum):
    """Result tags shared by reader, writer, worker and verifier."""

    SUCCESS = "success"
    RETRYABLE_CONFLICT = "retryable_conflict"
    ANOMALOUS_EMPTY_READ = "anomalous_empty_read"
    VERIFICATION_FAILURE = "verification_failure"
    FATAL = "fatal"


@dataclass(frozen=True)
class ReadResult:
    """Result of a latest-version read.

    Attributes:
        outcome: SUCCESS or ANOMALOUS_EMPTY_READ
        entity_id: The id that was queried
        record: The latest record (only on SUCCESS)
    """

    outcome: Outcome
    entity_id: str
    record: VersionedRecord | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


@dataclass(frozen=True)
class WriteResult:
    """Result of an atomic conditional write.

    Attributes:
        outcome: SUCCESS, RETRYABLE_CONFLICT or FATAL
        records: The records that were submitted
        reasons: Per-item rejection reasons (empty on SUCCESS)
    """

    outcome: Outcome
    records: tuple[VersionedRecord, ...]
    reasons: tuple[TransactionReason, ...] = ()

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


@dataclass
class WorkerResult:
    """Final result of one worker's retry loop.

    Attributes:
        worker_id: The child id the worker owns
        outcome: SUCCESS or ANOMALOUS_EMPTY_READ
        attempts: Number of write attempts made
        parent_version: Parent version committed by this worker (on SUCCESS)
        anomalous_entity: Entity whose read came back empty (on anomaly)
    """

    worker_id: str
    outcome: Outcome
    attempts: int = 0
    parent_version: int | None = None
    anomalous_entity: str | None = None

    @property
    def committed(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "worker_id": self.worker_id,
            "outcome": self.outcome.value,
            "attempts": self.attempts,
            "parent_version": self.parent_version,
            "anomalous_entity": self.anomalous_entity,
        }
