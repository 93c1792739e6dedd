"""
Error types for the occprobe core.

This module defines the exceptions raised above the store layer:
- OccError: Base exception
- FatalStoreError: The store rejected a write for an unexpected reason
- RetryLimitExceeded: A configured retry ceiling was reached
- SetupError: The table could not be seeded
- VerificationError: Expected versions are missing from the final state

Store-level failures (connection, credentials, throttling) are the
StoreError family in occprobe.store.base. Conflicts and empty reads are
not exceptions at all; they travel as tagged results (see occ.results).

Invariants:
    - All errors inherit from OccError
    - Errors include context for debugging
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .store.base import TransactionReason
    from .verify import VerificationFailure


class OccError(Exception):
    """Base exception for all occprobe core errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "OCC_ERROR"
        self.details = details or {}


class FatalStoreError(OccError):
    """A conditional write was rejected for a non-retryable reason.

    Raised when:
    - Any item reports a reason other than a conflict or failed condition
    - The store cancels a transaction without naming per-item reasons
    """

    def __init__(
        self,
        message: str,
        reasons: Optional[Sequence["TransactionReason"]] = None,
    ) -> None:
        reasons = list(reasons or [])
        super().__init__(
            message,
            code="FATAL_STORE_ERROR",
            details={"reasons": [str(r) for r in reasons]},
        )
        self.reasons = reasons


class RetryLimitExceeded(OccError):
    """A worker hit the configured retry ceiling without committing."""

    def __init__(self, worker_id: str, attempts: int) -> None:
        super().__init__(
            f"Worker {worker_id} gave up after {attempts} attempts",
            code="RETRY_LIMIT_EXCEEDED",
            details={"worker_id": worker_id, "attempts": attempts},
        )
        self.worker_id = worker_id
        self.attempts = attempts


class SetupError(OccError):
    """The initial version of an entity could not be written."""

    def __init__(self, message: str, entity_id: str) -> None:
        super().__init__(
            message,
            code="SETUP_ERROR",
            details={"entity_id": entity_id},
        )
        self.entity_id = entity_id


class VerificationError(OccError):
    """One or more expected (id, version) pairs are absent.

    Attributes:
        failures: Every failure found, one per entity at most
    """

    def __init__(self, failures: Sequence["VerificationFailure"]) -> None:
        self.failures: List["VerificationFailure"] = list(failures)
        summary = "; ".join(str(f) for f in self.failures)
        super().__init__(
            f"Verification failed: {summary}",
            code="VERIFICATION_FAILURE",
            details={"failures": [f.to_dict() for f in self.failures]},
        )
