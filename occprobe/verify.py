"""
Verifier: checks that every expected version of every entity exists.

Verification uses point reads of (id, version), never the latest-version
query the workers use, so an anomaly in that query path cannot hide
itself from the check meant to catch its effects.

Invariants:
    - Verification never writes
    - Re-running verification on unchanged data gives the same report
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from .errors import VerificationError
from .occ.results import Outcome
from .store.base import KeyValueStore

logger = logging.getLogger(__name__)

MISSING = "missing"
UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class VerificationFailure:
    """An (id, version) pair that violates the expected state.

    Attributes:
        entity_id: Entity that failed verification
        version: The offending version
        reason: "missing" (expected but absent) or "unexpected" (present
            beyond the expected count)
    """

    entity_id: str
    version: int
    reason: str = MISSING

    def to_dict(self) -> Dict[str, Any]:
        return {"entity_id": self.entity_id, "version": self.version, "reason": self.reason}

    def __str__(self) -> str:
        if self.reason == UNEXPECTED:
            return f"Unexpected id: {self.entity_id}, version: {self.version} exists"
        return f"Expected id: {self.entity_id}, version: {self.version} to exist"


@dataclass
class VerificationReport:
    """Result of verifying a set of entities.

    Attributes:
        checked: Number of entities checked
        failures: One failure per failing entity
    """

    checked: int = 0
    failures: List[VerificationFailure] = field(default_factory=list)

    @property
    def outcome(self) -> Outcome:
        return Outcome.VERIFICATION_FAILURE if self.failures else Outcome.SUCCESS

    @property
    def passed(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raise VerificationError if anything failed."""
        if self.failures:
            raise VerificationError(self.failures)


class Verifier:
    """Point-lookup verifier for version histories.

    Attributes:
        store: Store to read from
        exact: Also require that no version beyond the expected count exists

    Example:
        >>> verifier = Verifier(store)
        >>> await verifier.verify("parent", 31) is None
        True
    """

    def __init__(self, store: KeyValueStore, exact: bool = False) -> None:
        self.store = store
        self.exact = exact

    async def verify(self, entity_id: str, expected_count: int) -> VerificationFailure | None:
        """Check that versions 0..expected_count-1 of an id exist.

        Stops at the first missing version.

        Args:
            entity_id: Entity to check
            expected_count: Number of versions that must exist

        Returns:
            The first failure found, or None
        """
        if expected_count < 0:
            raise ValueError("expected_count must be >= 0")

        for version in range(expected_count):
            if await self.store.get_item(entity_id, version) is None:
                return VerificationFailure(entity_id, version, MISSING)

        if self.exact and await self.store.get_item(entity_id, expected_count) is not None:
            return VerificationFailure(entity_id, expected_count, UNEXPECTED)

        return None

    async def verify_all(self, expectations: Iterable[Tuple[str, int]]) -> VerificationReport:
        """Verify many entities.

        Args:
            expectations: (entity_id, expected_count) pairs

        Returns:
            VerificationReport listing every failing entity
        """
        report = VerificationReport()
        for entity_id, expected_count in expectations:
            report.checked += 1
            failure = await self.verify(entity_id, expected_count)
            if failure is not None:
                logger.error(str(failure), extra=failure.to_dict())
                report.failures.append(failure)
        return report
