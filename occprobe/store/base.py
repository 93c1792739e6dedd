"""
Base protocol and types for the transactional key-value store abstraction.

This module defines the KeyValueStore protocol that all backends must
implement, along with the read consistency levels, transaction rejection
reasons and store errors.

Invariants:
    - get_item() and query_latest() never observe uncommitted data
    - transact_write() applies all items or none of them
    - A rejected transaction names a reason for every item it contained

How to change safely:
    - Protocol changes require updating all implementations
    - Keep backend-specific rejection codes in TransactionReason.raw_code
    - Add new reason codes only together with a writer classification rule
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import (
    TYPE_CHECKING,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)
import logging

from ..record import VersionedRecord

if TYPE_CHECKING:
    from ..config import AppConfig

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for store operations."""
    pass


class StoreConnectionError(StoreError):
    """Connection to the store backend failed."""
    pass


class StoreAuthError(StoreError):
    """Credentials are missing, invalid or expired."""
    pass


class StoreTimeoutError(StoreError):
    """Store operation timed out or was throttled."""
    pass


class ReadConsistency(Enum):
    """Consistency strength of the latest-version query."""

    STRONG = "strong"
    EVENTUAL = "eventual"

    @property
    def consistent_read(self) -> bool:
        """Value for DynamoDB's ConsistentRead flag."""
        return self is ReadConsistency.STRONG


class ReasonCode(Enum):
    """Why a single item of a transaction was rejected."""

    NONE = "none"
    CONFLICT = "conflict"
    CONDITION_FAILED = "condition-failed"
    OTHER = "other"


@dataclass(frozen=True)
class TransactionReason:
    """Per-item cancellation reason.

    Attributes:
        code: Normalized reason code
        raw_code: Backend code as reported (e.g. "TransactionConflict")
        message: Optional backend message
    """
    code: ReasonCode
    raw_code: str = ""
    message: str = ""

    def __str__(self) -> str:
        return self.raw_code or self.code.value


class TransactionRejected(StoreError):
    """An atomic conditional write was cancelled; none of its items applied.

    Attributes:
        reasons: One reason per item, in submission order. May be empty when
            the backend did not report per-item reasons.
    """

    def __init__(self, reasons: Sequence[TransactionReason], message: str = "") -> None:
        self.reasons: List[TransactionReason] = list(reasons)
        codes = ", ".join(str(r) for r in self.reasons) or "no reasons reported"
        super().__init__(message or f"Transaction cancelled [{codes}]")


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for versioned, transactional key-value stores.

    Records are addressed by the composite key (id, version). Backends must
    provide read-committed isolation and atomic conditional multi-item
    writes; nothing else is assumed.

    Example:
        >>> store = InMemoryStore()
        >>> await store.connect()
        >>> await store.transact_write([VersionedRecord.create("parent")])
        >>> await store.query_latest("parent", ReadConsistency.STRONG)
        VersionedRecord(id='parent', version=0, action='create')
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the store backend.

        Raises:
            StoreConnectionError: If the backend is unreachable
            StoreAuthError: If credentials are rejected
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        ...

    @abstractmethod
    async def get_item(self, entity_id: str, version: int) -> Optional[VersionedRecord]:
        """Point read of one (id, version).

        Returns:
            The record, or None if it does not exist
        """
        ...

    @abstractmethod
    async def query_latest(
        self,
        entity_id: str,
        consistency: ReadConsistency,
    ) -> Optional[VersionedRecord]:
        """Return the record with the greatest version for an id.

        Implemented as a descending, limit-1 query on the partition key.

        Returns:
            The latest record, or None if the query returned no items
        """
        ...

    @abstractmethod
    async def transact_write(self, records: Sequence[VersionedRecord]) -> None:
        """Atomically put all records, each guarded by key uniqueness.

        Raises:
            TransactionRejected: If any item's precondition failed or the
                transaction conflicted; nothing was written
            StoreConnectionError: On transport failures
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...


def create_store(config: "AppConfig") -> KeyValueStore:
    """Factory function to create a store from configuration.

    Args:
        config: Application configuration

    Returns:
        Appropriate KeyValueStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .dynamodb import DynamoDBStore
    from .memory import InMemoryStore

    if config.backend == StoreBackend.DYNAMODB:
        return DynamoDBStore(config.dynamodb)
    elif config.backend == StoreBackend.MEMORY:
        return InMemoryStore()
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")
