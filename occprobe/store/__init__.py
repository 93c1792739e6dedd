"""
Transactional key-value store abstraction for occprobe.

This module provides a pluggable store interface supporting:
- AWS DynamoDB (the system under test)
- In-memory (for testing, with fault injection)

The store is the only place where workers coordinate. Every write is a
conditional multi-item transaction keyed by (id, version).

Invariants:
    - Reads are read-committed: never uncommitted, possibly stale
    - transact_write() is all-or-nothing
    - Duplicate (id, version) commits are impossible

How to change safely:
    - New backends must implement KeyValueStore protocol
    - Translate backend rejection codes to ReasonCode, never leak them raw
"""

from .base import (
    KeyValueStore,
    ReadConsistency,
    ReasonCode,
    StoreAuthError,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    TransactionReason,
    TransactionRejected,
    create_store,
)
from .dynamodb import DynamoDBStore
from .memory import InMemoryStore

__all__ = [
    # Protocol and types
    "KeyValueStore",
    "ReadConsistency",
    "ReasonCode",
    "TransactionReason",
    # Errors
    "StoreError",
    "StoreConnectionError",
    "StoreAuthError",
    "StoreTimeoutError",
    "TransactionRejected",
    # Factory
    "create_store",
    # Implementations
    "DynamoDBStore",
    "InMemoryStore",
]
