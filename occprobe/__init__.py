"""
occprobe - Optimistic concurrency probe for transactional key-value stores.

This package drives many concurrent workers through a read-modify-write
loop against a versioned table, and reports any read that returns nothing
for an entity that is known to exist:

    ┌───────────┐     ┌──────────────────┐     ┌────────────────────┐
    │  Harness  │────▶│ RetryController  │────▶│ LogReader          │
    │ (barrier) │     │   (one / child)  │     │ ConditionalWriter  │
    └───────────┘     └──────────────────┘     └─────────┬──────────┘
                                                         │
                                                         ▼
                                  ┌─────────────────────────────────────┐
                                  │  KeyValueStore (DynamoDB / memory)  │
                                  └─────────────────────────────────────┘

Invariants:
    - Versions of an entity are contiguous from 0, never duplicated
    - Records are immutable once committed
    - A worker commits at most one transaction (its parent and child versions)
    - All mutual exclusion comes from the store's conditional writes

How to change safely:
    - New store backends must implement the KeyValueStore protocol
    - Keep conflict handling inside the retry loop; anomalies must stay visible
"""

from ._version import __version__

__all__ = ["__version__"]
