"""
Optimistic concurrency core: read latest, compute next, write conditionally.

Conflicts are absorbed inside RetryController; anomalous empty reads end
the worker and are reported through its WorkerResult.
"""

from .controller import PARENT_ACTION, RetryController, RetryPolicy
from .reader import LogReader
from .results import Outcome, ReadResult, WorkerResult, WriteResult
from .writer import ConditionalWriter, classify_rejection

__all__ = [
    "ConditionalWriter",
    "LogReader",
    "Outcome",
    "PARENT_ACTION",
    "ReadResult",
    "RetryController",
    "RetryPolicy",
    "WorkerResult",
    "WriteResult",
    "classify_rejection",
]
