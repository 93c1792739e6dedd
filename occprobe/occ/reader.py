"""
Log reader: fetches the latest committed version of an entity.

Every id the probe reads has at least one committed record before the
read is issued (program order plus read-committed isolation). An empty
latest-version query is therefore never "not found"; it is a consistency
violation of the store and is returned as ANOMALOUS_EMPTY_READ.

Invariants:
    - One LatestQuery per call, never retried here
    - Transport errors propagate as StoreError
"""

from __future__ import annotations

import logging

from ..store.base import KeyValueStore, ReadConsistency
from .results import Outcome, ReadResult

logger = logging.getLogger(__name__)


class LogReader:
    """Reads the head of an entity's version log.

    Example:
        >>> reader = LogReader(store, ReadConsistency.STRONG)
        >>> result = await reader.read_latest("parent")
        >>> result.record.version
        0
    """

    def __init__(
        self,
        store: KeyValueStore,
        consistency: ReadConsistency = ReadConsistency.STRONG,
    ) -> None:
        self.store = store
        self.consistency = consistency

    async def read_latest(self, entity_id: str) -> ReadResult:
        """Return the record with the greatest version for an id.

        Args:
            entity_id: Partition key to query

        Returns:
            ReadResult tagged SUCCESS with the record, or
            ANOMALOUS_EMPTY_READ if the query returned nothing
        """
        record = await self.store.query_latest(entity_id, self.consistency)

        if record is None:
            logger.debug(
                "Latest-version query returned no items",
                extra={"entity_id": entity_id, "consistency": self.consistency.value},
            )
            return ReadResult(Outcome.ANOMALOUS_EMPTY_READ, entity_id)

        return ReadResult(Outcome.SUCCESS, entity_id, record)
