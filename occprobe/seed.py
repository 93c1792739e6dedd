"""
Setup phase: writes version 0 of the parent and every child.

Each initial record is written as its own single-item conditional
transaction. If one already exists the table holds data from an earlier
run under the same ids, and the probe refuses to continue: the final
verification would otherwise count versions it did not write.
"""

from __future__ import annotations

import logging
from typing import Sequence

from .errors import FatalStoreError, SetupError
from .occ.results import Outcome
from .occ.writer import ConditionalWriter
from .record import VersionedRecord
from .verify import Verifier

logger = logging.getLogger(__name__)


async def seed(
    writer: ConditionalWriter,
    verifier: Verifier,
    parent_id: str,
    child_ids: Sequence[str],
) -> None:
    """Create the initial version of every entity and check it landed.

    Args:
        writer: Conditional writer bound to the target store
        verifier: Verifier bound to the same store
        parent_id: Shared parent entity id
        child_ids: One id per worker

    Raises:
        SetupError: If an entity already exists
        FatalStoreError: If the store rejects a write for another reason
        VerificationError: If a written record cannot be read back
    """
    logger.info(
        f"Setting up the table with 1 parent and {len(child_ids)} children...",
        extra={"parent_id": parent_id, "children": len(child_ids)},
    )

    for entity_id in [parent_id, *child_ids]:
        result = await writer.write([VersionedRecord.create(entity_id)])
        if result.outcome is Outcome.RETRYABLE_CONFLICT:
            raise SetupError(
                f"Entity {entity_id} already exists; use a fresh table or another key prefix",
                entity_id=entity_id,
            )
        if result.outcome is Outcome.FATAL:
            raise FatalStoreError(
                f"Could not create {entity_id}", reasons=result.reasons
            )

    logger.info("Setup completed, verifying initial state...")

    report = await verifier.verify_all((entity_id, 1) for entity_id in [parent_id, *child_ids])
    report.raise_for_failures()
