"""
Versioned record model.

A VersionedRecord is one committed state of an entity. All records that
share an id form the version history of that entity; the record with the
greatest version is the current state.

Invariants:
    - version starts at 0 and grows by exactly 1 per committed mutation
    - Records are immutable (frozen) once built
    - (id, version) is the composite primary key in the store

How to change safely:
    - New attributes must be optional in from_item() so old rows still load
    - Never change the key attribute names; they are the table key schema
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

ID = "id"
VERSION = "version"
ACTION = "action"

CREATE_ACTION = "create"


@dataclass(frozen=True)
class VersionedRecord:
    """One version of an entity.

    Attributes:
        id: Partition key shared by all versions of the entity
        version: Position of this record in the entity's history
        action: Annotation recording what produced this version

    Example:
        >>> parent = VersionedRecord.create("parent")
        >>> parent.next("child-3")
        VersionedRecord(id='parent', version=1, action='child-3')
    """

    id: str
    version: int
    action: str

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Record id must not be empty")
        if self.version < 0:
            raise ValueError(f"Record version must be >= 0, got {self.version}")

    @classmethod
    def create(cls, entity_id: str) -> VersionedRecord:
        """Build the initial version of an entity."""
        return cls(id=entity_id, version=0, action=CREATE_ACTION)

    def next(self, action: str) -> VersionedRecord:
        """Build the version that follows this one."""
        return VersionedRecord(id=self.id, version=self.version + 1, action=action)

    @property
    def key(self) -> tuple[str, int]:
        """Composite primary key (id, version)."""
        return (self.id, self.version)

    def to_item(self) -> dict[str, dict[str, str]]:
        """Convert to a DynamoDB attribute-value map."""
        return {
            ID: {"S": self.id},
            VERSION: {"N": str(self.version)},
            ACTION: {"S": self.action},
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> VersionedRecord:
        """Create from a DynamoDB attribute-value map.

        Raises:
            ValueError: If a key attribute is missing or malformed
        """
        try:
            entity_id = item[ID]["S"]
            version = int(item[VERSION]["N"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed record item {item!r}: {e}") from e

        action = item.get(ACTION, {}).get("S", "")
        return cls(id=entity_id, version=version, action=action)

    def __str__(self) -> str:
        return f"{self.id}@{self.version}"


# Write precondition: no record with this exact (id, version) exists
UNIQUE_KEY_CONDITION = f"attribute_not_exists({ID}) AND attribute_not_exists({VERSION})"
