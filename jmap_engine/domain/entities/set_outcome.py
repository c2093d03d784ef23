"""
Set outcome domain entities.

The result of one ``*/set`` call, with per-object successes and failures
kept in separate maps.
"""

from dataclasses import dataclass, field
from typing import Any

from jmap_engine.domain.value_objects import ErrorClassification


@dataclass(frozen=True)
class Record:
    """One object of a data type: stable server id plus a property bag"""

    id: str
    properties: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)


@dataclass(frozen=True)
class ObjectFailure:
    """A SetError scoped to one object in a set call (RFC 8620 section 5.3)"""

    id: str
    error_type: str
    description: str | None = None
    properties: tuple[str, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict)
    classification: ErrorClassification | None = None


@dataclass
class SetOutcome:
    """
    Parsed result of one set call.

    Invariant: an id (or creation id) appears in at most one of the
    success/failure maps for its operation kind.
    """

    account_id: str | None = None
    old_state: str | None = None
    new_state: str | None = None
    created: dict[str, Record] = field(default_factory=dict)
    not_created: dict[str, ObjectFailure] = field(default_factory=dict)
    updated: dict[str, Record | None] = field(default_factory=dict)
    not_updated: dict[str, ObjectFailure] = field(default_factory=dict)
    destroyed: list[str] = field(default_factory=list)
    not_destroyed: dict[str, ObjectFailure] = field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return bool(self.not_created or self.not_updated or self.not_destroyed)

    def failures(self) -> list[ObjectFailure]:
        """All per-object failures in a flat list"""
        return [
            *self.not_created.values(),
            *self.not_updated.values(),
            *self.not_destroyed.values(),
        ]

    def created_ids(self) -> dict[str, str]:
        """Creation id -> permanent id for every successful create"""
        return {creation_id: record.id for creation_id, record in self.created.items()}
