"""
Core value objects for the protocol engine.

Value objects are immutable and compared by value.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any

from jmap_engine.domain.enums import ErrorClass

# Argument keys carrying a reference are prefixed on the wire (RFC 8620 3.7)
REFERENCE_PREFIX = "#"


@dataclass(frozen=True)
class ResultReference:
    """
    An argument value the server substitutes from an earlier call's result.

    The engine only transmits the reference; it never evaluates the pointer.
    """

    result_of: str
    name: str
    path: str

    def __post_init__(self):
        if not self.result_of:
            raise ValueError("ResultReference.result_of cannot be empty")
        if not self.name:
            raise ValueError("ResultReference.name cannot be empty")
        if not self.path.startswith("/"):
            raise ValueError(f"ResultReference.path must be a JSON pointer: {self.path!r}")

    def to_wire(self) -> dict[str, str]:
        return {"resultOf": self.result_of, "name": self.name, "path": self.path}


@dataclass(frozen=True)
class SyncKey:
    """Identifies one state token: per account and data type, optionally per query."""

    account_id: str
    data_type: str
    query_key: str | None = None

    @classmethod
    def for_query(
        cls,
        account_id: str,
        data_type: str,
        filter: dict[str, Any] | None = None,
        sort: list[dict[str, Any]] | None = None,
    ) -> "SyncKey":
        """Build a key whose query part is a stable digest of filter and sort."""
        canonical = json.dumps(
            {"filter": filter, "sort": sort}, sort_keys=True, separators=(",", ":")
        )
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]
        return cls(account_id, data_type, digest)

    def __str__(self) -> str:
        base = f"{self.account_id}/{self.data_type}"
        return f"{base}?{self.query_key}" if self.query_key else base


@dataclass(frozen=True)
class ErrorClassification:
    """Recovery policy attached to every surfaced failure."""

    error_class: ErrorClass
    error_type: str
    description: str | None = None
    retry_after: float | None = None
    refresh_session: bool = False

    @property
    def is_retryable(self) -> bool:
        return self.error_class in (ErrorClass.RETRYABLE, ErrorClass.REAUTHENTICATE)
