"""Domain value objects."""

from jmap_engine.domain.value_objects.core import (REFERENCE_PREFIX,
                                                   ErrorClassification,
                                                   ResultReference, SyncKey)

__all__ = [
    "REFERENCE_PREFIX",
    "ResultReference",
    "SyncKey",
    "ErrorClassification",
]
