"""Domain entities."""

from jmap_engine.domain.entities.invocation import MethodCall, MethodResult
from jmap_engine.domain.entities.session import AccountInfo, Session
from jmap_engine.domain.entities.set_outcome import (ObjectFailure, Record,
                                                     SetOutcome)
from jmap_engine.domain.entities.sync_state import SyncState

__all__ = [
    "AccountInfo",
    "Session",
    "MethodCall",
    "MethodResult",
    "Record",
    "ObjectFailure",
    "SetOutcome",
    "SyncState",
]
