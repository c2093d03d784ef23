"""
Domain layer - protocol entities and rules.

This is the innermost layer containing entities, value objects, enums
and the error taxonomy. It has no dependencies on other layers.
"""

from jmap_engine.domain.entities import (AccountInfo, MethodCall,
                                         MethodResult, ObjectFailure, Record,
                                         Session, SetOutcome, SyncState)
from jmap_engine.domain.enums import (Capability, DataType, ErrorClass,
                                      ExitCode, Operation, ResultStatus,
                                      SyncStatus)
from jmap_engine.domain.exceptions import (AccountNotFoundError,
                                           AuthenticationRequiredError,
                                           DuplicateClientIdError,
                                           InvalidResultReferenceError,
                                           JmapEngineException,
                                           MalformedSessionError,
                                           MethodFailure, NotYetCreatedError,
                                           ProtocolViolation,
                                           RequestConstructionError,
                                           RequestRejected,
                                           RequestTooLargeError,
                                           SafetyRejectedError,
                                           SessionNotNegotiatedError,
                                           StateInvalidatedError,
                                           SyncInProgressError,
                                           TransportFailure,
                                           UnsupportedCapabilityError)
from jmap_engine.domain.value_objects import (ErrorClassification,
                                              ResultReference, SyncKey)

__all__ = [
    # Entities
    "AccountInfo",
    "Session",
    "MethodCall",
    "MethodResult",
    "Record",
    "ObjectFailure",
    "SetOutcome",
    "SyncState",
    # Value Objects
    "ResultReference",
    "SyncKey",
    "ErrorClassification",
    # Enums
    "Capability",
    "DataType",
    "ErrorClass",
    "ExitCode",
    "Operation",
    "ResultStatus",
    "SyncStatus",
    # Exceptions
    "JmapEngineException",
    "TransportFailure",
    "AuthenticationRequiredError",
    "RequestRejected",
    "MethodFailure",
    "ProtocolViolation",
    "RequestConstructionError",
    "DuplicateClientIdError",
    "InvalidResultReferenceError",
    "RequestTooLargeError",
    "MalformedSessionError",
    "UnsupportedCapabilityError",
    "AccountNotFoundError",
    "SessionNotNegotiatedError",
    "NotYetCreatedError",
    "StateInvalidatedError",
    "SyncInProgressError",
    "SafetyRejectedError",
]
