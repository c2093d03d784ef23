"""Application services: the protocol engine's building blocks"""
from jmap_engine.application.services.authorized_transport import \
    AuthorizedTransport
from jmap_engine.application.services.error_classifier import (ErrorClassifier,
                                                               exit_code,
                                                               parse_retry_after)
from jmap_engine.application.services.request_builder import (BatchRequest,
                                                              RequestBuilder)
from jmap_engine.application.services.response_demux import (
    DemuxedResponse, ResponseDemultiplexer)
from jmap_engine.application.services.session_negotiator import \
    SessionNegotiator
from jmap_engine.application.services.set_interpreter import (
    SetOutcomeInterpreter, TempIdResolver)
from jmap_engine.application.services.sync_tracker import SyncStateTracker
from jmap_engine.application.services.type_registry import (
    DataTypeDescriptor, TypeRegistry, UnsupportedMethodError)

__all__ = [
    "AuthorizedTransport",
    "BatchRequest",
    "DataTypeDescriptor",
    "DemuxedResponse",
    "ErrorClassifier",
    "RequestBuilder",
    "ResponseDemultiplexer",
    "SessionNegotiator",
    "SetOutcomeInterpreter",
    "SyncStateTracker",
    "TempIdResolver",
    "TypeRegistry",
    "UnsupportedMethodError",
    "exit_code",
    "parse_retry_after",
]
