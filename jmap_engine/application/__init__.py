"""
Application layer - protocol engine.

This layer contains the engine proper:
- Interfaces (ports) for the transport and credential providers
- Services that build, demultiplex and classify batches
- Use cases that run batches and incremental sync loops
"""

from jmap_engine.application.interfaces import ITokenProvider, ITransport
from jmap_engine.application.services import (AuthorizedTransport,
                                              BatchRequest,
                                              DataTypeDescriptor,
                                              DemuxedResponse,
                                              ErrorClassifier, RequestBuilder,
                                              ResponseDemultiplexer,
                                              SessionNegotiator,
                                              SetOutcomeInterpreter,
                                              SyncStateTracker,
                                              TempIdResolver, TypeRegistry)
from jmap_engine.application.use_cases import (BatchExecutor, BatchOutcome,
                                               BlobTransfer,
                                               IncrementalSyncService,
                                               QuerySyncResult, SyncResult)

__all__ = [
    # Interfaces
    "ITransport",
    "ITokenProvider",
    # Services
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
    # Use Cases
    "BatchExecutor",
    "BatchOutcome",
    "BlobTransfer",
    "IncrementalSyncService",
    "SyncResult",
    "QuerySyncResult",
]
