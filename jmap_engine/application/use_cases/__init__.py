"""Application use cases."""

from jmap_engine.application.use_cases.batch_executor import (BatchExecutor,
                                                              BatchOutcome)
from jmap_engine.application.use_cases.blob_transfer import BlobTransfer
from jmap_engine.application.use_cases.incremental_sync import (
    IncrementalSyncService, QuerySyncResult, SyncResult)

__all__ = [
    "BatchExecutor",
    "BatchOutcome",
    "BlobTransfer",
    "IncrementalSyncService",
    "SyncResult",
    "QuerySyncResult",
]
