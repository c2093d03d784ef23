"""Wire schemas for JMAP documents"""
from jmap_engine.schemas.responses import (AddedItem, ChangesResponse,
                                           GetResponse, ProblemDetails,
                                           QueryChangesResponse,
                                           QueryResponse, UploadResponse)
from jmap_engine.schemas.session import AccountResource, SessionResource

__all__ = [
    "AccountResource",
    "SessionResource",
    "GetResponse",
    "ChangesResponse",
    "QueryResponse",
    "QueryChangesResponse",
    "AddedItem",
    "ProblemDetails",
    "UploadResponse",
]
