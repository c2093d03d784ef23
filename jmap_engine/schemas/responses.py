"""Pydantic schemas for standard method responses (RFC 8620 section 5)"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GetResponse(BaseModel):
    """Schema for ``*/get`` responses"""

    account_id: str = Field(alias="accountId")
    state: str
    records: list[dict[str, Any]] = Field(default_factory=list, alias="list")
    not_found: list[str] = Field(default_factory=list, alias="notFound")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ChangesResponse(BaseModel):
    """Schema for ``*/changes`` responses"""

    account_id: str = Field(alias="accountId")
    old_state: str = Field(alias="oldState")
    new_state: str = Field(alias="newState")
    has_more_changes: bool = Field(alias="hasMoreChanges")
    created: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    destroyed: list[str] = Field(default_factory=list)
    # Mailbox/changes only (RFC 8621 section 2.2)
    updated_properties: list[str] | None = Field(None, alias="updatedProperties")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class QueryResponse(BaseModel):
    """Schema for ``*/query`` responses"""

    account_id: str = Field(alias="accountId")
    query_state: str = Field(alias="queryState")
    can_calculate_changes: bool = Field(False, alias="canCalculateChanges")
    position: int = 0
    ids: list[str] = Field(default_factory=list)
    total: int | None = None
    limit: int | None = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AddedItem(BaseModel):
    """One ``added`` entry of a ``*/queryChanges`` response"""

    id: str
    index: int


class QueryChangesResponse(BaseModel):
    """Schema for ``*/queryChanges`` responses"""

    account_id: str = Field(alias="accountId")
    old_query_state: str = Field(alias="oldQueryState")
    new_query_state: str = Field(alias="newQueryState")
    total: int | None = None
    removed: list[str] = Field(default_factory=list)
    added: list[AddedItem] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ProblemDetails(BaseModel):
    """Request-level error document (RFC 7807, RFC 8620 section 3.6.1)"""

    type: str
    status: int | None = None
    detail: str = ""
    limit: str | None = None

    model_config = ConfigDict(extra="allow")


class UploadResponse(BaseModel):
    """Blob descriptor returned by the upload endpoint (RFC 8620 section 6.1)"""

    account_id: str = Field(alias="accountId")
    blob_id: str = Field(alias="blobId")
    type: str
    size: int

    model_config = ConfigDict(populate_by_name=True, extra="allow")
