"""Pydantic schemas for the JMAP session resource"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jmap_engine.domain.entities import AccountInfo, Session
from jmap_engine.domain.enums import Capability


class AccountResource(BaseModel):
    """Schema for one entry of the session's ``accounts`` map"""

    name: str = ""
    is_personal: bool = Field(False, alias="isPersonal")
    is_read_only: bool = Field(False, alias="isReadOnly")
    account_capabilities: dict[str, dict[str, Any]] = Field(
        default_factory=dict, alias="accountCapabilities"
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SessionResource(BaseModel):
    """Schema for the session document (RFC 8620 section 2)"""

    capabilities: dict[str, dict[str, Any]]
    accounts: dict[str, AccountResource]
    primary_accounts: dict[str, str] = Field(default_factory=dict, alias="primaryAccounts")
    username: str = ""
    api_url: str = Field(alias="apiUrl")
    download_url: str | None = Field(None, alias="downloadUrl")
    upload_url: str | None = Field(None, alias="uploadUrl")
    event_source_url: str | None = Field(None, alias="eventSourceUrl")
    state: str

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("capabilities")
    @classmethod
    def validate_core_capability(cls, v: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
        if Capability.CORE.value not in v:
            raise ValueError(f"Session must advertise {Capability.CORE.value}")
        return v

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError("apiUrl must be an absolute http(s) URL")
        return v

    def to_entity(self) -> Session:
        """Convert to the immutable domain snapshot"""
        return Session(
            capabilities=self.capabilities,
            accounts={
                account_id: AccountInfo(
                    id=account_id,
                    name=account.name,
                    is_personal=account.is_personal,
                    is_read_only=account.is_read_only,
                    account_capabilities=account.account_capabilities,
                )
                for account_id, account in self.accounts.items()
            },
            primary_accounts=self.primary_accounts,
            api_url=self.api_url,
            state=self.state,
            username=self.username,
            download_url=self.download_url,
            upload_url=self.upload_url,
            event_source_url=self.event_source_url,
        )
