"""
Session domain entity.

An immutable snapshot of the server's capability and account manifest.
A new snapshot replaces the old one wholesale on refresh.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping
from urllib.parse import quote

from jmap_engine.domain.enums import Capability
from jmap_engine.domain.exceptions import AccountNotFoundError

# RFC 8620 section 2: minimum values clients may assume when unadvertised
DEFAULT_CORE_LIMITS: Mapping[str, int] = MappingProxyType(
    {
        "maxSizeUpload": 50_000_000,
        "maxConcurrentUpload": 4,
        "maxSizeRequest": 10_000_000,
        "maxConcurrentRequests": 4,
        "maxCallsInRequest": 16,
        "maxObjectsInGet": 500,
        "maxObjectsInSet": 500,
    }
)


@dataclass(frozen=True)
class AccountInfo:
    """One account from the session's account map"""

    id: str
    name: str = ""
    is_personal: bool = False
    is_read_only: bool = False
    account_capabilities: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def supports(self, capability: str) -> bool:
        return capability in self.account_capabilities


@dataclass(frozen=True)
class Session:
    """
    Domain entity for the JMAP session resource (RFC 8620 section 2).

    Never patched in place: the negotiator swaps whole snapshots.
    """

    capabilities: Mapping[str, Mapping[str, Any]]
    accounts: Mapping[str, AccountInfo]
    primary_accounts: Mapping[str, str]
    api_url: str
    state: str
    username: str = ""
    download_url: str | None = None
    upload_url: str | None = None
    event_source_url: str | None = None

    def supports(self, capability: str) -> bool:
        """Whether the server advertises the capability at session level"""
        return capability in self.capabilities

    def core_limits(self) -> dict[str, int]:
        """Core capability limits, falling back to RFC minimums"""
        limits = dict(DEFAULT_CORE_LIMITS)
        core = self.capabilities.get(Capability.CORE.value, {})
        for key in limits:
            value = core.get(key)
            if isinstance(value, int) and value > 0:
                limits[key] = value
        return limits

    @property
    def max_calls_in_request(self) -> int:
        return self.core_limits()["maxCallsInRequest"]

    def account(self, account_id: str) -> AccountInfo:
        try:
            return self.accounts[account_id]
        except KeyError:
            raise AccountNotFoundError(account_id) from None

    def select_account_id(self, capability: str = Capability.MAIL.value) -> str:
        """
        Pick the account to operate on.

        Order of preference: primary account for the capability, then the
        first personal account, then the first account listed.
        """
        if not self.accounts:
            raise AccountNotFoundError()

        primary = self.primary_accounts.get(capability)
        if primary and primary in self.accounts:
            return primary

        for account_id, info in self.accounts.items():
            if info.is_personal:
                return account_id

        return next(iter(self.accounts))

    def download_url_for(
        self, account_id: str, blob_id: str, name: str = "download", type: str = "application/octet-stream"
    ) -> str:
        """Expand the downloadUrl template (RFC 8620 section 6.2)"""
        if not self.download_url:
            raise ValueError("Session does not advertise a downloadUrl")
        return (
            self.download_url.replace("{accountId}", quote(account_id, safe=""))
            .replace("{blobId}", quote(blob_id, safe=""))
            .replace("{name}", quote(name, safe=""))
            .replace("{type}", quote(type, safe=""))
        )

    def upload_url_for(self, account_id: str) -> str:
        """Expand the uploadUrl template (RFC 8620 section 6.1)"""
        if not self.upload_url:
            raise ValueError("Session does not advertise an uploadUrl")
        return self.upload_url.replace("{accountId}", quote(account_id, safe=""))
