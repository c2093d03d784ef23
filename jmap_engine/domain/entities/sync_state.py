"""
Sync state domain entity.

Tracks the opaque state token for one SyncKey through the
Unsynced -> UpToDate -> Syncing -> UpToDate cycle.
"""

from dataclasses import dataclass

from jmap_engine.domain.enums import SyncStatus
from jmap_engine.domain.value_objects import SyncKey


@dataclass(frozen=True)
class SyncState:
    """
    Immutable snapshot of the tracker's view of one key.

    While Syncing, ``since`` is the committed token the loop started from
    and ``token`` is the loop's cursor; a Syncing state without a cursor is
    a full fetch in progress.
    """

    key: SyncKey
    status: SyncStatus = SyncStatus.UNSYNCED
    token: str | None = None
    since: str | None = None

    @classmethod
    def unsynced(cls, key: SyncKey) -> "SyncState":
        return cls(key=key)

    @classmethod
    def up_to_date(cls, key: SyncKey, token: str) -> "SyncState":
        return cls(key=key, status=SyncStatus.UP_TO_DATE, token=token)

    def syncing(self) -> "SyncState":
        """Enter a changes loop from the committed token"""
        if self.status != SyncStatus.UP_TO_DATE or self.token is None:
            raise ValueError(f"Cannot start syncing {self.key} from {self.status.value}")
        return SyncState(key=self.key, status=SyncStatus.SYNCING, token=self.token, since=self.token)

    def fetching(self) -> "SyncState":
        """Enter a full fetch, remembering any committed token"""
        if self.is_syncing:
            raise ValueError(f"Cannot start a full fetch of {self.key} while syncing")
        return SyncState(key=self.key, status=SyncStatus.SYNCING, since=self.token)

    def committed(self) -> "SyncState":
        """The state an interrupted loop or fetch falls back to"""
        if self.since is None:
            return SyncState.unsynced(self.key)
        return SyncState.up_to_date(self.key, self.since)

    @property
    def is_unsynced(self) -> bool:
        return self.status == SyncStatus.UNSYNCED

    @property
    def is_syncing(self) -> bool:
        return self.status == SyncStatus.SYNCING

    @property
    def is_full_fetch(self) -> bool:
        return self.is_syncing and self.token is None
