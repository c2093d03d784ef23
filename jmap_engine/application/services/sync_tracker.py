"""
Sync state tracker.

Owns the committed state token per SyncKey and the
Unsynced -> UpToDate -> Syncing -> UpToDate cycle. All transitions happen
under one short-held lock; the lock is never held across I/O.
"""

from __future__ import annotations

import threading

from jmap_engine.domain.entities import SyncState
from jmap_engine.domain.enums import SyncStatus
from jmap_engine.domain.exceptions import (StateInvalidatedError,
                                           SyncInProgressError)
from jmap_engine.domain.value_objects import SyncKey
from jmap_engine.shared.telemetry.logging import get_logger

logger = get_logger(__name__)


class SyncStateTracker:
    """
    Per-key state machine for incremental synchronization.

    A token is only replaced by the newState of a response whose oldState
    is the loop's current cursor. Intermediate cursors of a multi-page loop
    are not committed: an aborted loop or full fetch reverts the key to the
    token it started from. Invalidated tokens are remembered so they are
    rejected client-side if presented again.
    """

    def __init__(self):
        self._states: dict[SyncKey, SyncState] = {}
        self._invalidated: dict[SyncKey, set[str]] = {}
        self._lock = threading.Lock()

    def snapshot(self, key: SyncKey) -> SyncState:
        with self._lock:
            return self._states.get(key) or SyncState.unsynced(key)

    def begin_sync(self, key: SyncKey) -> str:
        """
        Enter the Syncing state and return the token to send as sinceState.

        Raises:
            StateInvalidatedError: The key has no usable token (full refetch needed)
            SyncInProgressError: Another loop already owns the key
        """
        with self._lock:
            state = self._states.get(key) or SyncState.unsynced(key)
            if state.is_syncing:
                raise SyncInProgressError(key.account_id, str(key.data_type))
            if state.is_unsynced:
                raise StateInvalidatedError(key.account_id, str(key.data_type))
            syncing = state.syncing()
            self._states[key] = syncing
        logger.debug("Sync started for %s from %s", key, syncing.token)
        return syncing.token

    def commit(self, key: SyncKey, old_state: str, new_state: str, has_more: bool) -> str:
        """
        Advance the token after a successfully classified changes response.

        The loop stays in Syncing while ``has_more`` is true, carrying the
        new token as its cursor, and returns to UpToDate otherwise.

        Returns:
            The new token, to be used as the next sinceState
        """
        with self._lock:
            state = self._states.get(key)
            if state is None or not state.is_syncing or state.is_full_fetch:
                raise StateInvalidatedError(key.account_id, str(key.data_type), old_state)
            if old_state != state.token:
                # The response does not continue from our token; refuse to advance
                raise StateInvalidatedError(key.account_id, str(key.data_type), old_state)

            if has_more:
                self._states[key] = SyncState(
                    key=key, status=SyncStatus.SYNCING, token=new_state, since=state.since
                )
            else:
                self._states[key] = SyncState.up_to_date(key, new_state)
        logger.debug("Committed %s: %s -> %s (more=%s)", key, old_state, new_state, has_more)
        return new_state

    def abort(self, key: SyncKey) -> None:
        """
        Leave Syncing after a failure or cancellation.

        The key reverts to the token the loop or fetch started from, so
        changes seen on earlier pages are delivered again by the next loop.
        """
        with self._lock:
            state = self._states.get(key)
            if state is None or not state.is_syncing:
                return
            self._states[key] = state.committed()
        logger.info("Sync aborted for %s; keeping token %s", key, state.since)

    def invalidate(self, key: SyncKey) -> None:
        """Discard the token; the key must be fully refetched"""
        with self._lock:
            state = self._states.get(key)
            if state is not None:
                # Both the loop cursor and the token it started from are unusable
                tokens = {state.token, state.since} - {None}
                self._invalidated.setdefault(key, set()).update(tokens)
            self._states[key] = SyncState.unsynced(key)
        logger.warning("State invalidated for %s; full refetch required", key)

    def begin_full(self, key: SyncKey) -> None:
        """
        Claim the key for a full fetch.

        Raises:
            SyncInProgressError: A loop or another full fetch owns the key
        """
        with self._lock:
            state = self._states.get(key) or SyncState.unsynced(key)
            if state.is_syncing:
                raise SyncInProgressError(key.account_id, str(key.data_type))
            self._states[key] = state.fetching()
        logger.debug("Full fetch started for %s", key)

    def commit_full(self, key: SyncKey, state: str) -> None:
        """Record the state returned by a full fetch (-> UpToDate)"""
        with self._lock:
            current = self._states.get(key)
            if current is not None and current.is_syncing and not current.is_full_fetch:
                raise SyncInProgressError(key.account_id, str(key.data_type))
            self._states[key] = SyncState.up_to_date(key, state)
        logger.debug("Full fetch committed for %s at %s", key, state)

    def ensure_usable(self, key: SyncKey, token: str) -> None:
        """
        Reject a token that was invalidated earlier.

        Raises:
            StateInvalidatedError: If ``token`` was previously invalidated
        """
        with self._lock:
            if token in self._invalidated.get(key, ()):
                raise StateInvalidatedError(key.account_id, str(key.data_type), token)
