"""Session negotiation: fetch, cache and query the capability manifest"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass

from pydantic import ValidationError

from jmap_engine.application.services.authorized_transport import \
    AuthorizedTransport
from jmap_engine.application.services.type_registry import TypeRegistry
from jmap_engine.domain.entities import Session
from jmap_engine.domain.enums import Capability, DataType
from jmap_engine.domain.exceptions import (MalformedSessionError,
                                           SessionNotNegotiatedError,
                                           UnsupportedCapabilityError)
from jmap_engine.schemas import SessionResource
from jmap_engine.shared.telemetry.logging import get_logger
from jmap_engine.shared.telemetry.tracing import traced

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Snapshot:
    generation: int
    session: Session


class SessionNegotiator:
    """
    Owns the cached Session for one server.

    The cache is a versioned snapshot replaced by a single reference swap,
    so readers see either the old or the new session, never a mix. The
    commit lock only guards the swap; it is never held while fetching.
    Concurrent refreshes may both fetch; the one started last wins.
    """

    def __init__(
        self,
        transport: AuthorizedTransport,
        session_url: str,
        registry: TypeRegistry | None = None,
    ):
        self.transport = transport
        self.session_url = session_url
        self.registry = registry or TypeRegistry()
        self._snapshot: _Snapshot | None = None
        self._stale = False
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def current(self) -> Session | None:
        """Last committed session, or None before the first negotiate()"""
        snapshot = self._snapshot
        return snapshot.session if snapshot else None

    @traced("jmap.session.negotiate")
    async def negotiate(self, force: bool = False) -> Session:
        """
        Return the cached session, fetching it when absent, stale or forced.

        Raises:
            TransportFailure: The session resource could not be fetched
            MalformedSessionError: The document is not a valid session
        """
        snapshot = self._snapshot
        if snapshot is not None and not force and not self._stale:
            return snapshot.session

        with self._lock:
            self._generation += 1
            generation = self._generation

        raw = await self.transport.fetch(self.session_url)
        session = self._parse(raw)

        with self._lock:
            current = self._snapshot
            if current is None or generation > current.generation:
                self._snapshot = _Snapshot(generation, session)
                self._stale = False
                logger.info(
                    "Session negotiated: state=%s, accounts=%d, capabilities=%d",
                    session.state,
                    len(session.accounts),
                    len(session.capabilities),
                )
            committed = self._snapshot
        return committed.session

    @staticmethod
    def _parse(raw: bytes) -> Session:
        try:
            document = json.loads(raw)
        except ValueError as e:
            raise MalformedSessionError(f"not JSON: {e}") from e
        if not isinstance(document, dict):
            raise MalformedSessionError("document is not an object")
        try:
            return SessionResource.model_validate(document).to_entity()
        except ValidationError as e:
            raise MalformedSessionError(str(e)) from e

    def mark_stale(self, session_state: str | None) -> None:
        """Flag the cache for refresh when a response reports a new sessionState"""
        snapshot = self._snapshot
        if snapshot is None or session_state is None:
            return
        if session_state != snapshot.session.state:
            logger.info(
                "Session state changed (%s -> %s), refreshing on next use",
                snapshot.session.state,
                session_state,
            )
            self._stale = True

    def invalidate(self) -> None:
        """Force the next negotiate() to refetch"""
        self._stale = True

    def _require_session(self) -> Session:
        session = self.current
        if session is None:
            raise SessionNotNegotiatedError()
        return session

    def required_capabilities(self, account_id: str, data_type: DataType | str) -> frozenset[str]:
        """
        Capabilities a batch must declare to use ``data_type`` in ``account_id``.

        Raises:
            UnsupportedCapabilityError: The session or account lacks a capability
            AccountNotFoundError: The account is not in the session
        """
        session = self._require_session()
        descriptor = self.registry.descriptor(data_type)
        capability = descriptor.capability

        if not session.supports(capability):
            raise UnsupportedCapabilityError(capability)
        # Core is session-wide and never listed per account
        if capability != Capability.CORE.value and not session.account(account_id).supports(capability):
            raise UnsupportedCapabilityError(capability, account_id)

        return frozenset({Capability.CORE.value, capability})

    def limits(self) -> dict[str, int]:
        return self._require_session().core_limits()

    def select_account_id(self, capability: str = Capability.MAIL.value) -> str:
        return self._require_session().select_account_id(capability)
