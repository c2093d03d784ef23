"""Shared test fixtures for pytest"""
import json
from collections.abc import Callable, Mapping
from typing import Any
from unittest.mock import AsyncMock

import pytest

from jmap_engine.application.services import (AuthorizedTransport,
                                              SessionNegotiator,
                                              SyncStateTracker, TypeRegistry)
from jmap_engine.application.use_cases import (BatchExecutor,
                                               IncrementalSyncService)
from jmap_engine.domain.enums import Capability

SESSION_URL = "https://jmap.example.com/.well-known/jmap"
API_URL = "https://jmap.example.com/api/"
ACCOUNT_ID = "u1"


def make_session_document(state: str = "s1", max_calls: int = 16) -> dict[str, Any]:
    return {
        "capabilities": {
            Capability.CORE.value: {
                "maxSizeUpload": 50_000_000,
                "maxConcurrentUpload": 4,
                "maxSizeRequest": 10_000_000,
                "maxConcurrentRequests": 4,
                "maxCallsInRequest": max_calls,
                "maxObjectsInGet": 500,
                "maxObjectsInSet": 500,
                "collationAlgorithms": [],
            },
            Capability.MAIL.value: {},
            Capability.SUBMISSION.value: {},
        },
        "accounts": {
            ACCOUNT_ID: {
                "name": "user@example.com",
                "isPersonal": True,
                "isReadOnly": False,
                "accountCapabilities": {
                    Capability.MAIL.value: {},
                    Capability.SUBMISSION.value: {},
                },
            },
            "shared1": {
                "name": "shared@example.com",
                "isPersonal": False,
                "isReadOnly": True,
                "accountCapabilities": {Capability.MAIL.value: {}},
            },
        },
        "primaryAccounts": {
            Capability.MAIL.value: ACCOUNT_ID,
            Capability.SUBMISSION.value: ACCOUNT_ID,
        },
        "username": "user@example.com",
        "apiUrl": API_URL,
        "downloadUrl": "https://jmap.example.com/download/{accountId}/{blobId}/{name}?type={type}",
        "uploadUrl": "https://jmap.example.com/upload/{accountId}/",
        "eventSourceUrl": "https://jmap.example.com/events/",
        "state": state,
    }


def make_response(*responses: list, session_state: str = "s1", **extra: Any) -> dict[str, Any]:
    document: dict[str, Any] = {"methodResponses": [list(r) for r in responses], "sessionState": session_state}
    document.update(extra)
    return document


class FakeTransport:
    """
    In-memory ITransport.

    Each queued handler answers one POST: a dict is returned as the
    response document, an exception is raised, and a callable receives the
    decoded request document and returns the response document.
    """

    def __init__(self, session: dict[str, Any]):
        self.session = session
        self.handlers: list[Any] = []
        self.requests: list[dict[str, Any]] = []
        self.headers: list[dict[str, str]] = []
        self.fetch_count = 0

    def queue(self, *handlers: dict | BaseException | Callable[[dict], dict]) -> None:
        self.handlers.extend(handlers)

    async def send(self, url: str, body: bytes, headers: Mapping[str, str]) -> bytes:
        self.headers.append(dict(headers))
        document = json.loads(body)
        self.requests.append(document)
        if not self.handlers:
            raise AssertionError(f"Unexpected request: {document}")
        handler = self.handlers.pop(0)
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler):
            handler = handler(document)
        return json.dumps(handler).encode("utf-8")

    async def fetch(self, url: str, headers: Mapping[str, str]) -> bytes:
        self.fetch_count += 1
        self.headers.append(dict(headers))
        return json.dumps(self.session).encode("utf-8")


@pytest.fixture
def session_document() -> dict[str, Any]:
    """A session resource with mail and submission for account u1"""
    return make_session_document()


@pytest.fixture
def fake_transport(session_document) -> FakeTransport:
    return FakeTransport(session_document)


@pytest.fixture
def token_provider() -> AsyncMock:
    """Token provider mock that always yields the same token"""
    provider = AsyncMock()
    provider.get_token = AsyncMock(return_value="test-token")
    provider.refresh = AsyncMock(return_value="fresh-token")
    return provider


@pytest.fixture
def registry() -> TypeRegistry:
    return TypeRegistry()


@pytest.fixture
def authorized_transport(fake_transport, token_provider) -> AuthorizedTransport:
    return AuthorizedTransport(fake_transport, token_provider, "jmap-engine-tests")


@pytest.fixture
def negotiator(authorized_transport, registry) -> SessionNegotiator:
    return SessionNegotiator(authorized_transport, SESSION_URL, registry)


@pytest.fixture
def tracker() -> SyncStateTracker:
    return SyncStateTracker()


@pytest.fixture
def executor(negotiator, authorized_transport, tracker, registry) -> BatchExecutor:
    return BatchExecutor(negotiator, authorized_transport, tracker, registry)


@pytest.fixture
def sync_service(executor, tracker) -> IncrementalSyncService:
    return IncrementalSyncService(executor, tracker, max_changes=50, max_iterations=10)


@pytest.fixture
def respond() -> Callable[..., dict[str, Any]]:
    """Builds a response document from (name, arguments, client id) triples"""
    return make_response


@pytest.fixture
def session_factory() -> Callable[..., dict[str, Any]]:
    return make_session_document


@pytest.fixture
def account_id() -> str:
    return ACCOUNT_ID
