"""
Service interfaces (ports) for the application layer.

These protocols define the contracts for the external collaborators the
engine consumes. Following Dependency Inversion Principle (DIP).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol


class ITransport(Protocol):
    """Protocol for the HTTP boundary (DIP)"""

    async def send(self, url: str, body: bytes, headers: Mapping[str, str]) -> bytes:
        """
        POST one request document and return the response document.

        Raises:
            TransportFailure: network errors, timeouts, 5xx, 429
            AuthenticationRequiredError: HTTP 401
            RequestRejected: 4xx carrying a JMAP problem document
        """
        ...

    async def fetch(self, url: str, headers: Mapping[str, str]) -> bytes:
        """GET a resource (the session document) and return its body"""
        ...


class ITokenProvider(Protocol):
    """Protocol for bearer-token credential providers (DIP)"""

    async def get_token(self) -> str:
        """Return the current access token"""
        ...

    async def refresh(self) -> str:
        """
        Obtain a new access token after the server answered 401.

        Providers without a refresh flow return the same token; the
        retried request then surfaces AuthenticationRequiredError.
        """
        ...
