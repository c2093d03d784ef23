"""httpx implementation of the transport port"""

from __future__ import annotations

import json
from collections.abc import Mapping

import httpx
from pydantic import ValidationError

from jmap_engine.application.services.error_classifier import \
    parse_retry_after
from jmap_engine.domain.exceptions import (AuthenticationRequiredError,
                                           RequestRejected, TransportFailure)
from jmap_engine.infrastructure.exceptions import TransportClosedError
from jmap_engine.schemas import ProblemDetails
from jmap_engine.shared.telemetry.logging import get_logger
from jmap_engine.shared.telemetry.tracing import TracedOperation

logger = get_logger(__name__)

PROBLEM_CONTENT_TYPES = ("application/problem+json", "application/json")


class HttpxTransport:
    """
    Sends request documents with an ``httpx.AsyncClient``.

    Status handling:
        401          -> AuthenticationRequiredError
        429, 5xx     -> TransportFailure carrying Retry-After
        other 4xx    -> RequestRejected when the body is a problem document,
                        TransportFailure otherwise
        network/timeout errors -> TransportFailure
    """

    def __init__(
        self,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True)
        self._closed = False

    async def send(self, url: str, body: bytes, headers: Mapping[str, str]) -> bytes:
        return await self._request("POST", url, headers, body)

    async def fetch(self, url: str, headers: Mapping[str, str]) -> bytes:
        return await self._request("GET", url, headers)

    async def _request(
        self, method: str, url: str, headers: Mapping[str, str], body: bytes | None = None
    ) -> bytes:
        if self._closed:
            raise TransportClosedError()

        async with TracedOperation("jmap.transport.request", {"http.method": method, "http.url": url}) as operation:
            try:
                response = await self._client.request(method, url, content=body, headers=dict(headers))
            except httpx.TimeoutException as e:
                raise TransportFailure(f"{method} {url} timed out: {e}") from e
            except httpx.HTTPError as e:
                raise TransportFailure(f"{method} {url} failed: {e}") from e

            operation.set_attribute("http.status_code", response.status_code)
            self._raise_for_status(response)
            return response.content

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        logger.info("%s %s -> HTTP %d", response.request.method, response.request.url, status)
        if status == 401:
            raise AuthenticationRequiredError()

        if status == 429 or status >= 500:
            raise TransportFailure(
                f"HTTP {status} from {response.request.url}",
                status_code=status,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        problem = HttpxTransport._problem(response)
        if problem is not None:
            raise RequestRejected(problem.type, problem.detail, status, problem.limit)
        raise TransportFailure(f"HTTP {status} from {response.request.url}", status_code=status)

    @staticmethod
    def _problem(response: httpx.Response) -> ProblemDetails | None:
        content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        if content_type not in PROBLEM_CONTENT_TYPES:
            return None
        try:
            return ProblemDetails.model_validate(json.loads(response.content))
        except (ValueError, ValidationError):
            return None

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
