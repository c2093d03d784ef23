"""Bearer-token decoration of the transport boundary"""

from jmap_engine.application.interfaces import ITokenProvider, ITransport
from jmap_engine.domain.exceptions import AuthenticationRequiredError
from jmap_engine.shared.telemetry.logging import get_logger

logger = get_logger(__name__)


class AuthorizedTransport:
    """
    Adds ``Authorization: Bearer`` to every request.

    A 401 is treated as a provider matter, not a protocol error: the token
    provider is asked to refresh once and the request is replayed. A second
    401 propagates as AuthenticationRequiredError.
    """

    def __init__(self, transport: ITransport, token_provider: ITokenProvider, user_agent: str | None = None):
        self.transport = transport
        self.token_provider = token_provider
        self.user_agent = user_agent

    def _headers(self, token: str, content_type: str | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        if content_type:
            headers["Content-Type"] = content_type
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        return headers

    async def send(self, url: str, body: bytes, content_type: str = "application/json") -> bytes:
        """POST a request document or blob"""
        token = await self.token_provider.get_token()
        try:
            return await self.transport.send(url, body, self._headers(token, content_type))
        except AuthenticationRequiredError:
            logger.info("Server answered 401 for %s, refreshing token", url)
            token = await self.token_provider.refresh()
            return await self.transport.send(url, body, self._headers(token, content_type))

    async def fetch(self, url: str) -> bytes:
        """GET a resource"""
        token = await self.token_provider.get_token()
        try:
            return await self.transport.fetch(url, self._headers(token))
        except AuthenticationRequiredError:
            logger.info("Server answered 401 for %s, refreshing token", url)
            token = await self.token_provider.refresh()
            return await self.transport.fetch(url, self._headers(token))
