"""Bearer-token providers"""

from jmap_engine.infrastructure.exceptions import CredentialsMissingError
from jmap_engine.shared.telemetry.logging import get_logger

logger = get_logger(__name__)


class StaticTokenProvider:
    """
    Serves a fixed API token.

    API tokens cannot be refreshed; ``refresh()`` returns the same token so
    the retried request surfaces AuthenticationRequiredError.
    """

    def __init__(self, token: str | None):
        if not token:
            raise CredentialsMissingError()
        self._token = token

    async def get_token(self) -> str:
        return self._token

    async def refresh(self) -> str:
        logger.warning("Static API token was rejected; it cannot be refreshed")
        return self._token

    def __repr__(self) -> str:
        return "StaticTokenProvider(token=***)"
