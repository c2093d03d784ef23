"""Blob upload and download through the session's URL templates"""

from __future__ import annotations

import json

from pydantic import ValidationError

from jmap_engine.application.services.authorized_transport import \
    AuthorizedTransport
from jmap_engine.application.services.session_negotiator import \
    SessionNegotiator
from jmap_engine.domain.exceptions import ProtocolViolation
from jmap_engine.schemas import UploadResponse
from jmap_engine.shared.telemetry.logging import get_logger
from jmap_engine.shared.telemetry.tracing import traced

logger = get_logger(__name__)


class BlobTransfer:
    """Binary data moves outside the API endpoint (RFC 8620 section 6)"""

    def __init__(self, negotiator: SessionNegotiator, transport: AuthorizedTransport):
        self.negotiator = negotiator
        self.transport = transport

    @traced("jmap.blob.download")
    async def download(
        self,
        account_id: str,
        blob_id: str,
        name: str = "download",
        content_type: str = "application/octet-stream",
    ) -> bytes:
        session = await self.negotiator.negotiate()
        url = session.download_url_for(account_id, blob_id, name, content_type)
        data = await self.transport.fetch(url)
        logger.debug("Downloaded blob %s (%d bytes)", blob_id, len(data))
        return data

    @traced("jmap.blob.upload")
    async def upload(
        self, account_id: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> UploadResponse:
        """
        Upload binary data and return the server's blob descriptor.

        Raises:
            ProtocolViolation: The upload response is not a blob descriptor
        """
        session = await self.negotiator.negotiate()
        raw = await self.transport.send(session.upload_url_for(account_id), data, content_type)
        try:
            response = UploadResponse.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise ProtocolViolation(f"Malformed upload response: {e}") from e
        logger.info("Uploaded blob %s (%d bytes, %s)", response.blob_id, response.size, response.type)
        return response
