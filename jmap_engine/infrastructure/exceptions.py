"""
Infrastructure exceptions for the JMAP engine.

This module defines infrastructure-level exceptions related to the HTTP
transport and credential wiring.
"""

from jmap_engine.domain.exceptions import JmapEngineException


class InfrastructureException(JmapEngineException):
    """Base exception for transport and wiring problems."""

    pass


class CredentialsMissingError(InfrastructureException):
    """No bearer token was configured."""

    def __init__(self, setting: str = "JMAP_API_TOKEN"):
        super().__init__(
            f"No API token configured; set {setting}",
            "CREDENTIALS_MISSING",
            {"setting": setting},
        )


class TransportClosedError(InfrastructureException):
    """The HTTP client was used after close()."""

    def __init__(self):
        super().__init__("Transport is closed", "TRANSPORT_CLOSED")


class UnsupportedTransportError(InfrastructureException):
    """No transport is registered under the requested name."""

    def __init__(self, transport_type: str, supported: list[str]):
        super().__init__(
            f"Unsupported transport: {transport_type}. Supported: {', '.join(supported)}",
            "UNSUPPORTED_TRANSPORT",
            {"transport_type": transport_type, "supported": supported},
        )
