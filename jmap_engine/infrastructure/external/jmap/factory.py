"""Engine factory: wires transport, credentials and services from settings"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from jmap_engine.application.interfaces import ITokenProvider, ITransport
from jmap_engine.application.services import (AuthorizedTransport,
                                              SessionNegotiator,
                                              SyncStateTracker, TypeRegistry)
from jmap_engine.application.use_cases import (BatchExecutor, BlobTransfer,
                                               IncrementalSyncService)
from jmap_engine.application.use_cases.batch_executor import ConfirmCallback
from jmap_engine.infrastructure.config.settings import Settings, get_settings
from jmap_engine.infrastructure.exceptions import UnsupportedTransportError
from jmap_engine.infrastructure.external.jmap.http_transport import \
    HttpxTransport
from jmap_engine.infrastructure.external.jmap.token_provider import \
    StaticTokenProvider
from jmap_engine.shared.telemetry.logging import get_logger, setup_logging
from jmap_engine.shared.telemetry.telemetry import (TelemetryConfig,
                                                    configure_telemetry)

logger = get_logger(__name__)


@dataclass
class JmapEngine:
    """A fully wired engine for one server"""

    transport: ITransport
    negotiator: SessionNegotiator
    executor: BatchExecutor
    sync: IncrementalSyncService
    blobs: BlobTransfer
    telemetry: TelemetryConfig | None = None

    async def aclose(self) -> None:
        close = getattr(self.transport, "aclose", None)
        if close is not None:
            await close()
        if self.telemetry is not None:
            self.telemetry.shutdown()

    async def __aenter__(self) -> "JmapEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class JmapEngineFactory:
    """Factory for creating engine instances"""

    _transports: ClassVar[dict[str, type]] = {
        "httpx": HttpxTransport,
    }

    @classmethod
    def create_transport(cls, transport_type: str, settings: Settings) -> ITransport:
        """
        Create a transport by name.

        Raises:
            UnsupportedTransportError: If transport_type is not registered
        """
        transport_class = cls._transports.get(transport_type.lower())
        if not transport_class:
            raise UnsupportedTransportError(transport_type, cls.list_supported_transports())
        logger.info("Creating %s (timeout=%ss)", transport_class.__name__, settings.request_timeout)
        return transport_class(timeout=settings.request_timeout)

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        token_provider: ITokenProvider | None = None,
        transport: ITransport | None = None,
        registry: TypeRegistry | None = None,
        confirm: ConfirmCallback | None = None,
        transport_type: str = "httpx",
    ) -> JmapEngine:
        """
        Build an engine from settings.

        Args:
            settings: Engine settings (defaults to get_settings())
            token_provider: Credential source (defaults to the configured API token)
            transport: Pre-built transport (defaults to create_transport(transport_type))
            registry: Data type registry (defaults to the built-in table)
            confirm: Callback approving destructive batches

        Raises:
            CredentialsMissingError: No token provider and no api_token configured
        """
        settings = settings or get_settings()
        token_provider = token_provider or StaticTokenProvider(settings.api_token)
        transport = transport or cls.create_transport(transport_type, settings)
        registry = registry or TypeRegistry()

        authorized = AuthorizedTransport(transport, token_provider, settings.user_agent)
        negotiator = SessionNegotiator(authorized, settings.session_url, registry)
        tracker = SyncStateTracker()
        executor = BatchExecutor(
            negotiator,
            authorized,
            tracker,
            registry,
            max_calls_fallback=settings.max_calls_fallback,
            send_created_ids=settings.send_created_ids,
            require_confirmation=settings.require_destructive_confirmation,
            confirm=confirm,
        )
        sync = IncrementalSyncService(
            executor,
            tracker,
            max_changes=settings.default_max_changes,
            max_iterations=settings.max_sync_iterations,
        )
        return JmapEngine(
            transport=transport,
            negotiator=negotiator,
            executor=executor,
            sync=sync,
            blobs=BlobTransfer(negotiator, authorized),
            telemetry=configure_telemetry(settings) if settings.telemetry_enabled else None,
        )

    @classmethod
    def from_environment(cls, **kwargs) -> JmapEngine:
        """Load settings from the environment, configure logging and build an engine"""
        settings = get_settings()
        setup_logging(settings.debug)
        return cls.create(settings, **kwargs)

    @classmethod
    def register_transport(cls, transport_type: str, transport_class: type) -> None:
        """
        Register a custom transport.

        Args:
            transport_type: Transport identifier (e.g., 'aiohttp')
            transport_class: Class implementing ITransport, accepting ``timeout``
        """
        cls._transports[transport_type.lower()] = transport_class
        logger.info("Registered custom transport: %s", transport_type)

    @classmethod
    def list_supported_transports(cls) -> list[str]:
        """Get list of supported transport types"""
        return list(cls._transports.keys())
