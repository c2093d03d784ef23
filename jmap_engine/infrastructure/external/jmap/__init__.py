"""JMAP transport, credentials and engine wiring"""
from jmap_engine.infrastructure.external.jmap.factory import (
    JmapEngine, JmapEngineFactory)
from jmap_engine.infrastructure.external.jmap.http_transport import \
    HttpxTransport
from jmap_engine.infrastructure.external.jmap.token_provider import \
    StaticTokenProvider

__all__ = [
    "HttpxTransport",
    "JmapEngine",
    "JmapEngineFactory",
    "StaticTokenProvider",
]
