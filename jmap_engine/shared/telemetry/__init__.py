"""Logging and tracing helpers"""
from jmap_engine.shared.telemetry.logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
