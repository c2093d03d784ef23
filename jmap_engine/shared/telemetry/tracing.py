"""Span helpers for the engine: decorator, context manager and current-span annotations"""
import inspect
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

logger = logging.getLogger(__name__)

TRACER_NAME = "jmap_engine"
ATTRIBUTE_PREFIX = "jmap."

# Keyword arguments never copied onto spans
_SENSITIVE_ARGS = frozenset({"token", "api_token", "headers", "body", "data", "secret"})
_SCALARS = (str, int, float, bool)


def _tracer():
    return trace.get_tracer(TRACER_NAME)


def _record_failure(span: Span, error: BaseException) -> None:
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)
    # Engine exceptions carry a machine-readable code
    error_code = getattr(error, "error_code", None)
    if isinstance(error_code, str):
        span.set_attribute("error.code", error_code)


@contextmanager
def _span(name: str, attributes: dict[str, Any], kwargs: dict[str, Any]) -> Iterator[Span]:
    with _tracer().start_as_current_span(name, record_exception=False, set_status_on_exception=False) as span:
        for key, value in attributes.items():
            span.set_attribute(key, value)
        for key, value in kwargs.items():
            if not key.startswith("_") and key not in _SENSITIVE_ARGS and isinstance(value, _SCALARS):
                span.set_attribute(f"arg.{key}", value)
        try:
            yield span
        except Exception as e:
            _record_failure(span, e)
            raise
        span.set_status(Status(StatusCode.OK))


def traced(operation_name: str | None = None, attributes: dict | None = None):
    """
    Decorator to create a span for a function

    Usage:
        @traced("jmap.batch.execute")
        async def execute(self, calls):
            ...

    Args:
        operation_name: Name of the operation (defaults to module.function)
        attributes: Static attributes added to every span
    """

    def decorator(func: Callable) -> Callable:
        span_name = operation_name or f"{func.__module__}.{func.__name__}"
        static = dict(attributes or {})

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with _span(span_name, static, kwargs):
                    return await func(*args, **kwargs)

            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with _span(span_name, static, kwargs):
                return func(*args, **kwargs)

        return sync_wrapper

    return decorator


def add_span_attributes(**attributes):
    """
    Add ``jmap.``-namespaced attributes to the current span

    Usage:
        add_span_attributes(calls=4, batches=1)
    """
    span = trace.get_current_span()
    if not span.is_recording():
        return
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(f"{ATTRIBUTE_PREFIX}{key}", value)


def add_span_event(name: str, attributes: dict | None = None):
    """
    Add an event to the current span

    Usage:
        add_span_event("sync.invalidated", {"key": "u1/Email"})
    """
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes=attributes or {})


class TracedOperation:
    """
    Context manager for one traced I/O operation

    Usage:
        async with TracedOperation("jmap.transport.request", {"http.url": url}) as op:
            response = await client.post(...)
            op.set_attribute("http.status_code", response.status_code)
    """

    def __init__(self, operation_name: str, attributes: dict | None = None):
        self.operation_name = operation_name
        self.attributes = attributes or {}
        self.span: Span | None = None

    def set_attribute(self, key: str, value: Any) -> None:
        if self.span is not None:
            self.span.set_attribute(key, value)

    def __enter__(self):
        self.span = _tracer().start_span(self.operation_name)
        for key, value in self.attributes.items():
            self.span.set_attribute(key, value)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.span is None:
            return
        if exc_val is not None:
            _record_failure(self.span, exc_val)
        else:
            self.span.set_status(Status(StatusCode.OK))
        self.span.end()

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.__exit__(exc_type, exc_val, exc_tb)
