from unittest.mock import patch

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import \
    InMemorySpanExporter
from opentelemetry.trace import StatusCode

from jmap_engine.domain.exceptions import ProtocolViolation
from jmap_engine.shared.telemetry.tracing import (TracedOperation,
                                                  add_span_attributes,
                                                  add_span_event, traced)


@pytest.fixture
def exporter():
    """Routes engine spans to an in-memory exporter"""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    with patch("jmap_engine.shared.telemetry.tracing._tracer", lambda: provider.get_tracer("test")):
        yield exporter
    provider.shutdown()


class TestTraced:
    @pytest.mark.asyncio
    async def test_async_span_with_attributes_and_event(self, exporter):
        @traced("jmap.test.op", {"component": "test"})
        async def operation(*, account_id: str, token: str):
            add_span_attributes(calls=3, skipped=None)
            add_span_event("jmap.test.step", {"n": 1})
            return "done"

        assert await operation(account_id="u1", token="secret") == "done"

        [span] = exporter.get_finished_spans()
        assert span.name == "jmap.test.op"
        assert span.status.status_code == StatusCode.OK
        assert span.attributes["component"] == "test"
        assert span.attributes["arg.account_id"] == "u1"
        assert span.attributes["jmap.calls"] == 3
        assert "jmap.skipped" not in span.attributes
        assert "arg.token" not in span.attributes
        assert span.events[0].name == "jmap.test.step"

    def test_sync_failure_records_error_code(self, exporter):
        """
        GIVEN a traced function raising an engine exception
        WHEN it is called
        THEN the exception propagates and the span is marked with its error code.
        """

        @traced()
        def parse():
            raise ProtocolViolation("bad document")

        with pytest.raises(ProtocolViolation):
            parse()

        [span] = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["error.code"] == "PROTOCOL_VIOLATION"
        assert span.name.endswith(".parse")


class TestTracedOperation:
    @pytest.mark.asyncio
    async def test_attributes_set_inside_block(self, exporter):
        async with TracedOperation("jmap.transport.request", {"http.method": "POST"}) as operation:
            operation.set_attribute("http.status_code", 200)

        [span] = exporter.get_finished_spans()
        assert span.attributes["http.method"] == "POST"
        assert span.attributes["http.status_code"] == 200

    @pytest.mark.asyncio
    async def test_exception_is_not_suppressed(self, exporter):
        with pytest.raises(RuntimeError):
            async with TracedOperation("jmap.transport.request"):
                raise RuntimeError("boom")

        [span] = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR


def test_span_helpers_without_active_span_are_noops():
    add_span_attributes(calls=1)
    add_span_event("nothing")
