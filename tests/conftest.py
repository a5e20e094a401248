"""Shared pytest configuration and fixtures.

This module provides test fixtures that:
1. Build real SDK spans, either directly or through a TracerProvider
   with an InMemorySpanExporter
2. Provide typed fakes (FakeBeacon, FakeExitHooks, FakeGrpcChannel)
   instead of MagicMock
3. Write YAML config files for configuration tests
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

import pytest
from opentelemetry import trace as trace_api
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import Event, ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Link, SpanContext, Status, StatusCode, TraceFlags

from tests.fakes import ExportRecorder, FakeBeacon, FakeChannelFactory, FakeExitHooks

if TYPE_CHECKING:
    from pathlib import Path

TRACE_ID = 0x5E0C63257DE34C926F9EFCD03927272E
SPAN_ID = 0x5E0C63257DE34C92
PARENT_SPAN_ID = 0x78A8915098864388
LINK_TRACE_ID = 0xE4CD15C8E4B04E6B8F5C2A0E7A1D3F29
LINK_SPAN_ID = 0x7E0C63257DE34C92

START_TIME_NS = 1_574_120_165_429_803_070
END_TIME_NS = 1_574_120_165_438_688_070


@pytest.fixture
def exit_hooks() -> FakeExitHooks:
    return FakeExitHooks()


@pytest.fixture
def beacon() -> FakeBeacon:
    return FakeBeacon(accept=True)


@pytest.fixture
def channel_factory() -> FakeChannelFactory:
    return FakeChannelFactory()


@pytest.fixture
def recorder() -> ExportRecorder:
    return ExportRecorder()


@pytest.fixture
def in_memory_exporter() -> InMemorySpanExporter:
    """Provide an InMemorySpanExporter for capturing spans in tests."""
    return InMemorySpanExporter()


@pytest.fixture
def test_tracer_provider(in_memory_exporter: InMemorySpanExporter) -> TracerProvider:
    """Create a test TracerProvider with in-memory exporter."""
    resource = Resource.create({SERVICE_NAME: "sdk-service", "host.name": "box"})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(SimpleSpanProcessor(in_memory_exporter))
    return provider


@pytest.fixture
def sdk_resource() -> Resource:
    return Resource({SERVICE_NAME: "sdk-service", "host.name": "box", "cost": 112.12})


@pytest.fixture
def make_span(sdk_resource: Resource) -> Callable[..., ReadableSpan]:
    """Factory for a fully populated finished span.

    Keyword arguments override the ReadableSpan constructor arguments.
    """

    def factory(**overrides: Any) -> ReadableSpan:
        kwargs: dict[str, Any] = {
            "name": "documentFetch",
            "context": SpanContext(
                trace_id=TRACE_ID,
                span_id=SPAN_ID,
                is_remote=False,
                trace_flags=TraceFlags(TraceFlags.SAMPLED),
            ),
            "parent": SpanContext(
                trace_id=TRACE_ID, span_id=PARENT_SPAN_ID, is_remote=False
            ),
            "resource": sdk_resource,
            "attributes": {"component": "document-load"},
            "events": (
                Event(
                    name="fetchStart",
                    attributes={"http.status_code": 200},
                    timestamp=START_TIME_NS + 1000,
                ),
            ),
            "links": (
                Link(
                    context=SpanContext(
                        trace_id=LINK_TRACE_ID, span_id=LINK_SPAN_ID, is_remote=False
                    ),
                    attributes={"component": "document-load"},
                ),
            ),
            "kind": trace_api.SpanKind.INTERNAL,
            "status": Status(StatusCode.OK),
            "start_time": START_TIME_NS,
            "end_time": END_TIME_NS,
        }
        kwargs.update(overrides)
        return ReadableSpan(**kwargs)

    return factory


@pytest.fixture
def valid_config_content() -> str:
    """Return valid YAML config content for tests."""
    return """service:
  name: test-service
  version: "1.0.0"

exporter:
  endpoint: http://localhost:55681/v1/trace
  transport: http
  headers:
    authorization: Bearer ${COLLECTOR_TOKEN}
  attributes:
    deployment.environment: test

validation:
  mode: permissive
"""


@pytest.fixture
def valid_config_file(tmp_path: "Path", valid_config_content: str) -> "Path":
    """Create a valid config file and return its path."""
    config_path = tmp_path / "collector.yaml"
    config_path.write_text(valid_config_content)
    return config_path
