"""Canonical export-request structures.

Every value here is a frozen dataclass built from tuples, so a request can be
serialized while the next one is being built. ``to_wire()`` produces the
JSON-ready dict using the collector's field names and nesting.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, Union

from collector_exporter.attributes import EMPTY_ATTRIBUTES, AttributeSet

if TYPE_CHECKING:
    from opentelemetry.sdk.resources import Resource


class SpanKind(IntEnum):
    """Span kind codes on the wire."""

    SPAN_KIND_UNSPECIFIED = 0
    INTERNAL = 1
    SERVER = 2
    CLIENT = 3
    PRODUCER = 4
    CONSUMER = 5


class StatusCode(IntEnum):
    """Status codes on the wire (canonical codes, only two are produced)."""

    OK = 0
    UNKNOWN_ERROR = 2


class DescriptorType(IntEnum):
    """Metric descriptor type tags on the wire."""

    INVALID_TYPE = 0
    MONOTONIC_INT64 = 1
    INT64 = 2
    MONOTONIC_DOUBLE = 3
    DOUBLE = 4


class Temporality(IntEnum):
    """Aggregation temporality on the wire."""

    INVALID_TEMPORALITY = 0
    INSTANTANEOUS = 1
    DELTA = 2
    CUMULATIVE = 3


class MetricValueType(Enum):
    """Numeric kind declared by a metric producer."""

    INT = "int"
    DOUBLE = "double"


# -----------------------------------------------------------------------------
# Producer-side metric input
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricDescriptor:
    """Descriptor of a metric as declared by the producer.

    ``value_type`` is typed loosely on purpose: anything other than a
    MetricValueType is exported with an INVALID_TYPE descriptor.
    """

    name: str
    description: str = ""
    unit: str = ""
    value_type: MetricValueType | Any = MetricValueType.DOUBLE
    monotonic: bool = False
    temporality: Temporality = Temporality.CUMULATIVE


@dataclass(frozen=True)
class MetricRecord:
    """One metric reading handed to the exporter."""

    descriptor: MetricDescriptor
    value: int | float
    timestamp_ns: int
    labels: Mapping[str, str] = field(default_factory=dict)
    start_time_ns: int | None = None
    resource: Resource | None = None


# -----------------------------------------------------------------------------
# Canonical request values
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CanonicalResource:
    attributes: AttributeSet = EMPTY_ATTRIBUTES

    def to_wire(self) -> dict[str, Any]:
        return {
            "attributes": self.attributes.to_wire(),
            "droppedAttributesCount": self.attributes.dropped,
        }


@dataclass(frozen=True)
class InstrumentationScope:
    name: str
    version: str

    def to_wire(self) -> dict[str, Any]:
        return {"name": self.name, "version": self.version}


@dataclass(frozen=True)
class CanonicalStatus:
    code: StatusCode = StatusCode.OK
    message: str | None = None

    def to_wire(self) -> dict[str, Any]:
        status: dict[str, Any] = {"code": int(self.code)}
        if self.message:
            status["message"] = self.message
        return status


@dataclass(frozen=True)
class CanonicalEvent:
    time_unix_nano: int
    name: str
    attributes: AttributeSet = EMPTY_ATTRIBUTES
    dropped_attributes_count: int = 0

    def to_wire(self) -> dict[str, Any]:
        return {
            "timeUnixNano": self.time_unix_nano,
            "name": self.name,
            "attributes": self.attributes.to_wire(),
            "droppedAttributesCount": self.dropped_attributes_count,
        }


@dataclass(frozen=True)
class CanonicalLink:
    trace_id: str
    span_id: str
    attributes: AttributeSet = EMPTY_ATTRIBUTES
    dropped_attributes_count: int = 0

    def to_wire(self) -> dict[str, Any]:
        return {
            "traceId": self.trace_id,
            "spanId": self.span_id,
            "attributes": self.attributes.to_wire(),
            "droppedAttributesCount": self.dropped_attributes_count,
        }


@dataclass(frozen=True)
class CanonicalSpan:
    """A span in wire terms; ids are base64 of the raw id bytes."""

    trace_id: str
    span_id: str
    name: str
    kind: SpanKind
    start_time_unix_nano: int
    end_time_unix_nano: int
    parent_span_id: str | None = None
    trace_state: str | None = None
    attributes: AttributeSet = EMPTY_ATTRIBUTES
    dropped_attributes_count: int = 0
    events: tuple[CanonicalEvent, ...] = ()
    dropped_events_count: int = 0
    links: tuple[CanonicalLink, ...] = ()
    dropped_links_count: int = 0
    status: CanonicalStatus = field(default_factory=CanonicalStatus)

    def to_wire(self) -> dict[str, Any]:
        span: dict[str, Any] = {
            "traceId": self.trace_id,
            "spanId": self.span_id,
        }
        # A missing parent is absent, never an empty id
        if self.parent_span_id is not None:
            span["parentSpanId"] = self.parent_span_id
        if self.trace_state:
            span["traceState"] = self.trace_state
        span.update(
            {
                "name": self.name,
                "kind": int(self.kind),
                "startTimeUnixNano": self.start_time_unix_nano,
                "endTimeUnixNano": self.end_time_unix_nano,
                "attributes": self.attributes.to_wire(),
                "droppedAttributesCount": self.dropped_attributes_count,
                "events": [event.to_wire() for event in self.events],
                "droppedEventsCount": self.dropped_events_count,
                "status": self.status.to_wire(),
                "links": [link.to_wire() for link in self.links],
                "droppedLinksCount": self.dropped_links_count,
            }
        )
        return span


@dataclass(frozen=True)
class CanonicalMetricDescriptor:
    name: str
    description: str
    unit: str
    labels: tuple[tuple[str, str], ...]
    type: DescriptorType
    temporality: Temporality

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "unit": self.unit,
            "labels": _labels_to_wire(self.labels),
            "type": int(self.type),
            "temporality": int(self.temporality),
        }


@dataclass(frozen=True)
class CanonicalDataPoint:
    labels: tuple[tuple[str, str], ...]
    value: int | float
    start_time_unix_nano: int
    time_unix_nano: int

    def to_wire(self) -> dict[str, Any]:
        return {
            "labels": _labels_to_wire(self.labels),
            "value": self.value,
            "startTimeUnixNano": self.start_time_unix_nano,
            "timeUnixNano": self.time_unix_nano,
        }


@dataclass(frozen=True)
class CanonicalMetric:
    """A metric in wire terms; at most one point list is populated."""

    descriptor: CanonicalMetricDescriptor
    int64_data_points: tuple[CanonicalDataPoint, ...] = ()
    double_data_points: tuple[CanonicalDataPoint, ...] = ()

    def to_wire(self) -> dict[str, Any]:
        return {
            "metricDescriptor": self.descriptor.to_wire(),
            "int64DataPoints": [p.to_wire() for p in self.int64_data_points],
            "doubleDataPoints": [p.to_wire() for p in self.double_data_points],
            "histogramDataPoints": [],
            "summaryDataPoints": [],
        }


@dataclass(frozen=True)
class ExportTraceServiceRequest:
    resource: CanonicalResource
    scope: InstrumentationScope
    spans: tuple[CanonicalSpan, ...] = ()

    def to_wire(self) -> dict[str, Any]:
        return {
            "resourceSpans": [
                {
                    "resource": self.resource.to_wire(),
                    "instrumentationLibrarySpans": [
                        {
                            "spans": [span.to_wire() for span in self.spans],
                            "instrumentationLibrary": self.scope.to_wire(),
                        }
                    ],
                }
            ]
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_wire(), separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class ExportMetricsServiceRequest:
    resource: CanonicalResource
    scope: InstrumentationScope
    metrics: tuple[CanonicalMetric, ...] = ()

    def to_wire(self) -> dict[str, Any]:
        return {
            "resourceMetrics": [
                {
                    "resource": self.resource.to_wire(),
                    "instrumentationLibraryMetrics": [
                        {
                            "metrics": [metric.to_wire() for metric in self.metrics],
                            "instrumentationLibrary": self.scope.to_wire(),
                        }
                    ],
                }
            ]
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_wire(), separators=(",", ":")).encode("utf-8")


ExportRequest = Union[ExportTraceServiceRequest, ExportMetricsServiceRequest]


def _labels_to_wire(labels: tuple[tuple[str, str], ...]) -> list[dict[str, str]]:
    return [{"key": key, "value": value} for key, value in labels]
