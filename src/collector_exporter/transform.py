"""Conversion of SDK spans and metric records into collector export requests.

All functions here are pure: no I/O, no mutation of their inputs. Anomalies
in individual records (unsupported attribute types, unknown metric value
types) are recovered locally so one bad record never aborts a batch.
"""

from __future__ import annotations

import base64
import binascii
import logging
import math
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from opentelemetry import trace as trace_api
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.trace import StatusCode as OTelStatusCode

from collector_exporter.attributes import AttributeSet, classify_attributes
from collector_exporter.model import (
    CanonicalDataPoint,
    CanonicalEvent,
    CanonicalLink,
    CanonicalMetric,
    CanonicalMetricDescriptor,
    CanonicalResource,
    CanonicalSpan,
    CanonicalStatus,
    DescriptorType,
    ExportMetricsServiceRequest,
    ExportRequest,
    ExportTraceServiceRequest,
    InstrumentationScope,
    MetricDescriptor,
    MetricRecord,
    MetricValueType,
    SpanKind,
    StatusCode,
    Temporality,
)

if TYPE_CHECKING:
    from opentelemetry.sdk.metrics.export import MetricsData
    from opentelemetry.sdk.trace import Event, ReadableSpan
    from opentelemetry.trace import Link, Status, TraceState

logger = logging.getLogger(__name__)

SDK_NAME = "opentelemetry"
SDK_LANGUAGE = "python"

COLLECTOR_SPAN_KIND_MAPPING: dict[trace_api.SpanKind, SpanKind] = {
    trace_api.SpanKind.INTERNAL: SpanKind.INTERNAL,
    trace_api.SpanKind.SERVER: SpanKind.SERVER,
    trace_api.SpanKind.CLIENT: SpanKind.CLIENT,
    trace_api.SpanKind.PRODUCER: SpanKind.PRODUCER,
    trace_api.SpanKind.CONSUMER: SpanKind.CONSUMER,
}


def _sdk_version() -> str:
    from opentelemetry.sdk.version import __version__

    return __version__


def default_scope(name: str = "") -> InstrumentationScope:
    """Return the instrumentation scope stamped on every request."""
    return InstrumentationScope(
        name=name or f"{SDK_NAME} - {SDK_LANGUAGE}",
        version=_sdk_version(),
    )


# =============================================================================
# Identifiers
# =============================================================================


def hex_to_base64(hex_id: str) -> str:
    """Re-encode a hex id as base64 of its raw bytes."""
    return base64.b64encode(bytes.fromhex(hex_id)).decode("ascii")


def base64_to_hex(b64_id: str) -> str:
    """Inverse of hex_to_base64."""
    return binascii.hexlify(base64.b64decode(b64_id)).decode("ascii")


def _trace_id(trace_id: int) -> str:
    return hex_to_base64(trace_api.format_trace_id(trace_id))


def _span_id(span_id: int) -> str:
    return hex_to_base64(trace_api.format_span_id(span_id))


# =============================================================================
# Spans
# =============================================================================


def to_collector_attributes(attributes: Mapping[str, Any] | None) -> AttributeSet:
    """Classify attributes for export; unsupported values are counted as dropped."""
    return classify_attributes(attributes)


def to_collector_events(events: Sequence[Event]) -> tuple[CanonicalEvent, ...]:
    converted = []
    for event in events:
        attributes = to_collector_attributes(event.attributes)
        converted.append(
            CanonicalEvent(
                time_unix_nano=event.timestamp,
                name=event.name,
                attributes=attributes,
                dropped_attributes_count=attributes.dropped
                + getattr(event, "dropped_attributes", 0),
            )
        )
    return tuple(converted)


def to_collector_links(links: Sequence[Link]) -> tuple[CanonicalLink, ...]:
    converted = []
    for link in links:
        attributes = to_collector_attributes(link.attributes)
        converted.append(
            CanonicalLink(
                trace_id=_trace_id(link.context.trace_id),
                span_id=_span_id(link.context.span_id),
                attributes=attributes,
                dropped_attributes_count=attributes.dropped
                + getattr(link, "dropped_attributes", 0),
            )
        )
    return tuple(converted)


def to_collector_kind(kind: trace_api.SpanKind | None) -> SpanKind:
    """Map an SDK span kind; anything unknown is UNSPECIFIED."""
    if kind is None:
        return SpanKind.SPAN_KIND_UNSPECIFIED
    return COLLECTOR_SPAN_KIND_MAPPING.get(kind, SpanKind.SPAN_KIND_UNSPECIFIED)


def to_collector_trace_state(trace_state: TraceState | None) -> str | None:
    if not trace_state:
        return None
    return trace_state.to_header()


def to_collector_status(status: Status | None) -> CanonicalStatus:
    if status is None:
        return CanonicalStatus()
    if status.status_code is OTelStatusCode.ERROR:
        return CanonicalStatus(StatusCode.UNKNOWN_ERROR, status.description)
    return CanonicalStatus(StatusCode.OK, status.description)


def to_collector_span(span: ReadableSpan) -> CanonicalSpan:
    """Convert one finished SDK span."""
    context = span.context
    start = span.start_time or 0
    end = span.end_time if span.end_time is not None else start
    if end < start:
        logger.debug("Span '%s' ends before it starts, clamping end time", span.name)
        end = start

    attributes = to_collector_attributes(span.attributes)
    parent = span.parent

    return CanonicalSpan(
        trace_id=_trace_id(context.trace_id),
        span_id=_span_id(context.span_id),
        parent_span_id=_span_id(parent.span_id) if parent is not None else None,
        trace_state=to_collector_trace_state(context.trace_state),
        name=span.name,
        kind=to_collector_kind(span.kind),
        start_time_unix_nano=start,
        end_time_unix_nano=end,
        attributes=attributes,
        dropped_attributes_count=attributes.dropped + span.dropped_attributes,
        events=to_collector_events(span.events),
        dropped_events_count=span.dropped_events,
        links=to_collector_links(span.links),
        dropped_links_count=span.dropped_links,
        status=to_collector_status(span.status),
    )


# =============================================================================
# Resource
# =============================================================================


def to_collector_resource(
    resource: Resource | None,
    additional_attributes: Mapping[str, Any] | None = None,
) -> CanonicalResource:
    """Merge SDK resource attributes with exporter-level attributes.

    Exporter-level attributes take precedence on key collision.
    """
    merged: dict[str, Any] = {}
    if resource is not None:
        merged.update(resource.attributes)
    if additional_attributes:
        merged.update(additional_attributes)
    return CanonicalResource(attributes=classify_attributes(merged))


def _exporter_attributes(
    attributes: Mapping[str, Any] | None, service_name: str
) -> dict[str, Any]:
    merged = dict(attributes or {})
    merged[SERVICE_NAME] = service_name
    return merged


def to_export_trace_request(
    spans: Sequence[ReadableSpan],
    attributes: Mapping[str, Any] | None,
    service_name: str,
    scope_name: str = "",
) -> ExportTraceServiceRequest:
    """Build the trace export request for one export() call.

    Args:
        spans: Finished spans to send.
        attributes: Static exporter-level resource attributes.
        service_name: Value stamped as ``service.name``.
        scope_name: Instrumentation library name override.

    Returns:
        Immutable ExportTraceServiceRequest.
    """
    resource = spans[0].resource if spans else Resource.get_empty()
    return ExportTraceServiceRequest(
        resource=to_collector_resource(
            resource, _exporter_attributes(attributes, service_name)
        ),
        scope=default_scope(scope_name),
        spans=tuple(to_collector_span(span) for span in spans),
    )


# =============================================================================
# Metrics
# =============================================================================


def to_collector_labels(labels: Mapping[str, Any] | None) -> tuple[tuple[str, str], ...]:
    if not labels:
        return ()
    return tuple((str(key), str(value)) for key, value in labels.items())


def _descriptor_type(descriptor: MetricDescriptor) -> DescriptorType:
    if descriptor.value_type is MetricValueType.INT:
        if descriptor.monotonic:
            return DescriptorType.MONOTONIC_INT64
        return DescriptorType.INT64
    if descriptor.value_type is MetricValueType.DOUBLE:
        if descriptor.monotonic:
            return DescriptorType.MONOTONIC_DOUBLE
        return DescriptorType.DOUBLE
    logger.warning(
        "Metric '%s' has unrecognized value type %r, exporting as INVALID_TYPE",
        descriptor.name,
        descriptor.value_type,
    )
    return DescriptorType.INVALID_TYPE


def to_collector_metric_descriptor(metric: MetricRecord) -> CanonicalMetricDescriptor:
    descriptor = metric.descriptor
    return CanonicalMetricDescriptor(
        name=descriptor.name,
        description=descriptor.description,
        unit=descriptor.unit,
        labels=to_collector_labels(metric.labels),
        type=_descriptor_type(descriptor),
        temporality=descriptor.temporality,
    )


def to_collector_metric(metric: MetricRecord, start_time_ns: int) -> CanonicalMetric:
    """Convert one metric record.

    The point goes into the list matching the declared numeric kind, with its
    value coerced to that kind. Records whose kind is unrecognized, or whose
    value cannot be coerced, keep their descriptor and carry no points.
    """
    descriptor = to_collector_metric_descriptor(metric)
    if descriptor.type is DescriptorType.INVALID_TYPE:
        return CanonicalMetric(descriptor=descriptor)

    is_int = descriptor.type in (DescriptorType.INT64, DescriptorType.MONOTONIC_INT64)
    try:
        value: int | float = int(metric.value) if is_int else float(metric.value)
    except (TypeError, ValueError, OverflowError):
        logger.warning(
            "Metric '%s' value %r does not match its declared kind, dropping point",
            descriptor.name,
            metric.value,
        )
        return CanonicalMetric(descriptor=descriptor)

    if not math.isfinite(value):
        logger.warning(
            "Metric '%s' value %r is not finite, dropping point",
            descriptor.name,
            value,
        )
        return CanonicalMetric(descriptor=descriptor)

    point = CanonicalDataPoint(
        labels=descriptor.labels,
        value=value,
        start_time_unix_nano=(
            metric.start_time_ns if metric.start_time_ns is not None else start_time_ns
        ),
        time_unix_nano=metric.timestamp_ns,
    )
    if is_int:
        return CanonicalMetric(descriptor=descriptor, int64_data_points=(point,))
    return CanonicalMetric(descriptor=descriptor, double_data_points=(point,))


def to_export_metrics_request(
    metrics: Sequence[MetricRecord],
    start_time_ns: int,
    attributes: Mapping[str, Any] | None,
    service_name: str,
    scope_name: str = "",
) -> ExportMetricsServiceRequest:
    """Build the metrics export request for one export() call.

    A request carries a single resource: the first record's. Records from
    other resources are still exported, under that resource, and a warning
    is logged. Export one batch per resource to keep them apart.
    """
    resource = metrics[0].resource if metrics else None
    if resource is None:
        resource = Resource.get_empty()
    if any(m.resource is not None and m.resource != resource for m in metrics[1:]):
        logger.warning(
            "Metric batch spans several resources, exporting all %d metrics "
            "under the first one",
            len(metrics),
        )
    return ExportMetricsServiceRequest(
        resource=to_collector_resource(
            resource, _exporter_attributes(attributes, service_name)
        ),
        scope=default_scope(scope_name),
        metrics=tuple(to_collector_metric(metric, start_time_ns) for metric in metrics),
    )


def to_export_request(
    items: Sequence[ReadableSpan] | Sequence[MetricRecord],
    attributes: Mapping[str, Any] | None,
    service_name: str,
    scope_name: str = "",
    start_time_ns: int = 0,
) -> ExportRequest:
    """Build a trace or metrics request depending on the item type.

    An empty batch produces a trace request.
    """
    if items and isinstance(items[0], MetricRecord):
        return to_export_metrics_request(
            items, start_time_ns, attributes, service_name, scope_name  # type: ignore[arg-type]
        )
    return to_export_trace_request(
        items, attributes, service_name, scope_name  # type: ignore[arg-type]
    )


# =============================================================================
# SDK metrics adapter
# =============================================================================


def records_from_metrics_data(metrics_data: MetricsData) -> list[MetricRecord]:
    """Flatten an SDK metrics snapshot into MetricRecords.

    Sums and gauges produce one record per data point. Histogram kinds have
    no counterpart in the export request and are skipped.
    Each record keeps its own resource; see to_export_metrics_request for
    how a batch spanning several resources is sent.
    """
    from opentelemetry.sdk.metrics.export import AggregationTemporality, Gauge, Sum

    records: list[MetricRecord] = []
    for resource_metrics in metrics_data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                data = metric.data
                if isinstance(data, Sum):
                    monotonic = data.is_monotonic
                    temporality = (
                        Temporality.DELTA
                        if data.aggregation_temporality is AggregationTemporality.DELTA
                        else Temporality.CUMULATIVE
                    )
                elif isinstance(data, Gauge):
                    monotonic = False
                    temporality = Temporality.INSTANTANEOUS
                else:
                    logger.debug(
                        "Skipping metric '%s' with unsupported data %s",
                        metric.name,
                        type(data).__name__,
                    )
                    continue

                for point in data.data_points:
                    value_type = (
                        MetricValueType.INT
                        if isinstance(point.value, int)
                        else MetricValueType.DOUBLE
                    )
                    records.append(
                        MetricRecord(
                            descriptor=MetricDescriptor(
                                name=metric.name,
                                description=metric.description or "",
                                unit=metric.unit or "",
                                value_type=value_type,
                                monotonic=monotonic,
                                temporality=temporality,
                            ),
                            value=point.value,
                            timestamp_ns=point.time_unix_nano,
                            labels=dict(to_collector_labels(point.attributes)),
                            start_time_ns=point.start_time_unix_nano or None,
                            resource=resource_metrics.resource,
                        )
                    )
    return records
