"""Collector exporter: translate SDK spans and metrics into collector export
requests and deliver them over a beacon, HTTP or gRPC channel.

    from collector_exporter import CollectorTraceExporter, ExporterConfig

    exporter = CollectorTraceExporter(ExporterConfig(endpoint="collector:55678"))
    exporter.export(spans, on_success, on_error)
    exporter.shutdown()
"""

from __future__ import annotations

from collector_exporter.config import (
    ExporterConfig,
    ServiceConfig,
    TransportSecurity,
    ValidationConfig,
    load_config,
)
from collector_exporter.exceptions import ConfigurationError, ExportError
from collector_exporter.exporter import (
    CollectorExporterBase,
    CollectorMetricExporter,
    CollectorTraceExporter,
)
from collector_exporter.model import MetricDescriptor, MetricRecord, MetricValueType
from collector_exporter.transform import to_export_request
from collector_exporter.transport import RuntimeCapabilities, TransportKind

__version__ = "0.1.0"

__all__ = [
    "CollectorExporterBase",
    "CollectorMetricExporter",
    "CollectorTraceExporter",
    "ConfigurationError",
    "ExportError",
    "ExporterConfig",
    "MetricDescriptor",
    "MetricRecord",
    "MetricValueType",
    "RuntimeCapabilities",
    "ServiceConfig",
    "TransportKind",
    "TransportSecurity",
    "ValidationConfig",
    "__version__",
    "load_config",
    "to_export_request",
]
