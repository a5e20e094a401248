"""Exporter lifecycle: construction, export dispatch and shutdown.

An exporter picks its transport once, owns exactly one delivery channel, and
registers its own shutdown as the runtime's termination hook so queued work
is resolved when the process exits.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from collector_exporter._internal.logging import log_internal_error
from collector_exporter.config import (
    DEFAULT_GRPC_ENDPOINT,
    DEFAULT_HTTP_METRICS_ENDPOINT,
    DEFAULT_HTTP_TRACES_ENDPOINT,
    ExporterConfig,
    load_config,
    resolve_config_path,
)
from collector_exporter.exceptions import ConfigurationError, ExportError
from collector_exporter.model import MetricRecord
from collector_exporter.transform import (
    records_from_metrics_data,
    to_export_metrics_request,
    to_export_trace_request,
)
from collector_exporter.transport.beacon import BeaconChannel
from collector_exporter.transport.capabilities import RuntimeCapabilities
from collector_exporter.transport.completion import (
    Completion,
    ErrorCallback,
    SuccessCallback,
)
from collector_exporter.transport.grpc_channel import (
    METRICS_EXPORT_METHOD,
    TRACE_EXPORT_METHOD,
    ChannelFactory,
    GrpcChannel,
    default_channel_factory,
)
from collector_exporter.transport.http_channel import HttpChannel
from collector_exporter.transport.selector import TransportKind, select_transport

if TYPE_CHECKING:
    import httpx
    from opentelemetry.sdk.metrics.export import MetricsData
    from opentelemetry.sdk.trace import ReadableSpan

    from collector_exporter.model import ExportRequest
    from collector_exporter.transport.base import DeliveryChannel

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CollectorExporterBase(ABC, Generic[T]):
    """Base class for exporters sending to a collector.

    The exporter is bound to one asyncio event loop: the running loop at
    construction, or ``loop``. ``export()`` may be called from any thread;
    translation happens in the caller, delivery on the loop.

    Args:
        config: Exporter configuration; defaults apply when None.
        capabilities: Description of the host runtime.
        loop: Event loop that drives delivery.
        http_transport: httpx transport for the HTTP channel.
        grpc_channel_factory: Factory for the gRPC channel.

    Raises:
        ConfigurationError: If no loop is given and none is running.
    """

    DEFAULT_HTTP_ENDPOINT: str = DEFAULT_HTTP_TRACES_ENDPOINT
    GRPC_METHOD: str = TRACE_EXPORT_METHOD

    def __init__(
        self,
        config: ExporterConfig | None = None,
        *,
        capabilities: RuntimeCapabilities | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        grpc_channel_factory: ChannelFactory = default_channel_factory,
    ) -> None:
        self._config = config or ExporterConfig()
        self._capabilities = capabilities or RuntimeCapabilities.detect()

        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError as exc:
                raise ConfigurationError(
                    "Exporter must be created inside a running event loop "
                    "or given one via loop="
                ) from exc
        self._loop = loop

        self._is_shutdown = False
        self._hook_registered = False
        # Calls handed to the loop whose deliver() has not run yet
        self._undelivered: set[Completion] = set()

        self._transport = select_transport(self._config, self._capabilities)
        self._url = self._config.endpoint or self._default_endpoint(self._transport)
        self._channel = self._create_channel(http_transport, grpc_channel_factory)
        self._schedule(self._channel.start)

        self._register_exit_hook()
        logger.debug(
            "%s created for service '%s' using %s transport to %s",
            type(self).__name__,
            self.service_name,
            self._transport.value,
            self._url,
        )

    # -------------------------------------------------------------------------
    # Construction helpers
    # -------------------------------------------------------------------------

    @classmethod
    def from_config_file(
        cls,
        config_path: str | Path | None = None,
        **kwargs: Any,
    ) -> CollectorExporterBase[T]:
        """Create an exporter from a YAML file.

        Falls back to COLLECTOR_EXPORTER_CONFIG_PATH when no path is given.
        Keyword arguments are passed to the constructor.
        """
        config = load_config(resolve_config_path(config_path))
        return cls(config, **kwargs)

    def _default_endpoint(self, transport: TransportKind) -> str:
        if transport is TransportKind.GRPC:
            return DEFAULT_GRPC_ENDPOINT
        return self.DEFAULT_HTTP_ENDPOINT

    def _create_channel(
        self,
        http_transport: httpx.AsyncBaseTransport | None,
        grpc_channel_factory: ChannelFactory,
    ) -> DeliveryChannel:
        config = self._config
        if self._transport is TransportKind.BEACON:
            send_beacon = self._capabilities.send_beacon
            if send_beacon is None:
                raise ConfigurationError(
                    "Beacon transport selected but the runtime has no beacon sender"
                )
            return BeaconChannel(send_beacon, self._url)
        if self._transport is TransportKind.GRPC:
            return GrpcChannel(
                self._url,
                method=self.GRPC_METHOD,
                security=config.security,
                metadata=config.metadata,
                timeout=config.timeout,
                init_timeout=config.init_timeout,
                channel_factory=grpc_channel_factory,
            )
        return HttpChannel(
            self._url,
            headers=config.headers or None,
            timeout=config.timeout,
            transport=http_transport,
        )

    def _register_exit_hook(self) -> None:
        try:
            self._capabilities.register_exit_hook(self.shutdown)
            self._hook_registered = True
        except Exception as exc:
            log_internal_error("register_exit_hook", exc)

    def _unregister_exit_hook(self) -> None:
        if not self._hook_registered:
            return
        self._hook_registered = False
        try:
            self._capabilities.unregister_exit_hook(self.shutdown)
        except Exception as exc:
            log_internal_error("unregister_exit_hook", exc)

    def _schedule(self, callback: Any, *args: Any) -> bool:
        """Run ``callback`` on the exporter's loop; False if the loop is gone."""
        if self._loop.is_closed():
            return False
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Public surface
    # -------------------------------------------------------------------------

    @property
    def transport(self) -> TransportKind:
        return self._transport

    @property
    def url(self) -> str:
        return self._url

    @property
    def service_name(self) -> str:
        return self._config.service.name

    @property
    def attributes(self) -> dict[str, Any]:
        return dict(self._config.attributes)

    @property
    def channel(self) -> DeliveryChannel:
        return self._channel

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    @abstractmethod
    def convert(self, items: Sequence[T]) -> ExportRequest:
        """Translate a batch into its export request."""

    def export(
        self,
        items: Sequence[T],
        on_success: SuccessCallback,
        on_error: ErrorCallback,
    ) -> None:
        """Send a batch; the outcome arrives through exactly one callback.

        Never blocks and never raises for delivery problems. ``on_error``
        receives an ExportError.
        """
        completion = Completion(on_success, on_error)
        if self._is_shutdown:
            logger.debug("export() called after shutdown")
            completion.fail(ExportError("Exporter has been shut down"))
            return

        try:
            request = self.convert(list(items))
        except Exception as exc:
            log_internal_error("convert", exc)
            completion.fail(ExportError(f"Failed to build export request: {exc}"))
            return

        self._undelivered.add(completion)
        if not self._schedule(self._dispatch, request, completion):
            self._undelivered.discard(completion)
            completion.fail(ExportError("Event loop is closed"))

    def _dispatch(self, request: ExportRequest, completion: Completion) -> None:
        self._undelivered.discard(completion)
        self._channel.deliver(request, completion)

    def shutdown(self) -> None:
        """Unregister the exit hook and close the channel.

        Idempotent. Calls still queued on an RPC channel that never became
        ready are resolved with an initialization failure.
        """
        if self._is_shutdown:
            logger.debug("shutdown() already called")
            return
        self._is_shutdown = True
        self._unregister_exit_hook()

        if not self._loop.is_running() or not self._schedule(self._channel.close):
            self._channel.close()
            self._fail_undelivered()
        logger.debug("%s shut down", type(self).__name__)

    def _fail_undelivered(self) -> None:
        undelivered, self._undelivered = self._undelivered, set()
        for completion in undelivered:
            completion.fail(ExportError("Exporter shut down before delivery"))


class CollectorTraceExporter(CollectorExporterBase["ReadableSpan"]):
    """Exports finished SDK spans."""

    DEFAULT_HTTP_ENDPOINT = DEFAULT_HTTP_TRACES_ENDPOINT
    GRPC_METHOD = TRACE_EXPORT_METHOD

    def convert(self, items: Sequence[ReadableSpan]) -> ExportRequest:
        return to_export_trace_request(
            items,
            self._config.attributes,
            self.service_name,
            self._config.scope_name,
        )


class CollectorMetricExporter(CollectorExporterBase[MetricRecord]):
    """Exports metric records.

    Points without their own start time use the exporter's creation time.
    """

    DEFAULT_HTTP_ENDPOINT = DEFAULT_HTTP_METRICS_ENDPOINT
    GRPC_METHOD = METRICS_EXPORT_METHOD

    def __init__(self, config: ExporterConfig | None = None, **kwargs: Any) -> None:
        self._start_time_ns = time.time_ns()
        super().__init__(config, **kwargs)

    @property
    def start_time_ns(self) -> int:
        return self._start_time_ns

    def convert(self, items: Sequence[MetricRecord]) -> ExportRequest:
        return to_export_metrics_request(
            items,
            self._start_time_ns,
            self._config.attributes,
            self.service_name,
            self._config.scope_name,
        )

    def export_metrics_data(
        self,
        metrics_data: MetricsData,
        on_success: SuccessCallback,
        on_error: ErrorCallback,
    ) -> None:
        """Export an SDK metrics snapshot (sums and gauges)."""
        self.export(records_from_metrics_data(metrics_data), on_success, on_error)
