"""Persistent RPC channel with a pending-call queue.

The channel moves UNINITIALIZED -> INITIALIZING -> READY, or to FAILED. Calls
made before READY are queued and replayed in order once the channel is ready;
if it fails instead, every queued call and every later call is resolved with
the same "initialization failed" error. READY and FAILED are terminal and
each is entered at most once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

import grpc

from collector_exporter.exceptions import ExportError
from collector_exporter.transport.base import DeliveryChannel
from collector_exporter.transport.completion import CANCELLED_MESSAGE, InFlightCalls
from collector_exporter.transport.queue import PendingCallQueue

if TYPE_CHECKING:
    from collector_exporter.config import TransportSecurity
    from collector_exporter.model import ExportRequest
    from collector_exporter.transport.completion import Completion

logger = logging.getLogger(__name__)

TRACE_EXPORT_METHOD = "/opentelemetry.proto.collector.trace.v1.TraceService/Export"
METRICS_EXPORT_METHOD = (
    "/opentelemetry.proto.collector.metrics.v1.MetricsService/Export"
)

ChannelFactory = Callable[[str, "grpc.ChannelCredentials | None"], Any]


class ChannelState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


def default_channel_factory(
    target: str, credentials: grpc.ChannelCredentials | None
) -> grpc.aio.Channel:
    """Open a grpc.aio channel, secure when credentials are given."""
    if credentials is None:
        return grpc.aio.insecure_channel(target)
    return grpc.aio.secure_channel(target, credentials)


def encode_request(request: ExportRequest) -> bytes:
    return request.to_json()


def decode_response(data: bytes) -> bytes:
    return data


class GrpcChannel(DeliveryChannel):
    """Unary Export calls over a persistent gRPC channel.

    Args:
        target: ``host:port`` of the collector.
        method: Fully qualified RPC method path.
        security: TLS material; None for an insecure channel.
        metadata: Key/value pairs attached to every call, queued ones included.
        timeout: Per-call deadline in seconds.
        init_timeout: How long to wait for the channel to become ready;
            None waits until close().
        channel_factory: Builds the underlying channel (injectable for tests).
    """

    def __init__(
        self,
        target: str,
        method: str = TRACE_EXPORT_METHOD,
        security: TransportSecurity | None = None,
        metadata: dict[str, str] | None = None,
        timeout: float = 10.0,
        init_timeout: float | None = 10.0,
        channel_factory: ChannelFactory = default_channel_factory,
    ) -> None:
        self._target = target
        self._method = method
        self._security = security
        self._metadata: tuple[tuple[str, str], ...] = tuple(
            (metadata or {}).items()
        )
        self._timeout = timeout
        self._init_timeout = init_timeout
        self._channel_factory = channel_factory

        self._state = ChannelState.UNINITIALIZED
        self._failure: str | None = None
        self._queue = PendingCallQueue()
        self._channel: Any = None
        self._export: Any = None
        self._init_task: asyncio.Task[None] | None = None
        self._close_task: asyncio.Task[None] | None = None
        self._inflight = InFlightCalls()
        self._closed = False

    @property
    def target(self) -> str:
        return self._target

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def pending(self) -> int:
        """Number of calls waiting for the channel to become ready."""
        return len(self._queue)

    # -------------------------------------------------------------------------
    # Initialization
    # -------------------------------------------------------------------------

    def start(self) -> None:
        if self._state is not ChannelState.UNINITIALIZED or self._closed:
            return
        self._state = ChannelState.INITIALIZING
        self._init_task = asyncio.get_running_loop().create_task(self._initialize())

    def _credentials(self) -> grpc.ChannelCredentials | None:
        if self._security is None:
            return None
        root_certificates, private_key, certificate_chain = self._security.load()
        return grpc.ssl_channel_credentials(
            root_certificates=root_certificates,
            private_key=private_key,
            certificate_chain=certificate_chain,
        )

    async def _initialize(self) -> None:
        try:
            self._channel = self._channel_factory(self._target, self._credentials())
        except Exception as exc:
            self._fail(f"{type(exc).__name__}: {exc}")
            return

        try:
            if self._init_timeout is None:
                await self._channel.channel_ready()
            else:
                await asyncio.wait_for(
                    self._channel.channel_ready(), self._init_timeout
                )
        except asyncio.TimeoutError:
            self._fail(
                f"channel to {self._target} not ready after {self._init_timeout}s"
            )
            return
        except Exception as exc:
            self._fail(f"{type(exc).__name__}: {exc}")
            return

        self._ready()

    def _ready(self) -> None:
        if self._state in (ChannelState.READY, ChannelState.FAILED):
            return
        self._state = ChannelState.READY
        self._export = self._channel.unary_unary(
            self._method,
            request_serializer=encode_request,
            response_deserializer=decode_response,
        )
        logger.debug(
            "gRPC channel to %s ready, replaying %d queued call(s)",
            self._target,
            len(self._queue),
        )
        for entry in self._queue.drain():
            self._send(entry.request, entry.completion)

    def _fail(self, reason: str) -> None:
        if self._state in (ChannelState.READY, ChannelState.FAILED):
            return
        self._state = ChannelState.FAILED
        self._failure = f"initialization failed: {reason}"
        failed = self._queue.fail_all(ExportError(self._failure))
        logger.error(
            "gRPC channel to %s %s (%d queued call(s) dropped)",
            self._target,
            self._failure,
            failed,
        )

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def deliver(self, request: ExportRequest, completion: Completion) -> None:
        if self._state is ChannelState.FAILED:
            completion.fail(ExportError(self._failure or "initialization failed"))
        elif self._closed:
            completion.fail(ExportError("gRPC channel is closed"))
        elif self._state is ChannelState.READY:
            self._send(request, completion)
        else:
            self._queue.enqueue(request, completion)

    def _send(self, request: ExportRequest, completion: Completion) -> None:
        task = asyncio.get_running_loop().create_task(self._call(request, completion))
        self._inflight.track(task, completion)

    async def _call(self, request: ExportRequest, completion: Completion) -> None:
        try:
            await self._export(
                request,
                metadata=self._metadata or None,
                timeout=self._timeout,
            )
        except asyncio.CancelledError:
            completion.fail(ExportError(CANCELLED_MESSAGE))
            raise
        except grpc.aio.AioRpcError as exc:
            status = exc.code()
            logger.error("gRPC export failed: %s %s", status, exc.details())
            completion.fail(
                ExportError(
                    exc.details() or str(status),
                    code=status.value[0],
                )
            )
            return
        except Exception as exc:
            logger.error("gRPC export failed: %s", exc)
            completion.fail(ExportError(f"gRPC export failed: {exc}"))
            return

        logger.debug("gRPC export succeeded")
        completion.succeed()

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Force the FAILED path for queued calls and close the channel.

        Calls already handed to gRPC get the per-call timeout as a grace
        period and are not aborted.
        """
        if self._closed:
            return
        self._closed = True
        self._fail("channel closed before it became ready")

        init_task = self._init_task
        if (
            init_task is not None
            and not init_task.done()
            and not init_task.get_loop().is_closed()
        ):
            init_task.cancel()

        if self._channel is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            failed = self._inflight.fail_unfinished(ExportError(CANCELLED_MESSAGE))
            logger.debug(
                "No running event loop, failed %d in-flight call(s), "
                "leaving gRPC channel for collection",
                failed,
            )
            return
        self._close_task = loop.create_task(self._channel.close(grace=self._timeout))
