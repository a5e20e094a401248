"""Transport selection."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collector_exporter.config import ExporterConfig
    from collector_exporter.transport.capabilities import RuntimeCapabilities

logger = logging.getLogger(__name__)


class TransportKind(str, Enum):
    """Delivery mechanism chosen for an exporter's lifetime."""

    BEACON = "beacon"
    HTTP = "http"
    GRPC = "grpc"


def select_transport(
    config: ExporterConfig, capabilities: RuntimeCapabilities
) -> TransportKind:
    """Choose the delivery mechanism once, at exporter construction.

    An explicit ``transport`` in config wins. Otherwise a beacon-capable
    runtime uses the beacon unless custom headers are configured (a beacon
    cannot carry them), and a runtime without a beacon concept uses the RPC
    channel when it can, falling back to HTTP.
    """
    if config.transport == "http":
        kind = TransportKind.HTTP
    elif config.transport == "grpc":
        kind = TransportKind.GRPC
    elif capabilities.send_beacon is not None:
        kind = TransportKind.HTTP if config.headers else TransportKind.BEACON
    elif capabilities.rpc_available:
        kind = TransportKind.GRPC
    else:
        kind = TransportKind.HTTP

    logger.debug(
        "Selected transport %s (configured=%s, beacon=%s, headers=%s)",
        kind.value,
        config.transport,
        capabilities.send_beacon is not None,
        bool(config.headers),
    )
    return kind
