"""Fire-and-forget beacon channel."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from collector_exporter.exceptions import ExportError
from collector_exporter.transport.base import DeliveryChannel

if TYPE_CHECKING:
    from collector_exporter.model import ExportRequest
    from collector_exporter.transport.capabilities import BeaconSender
    from collector_exporter.transport.completion import Completion

logger = logging.getLogger(__name__)


class BeaconChannel(DeliveryChannel):
    """Best-effort delivery through the runtime's beacon primitive.

    A beacon only reports whether the payload was accepted for sending; no
    response is ever visible. Acceptance is therefore reported as success,
    and rejection (for example a payload over the runtime's size ceiling) as
    a non-retryable error.
    """

    def __init__(self, send_beacon: BeaconSender, endpoint: str) -> None:
        self._send_beacon = send_beacon
        self._endpoint = endpoint
        self._closed = False

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def send(self, body: bytes) -> bool:
        """Hand ``body`` to the beacon; returns its acceptance signal."""
        try:
            return bool(self._send_beacon(self._endpoint, body))
        except Exception as exc:
            logger.debug("sendBeacon raised: %s", exc)
            return False

    def deliver(self, request: ExportRequest, completion: Completion) -> None:
        if self._closed:
            completion.fail(ExportError("Beacon channel is closed"))
            return

        if self.send(request.to_json()):
            logger.debug("sendBeacon - can send")
            completion.succeed()
        else:
            logger.error("sendBeacon - cannot send")
            completion.fail(ExportError("sendBeacon - cannot send"))

    def close(self) -> None:
        self._closed = True
