"""Delivery channels and the transport selection made at construction."""

from __future__ import annotations

from collector_exporter.transport.base import DeliveryChannel
from collector_exporter.transport.capabilities import RuntimeCapabilities
from collector_exporter.transport.completion import Completion
from collector_exporter.transport.selector import TransportKind, select_transport

__all__ = [
    "Completion",
    "DeliveryChannel",
    "RuntimeCapabilities",
    "TransportKind",
    "select_transport",
]
