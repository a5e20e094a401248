"""Delivery channel contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collector_exporter.model import ExportRequest
    from collector_exporter.transport.completion import Completion


class DeliveryChannel(ABC):
    """One concrete transport.

    Channels are driven from the exporter's event loop only. ``deliver``
    never blocks and resolves ``completion`` exactly once, now or later.
    Nothing is retried: every call is delivered at most once.
    """

    def start(self) -> None:
        """Begin any asynchronous setup. Most channels have none."""

    @abstractmethod
    def deliver(self, request: ExportRequest, completion: Completion) -> None:
        """Send ``request`` and resolve ``completion`` with the outcome."""

    @abstractmethod
    def close(self) -> None:
        """Stop accepting calls. In-flight deliveries are not aborted."""
