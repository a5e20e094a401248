"""Unit tests for transport selection.

Requirements covered:
- Beacon runtime without headers -> beacon
- Beacon runtime with headers -> request/response HTTP
- Runtime without a beacon -> persistent RPC channel
- Explicit configuration wins over detection
"""

from __future__ import annotations

import pytest

from collector_exporter.config import ExporterConfig
from collector_exporter.transport import TransportKind, select_transport
from tests.fakes import FakeBeacon, FakeExitHooks, make_capabilities


@pytest.mark.unit
class TestSelectTransport:
    """Tests for select_transport()."""

    @pytest.mark.parametrize(
        ("has_beacon", "headers", "rpc_available", "expected"),
        [
            (True, {}, True, TransportKind.BEACON),
            (True, {"authorization": "Bearer x"}, True, TransportKind.HTTP),
            (False, {}, True, TransportKind.GRPC),
            (False, {"authorization": "Bearer x"}, True, TransportKind.GRPC),
            (False, {}, False, TransportKind.HTTP),
        ],
    )
    def test_auto_selection(
        self,
        exit_hooks: FakeExitHooks,
        has_beacon: bool,
        headers: dict[str, str],
        rpc_available: bool,
        expected: TransportKind,
    ) -> None:
        """
        GIVEN transport 'auto'
        WHEN the transport is selected
        THEN the choice follows beacon availability, headers and RPC support
        """
        capabilities = make_capabilities(
            exit_hooks,
            beacon=FakeBeacon() if has_beacon else None,
            rpc_available=rpc_available,
        )

        kind = select_transport(ExporterConfig(headers=headers), capabilities)

        assert kind is expected

    @pytest.mark.parametrize(
        ("configured", "expected"),
        [("http", TransportKind.HTTP), ("grpc", TransportKind.GRPC)],
    )
    def test_explicit_transport_wins(
        self, exit_hooks: FakeExitHooks, configured: str, expected: TransportKind
    ) -> None:
        capabilities = make_capabilities(exit_hooks, beacon=FakeBeacon())

        kind = select_transport(ExporterConfig(transport=configured), capabilities)

        assert kind is expected
