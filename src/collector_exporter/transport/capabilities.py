"""Description of what the host runtime can do.

The exporter never inspects ambient globals; everything it needs to know about
the host is handed over in a RuntimeCapabilities value.
"""

from __future__ import annotations

import atexit
from collections.abc import Callable
from dataclasses import dataclass

# (endpoint, body) -> accepted
BeaconSender = Callable[[str, bytes], bool]


@dataclass(frozen=True)
class RuntimeCapabilities:
    """Capabilities of the runtime an exporter is constructed in.

    Attributes:
        send_beacon: Fire-and-forget sender, or None when the runtime has no
            beacon concept.
        rpc_available: Whether a persistent RPC channel can be opened.
        register_exit_hook: Registers a callable to run on termination.
        unregister_exit_hook: Removes a callable registered above.
    """

    send_beacon: BeaconSender | None = None
    rpc_available: bool = True
    register_exit_hook: Callable[[Callable[[], None]], object] = atexit.register
    unregister_exit_hook: Callable[[Callable[[], None]], None] = atexit.unregister

    @classmethod
    def detect(cls) -> RuntimeCapabilities:
        """Capabilities of a plain Python process: no beacon, RPC available."""
        return cls()
