"""Exactly-once result propagation for a single export call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from collector_exporter._internal.logging import log_internal_error
from collector_exporter.exceptions import ExportError

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[], None]
ErrorCallback = Callable[[ExportError], None]

CANCELLED_MESSAGE = "export cancelled before completion"


class Completion:
    """Two-armed continuation that resolves exactly once.

    The first call to succeed() or fail() invokes the matching callback;
    any later resolution is ignored. Exceptions raised by the callbacks are
    logged and never reach the transport.
    """

    __slots__ = ("_on_success", "_on_error", "_done")

    def __init__(self, on_success: SuccessCallback, on_error: ErrorCallback) -> None:
        self._on_success = on_success
        self._on_error = on_error
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def succeed(self) -> None:
        if self._claim("success"):
            try:
                self._on_success()
            except Exception as exc:
                log_internal_error("on_success callback", exc)

    def fail(self, error: ExportError) -> None:
        if self._claim("error"):
            try:
                self._on_error(error)
            except Exception as exc:
                log_internal_error("on_error callback", exc)

    def _claim(self, outcome: str) -> bool:
        if self._done:
            logger.debug("Ignoring duplicate %s resolution of an export call", outcome)
            return False
        self._done = True
        return True


class InFlightCalls:
    """Delivery tasks that are still running, each with the completion it owes.

    A task normally resolves its own completion. ``fail_unfinished`` covers
    the case where the loop is gone and a task will never run to the end.
    """

    def __init__(self) -> None:
        self._calls: dict[asyncio.Task[None], Completion] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def track(self, task: asyncio.Task[None], completion: Completion) -> None:
        self._calls[task] = completion
        task.add_done_callback(self._forget)

    def tasks(self) -> list[asyncio.Task[None]]:
        return list(self._calls)

    def fail_unfinished(self, error: ExportError) -> int:
        failed = 0
        for task, completion in list(self._calls.items()):
            if not task.done() and not completion.done:
                completion.fail(error)
                failed += 1
        self._calls.clear()
        return failed

    def _forget(self, task: asyncio.Task[None]) -> None:
        self._calls.pop(task, None)
