"""FIFO buffer for calls made before an RPC channel is ready."""

from __future__ import annotations

import itertools
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collector_exporter.exceptions import ExportError
    from collector_exporter.model import ExportRequest
    from collector_exporter.transport.completion import Completion


@dataclass(frozen=True)
class QueueEntry:
    """An export call captured while the channel was not ready."""

    request: ExportRequest
    completion: Completion
    sequence: int


class PendingCallQueue:
    """Ordered queue of captured calls.

    Entries leave the queue exactly once: either through drain() when the
    channel becomes ready, or through fail_all() on terminal failure.
    """

    def __init__(self) -> None:
        self._entries: deque[QueueEntry] = deque()
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def enqueue(self, request: ExportRequest, completion: Completion) -> QueueEntry:
        entry = QueueEntry(request, completion, next(self._counter))
        self._entries.append(entry)
        return entry

    def drain(self) -> Iterator[QueueEntry]:
        """Pop entries in enqueue order."""
        while self._entries:
            yield self._entries.popleft()

    def fail_all(self, error: ExportError) -> int:
        """Resolve every queued entry with ``error`` and clear the queue."""
        failed = 0
        for entry in self.drain():
            entry.completion.fail(error)
            failed += 1
        return failed
