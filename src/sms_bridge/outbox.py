from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable

from .events import OutboundEvent


class OutboundQueue:
    """Unbounded FIFO of events waiting for a connection."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: deque[OutboundEvent] = deque()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def enqueue(self, event: OutboundEvent) -> None:
        with self._lock:
            self._items.append(event)

    def snapshot(self) -> list[OutboundEvent]:
        with self._lock:
            return list(self._items)

    def drain_into(self, transmit: Callable[[OutboundEvent], None]) -> int:
        """
        Transmit and remove queued events in FIFO order.

        Each event is removed once handed off to ``transmit``. If ``transmit``
        raises, that event and everything behind it stay queued in order and
        the exception propagates.
        """
        sent = 0
        with self._lock:
            while self._items:
                event = self._items[0]
                transmit(event)
                self._items.popleft()
                sent += 1
        return sent
