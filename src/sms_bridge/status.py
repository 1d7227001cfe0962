from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


PHRASES: dict[ConnectionState, str] = {
    ConnectionState.CONNECTING: "Connecting…",
    ConnectionState.CONNECTED: "Connected",
    ConnectionState.DISCONNECTED: "Disconnected — retrying…",
}

# Shown once the manager is shut down and no retry will follow.
STOPPED = "Stopped"

StatusListener = Callable[[ConnectionState, str], None]


class StatusReporter:
    """Observable connection state, plus a short phrase for display."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._phrase = PHRASES[self._state]
        self._note: str | None = None
        self._listeners: list[StatusListener] = []

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def phrase(self) -> str:
        with self._lock:
            return self._phrase

    @property
    def note(self) -> str | None:
        with self._lock:
            return self._note

    def subscribe(self, listener: StatusListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def set_note(self, note: str) -> None:
        with self._lock:
            self._note = note
        logger.info("%s", note)

    def update(self, state: ConnectionState, phrase: str | None = None) -> None:
        phrase = phrase or PHRASES[state]
        with self._lock:
            self._state = state
            self._phrase = phrase
            listeners = list(self._listeners)
        logger.info("Status: %s", phrase)
        for listener in listeners:
            try:
                listener(state, phrase)
            except Exception:
                logger.exception("Status listener %r failed", listener)
