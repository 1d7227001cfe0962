from __future__ import annotations

import json
import os
import queue
import tempfile
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pytest

# Keep the module-level engine in sms_bridge.db away from the project root.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="sms_bridge_tests_"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR / 'test.db'}")

from sms_bridge.errors import ConnectFailure, TransportClosed  # noqa: E402
from sms_bridge.transport import Connection  # noqa: E402

_EOF = object()


class FakeConnection(Connection):
    """In-memory connection: the test plays the server side."""

    def __init__(self, fail_after: int | None = None, hold_at: int | None = None) -> None:
        self.sent: list[str] = []
        self.close_calls: list[tuple[int, str]] = []
        self.closed = False
        self.exited = False
        self.fail_after = fail_after
        # When set, the send of frame number hold_at waits for release.
        self.hold_at = hold_at
        self.holding = threading.Event()
        self.release = threading.Event()
        self._inbox: queue.Queue[Any] = queue.Queue()

    @property
    def frames(self) -> list[dict[str, Any]]:
        return [json.loads(text) for text in list(self.sent)]

    def send(self, text: str) -> None:
        if self.closed:
            raise TransportClosed("connection is closed")
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise TransportClosed("connection dropped")
        if self.hold_at is not None and len(self.sent) == self.hold_at:
            self.holding.set()
            self.release.wait(5.0)
        self.sent.append(text)

    def recv(self) -> str:
        item = self._inbox.get()
        if item is _EOF:
            raise TransportClosed("closed")
        return item

    def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        self.closed = True
        self._inbox.put(_EOF)

    # --- server side ---

    def push(self, text: str) -> None:
        self._inbox.put(text)

    def drop(self) -> None:
        """Remote close."""
        self.closed = True
        self._inbox.put(_EOF)


class FakeConnector:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []
        self.fail_after: int | None = None
        self.hold_at: int | None = None
        # When set, connect attempts block until the event is set.
        self.gate: threading.Event | None = None

    @contextmanager
    def __call__(self, url: str) -> Iterator[FakeConnection]:
        self.urls.append(url)
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.fail:
            raise ConnectFailure(f"{url}: connection refused")
        conn = FakeConnection(fail_after=self.fail_after, hold_at=self.hold_at)
        self.connections.append(conn)
        try:
            yield conn
        finally:
            conn.exited = True


class ManualTimer:
    """Stand-in for threading.Timer that only fires when the test says so."""

    def __init__(self, interval: float, function: Callable[..., Any], args: Any = None, kwargs: Any = None) -> None:
        self.interval = interval
        self.function = function
        self.args = tuple(args or ())
        self.kwargs = dict(kwargs or {})
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


class ManualTimers:
    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, interval: float, function: Callable[..., Any], args: Any = None, kwargs: Any = None) -> ManualTimer:
        timer = ManualTimer(interval, function, args, kwargs)
        self.timers.append(timer)
        return timer


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def cleanup() -> Iterator[list[Callable[[], None]]]:
    """Register shutdown callbacks so no worker thread outlives its test."""
    callbacks: list[Callable[[], None]] = []
    yield callbacks
    for callback in callbacks:
        callback()
