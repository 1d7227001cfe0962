"""Duplex transport used by the connection manager.

The manager only needs the small :class:`Connection` contract, so tests can
swap in an in-memory connection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, ExitStack, contextmanager

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import ClientConnection, connect

from .errors import ConnectFailure, TransportClosed

NORMAL_CLOSURE = 1000


class Connection(ABC):
    """An open duplex connection exchanging text frames."""

    @abstractmethod
    def send(self, text: str) -> None:
        """Hand a frame to the transport. Raises TransportClosed."""

    @abstractmethod
    def recv(self) -> str:
        """Block for the next frame. Raises TransportClosed once the connection ends."""

    @abstractmethod
    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Close the connection. Safe to call more than once."""


# Opens a connection to a URL; the connection lives for the duration of the with block.
Connector = Callable[[str], AbstractContextManager[Connection]]


class WebSocketConnection(Connection):
    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws

    def send(self, text: str) -> None:
        try:
            self._ws.send(text)
        except ConnectionClosed as exc:
            raise TransportClosed(str(exc)) from exc

    def recv(self) -> str:
        try:
            frame = self._ws.recv()
        except ConnectionClosed as exc:
            raise TransportClosed(str(exc)) from exc
        if isinstance(frame, bytes):
            return frame.decode("utf-8", errors="replace")
        return frame

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        self._ws.close(code=code, reason=reason)


@contextmanager
def open_websocket(url: str, open_timeout: float = 10.0) -> Iterator[WebSocketConnection]:
    """
    Open a WebSocket client connection for the duration of the ``with`` block.

    Any failure to connect is reported as ConnectFailure. The socket is closed
    when the block exits.
    """
    with ExitStack() as stack:
        try:
            ws = stack.enter_context(connect(url, open_timeout=open_timeout))
        except (WebSocketException, OSError, TimeoutError, ValueError) as exc:
            raise ConnectFailure(f"{url}: {exc}") from exc
        yield WebSocketConnection(ws)


def websocket_connector(open_timeout: float = 10.0) -> Connector:
    def _connect(url: str) -> AbstractContextManager[Connection]:
        return open_websocket(url, open_timeout=open_timeout)

    return _connect
