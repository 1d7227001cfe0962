"""
Connection manager: owns the duplex connection to the server.

Transport callbacks are not invoked directly. Each connection attempt runs on
its own worker thread which posts signals (Opened, Received, Closed, Errored)
tagged with the generation of the attempt. A single control loop thread
consumes them and drives the state machine:

    Disconnected --connect()--> Connecting --Opened--> Connected
    Connected --Closed/Errored--> Disconnected --(delay)--> Connecting ...

Signals whose generation is not current belong to a superseded connection and
are ignored. The generation is bumped on every connect attempt, reconnect()
and shutdown(), which also invalidates a pending reconnect timer.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from . import codec
from .config import EndpointConfig
from .errors import DecodeError, MissingConfiguration, TransportClosed
from .events import InboundCommand, OutboundEvent, RegisterPhone
from .outbox import OutboundQueue
from .status import STOPPED, ConnectionState, StatusReporter
from .transport import NORMAL_CLOSURE, Connection, Connector, websocket_connector

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 5.0

TimerFactory = Callable[..., Any]


@dataclass(frozen=True)
class Opened:
    connection: Connection


@dataclass(frozen=True)
class Received:
    payload: str


@dataclass(frozen=True)
class Closed:
    reason: str = ""


@dataclass(frozen=True)
class Errored:
    error: BaseException


Signal = Opened | Received | Closed | Errored

_STOP = object()


class ConnectionManager:
    def __init__(
        self,
        endpoint: EndpointConfig,
        on_command: Callable[[InboundCommand], None],
        status: StatusReporter | None = None,
        connector: Connector | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._endpoint = endpoint
        self._on_command = on_command
        self.status = status or StatusReporter()
        self._connector = connector or websocket_connector()
        self.reconnect_delay = reconnect_delay
        self._timer_factory = timer_factory

        # Guards everything below, plus the queue's contents relative to state.
        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._queue = OutboundQueue()
        self._conn: Connection | None = None
        self._generation = 0
        self._timer: Any = None
        self._closed = False
        self._signals: queue.Queue[Any] = queue.Queue()
        self._loop_thread: threading.Thread | None = None

    # --- observation ---

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def pending(self) -> int:
        return len(self._queue)

    def queued(self) -> list[OutboundEvent]:
        return self._queue.snapshot()

    @property
    def reconnect_scheduled(self) -> bool:
        with self._lock:
            return self._timer is not None

    # --- lifecycle ---

    def start(self) -> None:
        """Start the control loop and make a first connect attempt."""
        self._ensure_loop()
        self.connect()

    def connect(self) -> None:
        """
        Start a connect attempt to the configured endpoint.

        Does nothing when no endpoint is configured, when a connection is
        already up or in progress, or after shutdown().
        """
        with self._lock:
            if self._closed:
                return
            if self._state is not ConnectionState.DISCONNECTED:
                logger.debug("connect() ignored, state is %s", self._state.value)
                return
            try:
                url = self._endpoint.require_endpoint()
            except MissingConfiguration:
                logger.debug("No server endpoint configured, not connecting")
                return

            self._ensure_loop()
            self._cancel_timer()
            self._generation += 1
            generation = self._generation
            self._set_state(ConnectionState.CONNECTING)

        worker = threading.Thread(
            target=self._run_connection,
            args=(generation, url),
            name=f"sms-bridge-conn-{generation}",
            daemon=True,
        )
        worker.start()

    def reconnect(self) -> None:
        """Drop the current connection (if any) and connect again right away."""
        with self._lock:
            if self._closed:
                return
            self._generation += 1
            self._cancel_timer()
            conn, self._conn = self._conn, None
            self._set_state(ConnectionState.DISCONNECTED)
        if conn is not None:
            conn.close(NORMAL_CLOSURE, "Endpoint changed")
        self.connect()

    def shutdown(self) -> None:
        """Cancel any pending reconnect, close the connection and stop the control loop."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._generation += 1
            self._cancel_timer()
            conn, self._conn = self._conn, None
            self._state = ConnectionState.DISCONNECTED
            self.status.update(ConnectionState.DISCONNECTED, phrase=STOPPED)
            loop_thread = self._loop_thread

        if conn is not None:
            conn.close(NORMAL_CLOSURE, "Service stopped")
        self._signals.put(_STOP)
        if loop_thread is not None and loop_thread is not threading.current_thread():
            loop_thread.join(timeout=5.0)
        logger.info("Connection manager stopped (%d event(s) left unsent)", self.pending)

    # --- send path ---

    def send(self, event: OutboundEvent) -> None:
        """Transmit right away when connected, otherwise queue for the next flush."""
        with self._lock:
            if self._state is ConnectionState.CONNECTED:
                try:
                    self._transmit(event)
                    return
                except TransportClosed as exc:
                    logger.warning("Send failed (%s), queueing %s", exc, event.type)
            self._queue.enqueue(event)
            logger.debug("Queued %s (%d pending)", event.type, len(self._queue))

    def _transmit(self, event: OutboundEvent) -> None:
        conn = self._conn
        if conn is None:
            raise TransportClosed("no open connection")
        conn.send(codec.dumps(event))

    # --- worker side ---

    def _post(self, generation: int, signal: Signal) -> None:
        self._signals.put((generation, signal))

    def _run_connection(self, generation: int, url: str) -> None:
        logger.info("Connecting to %s", url)
        try:
            with self._connector(url) as conn:
                with self._lock:
                    superseded = not self._is_current(generation)
                    if not superseded:
                        self._conn = conn
                if superseded:
                    conn.close(NORMAL_CLOSURE, "Service stopped")
                    return

                self._post(generation, Opened(conn))
                while True:
                    self._post(generation, Received(conn.recv()))
        except TransportClosed as exc:
            self._post(generation, Closed(str(exc)))
        except Exception as exc:
            self._post(generation, Errored(exc))

    # --- control loop ---

    def _ensure_loop(self) -> None:
        with self._lock:
            if self._loop_thread is not None or self._closed:
                return
            self._loop_thread = threading.Thread(
                target=self._control_loop, name="sms-bridge-control", daemon=True
            )
            self._loop_thread.start()

    def _control_loop(self) -> None:
        while True:
            item = self._signals.get()
            if item is _STOP:
                break
            generation, signal = item
            try:
                self._handle(generation, signal)
            except Exception:
                logger.exception("Error while handling %s", type(signal).__name__)

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _handle(self, generation: int, signal: Signal) -> None:
        if isinstance(signal, Received):
            # Dispatch under the lock so nothing reaches the SMS sink once
            # shutdown() or reconnect() has returned.
            with self._lock:
                if self._is_current(generation):
                    self._on_received(signal.payload)
            return

        stale_conn: Connection | None = None
        with self._lock:
            if not self._is_current(generation):
                logger.debug("Ignoring %s from superseded connection", type(signal).__name__)
                return
            if isinstance(signal, Opened):
                self._on_open()
            else:
                stale_conn = self._on_disconnect(generation, signal)
        if stale_conn is not None:
            stale_conn.close(NORMAL_CLOSURE, "")

    def _on_open(self) -> None:
        logger.info("Connected")
        self._set_state(ConnectionState.CONNECTED)
        try:
            self._transmit(RegisterPhone())
            sent = self._queue.drain_into(self._transmit)
        except TransportClosed as exc:
            logger.warning(
                "Connection lost during flush (%s), %d event(s) stay queued", exc, len(self._queue)
            )
            return
        if sent:
            logger.info("Flushed %d queued event(s)", sent)

    def _on_received(self, payload: str) -> None:
        try:
            command = codec.decode(payload)
        except DecodeError as exc:
            logger.warning("Dropping malformed server message: %s", exc)
            return
        self._on_command(command)

    def _on_disconnect(self, generation: int, signal: Closed | Errored) -> Connection | None:
        if isinstance(signal, Errored):
            logger.warning("Connection error: %s", signal.error)
        else:
            logger.info("Connection closed: %s", signal.reason or "no reason")
        conn, self._conn = self._conn, None
        self._set_state(ConnectionState.DISCONNECTED)
        self._schedule_reconnect(generation)
        return conn

    # --- reconnect timer ---

    def _schedule_reconnect(self, generation: int) -> None:
        self._cancel_timer()
        timer = self._timer_factory(self.reconnect_delay, self._reconnect_fired, args=(generation,))
        timer.daemon = True
        timer.start()
        self._timer = timer
        logger.info("Reconnecting in %.1fs", self.reconnect_delay)

    def _reconnect_fired(self, generation: int) -> None:
        with self._lock:
            if not self._is_current(generation):
                return
            self._timer = None
        self.connect()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._state = state
        self.status.update(state)
