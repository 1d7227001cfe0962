from __future__ import annotations

import threading
import time
from collections.abc import Callable

from .config import EndpointConfig, Settings
from .connection import DEFAULT_RECONNECT_DELAY, ConnectionManager, TimerFactory
from .dispatcher import CommandDispatcher, SendText
from .events import OutboundEvent, SmsIncoming
from .status import StatusReporter
from .transport import Connector, websocket_connector

NameResolver = Callable[[str], str | None]


def now_ms() -> int:
    return int(time.time() * 1000)


class SmsBridge:
    """
    Wires the endpoint, connection manager, dispatcher and status together.

    Producers (webhooks, the console) call forward_sms(); the server's
    commands come back through the dispatcher to ``send_text``.
    """

    def __init__(
        self,
        endpoint: EndpointConfig,
        send_text: SendText,
        resolve_name: NameResolver | None = None,
        connector: Connector | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.endpoint = endpoint
        self.status = StatusReporter()
        self._resolve_name = resolve_name
        self.dispatcher = CommandDispatcher(
            send_text=send_text, send_event=self.send, status=self.status
        )
        self.connection = ConnectionManager(
            endpoint,
            on_command=self.dispatcher.dispatch,
            status=self.status,
            connector=connector,
            reconnect_delay=reconnect_delay,
            timer_factory=timer_factory,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        send_text: SendText,
        resolve_name: NameResolver | None = None,
    ) -> SmsBridge:
        return cls(
            EndpointConfig(settings.endpoint),
            send_text=send_text,
            resolve_name=resolve_name,
            connector=websocket_connector(settings.open_timeout),
            reconnect_delay=settings.reconnect_delay,
        )

    def start(self) -> None:
        self.connection.start()

    def shutdown(self) -> None:
        self.connection.shutdown()

    def send(self, event: OutboundEvent) -> None:
        self.connection.send(event)

    def forward_sms(
        self,
        phone: str,
        body: str,
        name: str | None = None,
        timestamp: int | None = None,
    ) -> SmsIncoming:
        """Forward a received SMS to the server, queueing it while offline."""
        if name is None and self._resolve_name is not None:
            name = self._resolve_name(phone)
        event = SmsIncoming(
            phone=phone,
            name=name,
            body=body,
            timestamp=now_ms() if timestamp is None else timestamp,
        )
        self.send(event)
        return event

    def update_endpoint(self, url: str) -> None:
        """Store a new server URL and reconnect to it."""
        self.endpoint.set_endpoint(url)
        self.connection.reconnect()
