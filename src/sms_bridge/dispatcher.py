from __future__ import annotations

import logging
from collections.abc import Callable

from .events import InboundCommand, OutboundEvent, Registered, SendSms, SmsSentAck
from .status import StatusReporter

logger = logging.getLogger(__name__)

SendText = Callable[[str, str], None]


class CommandDispatcher:
    """Route server commands to the SMS sink and acknowledge them."""

    def __init__(
        self,
        send_text: SendText,
        send_event: Callable[[OutboundEvent], None],
        status: StatusReporter | None = None,
    ) -> None:
        self._send_text = send_text
        self._send_event = send_event
        self._status = status

    def dispatch(self, command: InboundCommand) -> None:
        if isinstance(command, SendSms):
            self._send_sms(command)
        elif isinstance(command, Registered):
            if self._status is not None:
                self._status.set_note("Registered with server")
            else:
                logger.info("Registered with server")
        else:
            logger.debug("Ignoring unknown command type %r", command.type)

    __call__ = dispatch

    def _send_sms(self, command: SendSms) -> None:
        try:
            self._send_text(command.phone, command.body)
        except Exception:
            logger.exception("Failed to send SMS to %s", command.phone)
        else:
            logger.info("SMS sent to %s", command.phone)
        # The ack only means the command was handled, not that the SMS went out.
        self._send_event(SmsSentAck(phone=command.phone))
