from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class _Frame(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- device -> server ---


class RegisterPhone(_Frame):
    type: Literal["register_phone"] = "register_phone"


class SmsIncoming(_Frame):
    type: Literal["sms_incoming"] = "sms_incoming"
    phone: str
    name: str | None = None
    body: str
    timestamp: int  # epoch milliseconds


class SmsSentAck(_Frame):
    type: Literal["sms_sent_ack"] = "sms_sent_ack"
    phone: str


OutboundEvent = RegisterPhone | SmsIncoming | SmsSentAck


# --- server -> device ---


class SendSms(_Frame):
    type: Literal["send_sms"] = "send_sms"
    phone: str
    body: str


class Registered(_Frame):
    type: Literal["registered"] = "registered"


class UnknownCommand(_Frame):
    """Any well-formed command with a tag we don't handle. Dispatching it is a no-op."""

    type: str


InboundCommand = SendSms | Registered | UnknownCommand
