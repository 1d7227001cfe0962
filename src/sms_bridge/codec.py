"""
JSON wire codec.

One JSON object per frame, always carrying a ``type`` tag:

  { "type": "register_phone" }
  { "type": "sms_incoming", "phone": "+1555...", "name": "Alice" | null, "body": "...", "timestamp": 1234567890 }
  { "type": "sms_sent_ack", "phone": "+1555..." }
  { "type": "send_sms", "phone": "+1555...", "body": "..." }      (server -> device)
  { "type": "registered" }                                        (server -> device)
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Annotated, Any

from pydantic import Field, TypeAdapter, ValidationError

from .errors import DecodeError
from .events import (
    InboundCommand,
    OutboundEvent,
    Registered,
    SendSms,
    UnknownCommand,
)

_event_adapter: TypeAdapter[OutboundEvent] = TypeAdapter(
    Annotated[OutboundEvent, Field(discriminator="type")]
)


def encode(event: OutboundEvent) -> dict[str, Any]:
    """Map an event to a JSON-compatible dict. Optional fields are kept as None, never omitted."""
    return event.model_dump(mode="json", exclude_none=False)


def dumps(event: OutboundEvent) -> str:
    return json.dumps(encode(event), ensure_ascii=False, separators=(",", ":"))


def _load(payload: str | bytes | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(payload, Mapping):
        data: Any = dict(payload)
    else:
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DecodeError(f"payload is not valid UTF-8: {exc}") from exc
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"payload is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise DecodeError(f"expected a JSON object, got {type(data).__name__}")

    tag = data.get("type")
    if tag is None:
        raise DecodeError("missing 'type' field")
    if not isinstance(tag, str):
        raise DecodeError("'type' must be a string")
    return data


def decode(payload: str | bytes | Mapping[str, Any]) -> InboundCommand:
    """
    Parse an inbound (server -> device) frame.

    Raises DecodeError only for structurally invalid input. A well-formed frame
    with an unrecognised ``type`` decodes to UnknownCommand.
    """
    data = _load(payload)
    tag = data["type"]

    if tag == "send_sms":
        for field in ("phone", "body"):
            if not isinstance(data.get(field), str):
                raise DecodeError(f"send_sms requires a string '{field}' field")
        return SendSms(phone=data["phone"], body=data["body"])
    if tag == "registered":
        return Registered()
    return UnknownCommand(type=tag)


def decode_event(payload: str | bytes | Mapping[str, Any]) -> OutboundEvent:
    """Parse an outbound (device -> server) frame, i.e. the server's view of the wire."""
    data = _load(payload)
    try:
        return _event_adapter.validate_python(data)
    except ValidationError as exc:
        raise DecodeError(str(exc)) from exc
