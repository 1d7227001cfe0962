from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel


class InboundSms(BaseModel):
    phone: str
    body: str
    name: str | None = None


class SmsFragment(BaseModel):
    phone: str
    body: str


def group_fragments(fragments: Iterable[SmsFragment]) -> list[InboundSms]:
    """
    Join the parts of multi-part messages delivered in one batch.

    Parts are concatenated per sender in arrival order; senders keep the order
    in which they first appear.
    """
    grouped: dict[str, list[str]] = {}
    for fragment in fragments:
        if not fragment.phone:
            continue
        grouped.setdefault(fragment.phone, []).append(fragment.body)
    return [InboundSms(phone=phone, body="".join(parts)) for phone, parts in grouped.items()]
