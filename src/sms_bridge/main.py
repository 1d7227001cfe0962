from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Form, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .bridge import SmsBridge
from .config import get_settings
from .db import SessionLocal, init_db, log_message, resolve_name
from .sms import InboundSms, SmsFragment, group_fragments
from .twilio_client import get_send_text

logger = logging.getLogger(__name__)


def _resolve_name(phone: str) -> str | None:
    with SessionLocal() as db:
        return resolve_name(db, phone)


def build_bridge(dry_run: bool | None = None) -> SmsBridge:
    """Bridge wired to Twilio (or the dry-run sink) and the contacts table."""
    settings = get_settings()
    send_text = get_send_text(dry_run=settings.dry_run if dry_run is None else dry_run)

    def send_and_log(to: str, body: str) -> None:
        send_text(to, body)
        with SessionLocal() as db:
            log_message(db, phone=to, direction="out", text=body)

    return SmsBridge.from_settings(settings, send_text=send_and_log, resolve_name=_resolve_name)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables, then open the server connection
    init_db()
    bridge = getattr(app.state, "bridge", None)
    if bridge is None:
        bridge = build_bridge()
        app.state.bridge = bridge
    bridge.start()
    yield
    # Shutdown: cancel reconnects and close the connection
    bridge.shutdown()


app = FastAPI(title="sms-bridge", version="0.1.0", lifespan=lifespan)

# --- Admin protection ---

ALLOWED_ADMIN_IPS = {"127.0.0.1", "::1"}


def verify_admin(request: Request) -> None:
    """
    Simple protection for /admin endpoints:
    - only allow requests from ALLOWED_ADMIN_IPS
    - require X-Admin-Token header that matches the ADMIN_TOKEN env var
    """
    client_host = request.client.host if request.client else None

    if client_host not in ALLOWED_ADMIN_IPS:
        raise HTTPException(status_code=403, detail="Forbidden")

    admin_token = get_settings().admin_token
    if not admin_token:
        # Misconfiguration; safer to refuse access than to allow anyone in.
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")

    header_token = request.headers.get("X-Admin-Token")
    if header_token != admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")


# --- Dependencies ---


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_bridge(request: Request) -> SmsBridge:
    return request.app.state.bridge


# --- Routes ---


@app.post("/sms/inbound")
def sms_inbound(
    From_: str = Form(..., alias="From"),
    Body: str = Form(..., alias="Body"),
    db: Session = Depends(get_db),
    bridge: SmsBridge = Depends(get_bridge),
) -> Response:
    """
    Twilio-style SMS webhook endpoint.

    Behaviour:
      - store the incoming message
      - forward it to the server (or queue it while disconnected)
      - return empty TwiML so Twilio does NOT send an auto-reply
    """
    log_message(db, phone=From_, direction="in", text=Body)
    bridge.forward_sms(phone=From_, body=Body)

    twiml = """<?xml version="1.0" encoding="UTF-8"?>
<Response></Response>"""

    return Response(content=twiml, media_type="application/xml")


@app.post("/test/inbound")
def test_inbound(
    payload: InboundSms,
    db: Session = Depends(get_db),
    bridge: SmsBridge = Depends(get_bridge),
) -> JSONResponse:
    """
    Test endpoint that feeds a message in without Twilio.

    Accepts JSON:

      { "phone": "+15551234567", "body": "hello", "name": "Alice" }

    "name" is optional; when missing it is looked up in the contacts table.
    """
    log_message(db, phone=payload.phone, direction="in", text=payload.body)
    event = bridge.forward_sms(phone=payload.phone, body=payload.body, name=payload.name)
    return JSONResponse(
        {
            "status": "ok",
            "state": bridge.connection.state.value,
            "event": event.model_dump(mode="json"),
        }
    )


@app.post("/sms/batch")
def sms_batch(
    fragments: list[SmsFragment],
    bridge: SmsBridge = Depends(get_bridge),
) -> JSONResponse:
    """Forward a batch of raw fragments, joining multi-part messages per sender."""
    forwarded = [bridge.forward_sms(phone=sms.phone, body=sms.body) for sms in group_fragments(fragments)]
    return JSONResponse({"status": "ok", "forwarded": len(forwarded)})


@app.get("/status")
def status(bridge: SmsBridge = Depends(get_bridge)) -> JSONResponse:
    return JSONResponse(
        {
            "state": bridge.status.state.value,
            "status": bridge.status.phrase,
            "note": bridge.status.note,
            "pending": bridge.connection.pending,
            "endpoint": bridge.endpoint.get_endpoint(),
        }
    )


class EndpointUpdate(BaseModel):
    url: str


@app.put("/admin/endpoint")
def admin_endpoint(
    payload: EndpointUpdate,
    bridge: SmsBridge = Depends(get_bridge),
    _: None = Depends(verify_admin),
) -> JSONResponse:
    """
    Save a new server URL and reconnect to it.

    Example:
      PUT /admin/endpoint  {"url": "ws://192.168.1.100:3000"}
    """
    try:
        bridge.update_endpoint(payload.url)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info("Endpoint changed to %s", payload.url.strip())
    return JSONResponse({"status": "ok", "endpoint": bridge.endpoint.get_endpoint()})
