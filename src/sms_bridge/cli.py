from __future__ import annotations

import argparse
import logging

from .config import get_settings
from .db import SessionLocal, init_db, upsert_contact

CONSOLE_HELP = "Type 'PHONE: text' to simulate an incoming SMS, /status, or /quit to exit."


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def console(endpoint: str | None) -> None:
    """
    Interactive console that feeds typed messages through the bridge.

    Outbound texts requested by the server are logged instead of sent.
    """
    from .main import build_bridge

    init_db()
    bridge = build_bridge(dry_run=True)
    if endpoint:
        bridge.endpoint.set_endpoint(endpoint)
    bridge.start()
    print(CONSOLE_HELP + "\n")
    try:
        while True:
            try:
                line = input("sms> ").strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not line:
                continue
            if line.lower() in {"/q", "/quit", "/exit"}:
                break
            if line.lower() == "/status":
                print(f"{bridge.status.phrase} ({bridge.connection.pending} queued)\n")
                continue
            phone, sep, text = line.partition(":")
            if not sep or not phone.strip():
                print(CONSOLE_HELP + "\n")
                continue
            event = bridge.forward_sms(phone=phone.strip(), body=text.strip())
            print(f"forwarded> {event.phone} ({event.name or 'unknown'}): {event.body}\n")
    finally:
        bridge.shutdown()


def add_contact(phone: str, name: str) -> None:
    init_db()
    with SessionLocal() as db:
        contact = upsert_contact(db, phone=phone, name=name)
    print(f"{contact.phone} -> {contact.name}")


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("sms_bridge.main:app", host=host, port=port, log_level=get_settings().log_level.lower())


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="sms-bridge")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="run the webhook server and the bridge")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=8000)

    p_console = sub.add_parser("console", help="interactive console")
    p_console.add_argument("--endpoint", default=None, help="server WebSocket URL")

    p_contact = sub.add_parser("contact", help="store a contact name for a phone number")
    p_contact.add_argument("phone")
    p_contact.add_argument("name")

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.command == "serve":
        serve(args.host, args.port)
    elif args.command == "console":
        console(args.endpoint)
    else:
        add_contact(args.phone, args.name)


if __name__ == "__main__":
    main()
