from __future__ import annotations

import os
import threading
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field

from .errors import MissingConfiguration


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


class Settings(BaseModel):
    # WebSocket URL of the server, e.g. ws://192.168.1.100:3000
    endpoint: str | None = Field(default_factory=lambda: os.getenv("SMS_BRIDGE_ENDPOINT"))

    # Fixed delay before a reconnect attempt, in seconds (env var is in ms)
    reconnect_delay: float = Field(
        default_factory=lambda: _env_float("SMS_BRIDGE_RECONNECT_DELAY_MS", 5000.0) / 1000.0
    )
    open_timeout: float = Field(
        default_factory=lambda: _env_float("SMS_BRIDGE_OPEN_TIMEOUT", 10.0)
    )

    # Database URL:
    # - Default for local dev: sqlite file in the project root (sms_bridge.db)
    # - Override in Docker / production using the DATABASE_URL env var
    database_url: str = Field(
        default_factory=lambda: os.getenv(
            "DATABASE_URL",
            f"sqlite:///{(Path(__file__).resolve().parents[2] / 'sms_bridge.db')}",
        )
    )

    # --- Twilio settings for outbound SMS ---
    twilio_account_sid: str | None = Field(default_factory=lambda: os.getenv("TWILIO_ACCOUNT_SID"))
    twilio_auth_token: str | None = Field(default_factory=lambda: os.getenv("TWILIO_AUTH_TOKEN"))
    twilio_from_number: str | None = Field(default_factory=lambda: os.getenv("TWILIO_FROM_NUMBER"))
    # HTTP timeout for Twilio API calls, in seconds
    twilio_timeout: float = Field(default_factory=lambda: _env_float("TWILIO_TIMEOUT", 10.0))

    # Log outbound texts instead of sending them through Twilio
    dry_run: bool = Field(
        default_factory=lambda: os.getenv("SMS_BRIDGE_DRY_RUN", "").lower() in {"1", "true", "yes"}
    )

    admin_token: str | None = Field(default_factory=lambda: os.getenv("ADMIN_TOKEN"))
    log_level: str = Field(default_factory=lambda: os.getenv("SMS_BRIDGE_LOG_LEVEL", "INFO"))


@lru_cache
def get_settings() -> Settings:
    return Settings()


class EndpointConfig:
    """
    Process-wide holder for the server URL.

    Set by user action (CLI, admin endpoint), read at every connect attempt.
    """

    def __init__(self, url: str | None = None) -> None:
        self._lock = threading.Lock()
        self._url = url

    def get_endpoint(self) -> str | None:
        with self._lock:
            url = self._url
        if url is None or not url.strip():
            return None
        return url.strip()

    def require_endpoint(self) -> str:
        url = self.get_endpoint()
        if url is None:
            raise MissingConfiguration("no server endpoint configured")
        return url

    def set_endpoint(self, url: str) -> None:
        if not url or not url.strip():
            raise ValueError("Enter a server URL")
        with self._lock:
            self._url = url.strip()
