from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors. None of them is fatal to the process."""


class ConnectFailure(BridgeError):
    """The endpoint could not be reached, or the address is malformed."""


class TransportClosed(BridgeError):
    """The connection was closed, either by the remote side or locally."""


class DecodeError(BridgeError):
    """An inbound payload is not a structurally valid command."""


class MissingConfiguration(BridgeError):
    """No endpoint is configured."""
