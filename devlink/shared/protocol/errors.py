from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    """Transport error codes."""

    HANDSHAKE_FAILURE = 1001
    NO_PENDING_CONNECTION = 1002
    CONNECTION_CLOSED = 1003
    CONNECT_FAILED = 1004
    INVALID_STATE = 1005
    NOT_CONFIGURED = 1006


class TransportError(Exception):
    """Structured transport exception carrying code + message."""

    def __init__(self, code: ErrorCode, message: str = "") -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code.name} ({int(code)}): {message}")


class HandshakeFailure(TransportError):
    """TLS negotiation failed or the peer identity was rejected."""

    def __init__(self, message: str = "TLS handshake failed") -> None:
        super().__init__(ErrorCode.HANDSHAKE_FAILURE, message)


class NoPendingConnection(TransportError):
    def __init__(self, message: str = "No pending connection") -> None:
        super().__init__(ErrorCode.NO_PENDING_CONNECTION, message)


class ConnectionClosed(TransportError):
    def __init__(self, message: str = "Connection closed") -> None:
        super().__init__(ErrorCode.CONNECTION_CLOSED, message)


class ConnectFailed(TransportError):
    def __init__(self, message: str = "Connect failed") -> None:
        super().__init__(ErrorCode.CONNECT_FAILED, message)


class ConfigurationError(TransportError):
    """Raised for missing or invalid configuration (identity, settings)."""

    def __init__(self, message: str = "Not configured") -> None:
        super().__init__(ErrorCode.NOT_CONFIGURED, message)


__all__ = [
    "ErrorCode",
    "TransportError",
    "HandshakeFailure",
    "NoPendingConnection",
    "ConnectionClosed",
    "ConnectFailed",
    "ConfigurationError",
]
