"""
Shared protocol package: frame delimiter and constants, the error taxonomy and
the newline frame reader used on both plain and encrypted connections.
"""

from .constants import DEFAULT_PORT, DEFAULT_READ_CHUNK_SIZE, FRAME_DELIMITER
from .errors import (
    ConfigurationError,
    ConnectFailed,
    ConnectionClosed,
    ErrorCode,
    HandshakeFailure,
    NoPendingConnection,
    TransportError,
)
from .framing import FrameReader, encode_frame

__all__ = [
    "DEFAULT_PORT",
    "DEFAULT_READ_CHUNK_SIZE",
    "FRAME_DELIMITER",
    "ErrorCode",
    "TransportError",
    "HandshakeFailure",
    "NoPendingConnection",
    "ConnectionClosed",
    "ConnectFailed",
    "ConfigurationError",
    "FrameReader",
    "encode_frame",
]
