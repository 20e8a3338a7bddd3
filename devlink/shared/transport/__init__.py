"""
Connection, TLS session engine and the helper that negotiates one side of a
secure channel.
"""

from .connection import Connection, ConnectionState
from .negotiate import negotiate
from .secure_channel import HandshakeState, SecureChannel

__all__ = ["Connection", "ConnectionState", "HandshakeState", "SecureChannel", "negotiate"]
