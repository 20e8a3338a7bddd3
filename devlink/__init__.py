"""
devlink: encrypted, newline-framed transport between two peer devices.

Connections come from ``devlink.server.core.ConnectionAcceptor`` or
``devlink.client.core.connect``; ``connection.secure`` negotiates mutual TLS
with self-issued certificates and ``FrameReader`` turns the decrypted stream
into frames.
"""

__version__ = "0.1.0"
