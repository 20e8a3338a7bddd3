from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Optional

from cryptography import x509

from devlink.shared.protocol.errors import HandshakeFailure
from devlink.shared.security.identity import Identity
from devlink.shared.security.trust import TrustMode

from .connection import Connection

logger = logging.getLogger(__name__)


async def negotiate(
    connection: Connection,
    *,
    server_side: bool,
    identity: Identity,
    trust_mode: TrustMode = TrustMode.STRICT,
    peer_verify_name: Optional[str] = None,
    accepted_issuers: Iterable[x509.Certificate] = (),
    timeout: Optional[float] = None,
) -> Connection:
    """Configure one side of ``connection``, run its handshake and wait for it.

    ``timeout`` acts as an outer watchdog: when it expires the connection is
    closed and ``HandshakeFailure`` is raised. Other failures propagate from
    ``Connection.wait_encrypted``.
    """
    secure = connection.secure
    secure.set_identity(identity)
    secure.set_trust_mode(trust_mode)
    secure.set_peer_verify_name(peer_verify_name)
    for certificate in accepted_issuers:
        secure.add_accepted_issuer(certificate)

    if server_side:
        connection.start_server_encryption()
    else:
        connection.start_client_encryption()

    try:
        await asyncio.wait_for(connection.wait_encrypted(), timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("Handshake with %s timed out after %ss", connection.peername, timeout)
        connection.close()
        raise HandshakeFailure(f"Handshake timed out after {timeout}s") from exc
    return connection


__all__ = ["negotiate"]
