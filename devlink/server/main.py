from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Optional

from devlink.server.core import ConnectionAcceptor
from devlink.shared.protocol import FrameReader, TransportError
from devlink.shared.security import Identity, generate_identity
from devlink.shared.settings import SETTINGS, Settings, load_settings
from devlink.shared.transport import Connection, negotiate

logger = logging.getLogger(__name__)

FrameCallback = Callable[[bytes], None]


async def serve_connection(
    connection: Connection,
    identity: Identity,
    settings: Settings,
    on_frame: Optional[FrameCallback] = None,
) -> int:
    """Negotiate as the TLS server, then consume frames until the peer leaves.

    Returns the number of non-empty frames received.
    """
    received = 0
    try:
        try:
            await negotiate(
                connection,
                server_side=True,
                identity=identity,
                trust_mode=settings.trust_mode,
                timeout=settings.handshake_timeout,
            )
        except TransportError as exc:
            logger.warning("Dropping %s: %s", connection.peername, exc)
            return 0

        peer = connection.peer_identity()
        logger.info("Secure link with %s (%s)", peer.name if peer else "unknown peer", connection.peername)

        reader = FrameReader(connection, buffer_limit=settings.frame_buffer_limit)
        async for frame in reader:
            if not frame:
                continue
            received += 1
            if on_frame is not None:
                on_frame(frame)
            else:
                logger.info("Frame from %s: %r", connection.peername, frame)
        return received
    finally:
        await connection.aclose()


async def run_server() -> None:
    load_settings()
    logging.basicConfig(level=SETTINGS.log_level)

    identity = generate_identity(
        SETTINGS.device_name,
        validity_days=SETTINGS.certificate_validity_days,
        key_size=SETTINGS.key_size,
    )
    logger.info("Device %s, certificate %s", identity.name, identity.fingerprint)

    acceptor = ConnectionAcceptor(
        SETTINGS.host,
        SETTINGS.port,
        max_pending=SETTINGS.max_pending_connections,
        read_chunk_size=SETTINGS.read_chunk_size,
    )
    await acceptor.start()
    tasks = set()
    try:
        while True:
            connection = await acceptor.next_pending()
            task = asyncio.create_task(serve_connection(connection, identity, SETTINGS))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
    finally:
        for task in tasks:
            task.cancel()
        # Claimed connections must be closed before the listener can finish.
        await asyncio.gather(*tasks, return_exceptions=True)
        await acceptor.stop()


if __name__ == "__main__":
    asyncio.run(run_server())
