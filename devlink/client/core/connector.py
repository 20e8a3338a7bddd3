from __future__ import annotations

import asyncio
import logging
from typing import Optional

from devlink.shared.protocol.constants import DEFAULT_READ_CHUNK_SIZE
from devlink.shared.protocol.errors import ConnectFailed
from devlink.shared.transport.connection import Connection

logger = logging.getLogger(__name__)


async def connect(
    host: str,
    port: int,
    *,
    timeout: Optional[float] = None,
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
) -> Connection:
    """Open a plain TCP connection to a peer. No retries."""
    try:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except (OSError, asyncio.TimeoutError) as exc:
        logger.warning("Connect to %s:%s failed: %s", host, port, exc)
        raise ConnectFailed(f"Could not connect to {host}:{port}: {exc}") from exc
    logger.info("Connected to %s:%s", host, port)
    return Connection(reader, writer, read_chunk_size=read_chunk_size)


__all__ = ["connect"]
