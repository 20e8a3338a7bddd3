from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, Optional

from devlink.shared.protocol.constants import DEFAULT_MAX_PENDING_CONNECTIONS, DEFAULT_READ_CHUNK_SIZE
from devlink.shared.protocol.errors import NoPendingConnection
from devlink.shared.transport.connection import Connection
from devlink.shared.utils.signals import Signal

logger = logging.getLogger(__name__)


class ConnectionAcceptor:
    """TCP listener that queues accepted plain connections until claimed (FIFO)."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        *,
        max_pending: int = DEFAULT_MAX_PENDING_CONNECTIONS,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
    ) -> None:
        self.host = host
        self._requested_port = port
        self.max_pending = max_pending
        self.read_chunk_size = read_chunk_size
        self._server: Optional[asyncio.AbstractServer] = None
        self._pending: Deque[Connection] = deque()
        self._enqueued = asyncio.Event()
        self.new_connection = Signal("new_connection")

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, self.host, self._requested_port)
        logger.info("Acceptor listening on %s:%s", self.host, self.port)

    @property
    def port(self) -> int:
        """Bound port (resolves port 0 once listening)."""
        if self._server is None or not self._server.sockets:
            return self._requested_port
        return self._server.sockets[0].getsockname()[1]

    def is_listening(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peername = writer.get_extra_info("peername")
        if len(self._pending) >= self.max_pending:
            logger.warning("Rejecting %s: %s connections already pending", peername, len(self._pending))
            writer.close()
            return
        connection = Connection(reader, writer, read_chunk_size=self.read_chunk_size)
        self._pending.append(connection)
        self._enqueued.set()
        logger.debug("Queued connection from %s (%s pending)", peername, len(self._pending))
        self.new_connection.emit()

    def has_pending(self) -> bool:
        return bool(self._pending)

    def pending_count(self) -> int:
        return len(self._pending)

    def take_pending(self) -> Connection:
        """Hand over the oldest queued connection; the caller now owns it."""
        if not self._pending:
            raise NoPendingConnection("take_pending() called with an empty queue")
        connection = self._pending.popleft()
        if not self._pending:
            self._enqueued.clear()
        return connection

    async def wait_for_pending(self, timeout: Optional[float] = None) -> bool:
        """Wait until a connection is queued; False if ``timeout`` elapsed first."""
        if self._pending:
            return True
        try:
            await asyncio.wait_for(self._enqueued.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self.has_pending()

    async def next_pending(self, timeout: Optional[float] = None) -> Connection:
        if not await self.wait_for_pending(timeout):
            raise NoPendingConnection(f"No connection arrived within {timeout}s")
        return self.take_pending()

    async def stop(self) -> None:
        """Stop listening and close connections nobody claimed.

        Claimed connections belong to the caller. On Python 3.12+ the listener
        only finishes once those are closed as well, so close them first.
        """
        while self._pending:
            await self._pending.popleft().aclose()
        self._enqueued.clear()
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Acceptor on %s stopped", self.host)


__all__ = ["ConnectionAcceptor"]
