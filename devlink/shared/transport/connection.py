from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import List, Optional

from cryptography import x509

from devlink.shared.protocol.constants import DEFAULT_READ_CHUNK_SIZE
from devlink.shared.protocol.errors import (
    ConnectionClosed,
    ErrorCode,
    HandshakeFailure,
    TransportError,
)
from devlink.shared.security.identity import PeerIdentity
from devlink.shared.utils.signals import Signal

from .secure_channel import HandshakeState, SecureChannel

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    OPEN = "open"
    CLOSED = "closed"


class Connection:
    """Duplex byte stream over one TCP socket with an optional TLS layer.

    ``connection.secure`` is the session controller (trust configuration,
    handshake state); the methods on the connection itself form the byte
    stream view, which carries plaintext before encryption starts and
    decrypted application bytes afterwards.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.peername = str(writer.get_extra_info("peername"))
        self.sockname = str(writer.get_extra_info("sockname"))
        self._read_chunk_size = read_chunk_size
        self._state = ConnectionState.OPEN
        self._inbox = bytearray()
        self._pending_writes: List[bytes] = []
        self._handshake_error: Optional[TransportError] = None
        self._handshake_settled = asyncio.Event()
        self._closed = asyncio.Event()
        self._reading = asyncio.Event()
        self._reading.set()

        self.ready_read = Signal("ready_read")
        self.disconnected = Signal("disconnected")
        self.secure = SecureChannel(self._write_raw, label=self.peername)
        self.secure.encrypted.connect(self._on_encrypted)

        self._pump_task: Optional[asyncio.Task] = asyncio.get_running_loop().create_task(
            self._pump(), name=f"devlink-pump-{self.peername}"
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    def is_encrypted(self) -> bool:
        return self.is_open() and self.secure.is_established()

    def peer_certificate(self) -> Optional[x509.Certificate]:
        return self.secure.peer_certificate()

    def peer_identity(self) -> Optional[PeerIdentity]:
        return self.secure.peer_identity()

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    def start_server_encryption(self) -> None:
        self._start_encryption(server_side=True)

    def start_client_encryption(self) -> None:
        self._start_encryption(server_side=False)

    def _start_encryption(self, server_side: bool) -> None:
        if not self.is_open():
            raise ConnectionClosed(f"Connection {self.peername} is closed")
        try:
            self.secure.start(server_side)
        except HandshakeFailure as exc:
            self._on_handshake_failure(exc)
            return

        # Unread bytes that arrived before the upgrade belong to the handshake.
        backlog = bytes(self._inbox)
        self._inbox.clear()
        if backlog:
            self._handle_incoming(backlog)

    async def wait_encrypted(self) -> None:
        """Wait for the handshake to settle.

        Returns once the session was established, even if the peer closed
        right after; its data is still readable. Raises ``HandshakeFailure``
        when negotiation or peer verification failed and ``ConnectionClosed``
        when the connection went away first.
        """
        if self.secure.state is HandshakeState.IDLE and self.is_open():
            raise TransportError(ErrorCode.INVALID_STATE, "Encryption has not been started")
        await self._handshake_settled.wait()
        if self.secure.is_established():
            return
        raise self._handshake_error or ConnectionClosed(f"Connection {self.peername} is closed")

    def _on_encrypted(self) -> None:
        self._handshake_settled.set()
        pending, self._pending_writes = self._pending_writes, []
        for data in pending:
            self.secure.send(data)

    def _on_handshake_failure(self, failure: HandshakeFailure) -> None:
        if self._handshake_error is None:
            self._handshake_error = failure
        self.close()

    # ------------------------------------------------------------------
    # Byte stream view
    # ------------------------------------------------------------------

    def bytes_available(self) -> int:
        return len(self._inbox)

    def read(self, size: int = -1) -> bytes:
        """Take up to ``size`` buffered bytes (all of them when negative).

        Bytes received before the connection closed can still be read.
        """
        if size < 0 or size >= len(self._inbox):
            data = bytes(self._inbox)
            self._inbox.clear()
            return data
        data = bytes(self._inbox[:size])
        del self._inbox[:size]
        return data

    async def write(self, data: bytes) -> None:
        """Send application bytes; queued while the handshake is running."""
        if not self.is_open():
            raise ConnectionClosed(f"Connection {self.peername} is closed")
        state = self.secure.state
        if state is HandshakeState.IDLE:
            self._write_raw(data)
        elif state is HandshakeState.HANDSHAKING:
            self._pending_writes.append(bytes(data))
            return
        else:
            try:
                self.secure.send(data)
            except ConnectionClosed:
                self.close()
                raise
        try:
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            self.close()
            raise ConnectionClosed(f"Write to {self.peername} failed: {exc}") from exc

    def _write_raw(self, data: bytes) -> None:
        if self._writer.is_closing():
            return
        self._writer.write(data)

    def pause_reading(self) -> None:
        if self._reading.is_set():
            logger.debug("Pausing reads from %s", self.peername)
            self._reading.clear()

    def resume_reading(self) -> None:
        if not self._reading.is_set():
            logger.debug("Resuming reads from %s", self.peername)
            self._reading.set()

    def is_reading_paused(self) -> bool:
        return not self._reading.is_set()

    # ------------------------------------------------------------------
    # Read pump
    # ------------------------------------------------------------------

    async def _pump(self) -> None:
        try:
            while self.is_open():
                await self._reading.wait()
                if not self.is_open():
                    break
                chunk = await self._reader.read(self._read_chunk_size)
                if not chunk:
                    logger.info("Peer %s closed the connection", self.peername)
                    break
                self._handle_incoming(chunk)
        except (ConnectionError, OSError) as exc:
            logger.info("Connection %s reset: %s", self.peername, exc)
        finally:
            self.close()

    def _handle_incoming(self, chunk: bytes) -> None:
        if self.secure.state is HandshakeState.IDLE:
            self._deliver(chunk)
            return
        try:
            plaintext = self.secure.receive_data(chunk)
        except HandshakeFailure as exc:
            self._on_handshake_failure(exc)
            return
        except ConnectionClosed as exc:
            logger.warning("Connection %s: %s", self.peername, exc.message)
            self.close()
            return
        self._deliver(plaintext)
        if self.secure.peer_closed:
            logger.info("Peer %s ended the TLS session", self.peername)
            self.close()

    def _deliver(self, data: bytes) -> None:
        if not data or not self.is_open():
            return
        self._inbox.extend(data)
        self.ready_read.emit()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the connection; terminal and idempotent."""
        if self._state is ConnectionState.CLOSED:
            return
        self.secure.shutdown()
        self._state = ConnectionState.CLOSED

        failure = self.secure.abort("connection closed during handshake")
        if failure is not None and self._handshake_error is None:
            self._handshake_error = ConnectionClosed(f"Connection {self.peername} closed during handshake")
        self._handshake_settled.set()

        # Received bytes stay readable; only unsent writes are dropped.
        self._pending_writes.clear()
        self._reading.set()
        if self._pump_task is not None and self._pump_task is not asyncio.current_task():
            self._pump_task.cancel()
        self._writer.close()
        self._closed.set()
        logger.info("Connection %s closed", self.peername)
        self.disconnected.emit()

    async def aclose(self) -> None:
        self.close()
        if self._pump_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            logger.debug("Error during writer cleanup for %s: %s", self.peername, exc)

    async def wait_closed(self) -> None:
        await self._closed.wait()


__all__ = ["Connection", "ConnectionState"]
