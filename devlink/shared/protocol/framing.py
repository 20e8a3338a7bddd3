from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from devlink.shared.utils.common import preview
from devlink.shared.utils.signals import Signal

from .constants import DEFAULT_FRAME_BUFFER_LIMIT, FRAME_DELIMITER

if TYPE_CHECKING:
    from devlink.shared.transport.connection import Connection

logger = logging.getLogger(__name__)


def encode_frame(payload: bytes) -> bytes:
    """Terminate ``payload`` with the frame delimiter. No escaping is done."""
    return bytes(payload) + FRAME_DELIMITER


class FrameReader:
    """Splits a connection's byte stream into newline-delimited frames.

    The reader only sees the byte stream view of the connection, so it works
    the same on plain and encrypted connections. ``ready_read`` fires once per
    read event that completes at least one frame; callers drain with
    ``read_line()`` until it returns ``None``.
    """

    def __init__(self, connection: "Connection", *, buffer_limit: int = DEFAULT_FRAME_BUFFER_LIMIT) -> None:
        self._connection = connection
        self._buffer = bytearray()
        self._frames = 0
        self._buffer_limit = buffer_limit
        self._paused = False
        self._attached = True
        self._frame_ready = asyncio.Event()
        self.ready_read = Signal("frame_ready_read")

        connection.ready_read.connect(self._on_data)
        connection.disconnected.connect(self._on_disconnected)
        if connection.is_open():
            # Bytes buffered before we attached count as one read event,
            # delivered once the caller had a chance to connect its slots.
            asyncio.get_running_loop().call_soon(self._on_data)
        else:
            # Closed before we attached: take what arrived, then drop the tail.
            self._on_disconnected()

    # ------------------------------------------------------------------
    # Consumer API
    # ------------------------------------------------------------------

    def bytes_available(self) -> int:
        """Buffered bytes not yet consumed, including an unterminated tail."""
        return len(self._buffer)

    def frames_available(self) -> int:
        return self._frames

    def can_read_line(self) -> bool:
        return self._frames > 0

    def read_line(self) -> Optional[bytes]:
        """Remove and return the next frame without its delimiter.

        Adjacent delimiters yield ``b""``. Returns ``None`` when no complete
        frame is buffered.
        """
        if self._frames == 0:
            return None
        index = self._buffer.find(FRAME_DELIMITER)
        frame = bytes(self._buffer[:index])
        del self._buffer[: index + len(FRAME_DELIMITER)]
        self._frames -= 1
        if self._frames == 0:
            self._frame_ready.clear()
        self._maybe_resume()
        return frame

    async def next_frame(self) -> Optional[bytes]:
        """Wait for the next frame; ``None`` once the connection closed and drained."""
        while self._frames == 0:
            if not self._connection.is_open() or not self._attached:
                return None
            await self._frame_ready.wait()
        return self.read_line()

    def __aiter__(self) -> "FrameReader":
        return self

    async def __anext__(self) -> bytes:
        frame = await self.next_frame()
        if frame is None:
            raise StopAsyncIteration
        return frame

    def detach(self) -> None:
        """Stop observing the connection. Buffered frames stay readable."""
        if not self._attached:
            return
        self._attached = False
        self._connection.ready_read.disconnect(self._on_data)
        self._connection.disconnected.disconnect(self._on_disconnected)
        self._maybe_resume(force=True)
        self._frame_ready.set()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def feed(self, data: bytes) -> int:
        """Append one read event's bytes; returns the number of frames completed."""
        if not data:
            return 0
        self._buffer.extend(data)
        completed = data.count(FRAME_DELIMITER)
        if completed:
            self._frames += completed
            logger.debug("%s: %s new frame(s), first bytes %r", self._connection.peername, completed, preview(data))
            self._frame_ready.set()
            self.ready_read.emit()
        self._maybe_pause()
        return completed

    def _on_data(self) -> None:
        if not self._attached:
            return
        data = self._connection.read()
        if data:
            self.feed(data)

    def _on_disconnected(self) -> None:
        if self._attached:
            data = self._connection.read()
            if data:
                self.feed(data)
        tail_start = self._buffer.rfind(FRAME_DELIMITER) + len(FRAME_DELIMITER)
        if tail_start < len(self._buffer):
            logger.debug(
                "%s: dropping %s undelimited byte(s) on close",
                self._connection.peername,
                len(self._buffer) - tail_start,
            )
            del self._buffer[tail_start:]
        self._paused = False
        # Wake next_frame() so iteration can finish.
        self._frame_ready.set()

    def _maybe_pause(self) -> None:
        # A single oversized frame has nothing to drain, so never pause on it.
        if self._paused or self._buffer_limit <= 0 or self._frames == 0:
            return
        if len(self._buffer) >= self._buffer_limit:
            self._paused = True
            self._connection.pause_reading()

    def _maybe_resume(self, force: bool = False) -> None:
        if not self._paused:
            return
        if force or len(self._buffer) < self._buffer_limit // 2 or self._frames == 0:
            self._paused = False
            self._connection.resume_reading()


__all__ = ["FrameReader", "encode_frame"]
