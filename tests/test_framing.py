from __future__ import annotations

import asyncio
import random

from devlink.shared.protocol import FrameReader, encode_frame
from devlink.shared.utils import Signal


class FakeConnection:
    """Byte stream view stand-in driven directly by the test."""

    def __init__(self, data: bytes = b"") -> None:
        self.peername = "fake-peer"
        self.ready_read = Signal("ready_read")
        self.disconnected = Signal("disconnected")
        self._inbox = bytearray(data)
        self._open = True
        self.paused = False

    def is_open(self) -> bool:
        return self._open

    def read(self, size: int = -1) -> bytes:
        data = bytes(self._inbox)
        self._inbox.clear()
        return data

    def push(self, data: bytes) -> None:
        self._inbox.extend(data)
        self.ready_read.emit()

    def pause_reading(self) -> None:
        self.paused = True

    def resume_reading(self) -> None:
        self.paused = False

    def close(self) -> None:
        self._open = False
        self.disconnected.emit()


def _drain(reader: FrameReader) -> list:
    frames = []
    while reader.bytes_available() > 0:
        frame = reader.read_line()
        if frame is None:
            break
        frames.append(frame)
    return frames


def _split(data: bytes, rng: random.Random) -> list:
    chunks = []
    pos = 0
    while pos < len(data):
        size = rng.randint(1, 9)
        chunks.append(data[pos : pos + size])
        pos += size
    return chunks


def test_frames_survive_arbitrary_chunking():
    frames = [b"foobar", b"", b"x" * 1000, b"barfoo!", b"", b"", b"panda"]
    stream = b"".join(encode_frame(frame) for frame in frames)

    async def scenario():
        for chunk_size in (1, 2, 3, 7, 64, len(stream)):
            conn = FakeConnection()
            reader = FrameReader(conn)
            for pos in range(0, len(stream), chunk_size):
                conn.push(stream[pos : pos + chunk_size])
            assert _drain(reader) == frames
            assert reader.bytes_available() == 0

        rng = random.Random(1716)
        for _ in range(20):
            conn = FakeConnection()
            reader = FrameReader(conn)
            for chunk in _split(stream, rng):
                conn.push(chunk)
                await asyncio.sleep(0)
            assert _drain(reader) == frames

    asyncio.run(scenario())


def test_lone_delimiter_yields_one_empty_frame():
    async def scenario():
        conn = FakeConnection()
        reader = FrameReader(conn)
        conn.push(b"\n")
        assert reader.frames_available() == 1
        assert reader.read_line() == b""
        assert reader.bytes_available() == 0
        assert reader.read_line() is None

    asyncio.run(scenario())


def test_one_notification_per_read_event():
    async def scenario():
        conn = FakeConnection()
        reader = FrameReader(conn)
        notifications = []
        reader.ready_read.connect(lambda: notifications.append(reader.frames_available()))

        conn.push(b"a\nb\nc\n")
        assert notifications == [3]

        conn.push(b"par")
        assert notifications == [3]

        conn.push(b"tial\nnext")
        assert notifications == [3, 4]
        assert _drain(reader) == [b"a", b"b", b"c", b"partial"]
        assert reader.bytes_available() == len(b"next")

    asyncio.run(scenario())


def test_unterminated_tail_is_held_and_dropped_on_close():
    async def scenario():
        conn = FakeConnection()
        reader = FrameReader(conn)
        notifications = []
        reader.ready_read.connect(lambda: notifications.append(1))

        conn.push(b"one\ntail")
        assert reader.bytes_available() == len(b"one\ntail")
        assert reader.read_line() == b"one"
        assert reader.read_line() is None
        assert reader.bytes_available() == len(b"tail")

        conn.close()
        assert reader.bytes_available() == 0
        assert reader.read_line() is None
        assert notifications == [1]

    asyncio.run(scenario())


def test_announced_frames_stay_readable_after_close():
    async def scenario():
        conn = FakeConnection()
        reader = FrameReader(conn)
        conn.push(b"first\nsecond\nhalf")
        conn.close()
        assert _drain(reader) == [b"first", b"second"]

    asyncio.run(scenario())


def test_bytes_buffered_before_attach_are_announced_once():
    async def scenario():
        conn = FakeConnection(b"x\ny\nz")
        reader = FrameReader(conn)
        notifications = []
        reader.ready_read.connect(lambda: notifications.append(1))
        assert notifications == []

        await asyncio.sleep(0)
        assert notifications == [1]
        assert _drain(reader) == [b"x", b"y"]
        assert reader.bytes_available() == 1

    asyncio.run(scenario())


def test_reader_attached_after_close_keeps_complete_frames():
    async def scenario():
        conn = FakeConnection(b"a\nb\n\ntail")
        conn.close()
        reader = FrameReader(conn)
        assert _drain(reader) == [b"a", b"b", b""]
        assert reader.bytes_available() == 0
        assert await reader.next_frame() is None

    asyncio.run(scenario())


def test_close_before_backlog_delivery_keeps_complete_frames():
    async def scenario():
        conn = FakeConnection(b"x\ny\nz")
        reader = FrameReader(conn)
        conn.close()
        await asyncio.sleep(0)
        assert _drain(reader) == [b"x", b"y"]
        assert reader.bytes_available() == 0

    asyncio.run(scenario())


def test_backpressure_pauses_until_frames_are_consumed():
    async def scenario():
        conn = FakeConnection()
        reader = FrameReader(conn, buffer_limit=16)
        conn.push(b"a" * 10 + b"\n" + b"b" * 10 + b"\n")
        assert conn.paused

        assert reader.read_line() == b"a" * 10
        assert conn.paused  # 11 bytes left, low water mark is 8

        assert reader.read_line() == b"b" * 10
        assert not conn.paused

    asyncio.run(scenario())


def test_single_oversized_frame_never_pauses():
    async def scenario():
        conn = FakeConnection()
        reader = FrameReader(conn, buffer_limit=8)
        conn.push(b"x" * 100)
        assert not conn.paused
        conn.push(b"\n")
        assert conn.paused
        assert reader.read_line() == b"x" * 100
        assert not conn.paused

    asyncio.run(scenario())


def test_async_iteration_ends_after_close():
    async def scenario():
        conn = FakeConnection()
        reader = FrameReader(conn)

        async def produce():
            conn.push(b"foo\nba")
            await asyncio.sleep(0)
            conn.push(b"r\n\nleftover")
            await asyncio.sleep(0)
            conn.close()

        producer = asyncio.create_task(produce())
        frames = [frame async for frame in reader]
        await producer
        assert frames == [b"foo", b"bar", b""]

    asyncio.run(scenario())


def test_detach_stops_listening():
    async def scenario():
        conn = FakeConnection()
        reader = FrameReader(conn)
        conn.push(b"kept\n")
        reader.detach()
        conn.push(b"ignored\n")
        assert _drain(reader) == [b"kept"]
        assert len(conn.ready_read) == 0

    asyncio.run(scenario())


def test_encode_frame_appends_delimiter_without_escaping():
    assert encode_frame(b"panda") == b"panda\n"
    assert encode_frame(b"") == b"\n"
    assert encode_frame(b"a\nb") == b"a\nb\n"
