import asyncio
import gzip

import pytest

from core.utils.peekreader import BytesSource, PeekableReader
from framing import (FrameDecoder, FrameError, GzipReader, LineFramer,
                     is_gzip_header)


class TrickleSource:
    """Hands out at most `step` bytes per read."""

    def __init__(self, data: bytes, step: int = 3):
        self.data = data
        self.step = step

    async def read(self, n: int) -> bytes:
        chunk, self.data = self.data[:min(n, self.step)], self.data[min(n, self.step):]
        return chunk


async def collect(decoder, source):
    return [u async for u in decoder.frames(source)]


def frames(data, step=None, **kw):
    src = TrickleSource(data, step) if step else BytesSource(data)
    return asyncio.run(collect(FrameDecoder(**kw), src))


def test_line_without_trailing_newline():
    assert frames(b"a\nb") == [b"a\n", b"b"]


def test_lines_keep_terminators():
    assert frames(b"one\r\ntwo\n\nthree\n") == [b"one\r\n", b"two\n", b"\n", b"three\n"]


def test_empty_stream_has_no_units():
    assert frames(b"") == []
    assert frames(b"", chunk=True) == []


@pytest.mark.parametrize("data", [
    b"",
    b"\n",
    b"no newline at all",
    b"x\n" * 1000,
    b"mixed\nlengths of\n\n\nlines" + bytes(range(256)),
])
@pytest.mark.parametrize("step", [None, 1, 7])
def test_line_units_reconstruct_input(data, step):
    units = frames(data, step)
    assert b"".join(units) == data
    assert all(u.endswith(b"\n") for u in units[:-1])


def test_line_too_long():
    with pytest.raises(FrameError):
        frames(b"short\n" + b"x" * 20 + b"\n", max_line_length=8)


def test_partial_line_too_long():
    with pytest.raises(FrameError):
        frames(b"x" * 20, step=4, max_line_length=8)


def test_line_at_limit_is_accepted():
    assert frames(b"1234567\n12345678", max_line_length=8) == [b"1234567\n", b"12345678"]


def test_feed_and_flush():
    f = LineFramer()
    assert f.feed(b"ab") == []
    assert f.feed(b"c\nd") == [b"abc\n"]
    assert f.feed(b"e\nf\n") == [b"de\n", b"f\n"]
    assert f.flush() is None


def test_chunk_mode_passes_bytes_through():
    data = bytes(range(256)) * 600   # > 64 KiB
    units = frames(data, chunk=True)
    assert b"".join(units) == data
    assert max(len(u) for u in units) <= 64 * 1024


def test_gzip_header_detection():
    assert is_gzip_header(gzip.compress(b"x")[:10])
    assert not is_gzip_header(b"\x1f\x8b\x08")
    assert not is_gzip_header(b"plain text")


@pytest.mark.parametrize("chunk", [False, True])
@pytest.mark.parametrize("step", [None, 5])
def test_gzip_and_plain_decode_identically(chunk, step):
    plain = b"first line\nsecond line\n" * 50 + b"tail"
    packed = gzip.compress(plain)
    got_plain = frames(plain, step, gzip=True, chunk=chunk)
    got_packed = frames(packed, step, gzip=True, chunk=chunk)
    assert b"".join(got_plain) == b"".join(got_packed) == plain
    if not chunk:
        assert got_plain == got_packed


def test_gzip_detection_keeps_short_input():
    assert frames(b"hi\n", gzip=True) == [b"hi\n"]
    assert frames(b"\x1f\x8b", gzip=True) == [b"\x1f\x8b"]


def test_gzip_disabled_passes_compressed_bytes():
    packed = gzip.compress(b"abc\n")
    assert b"".join(frames(packed, chunk=True)) == packed


def test_concatenated_gzip_members():
    packed = gzip.compress(b"one\n") + gzip.compress(b"two\n")
    assert frames(packed, step=4, gzip=True) == [b"one\n", b"two\n"]


def test_truncated_gzip_is_error():
    packed = gzip.compress(b"some data\n" * 100)
    with pytest.raises(FrameError):
        frames(packed[:-12], gzip=True)


def test_peek_does_not_consume():
    async def run():
        r = PeekableReader(TrickleSource(b"0123456789abcdef", step=2))
        assert await r.peek(10) == b"0123456789"
        assert await r.peek(4) == b"0123"
        out = b""
        while True:
            chunk = await r.read(5)
            if not chunk:
                return out
            out += chunk
    assert asyncio.run(run()) == b"0123456789abcdef"


def test_gzip_reader_reads_in_bounded_pieces():
    async def run():
        r = GzipReader(BytesSource(gzip.compress(b"z" * 10000)))
        pieces = []
        while True:
            chunk = await r.read(100)
            if not chunk:
                return pieces
            pieces.append(chunk)
    pieces = asyncio.run(run())
    assert b"".join(pieces) == b"z" * 10000
    assert max(len(p) for p in pieces) <= 100
