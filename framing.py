import sys
import zlib
from typing import AsyncIterator, List, Optional

from core.utils.peekreader import ByteSource, PeekableReader

CHUNK_SIZE = 64 * 1024
GZIP_HEADER_LEN = 10
GZIP_WBITS = zlib.MAX_WBITS | 16
MAX_LINE_LENGTH = sys.maxsize // 2


class FrameError(ValueError):
    pass


def is_gzip_header(header: bytes) -> bool:
    """ Fixed 10-byte gzip member header: magic, deflate method, no reserved flags. """
    return (len(header) == GZIP_HEADER_LEN
            and header[:3] == b"\x1f\x8b\x08"
            and not header[3] & 0xE0)


class GzipReader:
    """Decompresses concatenated gzip members read from another source."""

    def __init__(self, source: ByteSource):
        self._src = source
        self._d = zlib.decompressobj(GZIP_WBITS)

    async def read(self, n: int) -> bytes:
        while True:
            if self._d.unconsumed_tail:
                out = self._d.decompress(self._d.unconsumed_tail, n)
            elif self._d.eof:
                rest = self._d.unused_data
                if not rest:
                    rest = await self._src.read(CHUNK_SIZE)
                    if not rest:
                        return b""
                # следващ gzip member
                self._d = zlib.decompressobj(GZIP_WBITS)
                out = self._d.decompress(rest, n)
            else:
                raw = await self._src.read(CHUNK_SIZE)
                if not raw:
                    raise FrameError("gzip: unexpected EOF")
                out = self._d.decompress(raw, n)
            if out:
                return out


class LineFramer:
    """
    Splits a byte stream on b"\\n". Each line keeps its newline; bytes left
    at end of stream come out as a final partial line. A line longer than
    max_line_length raises FrameError.
    """

    def __init__(self, max_line_length: int = MAX_LINE_LENGTH):
        self.max_line_length = max_line_length
        self._buf = bytearray()
        self._scanned = 0

    def feed(self, data: bytes) -> List[bytes]:
        self._buf += data
        lines = []
        start = 0
        while True:
            i = self._buf.find(b"\n", max(start, self._scanned))
            if i < 0:
                break
            if i + 1 - start > self.max_line_length:
                raise FrameError("token too long")
            lines.append(bytes(self._buf[start:i + 1]))
            start = i + 1
        if start:
            del self._buf[:start]
        self._scanned = len(self._buf)
        if len(self._buf) > self.max_line_length:
            raise FrameError("token too long")
        return lines

    def flush(self) -> Optional[bytes]:
        if not self._buf:
            return None
        tail = bytes(self._buf)
        self._buf.clear()
        self._scanned = 0
        return tail

    async def frames(self, src: ByteSource) -> AsyncIterator[bytes]:
        while True:
            data = await src.read(CHUNK_SIZE)
            if not data:
                break
            for line in self.feed(data):
                yield line
        tail = self.flush()
        if tail is not None:
            yield tail


async def iter_chunks(src: ByteSource, size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    while True:
        chunk = await src.read(size)
        if not chunk:
            return
        yield chunk


class FrameDecoder:
    def __init__(self, chunk: bool = False, gzip: bool = False,
                 max_line_length: int = MAX_LINE_LENGTH):
        self.chunk = chunk
        self.gzip = gzip
        self.max_line_length = max_line_length

    @classmethod
    def from_config(cls, config) -> "FrameDecoder":
        return cls(chunk=config.chunk, gzip=config.gzip,
                   max_line_length=config.max_line_length)

    @property
    def unit(self) -> str:
        return "bytes" if self.chunk else "lines"

    async def open(self, source: ByteSource) -> ByteSource:
        if not self.gzip:
            return source
        reader = PeekableReader(source)
        header = await reader.peek(GZIP_HEADER_LEN)
        if is_gzip_header(header):
            return GzipReader(reader)
        return reader

    async def frames(self, source: ByteSource) -> AsyncIterator[bytes]:
        src = await self.open(source)
        if self.chunk:
            async for chunk in iter_chunks(src):
                yield chunk
        else:
            async for line in LineFramer(self.max_line_length).frames(src):
                yield line
