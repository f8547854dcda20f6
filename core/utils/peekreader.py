import asyncio
from typing import Protocol


class ByteSource(Protocol):
    async def read(self, n: int) -> bytes: ...   # b"" on EOF


class StreamSource:
    """Read side of a TCP connection."""
    __slots__ = ("_reader",)

    def __init__(self, reader: asyncio.StreamReader):
        self._reader = reader

    async def read(self, n: int) -> bytes:
        return await self._reader.read(n)


class BytesSource:
    """In-memory payload of a single datagram."""
    __slots__ = ("_data", "_pos")

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    async def read(self, n: int) -> bytes:
        chunk = self._data[self._pos:self._pos + n]
        self._pos += len(chunk)
        return chunk


class PeekableReader:
    """
    Buffers enough of the underlying source to answer peek(n) and replays
    the buffered bytes on subsequent reads, so peeking never loses data.
    """
    __slots__ = ("_src", "_buf", "_eof")

    def __init__(self, source: ByteSource):
        self._src = source
        self._buf = bytearray()
        self._eof = False

    async def peek(self, n: int) -> bytes:
        while len(self._buf) < n and not self._eof:
            chunk = await self._src.read(n - len(self._buf))
            if not chunk:
                self._eof = True
                break
            self._buf += chunk
        return bytes(self._buf[:n])

    async def read(self, n: int) -> bytes:
        if self._buf:
            out = bytes(self._buf[:n])
            del self._buf[:n]
            return out
        if self._eof:
            return b""
        return await self._src.read(n)
