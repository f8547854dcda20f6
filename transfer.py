import asyncio
import zlib
from typing import BinaryIO, Callable

from core.session import Session
from framing import FrameDecoder, FrameError


def write_unit(out: BinaryIO, unit: bytes) -> None:
    out.write(unit)
    out.flush()


class TransferExecutor:
    """
    Drains a session's decoded frames into its output handle.

    Chunk mode counts bytes, line mode counts lines. Every unit is written
    and flushed in a worker thread, so a slow destination only stalls its
    own session. Read, decode and write errors are reported through log and
    end the session; they never propagate to the caller.
    """

    def __init__(self, decoder: FrameDecoder, log: Callable[[str], None]):
        self.decoder = decoder
        self.log = log

    async def run(self, session: Session, out: BinaryIO) -> int:
        count = 0
        try:
            async for unit in self.decoder.frames(session.source):
                await asyncio.to_thread(write_unit, out, unit)
                count += len(unit) if self.decoder.chunk else 1
        except (OSError, zlib.error, FrameError) as e:
            self.log(f"Read error: {e}")
        finally:
            try:
                await asyncio.to_thread(out.flush)
            except (OSError, ValueError) as e:
                self.log(f"Write error: {e}")
            self.log(f"Connection {session.peer} closed, read {self.decoder.unit} {count}")
        return count
