import asyncio
import socket
from typing import BinaryIO, Optional, Set

from core.config import SinkConfig
from core.session import Session, format_source
from core.state.context import SinkContext
from core.utils.peekreader import BytesSource, StreamSource
from framing import FrameDecoder
from transfer import TransferExecutor


def open_listener(config: SinkConfig) -> socket.socket:
    family = socket.AF_INET6 if ':' in config.host else socket.AF_INET
    kind = socket.SOCK_DGRAM if config.udp else socket.SOCK_STREAM
    sock = socket.socket(family, kind)
    try:
        if not config.udp:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((config.host, config.port))
        if not config.udp:
            sock.listen(socket.SOMAXCONN)
    except OSError:
        sock.close()
        raise
    sock.setblocking(False)
    return sock


def listener_address(sock: socket.socket) -> str:
    ip, port = sock.getsockname()[:2]
    return format_source(ip, port)


async def close_writer(writer: asyncio.StreamWriter, timeout: float = 0.25) -> None:
    writer.close()
    try:
        await asyncio.wait_for(writer.wait_closed(), timeout=timeout)
    except (asyncio.TimeoutError, OSError):
        pass


class Dispatcher:
    """
    Accept/receive loop. Each connection or datagram gets the next session
    id and its output handle here, then runs in its own task behind the
    context's gate. Errors from accept, receive or resolve end the loop.
    """

    def __init__(self, ctx: SinkContext, sock: socket.socket):
        self.ctx = ctx
        self.sock = sock
        self.decoder = FrameDecoder.from_config(ctx.config)
        self.executor = TransferExecutor(self.decoder, ctx.log)
        self.tasks: Set[asyncio.Task] = set()

    async def serve(self) -> None:
        if self.ctx.config.udp:
            await self.serve_udp()
        else:
            await self.serve_tcp()

    def _spawn(self, coro) -> asyncio.Task:
        t = asyncio.create_task(coro)
        self.tasks.add(t)
        t.add_done_callback(self._task_done)
        return t

    def _task_done(self, t: asyncio.Task) -> None:
        self.tasks.discard(t)
        if not t.cancelled() and t.exception() is not None:
            self.ctx.log(f"Read error: {t.exception()}")

    async def serve_tcp(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            conn, addr = await loop.sock_accept(self.sock)
            seq_id = self.ctx.next_id()
            ip, port = addr[:2]
            try:
                out = self.ctx.resolver.resolve(seq_id, ip, port)
            except BaseException:
                conn.close()
                raise
            self._spawn(self.handle(Session(seq_id, ip, port), out, conn))

    async def serve_udp(self) -> None:
        loop = asyncio.get_running_loop()
        buf = bytearray(self.ctx.config.udp_bufsize)
        while True:
            n, addr = await loop.sock_recvfrom_into(self.sock, buf)
            seq_id = self.ctx.next_id()
            ip, port = addr[:2]
            out = self.ctx.resolver.resolve(seq_id, ip, port)
            # buf се преизползва за следващия пакет
            payload = BytesSource(bytes(buf[:n]))
            self._spawn(self.handle(Session(seq_id, ip, port, payload), out))

    async def handle(self, session: Session, out: BinaryIO,
                     conn: Optional[socket.socket] = None) -> None:
        writer = None
        try:
            async with self.ctx.gate:
                if conn is not None:
                    try:
                        reader, writer = await asyncio.open_connection(sock=conn)
                    except OSError as e:
                        self.ctx.log(f"Read error: {e}")
                        return
                    session.source = StreamSource(reader)
                self.ctx.log(f"Read data from {session.peer}")
                await self.executor.run(session, out)
        finally:
            if writer is not None:
                await close_writer(writer)
            elif conn is not None:
                conn.close()
