import asyncio


class NullGate:
    """Lock interface that never blocks: sessions run fully concurrent."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def make_gate(serialize: bool):
    # asyncio.Lock is FIFO, so sessions run one by one in arrival order
    return asyncio.Lock() if serialize else NullGate()
