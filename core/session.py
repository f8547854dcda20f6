from dataclasses import dataclass
from typing import Optional

from core.utils.peekreader import ByteSource


@dataclass(slots=True)
class Session:
    seq_id: int                  # 1, 2, 3 ... по реда на пристигане
    peer_ip: str
    peer_port: int
    source: Optional[ByteSource] = None   # задава се от хендлъра

    @property
    def peer(self) -> str:
        return format_source(self.peer_ip, self.peer_port)


def format_source(ip, port):
    return f"[{ip}]:{port}" if ':' in ip else f"{ip}:{port}"
