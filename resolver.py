import sys
import threading
from typing import BinaryIO, Dict, Optional

from core.template import NameTemplate


class DestinationError(OSError):
    pass


class DestinationResolver:
    """
    Maps (seq_id, peer_ip, peer_port) to an open output handle.

    Handles are cached by resolved name and never reopened or closed before
    shutdown. Lookup-or-open runs under a lock so one name is created once,
    but writes through the returned handle are not serialized here.
    """

    def __init__(self, template: Optional[NameTemplate], append: bool = False,
                 stdout: Optional[BinaryIO] = None):
        self.template = template
        self.append = append
        self.stdout = stdout if stdout is not None else sys.stdout.buffer
        self.handles: Dict[str, BinaryIO] = {}
        self.opened = 0
        self._lock = threading.Lock()
        self._literal: Optional[str] = None   # шаблон без полета

    def resolve(self, seq_id: int, peer_ip: str, peer_port: int) -> BinaryIO:
        if self.template is None:
            return self.stdout
        if self._literal is not None:
            return self._ensure_handle(self._literal)
        name = self.template.render({"Id": seq_id, "Ip": peer_ip, "Port": peer_port})
        if name == self.template.pattern:
            self._literal = name
        return self._ensure_handle(name)

    def _ensure_handle(self, name: str) -> BinaryIO:
        with self._lock:
            handle = self.handles.get(name)
            if handle is None:
                mode = "ab" if self.append else "wb"
                try:
                    handle = open(name, mode)
                except OSError as e:
                    raise DestinationError(e.errno, f"open {name}: {e.strerror}") from e
                self.handles[name] = handle
                self.opened += 1
            return handle

    def close_all(self) -> None:
        with self._lock:
            for handle in self.handles.values():
                handle.close()
            self.handles.clear()
        self.stdout.flush()
