import itertools
import sys
import time
from typing import Optional, TextIO

from core.config import SinkConfig
from core.gate import make_gate
from core.template import check_template
from resolver import DestinationResolver


def ts() -> str:
    return str(time.time())


class SinkContext:
    """
    Process-wide state: session counter, serialization gate, output
    resolver and diagnostics. Built once before the listener starts.
    """

    def __init__(self, config: SinkConfig, resolver: DestinationResolver,
                 gate=None, err: Optional[TextIO] = None):
        self.config = config
        self.resolver = resolver
        self.gate = gate if gate is not None else make_gate(config.mutex)
        self.err = err
        self._ids = itertools.count(1)

    @classmethod
    def from_config(cls, config: SinkConfig, err: Optional[TextIO] = None) -> "SinkContext":
        # TemplateError излиза оттук, преди да слушаме
        template = check_template(config.output) if config.output else None
        resolver = DestinationResolver(template, append=config.append)
        return cls(config, resolver, err=err)

    def next_id(self) -> int:
        return next(self._ids)

    def log(self, msg: str) -> None:
        if self.config.verbose:
            print(f"{ts()} {msg}", file=self.err or sys.stderr, flush=True)
