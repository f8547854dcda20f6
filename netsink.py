import argparse
import asyncio
import sys

import yaml

from core.config import ConfigError, build_config, load_config
from core.state.context import SinkContext
from core.template import TemplateError
from dispatcher import Dispatcher, listener_address, open_listener

try:
    from setproctitle import setproctitle
    setproctitle('netsink')
except ImportError:
    pass  # No effect on Windows or if not installed

VERSION = "1.0"

# argparse dest -> config key
ARG_KEYS = {
    "address": "address",
    "file": "output",
    "gzip": "gzip",
    "append": "append",
    "mutex": "mutex",
    "chunk": "chunk",
    "udp": "udp",
    "bufsize": "udp_bufsize",
    "verbose": "verbose",
}


def parse_args(argv=None):
    ap = argparse.ArgumentParser(
        prog="netsink",
        description="Receive data over TCP or UDP and write it to stdout or files")
    ap.add_argument("address", nargs="?", metavar="[host]:port",
                    help="Listening address")
    ap.add_argument("file", nargs="?",
                    help="Output file name, supports templates, "
                         "i.e. 'out-{{.Id}}-{{.Ip}}-{{.Port}}'")
    ap.add_argument("-z", "--gzip", action="store_true", default=None,
                    help="Accept gzipped data")
    ap.add_argument("-a", "--append", action="store_true", default=None,
                    help="Append data to the output file when writing")
    ap.add_argument("-m", "--mutex", action="store_true", default=None,
                    help="Read data one by one")
    ap.add_argument("-c", "--chunk", action="store_true", default=None,
                    help="Read data in chunk mode, default (line mode)")
    ap.add_argument("-u", "--udp", action="store_true", default=None,
                    help="Use udp instead of the default option of tcp")
    ap.add_argument("--bufsize", default=None,
                    help="Read buffer size on udp (default 64KB)")
    ap.add_argument("-v", "--verbose", action="store_true", default=None,
                    help="Verbose")
    ap.add_argument("--config", default=None,
                    help="YAML config file (default /etc/netsink/config.yaml or ./config.yaml)")
    ap.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return ap.parse_args(argv)


def merge_args(config: dict, args) -> dict:
    for dest, key in ARG_KEYS.items():
        value = getattr(args, dest)
        if value is not None:
            config[key] = value
    return config


async def serve(ctx: SinkContext) -> None:
    sock = open_listener(ctx.config)
    try:
        ctx.log(f"Listening on {listener_address(sock)}")
        await Dispatcher(ctx, sock).serve()
    finally:
        sock.close()


def main(argv=None) -> int:
    args = parse_args(argv)
    ctx = None
    try:
        config = build_config(merge_args(load_config(args.config), args))
        ctx = SinkContext.from_config(config)
        asyncio.run(serve(ctx))
    except (ConfigError, TemplateError, yaml.YAMLError, OSError) as e:
        print(e, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Exiting.", file=sys.stderr)
    finally:
        if ctx is not None:
            ctx.resolver.close_all()
    return 0


if __name__ == '__main__':
    sys.exit(main())
