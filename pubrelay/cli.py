"""Process entry point: ``pubrelay [PORT]``."""

from __future__ import annotations

import argparse
import socket
import sys
from typing import Optional, Sequence

import uvicorn

from .config import settings

DEFAULT_PORT = 8080


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="pubrelay", description="HTTP publish/subscribe relay")
    ap.add_argument("port", nargs="?", type=_port, default=DEFAULT_PORT)
    return ap.parse_args(argv)


def bind_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        sock = bind_socket(settings.BIND_HOST, args.port)
    except OSError as exc:
        print(f"pubrelay: cannot listen on {settings.BIND_HOST}:{args.port}: {exc}", file=sys.stderr)
        return 2

    from .main import app

    config = uvicorn.Config(app, log_level=settings.LOG_LEVEL.lower())
    server = uvicorn.Server(config)
    try:
        server.run(sockets=[sock])
    finally:
        sock.close()
    return 0


def run() -> None:
    raise SystemExit(main())
