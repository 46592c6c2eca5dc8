"""Latency of select() over a set of file or TCP socket descriptors."""

from __future__ import annotations

import contextlib
import os
import resource
import select
import socket
import sys
import tempfile
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .harness import TRIES, Results, bench, common_parser, micro_line
from .tcp import TCP_SELECT_PORT, SockOpt, tcp_accept, tcp_connect, tcp_server

DEFAULT_COUNT = 200
KINDS = ("file", "tcp")

LABELS = {
    "file": "Select on {count} fd's",
    "tcp": "Select on {count} tcp fd's",
}


def _morefds() -> None:
    """Raise the soft limit on open descriptors to the hard limit."""
    with contextlib.suppress(ValueError, OSError):
        _, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
        resource.setrlimit(resource.RLIMIT_NOFILE, (hard, hard))


def open_descriptors(source: int, count: int) -> List[int]:
    """Duplicate ``source`` ``count`` times; the source itself stays open.

    If the duplicates run out, those already made are closed and the
    error is raised.
    """
    if count < 0:
        raise ValueError("count must not be negative")
    fds: List[int] = []
    try:
        for _ in range(count):
            fds.append(os.dup(source))
    except OSError:
        close_descriptors(fds)
        raise
    return fds


def close_descriptors(fds: Iterable[int]) -> None:
    """Close every descriptor, ignoring those already closed."""
    for fd in fds:
        with contextlib.suppress(OSError):
            os.close(fd)


@contextlib.contextmanager
def _file_source() -> Iterator[int]:
    fd, name = tempfile.mkstemp(prefix="lat_select")
    os.close(fd)
    try:
        source = os.open(name, os.O_RDONLY)
        try:
            yield source
        finally:
            os.close(source)
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(name)


@contextlib.contextmanager
def _tcp_source() -> Iterator[int]:
    server = tcp_server(TCP_SELECT_PORT, SockOpt.REUSE)
    with server:
        client = tcp_connect("localhost", TCP_SELECT_PORT, SockOpt.NONE)
        with client:
            peer = tcp_accept(server, SockOpt.NONE)
            with peer:
                yield client.fileno()


def _source(kind: str):
    if kind == "file":
        return _file_source()
    if kind == "tcp":
        return _tcp_source()
    raise ValueError(f"unknown descriptor kind: {kind!r}")


def select_latency(kind: str, count: int = DEFAULT_COUNT, enough: int = 0,
                   repetitions: int = TRIES) -> Results:
    """Time a zero-timeout select for writability over ``count`` descriptors.

    ``kind`` is ``"file"`` for duplicates of a temporary file or ``"tcp"``
    for duplicates of a connected local TCP socket.
    """
    if kind not in KINDS:
        raise ValueError(f"unknown descriptor kind: {kind!r}")
    if count < 1:
        raise ValueError("count must be positive")
    with _source(kind) as source:
        fds = open_descriptors(source, count)
        try:
            def body(iterations: int) -> None:
                for _ in range(iterations):
                    select.select([], fds, [], 0)

            return bench(body, enough, repetitions)
        finally:
            close_descriptors(fds)


def main(argv: Optional[Sequence[str]] = None) -> int:
    _morefds()
    parser = common_parser("lat_select", "Latency of the select system call.")
    parser.add_argument("-n", dest="count", type=int, default=DEFAULT_COUNT,
                        help="number of descriptors")
    parser.add_argument("kind", choices=list(KINDS), help="descriptor kind")
    args = parser.parse_args(argv)
    if args.count < 1:
        parser.error("the number of descriptors must be positive")
    results = select_latency(args.kind, args.count, 0, args.repetitions)
    label = LABELS[args.kind].format(count=args.count)
    print(micro_line(label, results), file=sys.stderr)
    return 0