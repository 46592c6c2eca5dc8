"""Latency of simple system calls: getppid, read, write, stat, fstat, open."""

from __future__ import annotations

import os
import sys
from typing import Callable, Optional, Sequence

from .harness import TRIES, Results, bench, common_parser, micro_line

FNAME = "/usr/include/linux/types.h"
NULL_DEVICE = "/dev/null"
ZERO_DEVICE = "/dev/zero"

LABELS = {
    "null": "Simple syscall",
    "read": "Simple read",
    "write": "Simple write",
    "stat": "Simple stat",
    "fstat": "Simple fstat",
    "open": "Simple open/close",
}


def _loop(call: Callable[[], object]) -> Callable[[int], None]:
    def body(iterations: int) -> None:
        for _ in range(iterations):
            call()

    return body


def _write_one(fd: int) -> None:
    if os.write(fd, b"\0") != 1:
        raise OSError(f"short write to {NULL_DEVICE}")


def _read_one(fd: int) -> None:
    if len(os.read(fd, 1)) != 1:
        raise OSError(f"short read from {ZERO_DEVICE}")


def _open_close(path: str) -> None:
    os.close(os.open(path, os.O_RDONLY))


def syscall_latency(kind: str, path: str = FNAME, enough: int = 0,
                    repetitions: int = TRIES) -> Results:
    """Time the system call named by ``kind``; ``path`` is used by stat, fstat and open."""
    if kind not in LABELS:
        raise ValueError(f"unknown system call kind: {kind!r}")

    if kind == "null":
        return bench(_loop(os.getppid), enough, repetitions)
    if kind == "stat":
        os.stat(path)
        return bench(_loop(lambda: os.stat(path)), enough, repetitions)
    if kind == "open":
        _open_close(path)
        return bench(_loop(lambda: _open_close(path)), enough, repetitions)

    if kind == "write":
        fd = os.open(NULL_DEVICE, os.O_WRONLY)
        call: Callable[[], object] = lambda: _write_one(fd)
    elif kind == "read":
        fd = os.open(ZERO_DEVICE, os.O_RDONLY)
        call = lambda: _read_one(fd)
    else:
        fd = os.open(path, os.O_RDONLY)
        call = lambda: os.fstat(fd)
    try:
        return bench(_loop(call), enough, repetitions)
    finally:
        os.close(fd)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = common_parser("lat_syscall", "Simple system call latency.")
    parser.add_argument("kind", choices=list(LABELS), help="system call to time")
    parser.add_argument("file", nargs="?", default=FNAME,
                        help="file used by stat, fstat and open")
    args = parser.parse_args(argv)
    label = LABELS[args.kind]
    try:
        results = syscall_latency(args.kind, args.file, 0, args.repetitions)
    except OSError as exc:
        print(f"{label}: {exc}", file=sys.stderr)
        return 1
    print(micro_line(label, results), file=sys.stderr)
    return 0