"""Process creation latency: procedure call, fork, fork+exec and fork+shell."""

from __future__ import annotations

import contextlib
import os
import signal
import sys
from typing import Optional, Sequence

from .harness import TRIES, Results, bench, common_parser, micro_line
from .sched import handle_scheduler

PROG = "/tmp/hello"
SHELL = "/bin/sh"

LABELS = {
    "procedure": "Procedure call",
    "fork": "Process fork+exit",
    "exec": "Process fork+execve",
    "shell": "Process fork+/bin/sh -c",
}


class _Sink:
    """Accumulates values so that timed loops have a visible effect."""

    def __init__(self) -> None:
        self.total = 0

    def use(self, value: int) -> int:
        self.total += value
        return self.total


_SINK = _Sink()


def _pin(benchproc: int) -> None:
    with contextlib.suppress(OSError):
        handle_scheduler(0, benchproc, 1)


def _use_int(value: int) -> int:
    return _SINK.use(value)


def _default_sigchld() -> None:
    signal.signal(signal.SIGCHLD, signal.SIG_DFL)


def _spawn_and_wait(child) -> None:
    """Fork, run ``child`` in the new process, and wait for it to finish."""
    pid = os.fork()
    if pid == 0:
        try:
            _pin(1)
            child()
        finally:
            os._exit(1)
    os.waitpid(pid, 0)


def _require_program(program: str) -> None:
    if not os.access(program, os.X_OK):
        raise FileNotFoundError(f"{program}: not an executable file")


def procedure_latency(enough: int = 0, repetitions: int = TRIES) -> Results:
    """Time a call to a trivial function."""
    _pin(0)
    value = len(sys.argv)

    def body(iterations: int) -> None:
        for _ in range(iterations):
            _use_int(value)

    return bench(body, enough, repetitions)


def fork_latency(enough: int = 0, repetitions: int = TRIES) -> Results:
    """Time creating a child process that exits at once."""
    _default_sigchld()
    _pin(0)

    def body(iterations: int) -> None:
        for _ in range(iterations):
            _spawn_and_wait(lambda: None)

    return bench(body, enough, repetitions)


def exec_latency(program: str = PROG, enough: int = 0,
                 repetitions: int = TRIES) -> Results:
    """Time forking a child that replaces itself with ``program``."""
    _require_program(program)
    _default_sigchld()
    _pin(0)

    def child() -> None:
        os.close(1)
        os.execve(program, [program], {})

    def body(iterations: int) -> None:
        for _ in range(iterations):
            _spawn_and_wait(child)

    return bench(body, enough, repetitions)


def shell_latency(program: str = PROG, enough: int = 0,
                  repetitions: int = TRIES) -> Results:
    """Time forking a child that runs ``program`` through ``/bin/sh -c``."""
    _default_sigchld()
    _pin(0)

    def child() -> None:
        os.close(1)
        os.execv(SHELL, ["sh", "-c", program])

    def body(iterations: int) -> None:
        for _ in range(iterations):
            _spawn_and_wait(child)

    return bench(body, enough, repetitions)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = common_parser("lat_proc", "Process creation latency.")
    parser.add_argument("what", choices=list(LABELS), help="what to time")
    args = parser.parse_args(argv)

    if args.what == "procedure":
        results = procedure_latency(0, args.repetitions)
    elif args.what == "fork":
        results = fork_latency(0, args.repetitions)
    elif args.what == "exec":
        results = exec_latency(PROG, 0, args.repetitions)
    else:
        results = shell_latency(PROG, 0, args.repetitions)
    print(micro_line(LABELS[args.what], results), file=sys.stderr)
    return 0