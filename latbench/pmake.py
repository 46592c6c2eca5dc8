"""Time to complete a number of parallel jobs that each do a fixed amount of work."""

from __future__ import annotations

import contextlib
import os
import signal
import sys
from typing import List, Optional, Sequence

from .harness import TRIES, Results, bench, common_parser
from .sched import handle_scheduler

_DEREFS_PER_ITERATION = 10


def _pin(benchproc: int, nbenchprocs: int) -> None:
    with contextlib.suppress(OSError):
        handle_scheduler(0, benchproc, nbenchprocs)


def work(iterations: int) -> int:
    """Follow a self-referencing link ten times per iteration.

    Returns the number of links followed.
    """
    node: list = [None]
    node[0] = node
    p = node
    followed = 0
    for _ in range(iterations):
        for _ in range(_DEREFS_PER_ITERATION):
            p = p[0]
        followed += _DEREFS_PER_ITERATION
    return followed


def calibrate(usecs: int, repetitions: int = TRIES) -> int:
    """Number of :func:`work` iterations that take about ``usecs`` microseconds."""
    if usecs < 0:
        raise ValueError("usecs must not be negative")
    results = bench(work, 0, repetitions)
    if not results:
        raise RuntimeError("could not time the work loop")
    middle = results.median()
    if middle.u <= 0:
        raise RuntimeError("could not time the work loop")
    return int(usecs * middle.n / middle.u)


def _kill_all(pids: List[int]) -> None:
    for pid in pids:
        with contextlib.suppress(ProcessLookupError):
            os.kill(pid, signal.SIGKILL)
        with contextlib.suppress(ChildProcessError):
            os.waitpid(pid, 0)


def _run_jobs(jobs: int, iterations: int) -> None:
    pids: List[int] = []
    for job in range(jobs):
        pid = os.fork()
        if pid == 0:
            try:
                _pin(job + 1, jobs)
                work(iterations)
            finally:
                os._exit(0)
        pids.append(pid)
    while pids:
        pid = pids.pop(0)
        _, status = os.waitpid(pid, 0)
        if not os.WIFEXITED(status):
            _kill_all(pids)
            raise ChildProcessError(f"job {pid} did not exit normally")


def pmake_latency(jobs: int, iterations: int, enough: int = 0,
                  repetitions: int = TRIES) -> Results:
    """Time starting ``jobs`` processes that each run ``iterations`` of work."""
    if jobs < 1:
        raise ValueError("jobs must be positive")
    if iterations < 0:
        raise ValueError("iterations must not be negative")
    _pin(0, jobs)

    def body(count: int) -> None:
        for _ in range(count):
            _run_jobs(jobs, iterations)

    return bench(body, enough, repetitions)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = common_parser("lat_pmake", "Time to finish parallel jobs of fixed work.")
    parser.add_argument("jobs", type=int, help="number of jobs to create")
    parser.add_argument("usecs", type=int, nargs="+",
                        help="microseconds of work per job")
    args = parser.parse_args(argv)
    if args.jobs < 1:
        parser.error("jobs must be positive")

    print(f'"pmake jobs={args.jobs}', file=sys.stderr)
    for usecs in args.usecs:
        try:
            iterations = calibrate(usecs, TRIES)
        except RuntimeError:
            return 1
        results = pmake_latency(args.jobs, iterations, 0, args.repetitions)
        if not results:
            continue
        middle = results.median()
        elapsed = middle.u / float(middle.n)
        if elapsed > 0.0:
            print(f"{usecs} {elapsed:.2f}", file=sys.stderr)
    return 0