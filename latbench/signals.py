"""Signal handling costs: installing a handler and catching a signal."""

from __future__ import annotations

import collections
import contextlib
import os
import signal
import sys
from typing import Iterator, Optional, Sequence

from .harness import TRIES, Results, Sample, bench, common_parser, micro_line

_CAUGHT: collections.Counter = collections.Counter()


def _handler(signum, frame) -> None:
    _CAUGHT[signum] += 1


@contextlib.contextmanager
def _restoring(signum: int) -> Iterator[None]:
    previous = signal.getsignal(signum)
    try:
        yield
    finally:
        signal.signal(signum, previous)


def install_latency(enough: int = 0, repetitions: int = TRIES) -> Results:
    """Time installing a SIGUSR1 handler."""

    def body(iterations: int) -> None:
        for _ in range(iterations):
            signal.signal(signal.SIGUSR1, _handler)

    with _restoring(signal.SIGUSR1):
        return bench(body, enough, repetitions)


def send_latency(enough: int = 0, repetitions: int = TRIES) -> Results:
    """Time sending the null signal to this process."""
    me = os.getpid()

    def body(iterations: int) -> None:
        for _ in range(iterations):
            os.kill(me, 0)

    return bench(body, enough, repetitions)


def catch_latency(enough: int = 0, repetitions: int = TRIES) -> Results:
    """Time sending and catching SIGUSR1, less the cost of sending a signal."""
    sent = send_latency(enough, repetitions)
    if not sent:
        raise RuntimeError("could not measure the cost of sending a signal")
    send_cost = sent.median().per_op
    me = os.getpid()

    def body(iterations: int) -> None:
        for _ in range(iterations):
            os.kill(me, signal.SIGUSR1)

    with _restoring(signal.SIGUSR1):
        signal.signal(signal.SIGUSR1, _handler)
        caught = bench(body, enough, repetitions)

    adjusted = Results()
    for sample in caught:
        cut = sample.n * send_cost
        adjusted.samples.append(Sample(sample.u - cut if sample.u > cut else 0.0, sample.n))
    return adjusted


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = common_parser("lat_sig", "Signal handler costs.")
    parser.add_argument("what", choices=["install", "catch"], help="what to time")
    args = parser.parse_args(argv)
    if args.what == "install":
        results = install_latency(0, args.repetitions)
        label = "Signal handler installation"
    else:
        results = catch_latency(0, args.repetitions)
        label = "Signal handler overhead"
    print(micro_line(label, results), file=sys.stderr)
    return 0