"""How long sleeping for a requested number of microseconds really takes."""

from __future__ import annotations

import enum
import os
import select
import signal
import sys
import time
from typing import Callable, Optional, Sequence, Union

from .harness import TRIES, Results, bench, common_parser, micro_line


class Mechanism(enum.Enum):
    """Ways of sleeping that can be timed."""

    USLEEP = "usleep"
    NANOSLEEP = "nanosleep"
    SELECT = "select"
    ITIMER = "itimer"


def _itimer_body(seconds: float) -> Callable[[int], None]:
    def body(iterations: int) -> None:
        old_mask = signal.pthread_sigmask(signal.SIG_BLOCK, {signal.SIGALRM})
        try:
            for _ in range(iterations):
                signal.setitimer(signal.ITIMER_REAL, seconds)
                signal.sigwait({signal.SIGALRM})
        finally:
            signal.setitimer(signal.ITIMER_REAL, 0)
            signal.pthread_sigmask(signal.SIG_SETMASK, old_mask)

    return body


def sleep_latency(mechanism: Union[Mechanism, str], usecs: int,
                  enough: int = 0, repetitions: int = TRIES) -> Results:
    """Time sleeping for ``usecs`` microseconds with the given mechanism."""
    mechanism = Mechanism(mechanism)
    if usecs < 0:
        raise ValueError("usecs must not be negative")
    seconds = usecs / 1_000_000.0

    if mechanism is Mechanism.ITIMER:
        if usecs == 0:
            raise ValueError("the interval timer needs a positive duration")
        return bench(_itimer_body(seconds), enough, repetitions)

    if mechanism is Mechanism.SELECT:
        def pause() -> None:
            select.select([], [], [], seconds)
    else:
        def pause() -> None:
            time.sleep(seconds)

    def body(iterations: int) -> None:
        for _ in range(iterations):
            pause()

    return bench(body, enough, repetitions)


def set_realtime() -> bool:
    """Switch this process to round-robin real-time scheduling if allowed."""
    try:
        priority = os.sched_get_priority_max(os.SCHED_RR)
        os.sched_setscheduler(0, os.SCHED_RR, os.sched_param(priority))
    except (AttributeError, OSError) as exc:
        print(f"sched_setscheduler: {exc}", file=sys.stderr)
        return False
    return True


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = common_parser("lat_usleep", "Sleep duration and latency.")
    parser.add_argument("-r", dest="realtime", action="store_true",
                        help="use real-time scheduling")
    parser.add_argument("-u", dest="method", default=Mechanism.USLEEP.value,
                        choices=[m.value for m in Mechanism],
                        help="sleeping mechanism")
    parser.add_argument("usecs", type=int, help="requested sleep in microseconds")
    args = parser.parse_args(argv)
    if args.usecs < 0:
        parser.error("usecs must not be negative")

    scheduler = "realtime " if args.realtime and set_realtime() else ""
    mechanism = Mechanism(args.method)
    results = sleep_latency(mechanism, args.usecs, 0, args.repetitions)
    label = f"{scheduler}{mechanism.value} {args.usecs} microseconds"
    print(micro_line(label, results), file=sys.stderr)
    return 0