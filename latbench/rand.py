"""Latency of generating random numbers."""

from __future__ import annotations

import random
import sys
from typing import Callable, Dict, Optional, Sequence

from .harness import TRIES, Results, bench, common_parser, nano_line

RAND_MAX = 2**31 - 1


def _generators(rng: random.Random) -> Dict[str, Callable[[], float]]:
    return {
        "drand48": rng.random,
        "lrand48": lambda: rng.getrandbits(31),
        "rand": lambda: rng.randint(0, RAND_MAX),
        "random": lambda: rng.randrange(RAND_MAX + 1),
    }


def rand_latencies(enough: int = 0, repetitions: int = TRIES) -> Dict[str, Results]:
    """Time each generator; results keyed by generator name, in report order."""
    rng = random.Random()
    measured: Dict[str, Results] = {}
    for name, draw in _generators(rng).items():
        def body(iterations: int, draw: Callable[[], float] = draw) -> None:
            total = 0.0
            for _ in range(iterations):
                total += draw()

        measured[name] = bench(body, enough, repetitions)
    return measured


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = common_parser("lat_rand", "Random number generation latency.")
    args = parser.parse_args(argv)
    for name, results in rand_latencies(0, args.repetitions).items():
        print(nano_line(f"{name} latency", results), file=sys.stderr)
    return 0