"""Timing harness: adaptive measurement loops, result sets and report lines."""

from __future__ import annotations

import argparse
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Tuple

VERSION: Tuple[int, int] = (3, -4)

TRIES = 11
REAL_SHORT = 50_000
SHORT = 1_000_000
MEDIUM = 2_000_000
LONGER = 7_500_000
ENOUGH = REAL_SHORT

SMALLEST_LINE = 32
SOCKBUF = 1024 * 1024
XFERSIZE = 64 * 1024

UNIX_CONTROL = "/tmp/lmbench.ctl"
UNIX_DATA = "/tmp/lmbench.data"
UNIX_LAT = "/tmp/lmbench.lat"

_MAX_ITERATIONS = 1 << 27
_SINGLE_RUN_LIMIT = 100_000

Body = Callable[[int], object]


@dataclass(frozen=True)
class Sample:
    """One timed run: ``u`` microseconds spent over ``n`` iterations."""

    u: float
    n: int

    @property
    def per_op(self) -> float:
        return self.u / float(self.n)


@dataclass
class Results:
    """Samples kept in order of decreasing time per iteration."""

    samples: List[Sample] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self.samples)

    def insert(self, usecs: float, n: int) -> None:
        """Add a sample, keeping the slowest per-iteration time first."""
        if n <= 0:
            raise ValueError("iteration count must be positive")
        sample = Sample(usecs, n)
        for index, existing in enumerate(self.samples):
            if sample.per_op > existing.per_op:
                self.samples.insert(index, sample)
                return
        self.samples.append(sample)

    def percent_point(self, fraction: float) -> float:
        """Time per iteration at ``fraction`` (0 is the minimum, 1 the maximum)."""
        if not self.samples:
            raise ValueError("no samples")
        if not 0.0 <= fraction <= 1.0:
            raise ValueError("fraction must lie in [0, 1]")
        t = (1.0 - fraction) * (len(self.samples) - 1)
        index = int(t)
        value = self.samples[index].per_op
        if t != float(index):
            value = (value + self.samples[index + 1].per_op) / 2.0
        return value

    def median(self) -> Sample:
        """The middle sample; with an even count, the mean of the two middle ones."""
        if not self.samples:
            raise ValueError("no samples")
        mid = len(self.samples) // 2
        if len(self.samples) % 2:
            return self.samples[mid]
        low, high = self.samples[mid - 1], self.samples[mid]
        return Sample((low.u + high.u) / 2.0, max(1, (low.n + high.n) // 2))

    def subtract_overhead(self, overhead: "Results") -> "Results":
        """Remove the matching overhead sample's cost from each sample."""
        if len(overhead) < len(self):
            raise ValueError("overhead has fewer samples than the results")
        adjusted = []
        for sample, extra in zip(self.samples, overhead.samples):
            cut = sample.n * extra.per_op
            adjusted.append(Sample(sample.u - cut if sample.u > cut else 0.0, sample.n))
        return Results(adjusted)

    def describe(self, details: bool = False) -> str:
        """Text listing of the per-iteration times, optionally with raw counts."""
        times = ", ".join(f"{s.per_op:.2f}" for s in self.samples)
        text = f"N={len(self.samples)}, t={{{times}}}\n"
        if details:
            raw = ", ".join(f"{int(s.u)}/{s.n}" for s in self.samples)
            text += f"\t/* {{{raw}}} */\n"
        return text


def _timed(body: Body, iterations: int) -> float:
    begin = time.perf_counter()
    body(iterations)
    return (time.perf_counter() - begin) * 1e6


def _measure(body: Body, enough: int, iterations: int) -> Sample:
    target = enough or ENOUGH
    result = 0.0
    while result < 0.95 * target:
        result = _timed(body, iterations)
        if result < 0.99 * target or result > 1.2 * target:
            if result > 150.0:
                iterations = int(iterations / result * 1.1 * target + 1)
            else:
                if iterations > _MAX_ITERATIONS:
                    result = 0.0
                    break
                iterations <<= 3
    return Sample(result, iterations)


def measure(body: Body, enough: int) -> Sample:
    """Run ``body(iterations)`` with growing counts until it takes about ``enough`` usecs."""
    return _measure(body, enough, 1)


def _repetitions(enough: int, repetitions: int) -> int:
    if enough == 0 or (enough or ENOUGH) <= _SINGLE_RUN_LIMIT:
        return repetitions
    return 1


def bench(body: Body, enough: int = 0, repetitions: int = TRIES) -> Results:
    """Repeatedly measure ``body`` and collect the samples."""
    results = Results()
    if enough < LONGER:
        body(1)
    iterations = 1
    for _ in range(_repetitions(enough, repetitions)):
        sample = _measure(body, enough, iterations)
        iterations = sample.n
        if sample.u > 0:
            results.insert(sample.u, sample.n)
    return results


def bench_with_overhead(
    body: Body, overhead: Body, enough: int = 0, repetitions: int = TRIES
) -> Results:
    """Measure ``body`` and subtract the cost measured for ``overhead``."""
    results = Results()
    costs = Results()
    if enough < LONGER:
        body(1)
    body_iterations = overhead_iterations = 1
    for _ in range(_repetitions(enough, repetitions)):
        extra = _measure(overhead, enough, overhead_iterations)
        overhead_iterations = extra.n
        sample = _measure(body, enough, body_iterations)
        body_iterations = sample.n
        if extra.u > 0 and sample.u > 0:
            costs.insert(extra.u, extra.n)
            results.insert(sample.u, sample.n)
    return results.subtract_overhead(costs)


_QUARTILES = (0.00, 0.25, 0.50, 0.75, 1.00)


def bw_quartile(results: Results, nbytes: int) -> str:
    """Bandwidth (MB/s) at the quartiles, ``nbytes`` moved per iteration."""
    values = "\t".join(
        "%e" % (nbytes / (1_000_000.0 * results.percent_point(f))) for f in _QUARTILES
    )
    return f"{results.median().n}\t{values}\n"


def nano_quartile(results: Results, n: int) -> str:
    """Latency (ns) at the quartiles, ``n`` operations per iteration."""
    values = "\t".join(
        "%e" % (results.percent_point(f) * 1000.0 / float(n)) for f in _QUARTILES
    )
    return f"{results.median().n}\t{values}\n"


def _per_op(results: Results, n: int) -> float:
    if n <= 0:
        raise ValueError("operations per iteration must be positive")
    middle = results.median()
    return middle.u / float(middle.n * n)


def micro_line(label: str, results: Results, n: int = 1) -> str:
    """Report line in microseconds per operation."""
    return f"{label}: {_per_op(results, n):.4f} microseconds"


def nano_line(label: str, results: Results, n: int = 1) -> str:
    """Report line in nanoseconds per operation."""
    return f"{label}: {_per_op(results, n) * 1000.0:.2f} nanoseconds"


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {text!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError("must be greater than zero")
    return value


def common_parser(prog: str, description: str = "") -> argparse.ArgumentParser:
    """Argument parser with the parallelism, warmup and repetition options."""
    parser = argparse.ArgumentParser(prog=prog, description=description or None)
    parser.add_argument("-P", dest="parallel", type=_positive_int, default=1,
                        help="number of benchmark processes")
    parser.add_argument("-W", dest="warmup", type=int, default=0,
                        help="warmup time in microseconds")
    parser.add_argument("-N", dest="repetitions", type=int, default=TRIES,
                        help="number of measurements")
    return parser