"""Optional pinning of benchmark processes to processors.

The placement policy is taken from the ``LMBENCH_SCHED`` environment
variable.
"""

from __future__ import annotations

import enum
import errno
import functools
import os
import re
from typing import Optional, Tuple

ENV_VAR = "LMBENCH_SCHED"


class Policy(enum.Enum):
    """Placement policies understood in ``LMBENCH_SCHED``."""

    DEFAULT = "DEFAULT"
    SINGLE = "SINGLE"
    BALANCED = "BALANCED"
    BALANCED_SPREAD = "BALANCED_SPREAD"
    UNIQUE = "UNIQUE"
    UNIQUE_SPREAD = "UNIQUE_SPREAD"
    CUSTOM = "CUSTOM"
    CUSTOM_UNIQUE = "CUSTOM_UNIQUE"


def reverse_bits(cpu: int, ncpus: int) -> int:
    """Reverse the low bits of ``cpu`` so that neighbours land far apart."""
    nbits = 1
    i = (ncpus - 1) >> 1
    while i > 0:
        i >>= 1
        nbits += 1
    result = 0
    for bit in range(nbits):
        if cpu & (1 << bit):
            result |= 1 << (nbits - bit - 1)
    return result


def parse_custom(text: str) -> Tuple[int, ...]:
    """The sequence of CPU ids written as digit runs in ``text``."""
    return tuple(int(run) for run in re.findall(r"[0-9]+", text))


def _pick(values: Tuple[int, ...], index: int) -> int:
    if not values:
        return 0
    return values[index % len(values)]


def choose_cpu(
    spec: Optional[str],
    childno: int,
    benchproc: int,
    nbenchprocs: int,
    ncpus: int,
) -> Optional[int]:
    """The CPU a process should run on, or None to leave placement alone."""
    if not spec:
        return None
    upper = spec.upper()
    unique = childno * (nbenchprocs + 1) + benchproc

    if upper == Policy.DEFAULT.value:
        return None
    if upper == Policy.SINGLE.value:
        cpu = 0
    elif upper == Policy.BALANCED.value:
        cpu = childno
    elif upper == Policy.BALANCED_SPREAD.value:
        cpu = reverse_bits(childno, ncpus)
    elif upper == Policy.UNIQUE.value:
        cpu = unique
    elif upper == Policy.UNIQUE_SPREAD.value:
        cpu = reverse_bits(unique, ncpus)
    elif upper.startswith(Policy.CUSTOM.value + " "):
        cpu = _pick(parse_custom(spec[len(Policy.CUSTOM.value):]), childno)
    elif upper.startswith(Policy.CUSTOM_UNIQUE.value + " "):
        cpu = _pick(parse_custom(spec[len(Policy.CUSTOM_UNIQUE.value):]), unique)
    else:
        return None
    return cpu % ncpus


def sched_ncpus() -> int:
    """Number of online processors on this host."""
    try:
        count = os.sysconf("SC_NPROCESSORS_ONLN")
    except (AttributeError, ValueError, OSError):
        count = os.cpu_count() or 1
    return count if count and count > 0 else 1


@functools.lru_cache(maxsize=None)
def _allowed_cpus() -> Tuple[int, ...]:
    # Remembered from the first call so later pins see the original mask.
    return tuple(sorted(os.sched_getaffinity(0)))


def sched_pin(cpu: int) -> int:
    """Pin the current process to the ``cpu``-th allowed processor.

    Returns the processor id used. Raises OSError if pinning fails or
    is not supported here.
    """
    if not hasattr(os, "sched_setaffinity"):
        raise OSError(errno.ENOSYS, "processor affinity is not supported")
    allowed = _allowed_cpus()
    if not allowed:
        raise OSError(errno.EINVAL, "no processors available")
    target = allowed[cpu % len(allowed)]
    os.sched_setaffinity(0, {target})
    return target


def handle_scheduler(childno: int, benchproc: int, nbenchprocs: int) -> Optional[int]:
    """Apply the ``LMBENCH_SCHED`` policy; return the pinned CPU or None."""
    ncpus = sched_ncpus()
    cpu = choose_cpu(os.environ.get(ENV_VAR), childno, benchproc, nbenchprocs, ncpus)
    if cpu is None:
        return None
    return sched_pin(cpu)