"""Time to fault in a page of a memory-mapped file."""

from __future__ import annotations

import contextlib
import mmap
import os
import shutil
import stat
import sys
from typing import Iterator, List, Optional, Sequence, Tuple

from .harness import TRIES, Results, Sample, bench, common_parser, micro_line
from .memchain import page_permutation

MIN_SIZE = 1024 * 1024


@contextlib.contextmanager
def _opened(path: str, clone: bool) -> Iterator[int]:
    """Open ``path``, or a private copy of it that is removed at once."""
    if clone:
        copy = f"{path}{os.getpid()}"
        try:
            shutil.copyfile(path, copy)
            os.chmod(copy, stat.S_IRUSR | stat.S_IWUSR)
            fd = os.open(copy, os.O_RDONLY)
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(copy)
    else:
        fd = os.open(path, os.O_RDONLY)
    try:
        yield fd
    finally:
        os.close(fd)


class _Mapping:
    """A read-only shared mapping that can be dropped and made afresh."""

    def __init__(self, fd: int, size: int) -> None:
        self._fd = fd
        self._size = size
        self.view = self._map()

    def _map(self) -> mmap.mmap:
        return mmap.mmap(self._fd, self._size, mmap.MAP_SHARED, mmap.PROT_READ)

    def remap(self) -> None:
        self.view.close()
        self.view = self._map()

    def close(self) -> None:
        self.view.close()


def pagefault_latency(path: str, clone: bool = False,
                      repetitions: int = TRIES) -> Tuple[Results, int]:
    """Time faulting in every page of ``path`` through a fresh mapping.

    Returns the results per pass over the file, with the cost of
    mapping and unmapping removed, and the number of pages per pass.
    Raises ValueError when the file is smaller than one megabyte.
    """
    pagesize = mmap.PAGESIZE
    with _opened(path, clone) as fd:
        size = os.fstat(fd).st_size
        size -= size % pagesize
        if size < MIN_SIZE:
            raise ValueError(f"{path} too small")
        npages = size // pagesize
        pages: List[int] = page_permutation(npages, pagesize)

        mapping = _Mapping(fd, size)
        try:
            def remap_only(iterations: int) -> None:
                for _ in range(iterations):
                    mapping.remap()

            def touch_and_remap(iterations: int) -> None:
                total = 0
                for _ in range(iterations):
                    view = mapping.view
                    for offset in pages:
                        total += view[offset]
                    mapping.remap()

            mapped = bench(remap_only, 0, repetitions)
            combined = bench(touch_and_remap, 0, repetitions)
        finally:
            mapping.close()

    if not mapped or not combined:
        raise RuntimeError("could not time the mapping")
    map_cost = mapped.median().per_op
    adjusted = Results()
    for sample in combined:
        cut = sample.n * map_cost
        adjusted.samples.append(Sample(sample.u - cut if sample.u > cut else 0.0, sample.n))
    return adjusted, npages


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = common_parser("lat_pagefault", "Page fault latency on a mapped file.")
    parser.add_argument("-C", dest="clone", action="store_true",
                        help="fault pages of a private copy of the file")
    parser.add_argument("file", help="file to map")
    args = parser.parse_args(argv)
    try:
        results, npages = pagefault_latency(args.file, args.clone, args.repetitions)
    except (OSError, ValueError) as exc:
        print(f"lat_pagefault: {exc}", file=sys.stderr)
        return 1
    print(micro_line(f"Pagefaults on {args.file}", results, npages), file=sys.stderr)
    return 0