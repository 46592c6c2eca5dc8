"""Pointer chains laid out through memory for cache, line and TLB probing.

A chain is a cyclic mapping from byte offsets to byte offsets inside a
region. The constructors lay the links out the same way the memory
latency benchmarks do. Timing walks the chain one link at a time.
"""

from __future__ import annotations

import mmap
import random
import struct
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .harness import TRIES, Results, bench, measure

PTR_SIZE = struct.calcsize("P")
MAX_MEM_PARALLELISM = 16
_DEREFS_PER_ITERATION = 100


def words_initialize(count: int, scale: int) -> List[int]:
    """Bit-reversed ordering of ``count`` slots, each multiplied by ``scale``."""
    if count < 0:
        raise ValueError("count must not be negative")
    nbits = 0
    i = count >> 1
    while i:
        i >>= 1
        nbits += 1
    words = []
    for index in range(count):
        reversed_index = 0
        for bit in range(nbits):
            if index & (1 << bit):
                reversed_index |= 1 << (nbits - bit - 1)
        words.append(reversed_index * scale)
    return words


def page_permutation(
    count: int, scale: int, rng: Optional[random.Random] = None
) -> List[int]:
    """A random ordering of the offsets ``0, scale, 2*scale, ...``."""
    if count < 0:
        raise ValueError("count must not be negative")
    rng = rng if rng is not None else random.Random()
    offsets = [index * scale for index in range(count)]
    rng.shuffle(offsets)
    return offsets


@dataclass(frozen=True)
class MemLayout:
    """Size of the region under test and the line and page sizes assumed."""

    length: int
    line: int = PTR_SIZE
    pagesize: int = mmap.PAGESIZE
    maxlen: Optional[int] = None

    def __post_init__(self) -> None:
        if self.length <= 0:
            raise ValueError("length must be positive")
        if self.pagesize <= 0:
            raise ValueError("pagesize must be positive")
        if self.line < PTR_SIZE or self.line > self.pagesize:
            raise ValueError("line must hold a pointer and fit in a page")
        if self.maxlen is not None and self.maxlen < self.length:
            raise ValueError("maxlen must not be smaller than length")

    @property
    def capacity(self) -> int:
        return self.maxlen if self.maxlen is not None else self.length

    @property
    def nwords(self) -> int:
        return self.line // PTR_SIZE

    @property
    def nlines(self) -> int:
        return self.pagesize // self.line

    @property
    def npages(self) -> int:
        return (self.length + self.pagesize - 1) // self.pagesize

    @property
    def nmpages(self) -> int:
        return (self.capacity + self.pagesize - 1) // self.pagesize


@dataclass
class PointerChain:
    """Links between byte offsets of a region, plus the entry points."""

    links: Dict[int, int]
    starts: Tuple[int, ...]
    size: int
    pages: Tuple[int, ...] = ()
    lines: Tuple[int, ...] = ()
    words: Tuple[int, ...] = field(default_factory=tuple)

    def _follow(self, offset: int) -> int:
        try:
            return self.links[offset]
        except KeyError:
            raise ValueError(f"no link leaves offset {offset}") from None

    def walk(self, start: int, steps: int) -> Iterator[int]:
        """Yield the next ``steps`` offsets reached from ``start``."""
        p = start
        for _ in range(steps):
            p = self._follow(p)
            yield p

    def offsets(self, start: int, pagesize: int, line: int) -> Iterator[Tuple[int, int, int]]:
        """Yield (page, line, word) for each node of the cycle through ``start``."""
        p = start
        for _ in range(len(self.links) + 1):
            yield (p // pagesize, (p % pagesize) // line, (p % line) // PTR_SIZE)
            p = self._follow(p)
            if p == start:
                return
        raise ValueError("pointer chain doesn't loop")

    def check(self, start: int) -> bool:
        """True if the chain from ``start`` stays in range and loops back.

        Raises ValueError otherwise.
        """
        limit = self.size // PTR_SIZE + 1
        p = start
        for _ in range(limit):
            if not 0 <= p < self.size:
                raise ValueError(f"pointer out of range: {p}")
            nxt = self._follow(p)
            if nxt == start:
                return True
            p = nxt
        raise ValueError("pointer chain doesn't loop")


def stride_chain(layout: MemLayout) -> PointerChain:
    """A chain that steps through the region ``line`` bytes at a time."""
    offsets = list(range(0, layout.length, layout.line))
    links = {here: there for here, there in zip(offsets, offsets[1:])}
    links[offsets[-1]] = 0
    return PointerChain(links=links, starts=(0,), size=layout.length)


def thrash_chain(layout: MemLayout, rng: Optional[random.Random] = None) -> PointerChain:
    """A chain that touches a different page on every access where it can."""
    pages = page_permutation(layout.nmpages, layout.pagesize, rng)
    size = layout.nmpages * layout.pagesize
    links: Dict[int, int] = {}
    line = layout.line

    if layout.length % layout.pagesize:
        nwords = layout.length // line
        words = words_initialize(nwords, line)
        for here, there in zip(words, words[1:]):
            links[here] = there
        links[words[-1]] = 0
        return PointerChain(links, (0,), size, tuple(pages), (), tuple(words))

    nwords = layout.pagesize // line
    words = words_initialize(nwords, line)
    npages = layout.npages
    last = npages - 1
    for i in range(last):
        cpage, npage = pages[i], pages[i + 1]
        for j in range(nwords):
            cur = cpage + words[(i + j) % nwords]
            links[cur] = npage + words[(i + j + 1) % nwords]
    cpage, npage = pages[last], pages[0]
    for j in range(nwords):
        cur = cpage + words[(last + j) % nwords]
        links[cur] = npage + words[(j + 1) % nwords]
    return PointerChain(links, (pages[0],), size, tuple(pages), (), tuple(words))


def mem_chain(
    layout: MemLayout, width: int = 1, rng: Optional[random.Random] = None
) -> PointerChain:
    """A chain through every line of a page, in random line and page order.

    The word within each line is varied too. ``width`` entry points are
    spread evenly along the chain.
    """
    if not 1 <= width <= MAX_MEM_PARALLELISM:
        raise ValueError(f"width must lie in [1, {MAX_MEM_PARALLELISM}]")
    npointers = layout.length // layout.line
    spacing = npointers // width
    if spacing == 0:
        raise ValueError("region too small for that many entry points")

    nwords, nlines, npages = layout.nwords, layout.nlines, layout.npages
    pages = page_permutation(layout.nmpages, layout.pagesize, rng)
    words = words_initialize(nwords, PTR_SIZE)
    lines = words_initialize(nlines, layout.line)
    links: Dict[int, int] = {}
    starts: Dict[int, int] = {}

    l = 0
    j = 0
    for i in range(npages):
        page = pages[i]
        j = 0
        while j < nlines - 1 and l < npointers - 1:
            for k in range(0, layout.line, PTR_SIZE):
                links[page + lines[j] + k] = page + lines[j + 1] + k
            if l % spacing == 0 and l // spacing < MAX_MEM_PARALLELISM:
                slot = l // spacing
                starts[slot] = page + lines[j] + words[slot % nwords]
            j += 1
            l += 1
        if i < npages - 1:
            for word in words:
                links[page + lines[j] + word] = pages[i + 1] + lines[0] + word
    for k in range(nwords):
        nw = 0 if k == nwords - 1 else k + 1
        links[pages[npages - 1] + lines[j] + words[k]] = pages[0] + lines[0] + words[nw]

    return PointerChain(
        links=links,
        starts=tuple(starts[slot] for slot in sorted(starts)),
        size=layout.nmpages * layout.pagesize,
        pages=tuple(pages),
        lines=tuple(lines),
        words=tuple(words),
    )


def line_chain(layout: MemLayout, rng: Optional[random.Random] = None) -> PointerChain:
    """A chain through the first word of every line, page by page."""
    nlines, npages = layout.nlines, layout.npages
    pages = page_permutation(layout.nmpages, layout.pagesize, rng)
    lines = words_initialize(nlines, layout.line)
    links: Dict[int, int] = {}
    for i in range(npages):
        page = pages[i]
        for here, there in zip(lines, lines[1:]):
            links[page + here] = page + there
        links[page + lines[-1]] = pages[(i + 1) % npages] + lines[0]
    return PointerChain(
        links=links,
        starts=(pages[0] + lines[0],),
        size=layout.nmpages * layout.pagesize,
        pages=tuple(pages),
        lines=tuple(lines),
    )


def tlb_chain(
    npages: int, pagesize: int = mmap.PAGESIZE, rng: Optional[random.Random] = None
) -> PointerChain:
    """A chain touching one word per page, pages in random order after the first."""
    if npages <= 0:
        raise ValueError("npages must be positive")
    if pagesize < PTR_SIZE:
        raise ValueError("pagesize must hold a pointer")
    rng = rng if rng is not None else random.Random()
    nlines = pagesize // PTR_SIZE
    lines = words_initialize(nlines, PTR_SIZE)
    rest = [index * pagesize for index in range(1, npages)]
    rng.shuffle(rest)
    pages = [0] + rest
    links: Dict[int, int] = {}
    for i in range(npages - 1):
        links[pages[i] + lines[i % nlines]] = pages[i + 1] + lines[(i + 1) % nlines]
    last = npages - 1
    links[pages[last] + lines[last % nlines]] = pages[0] + lines[0]
    return PointerChain(
        links=links,
        starts=(pages[0] + lines[0],),
        size=npages * pagesize,
        pages=tuple(pages),
        lines=tuple(lines),
    )


def line_test(
    layout: MemLayout, chain: PointerChain, line: int, repetitions: int = TRIES
) -> float:
    """Nanoseconds per load when visiting only every ``line`` bytes of each page.

    ``chain`` must come from :func:`line_chain` with a pointer-sized line.
    """
    if repetitions < 1:
        raise ValueError("repetitions must be positive")
    if line < PTR_SIZE or line > layout.pagesize:
        raise ValueError("line must hold a pointer and fit in a page")
    links = dict(chain.links)
    pages, lines = chain.pages, chain.lines
    npages = layout.npages
    nlines = layout.pagesize // line

    if nlines < len(lines):
        for i in range(npages):
            links[pages[i] + lines[nlines - 1]] = pages[(i + 1) % npages] + lines[0]

    position = [pages[0] + lines[0]]

    def body(iterations: int) -> None:
        p = position[0]
        for _ in range(iterations * _DEREFS_PER_ITERATION):
            p = links[p]
        position[0] = p

    results = Results()
    for _ in range(repetitions):
        sample = measure(body, 0)
        if sample.u > 0 and sample.n > 0:
            results.insert(sample.u, sample.n)
    if not results:
        return 0.0
    middle = results.median()
    return 10.0 * middle.u / float(middle.n)


def line_find(
    length: int, repetitions: int = TRIES, pagesize: int = mmap.PAGESIZE
) -> int:
    """Estimate the cache line size in bytes; 0 when no jump is seen."""
    layout = MemLayout(length=length, line=PTR_SIZE, pagesize=pagesize)
    chain = line_chain(layout)
    maxline = pagesize // 16
    big_jump = False
    baseline = 0.0
    size = PTR_SIZE
    while size <= maxline:
        t = line_test(layout, chain, size, repetitions)
        if t == 0.0:
            break
        if size > PTR_SIZE:
            if t > 1.3 * baseline:
                big_jump = True
            elif big_jump and t < 1.15 * baseline:
                return size >> 1
        baseline = t
        size <<= 1
    return 0


def _entry_points(layout: MemLayout, chain: PointerChain, count: int) -> List[int]:
    nlines = layout.length // layout.line
    lines_per_chunk = nlines // count
    lines_per_page = layout.pagesize // layout.line
    nwords = layout.nwords
    points = []
    for j in range(count):
        line = j * lines_per_chunk
        word = (j * nwords) // count
        points.append(
            chain.pages[line // lines_per_page]
            + chain.lines[line % lines_per_page]
            + chain.words[word % nwords]
        )
    return points


def par_mem(
    length: int, line: int, repetitions: int = TRIES, pagesize: int = mmap.PAGESIZE
) -> float:
    """Largest speed-up seen from walking several chain positions at once."""
    layout = MemLayout(length=length, line=line, pagesize=pagesize)
    chain = mem_chain(layout, 1)
    links = chain.links
    max_par = 1.0
    baseline = 0.0

    for i in range(MAX_MEM_PARALLELISM):
        positions = _entry_points(layout, chain, i + 1)

        def body(iterations: int, positions: List[int] = positions) -> None:
            ps: Sequence[int] = positions
            for _ in range(iterations * _DEREFS_PER_ITERATION):
                ps = [links[p] for p in ps]
            positions[:] = ps

        results = bench(body, 0, repetitions)
        if not results:
            continue
        middle = results.median()
        if i == 0:
            baseline = middle.u / float(middle.n)
        elif middle.u > 0:
            par = baseline / (middle.u / float((i + 1) * middle.n))
            max_par = max(max_par, par)
    return max_par