import random

import pytest

from latbench.memchain import (
    MAX_MEM_PARALLELISM,
    PTR_SIZE,
    MemLayout,
    PointerChain,
    line_chain,
    line_find,
    line_test,
    mem_chain,
    page_permutation,
    par_mem,
    stride_chain,
    thrash_chain,
    tlb_chain,
    words_initialize,
)

PAGE = 4096


def cycle(chain, start):
    seen = [start]
    for p in chain.walk(start, len(chain.links) + 1):
        if p == start:
            return seen
        seen.append(p)
    raise AssertionError("no cycle")


def test_words_initialize_bit_reversal():
    assert words_initialize(8, 1) == [0, 4, 2, 6, 1, 5, 3, 7]


@pytest.mark.parametrize("count,scale", [(1, 8), (16, 64), (64, 8)])
def test_words_initialize_is_permutation_for_powers_of_two(count, scale):
    words = words_initialize(count, scale)
    assert sorted(words) == [i * scale for i in range(count)]
    assert words[0] == 0


def test_words_initialize_negative_count():
    with pytest.raises(ValueError):
        words_initialize(-1, 8)


def test_page_permutation_is_permutation():
    perm = page_permutation(10, PAGE, random.Random(1))
    assert sorted(perm) == [i * PAGE for i in range(10)]


def test_page_permutation_reproducible_with_seed():
    first = page_permutation(20, 8, random.Random(5))
    second = page_permutation(20, 8, random.Random(5))
    assert sorted(first) == [i * 8 for i in range(20)]
    assert first == second


def test_layout_validation():
    with pytest.raises(ValueError):
        MemLayout(length=0)
    with pytest.raises(ValueError):
        MemLayout(length=PAGE, line=PTR_SIZE // 2)
    with pytest.raises(ValueError):
        MemLayout(length=PAGE, line=2 * PAGE, pagesize=PAGE)
    with pytest.raises(ValueError):
        MemLayout(length=2 * PAGE, pagesize=PAGE, maxlen=PAGE)


def test_layout_derived_sizes():
    layout = MemLayout(length=3 * PAGE + 1, line=64, pagesize=PAGE)
    assert layout.npages == 4
    assert layout.nlines == PAGE // 64
    assert layout.nwords == 64 // PTR_SIZE


def test_stride_chain_visits_every_line():
    layout = MemLayout(length=1024, line=64, pagesize=PAGE)
    chain = stride_chain(layout)
    assert chain.check(0)
    assert cycle(chain, 0) == list(range(0, 1024, 64))


def test_thrash_chain_whole_pages_loops():
    layout = MemLayout(length=4 * PAGE, line=128, pagesize=PAGE)
    chain = thrash_chain(layout, random.Random(3))
    start = chain.starts[0]
    assert chain.check(start)
    nodes = cycle(chain, start)
    assert len(set(nodes)) == len(nodes)
    pages = [p // PAGE for p in nodes]
    assert all(a != b for a, b in zip(pages, pages[1:]))


def test_thrash_chain_partial_page_loops_through_words():
    layout = MemLayout(length=2048, line=64, pagesize=PAGE)
    chain = thrash_chain(layout, random.Random(3))
    assert chain.starts == (0,)
    assert chain.check(0)
    assert sorted(cycle(chain, 0)) == list(range(0, 2048, 64))


def test_mem_chain_covers_every_word():
    layout = MemLayout(length=4 * PAGE, line=64, pagesize=PAGE)
    chain = mem_chain(layout, 1, random.Random(7))
    assert len(chain.starts) == 1
    start = chain.starts[0]
    assert chain.check(start)
    nodes = cycle(chain, start)
    assert len(nodes) == 4 * PAGE // PTR_SIZE
    assert len(set(nodes)) == len(nodes)


def test_mem_chain_width_gives_entry_points_on_chain():
    layout = MemLayout(length=4 * PAGE, line=64, pagesize=PAGE)
    chain = mem_chain(layout, 4, random.Random(7))
    assert len(chain.starts) == 4
    nodes = set(cycle(chain, chain.starts[0]))
    assert all(s in nodes for s in chain.starts)


@pytest.mark.parametrize("width", [0, MAX_MEM_PARALLELISM + 1])
def test_mem_chain_rejects_bad_width(width):
    layout = MemLayout(length=4 * PAGE, line=64, pagesize=PAGE)
    with pytest.raises(ValueError):
        mem_chain(layout, width)


def test_line_chain_visits_each_line_of_each_page():
    layout = MemLayout(length=3 * PAGE, line=256, pagesize=PAGE)
    chain = line_chain(layout, random.Random(2))
    start = chain.starts[0]
    assert chain.check(start)
    nodes = cycle(chain, start)
    assert len(nodes) == 3 * (PAGE // 256)
    assert all(n % 256 == 0 for n in nodes)


def test_tlb_chain_one_word_per_page():
    chain = tlb_chain(12, PAGE, random.Random(4))
    start = chain.starts[0]
    assert start == 0
    assert chain.check(start)
    nodes = cycle(chain, start)
    assert sorted(n // PAGE for n in nodes) == list(range(12))


def test_tlb_chain_rejects_no_pages():
    with pytest.raises(ValueError):
        tlb_chain(0, PAGE)


def test_check_detects_out_of_range():
    chain = PointerChain(links={0: 8, 8: 4096}, starts=(0,), size=64)
    with pytest.raises(ValueError):
        chain.check(0)


def test_check_detects_missing_loop():
    chain = PointerChain(links={0: 8, 8: 16, 16: 8}, starts=(0,), size=64)
    with pytest.raises(ValueError):
        chain.check(0)


def test_walk_follows_links_and_rejects_dangling():
    chain = PointerChain(links={0: 16, 16: 8, 8: 0}, starts=(0,), size=64)
    assert list(chain.walk(0, 4)) == [16, 8, 0, 16]
    broken = PointerChain(links={0: 16}, starts=(0,), size=64)
    with pytest.raises(ValueError):
        list(broken.walk(0, 2))


def test_offsets_describe_page_line_word():
    layout = MemLayout(length=2 * PAGE, line=64, pagesize=PAGE)
    chain = line_chain(layout, random.Random(9))
    triples = list(chain.offsets(chain.starts[0], PAGE, 64))
    assert len(triples) == 2 * (PAGE // 64)
    assert {t[0] for t in triples} == {0, 1}
    assert all(t[2] == 0 for t in triples)


def test_line_test_returns_positive_time():
    layout = MemLayout(length=2 * PAGE, line=PTR_SIZE, pagesize=PAGE)
    chain = line_chain(layout, random.Random(1))
    before = dict(chain.links)
    t = line_test(layout, chain, 64, repetitions=1)
    assert t > 0.0
    assert chain.links == before


def test_line_test_rejects_bad_arguments():
    layout = MemLayout(length=PAGE, line=PTR_SIZE, pagesize=PAGE)
    chain = line_chain(layout)
    with pytest.raises(ValueError):
        line_test(layout, chain, 64, repetitions=0)
    with pytest.raises(ValueError):
        line_test(layout, chain, 2 * PAGE, repetitions=1)


def test_line_find_result_is_zero_or_power_of_two():
    line = line_find(PAGE, repetitions=1, pagesize=1024)
    assert line == 0 or (line >= PTR_SIZE and line & (line - 1) == 0 and line <= 1024 // 16)


def test_par_mem_at_least_one():
    assert par_mem(4 * PAGE, 128, repetitions=1, pagesize=PAGE) >= 1.0