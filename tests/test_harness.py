import re

import pytest

from latbench.harness import (
    TRIES,
    Results,
    Sample,
    bench,
    bench_with_overhead,
    bw_quartile,
    common_parser,
    measure,
    micro_line,
    nano_line,
    nano_quartile,
)


def _results(*pairs):
    r = Results()
    for u, n in pairs:
        r.insert(u, n)
    return r


def _spin(iterations):
    total = 0
    for i in range(iterations):
        total += i
    return total


def test_insert_orders_slowest_first():
    r = _results((10, 1), (30, 1), (20, 1))
    per_op = [s.per_op for s in r]
    assert per_op == sorted(per_op, reverse=True)
    assert len(r) == 3


def test_insert_rejects_zero_iterations():
    with pytest.raises(ValueError):
        Results().insert(5, 0)


def test_percent_point_extremes_and_median():
    r = _results((10, 1), (30, 1), (20, 1))
    assert r.percent_point(0.0) == 10
    assert r.percent_point(1.0) == 30
    assert r.percent_point(0.5) == 20


def test_percent_point_interpolates():
    r = _results((10, 1), (20, 1), (30, 1), (40, 1))
    assert r.percent_point(0.5) == pytest.approx((20 + 30) / 2)


def test_percent_point_empty_raises():
    with pytest.raises(ValueError):
        Results().percent_point(0.5)


def test_median_odd_picks_middle():
    r = _results((10, 1), (30, 1), (20, 1))
    assert r.median() == Sample(20, 1)


def test_subtract_overhead_clamps_at_zero():
    r = _results((100, 10), (5, 10))
    oh = _results((20, 10), (20, 10))
    adjusted = r.subtract_overhead(oh)
    assert [s.u for s in adjusted] == [80, 0.0]
    assert [s.n for s in adjusted] == [10, 10]


def test_subtract_overhead_needs_enough_samples():
    with pytest.raises(ValueError):
        _results((1, 1), (2, 1)).subtract_overhead(_results((1, 1)))


def test_describe_format():
    r = _results((10, 4), (6, 2))
    text = r.describe(False)
    assert text.startswith("N=2, t={")
    assert text.endswith("}\n")
    detailed = r.describe(True)
    assert "\t/* {" in detailed
    assert "10/4" in detailed and "6/2" in detailed


def test_micro_line_format():
    r = _results((10, 4))
    assert micro_line("x", r) == "x: 2.5000 microseconds"


def test_nano_line_matches_micro():
    r = _results((10, 4))
    line = nano_line("y", r)
    assert re.fullmatch(r"y: \d+\.\d{2} nanoseconds", line)
    micro = float(micro_line("y", r).split()[1])
    assert float(line.split()[1]) == pytest.approx(micro * 1000.0)


def test_quartile_lines_have_six_fields():
    r = _results((10, 1), (20, 1), (30, 1))
    for line in (nano_quartile(r, 1), bw_quartile(r, 1000)):
        fields = line.rstrip("\n").split("\t")
        assert len(fields) == 6


def test_nano_quartile_values_increase():
    r = _results((10, 1), (20, 1), (30, 1))
    values = [float(v) for v in nano_quartile(r, 1).split("\t")[1:]]
    assert values == sorted(values)


def test_measure_reaches_target():
    sample = measure(_spin, 2000)
    assert sample.n >= 1
    assert sample.u == 0 or sample.u >= 0.95 * 2000


def test_bench_collects_repetitions():
    r = bench(_spin, 1000, 3)
    assert 1 <= len(r) <= 3
    assert all(s.u > 0 for s in r)


def test_bench_with_overhead_not_above_plain():
    r = bench_with_overhead(_spin, lambda n: None, 1000, 2)
    assert len(r) <= 2
    assert all(s.u >= 0 for s in r)


def test_parser_defaults():
    args = common_parser("prog").parse_args([])
    assert args.parallel == 1
    assert args.warmup == 0
    assert args.repetitions == TRIES


def test_parser_rejects_nonpositive_parallel():
    with pytest.raises(SystemExit):
        common_parser("prog").parse_args(["-P", "0"])