import pytest

from latbench import usleep
from latbench.usleep import Mechanism


@pytest.mark.parametrize("mechanism", ["usleep", "nanosleep", "select"])
def test_sleep_lasts_at_least_requested(mechanism):
    results = usleep.sleep_latency(mechanism, 2000, 0, 1)
    assert results.median().per_op >= 2000


def test_itimer_waits_for_timer():
    results = usleep.sleep_latency(Mechanism.ITIMER, 2000, 0, 1)
    assert results.median().per_op >= 1000


def test_unknown_mechanism_raises():
    with pytest.raises(ValueError):
        usleep.sleep_latency("pselect2", 10)


def test_negative_duration_raises():
    with pytest.raises(ValueError):
        usleep.sleep_latency(Mechanism.SELECT, -1)


def test_itimer_zero_duration_raises():
    with pytest.raises(ValueError):
        usleep.sleep_latency(Mechanism.ITIMER, 0)


def test_mechanism_from_name():
    assert Mechanism("nanosleep") is Mechanism.NANOSLEEP


def test_main_reports_mechanism(capsys):
    assert usleep.main(["-N", "1", "-u", "select", "1000"]) == 0
    assert capsys.readouterr().err.startswith("select 1000 microseconds: ")