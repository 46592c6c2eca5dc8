import signal

import pytest

from latbench import signals


def test_install_latency_restores_handler():
    before = signal.getsignal(signal.SIGUSR1)
    results = signals.install_latency(0, 1)
    assert signal.getsignal(signal.SIGUSR1) == before
    assert results.median().per_op > 0


def test_send_latency_collects_samples():
    results = signals.send_latency(0, 2)
    assert 1 <= len(results) <= 2
    assert all(sample.n > 0 for sample in results)


def test_catch_latency_non_negative_and_sorted():
    before = signal.getsignal(signal.SIGUSR1)
    results = signals.catch_latency(0, 2)
    assert signal.getsignal(signal.SIGUSR1) == before
    per_op = [sample.per_op for sample in results]
    assert per_op and all(value >= 0 for value in per_op)
    assert per_op == sorted(per_op, reverse=True)


def test_main_install_line(capsys):
    assert signals.main(["-N", "1", "install"]) == 0
    assert capsys.readouterr().err.startswith("Signal handler installation: ")


def test_main_rejects_unknown_kind():
    with pytest.raises(SystemExit):
        signals.main(["prot"])