import pytest

from latbench import proc


def test_procedure_latency_collects_samples():
    results = proc.procedure_latency(0, 2)
    assert 1 <= len(results) <= 2
    assert all(sample.u > 0 and sample.n > 0 for sample in results)


def test_fork_latency_samples_sorted_slowest_first():
    results = proc.fork_latency(0, 2)
    per_op = [sample.per_op for sample in results]
    assert per_op == sorted(per_op, reverse=True)
    assert len(per_op) >= 1


def test_exec_latency_with_real_program():
    results = proc.exec_latency("/bin/true", 0, 1)
    assert len(results) == 1
    assert results.median().per_op > 0


def test_exec_latency_missing_program_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        proc.exec_latency(str(tmp_path / "missing"), 0, 1)


def test_shell_latency_runs_command():
    results = proc.shell_latency("true", 0, 1)
    assert results.median().u > 0


def test_main_procedure_reports_line(capsys):
    assert proc.main(["-N", "1", "procedure"]) == 0
    err = capsys.readouterr().err
    assert err.startswith("Procedure call: ")
    assert err.rstrip().endswith("microseconds")


def test_main_rejects_unknown_kind():
    with pytest.raises(SystemExit):
        proc.main(["vfork"])