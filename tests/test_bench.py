import pytest

from candlebench.backend import Backend
from candlebench.bench import benchmark_matmul, run_matmul


def test_benchmark_result_fields():
    result = benchmark_matmul(4, 3, Backend.CPU)
    assert result.size == 4
    assert result.iters == 3
    assert result.device == "CPU"
    assert result.avg_secs == pytest.approx(result.total_elapsed / 3)
    assert result.gflops > 0


@pytest.mark.parametrize("size,iters,msg", [(0, 1, "--size"), (2, 0, "--iters")])
def test_rejects_zero(size, iters, msg):
    with pytest.raises(ValueError, match=msg):
        benchmark_matmul(size, iters, Backend.CPU)


def test_run_prints_report(capsys):
    run_matmul(4, 2, Backend.CPU)
    out = capsys.readouterr().out
    assert "matrix: [4 x 4]" in out
    assert "iters: 2" in out
    assert "GFLOP/s" in out