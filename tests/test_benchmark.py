import numpy as np
import scipy.sparse as sp

from algorithm.benchmark import DEFAULT_CONFIGS, best_result, format_report, run_benchmark
from operators.solve import Permutation, SolveConfig, SolverOptions


def test_default_configurations_all_complete(brill_system):
    A, b = brill_system
    records = run_benchmark(A, b)

    assert [rec.config.label for rec in records] == [c.label for c in DEFAULT_CONFIGS]
    assert all(rec.ok for rec in records)
    assert all(rec.result.converged for rec in records)
    assert records[1].result.permutation_computed
    assert not records[2].result.permutation_computed

    best = best_result(records)
    assert best.residual_max == min(rec.result.residual_max for rec in records)
    for rec in records[1:]:
        np.testing.assert_allclose(rec.result.u, records[0].result.u, rtol=0.0, atol=1e-10)


def test_report_has_one_line_per_configuration(brill_system):
    A, b = brill_system
    records = run_benchmark(A, b)
    lines = format_report(records).splitlines()

    assert len(lines) == len(DEFAULT_CONFIGS)
    assert lines[0].startswith("Normal solver took ")
    assert all("seconds, |res|_inf = " in line for line in lines)


def test_failures_are_scoped_to_their_configuration():
    A = sp.csr_matrix(np.array([[1.0, 0.0], [0.0, 0.0]]))
    configs = [SolveConfig(Permutation.OFF, 0, "plain"), SolveConfig(Permutation.ON, 2, "refined")]
    records = run_benchmark(A, np.ones(2), configs)

    assert len(records) == 2
    assert not any(rec.ok for rec in records)
    assert best_result(records) is None
    assert np.isnan(records[0].elapsed)
    assert format_report(records).splitlines()[1].startswith("refined failed: ")


def test_nonconverged_configuration_keeps_its_result(brill_system):
    A, b = brill_system
    options = SolverOptions(tolerance=0.0, raise_on_nonconvergence=True)
    configs = [SolveConfig(Permutation.OFF, 0, "direct"), SolveConfig(Permutation.OFF, 2, "refined")]
    records = run_benchmark(A, b, configs, options)

    assert records[0].result is not None
    assert records[1].result is not None and not records[1].ok
    assert "[not converged]" in format_report(records).splitlines()[1]
