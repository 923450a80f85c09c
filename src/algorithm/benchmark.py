from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np

from core.errors import ConvergenceError, SingularMatrixError
from operators.csr import CSRMatrix
from operators.solve import Permutation, SolveConfig, SolveResult, SolverOptions, SparseSolver

log = logging.getLogger(__name__)


# The second entry computes the permutation, the third reuses it.
DEFAULT_CONFIGS: Sequence[SolveConfig] = (
    SolveConfig(Permutation.OFF, 0, "Normal solver"),
    SolveConfig(Permutation.ON, 0, "Permutation calculation"),
    SolveConfig(Permutation.ON, 0, "Solver with permutation"),
    SolveConfig(Permutation.OFF, 6, "Solver with CGS"),
    SolveConfig(Permutation.ON, 6, "Solver with CGS and permutation"),
)


@dataclass
class BenchmarkRecord:
    config: SolveConfig
    result: Optional[SolveResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None and self.error is None

    @property
    def elapsed(self) -> float:
        return np.nan if self.result is None else self.result.elapsed


def run_benchmark(
    A: CSRMatrix,
    b: np.ndarray,
    configs: Iterable[SolveConfig] = DEFAULT_CONFIGS,
    options: SolverOptions = SolverOptions(),
    solver: Optional[SparseSolver] = None,
) -> List[BenchmarkRecord]:
    """
    Solve A u = b once per configuration on a single shared solver state.

    Solver errors are scoped to their configuration: a singular factorization
    or a non-converged refinement is recorded and the loop moves on. If no
    solver is passed one is opened here and closed on exit.
    """
    if solver is None:
        with SparseSolver(options).open(A.nrows) as owned:
            return run_benchmark(A, b, configs, options, solver=owned)

    records: List[BenchmarkRecord] = []
    for config in configs:
        log.info("Calling solver: %s", config.label)
        try:
            result = solver.solve(A, b, config)
        except SingularMatrixError as exc:
            log.error("%s failed: %s", config.label, exc)
            records.append(BenchmarkRecord(config, None, str(exc)))
            continue
        except ConvergenceError as exc:
            records.append(BenchmarkRecord(config, exc.result, str(exc)))
            continue
        records.append(BenchmarkRecord(config, result))
    return records


def best_result(records: Sequence[BenchmarkRecord]) -> Optional[SolveResult]:
    """Result with the smallest residual among the configurations that produced one."""
    done = [rec.result for rec in records if rec.result is not None]
    if not done:
        return None
    return min(done, key=lambda res: res.residual_max)


def format_report(records: Sequence[BenchmarkRecord]) -> str:
    lines = []
    for rec in records:
        if rec.result is None:
            lines.append(f"{rec.config.label} failed: {rec.error}")
            continue
        res = rec.result
        flag = "" if res.converged else " [not converged]"
        lines.append(
            f"{rec.config.label} took {res.elapsed:3.3E} seconds, "
            f"|res|_inf = {res.residual_max:3.3E}{flag}"
        )
    return "\n".join(lines)
