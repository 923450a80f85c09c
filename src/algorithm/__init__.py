"""
Algorithms: benchmark loop over solve configurations, grid refinement checks.
"""

from .benchmark import (
    DEFAULT_CONFIGS,
    BenchmarkRecord,
    run_benchmark,
    best_result,
    format_report,
)

from .grid_refinement import (
    refine_grid,
    l2_norm,
    solve_manufactured,
    observed_orders,
    convergence_study,
)

__all__ = [
    # benchmark.py
    "DEFAULT_CONFIGS",
    "BenchmarkRecord",
    "run_benchmark",
    "best_result",
    "format_report",
    # grid_refinement.py
    "refine_grid",
    "l2_norm",
    "solve_manufactured",
    "observed_orders",
    "convergence_study",
]
