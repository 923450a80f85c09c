"""
Core: problem definition (grid, configs, errors, sources, RHS).
"""

from .grid import Grid, GridIndex, ghost_for_order
from .config import BoundaryConfig, GridLimits, RunConfig, DEFAULT_RUN, validate_parameters
from .errors import (
    EllSolveError,
    ConfigurationError,
    AssemblyError,
    CSRLifecycleError,
    SolverError,
    SingularMatrixError,
    ConvergenceError,
    UseAfterRelease,
)
from .sources import (
    brill_source,
    brill_problem,
    manufactured_solution,
    manufactured_rhs,
    manufactured_robin_data,
    assemble_rhs,
)

__all__ = [
    "Grid",
    "GridIndex",
    "ghost_for_order",
    "BoundaryConfig",
    "GridLimits",
    "RunConfig",
    "DEFAULT_RUN",
    "validate_parameters",
    "EllSolveError",
    "ConfigurationError",
    "AssemblyError",
    "CSRLifecycleError",
    "SolverError",
    "SingularMatrixError",
    "ConvergenceError",
    "UseAfterRelease",
    "brill_source",
    "brill_problem",
    "manufactured_solution",
    "manufactured_rhs",
    "manufactured_robin_data",
    "assemble_rhs",
]
