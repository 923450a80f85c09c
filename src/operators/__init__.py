"""
Operators: stencil assembly + CSR storage + phase-driven sparse solves.

Public API:
- assemble_operator
- CSRMatrix
- SparseSolver, SolveConfig, SolverOptions, Permutation, RefinementScheme
"""

# CSR storage
from .csr import BASE, CSRMatrix

# Assembly
from .assemble import assemble_operator

# Solves
from .solve import (
    Permutation,
    RefinementScheme,
    SolveConfig,
    SolveResult,
    SolverOptions,
    SolverPhase,
    SparseSolver,
    residual,
)

__all__ = [
    # Storage
    "BASE",
    "CSRMatrix",

    # Assembly
    "assemble_operator",

    # Solves
    "Permutation",
    "RefinementScheme",
    "SolveConfig",
    "SolveResult",
    "SolverOptions",
    "SolverPhase",
    "SparseSolver",
    "residual",
]
