"""
Exception taxonomy.

Configuration problems are ValueErrors (bad user input), everything else is
a runtime failure scoped to the phase that raised it.
"""

from __future__ import annotations

from typing import Any, Optional


class EllSolveError(Exception):
    """Base class for all errors raised by this project."""


class ConfigurationError(EllSolveError, ValueError):
    """Out-of-range grid size, spacing or finite-difference order."""

    def __init__(self, parameter: str, message: str) -> None:
        super().__init__(f"{parameter}: {message}")
        self.parameter = parameter


class AssemblyError(EllSolveError, RuntimeError):
    """A stencil tap left the ghosted grid, or a CSR invariant does not hold."""


class CSRLifecycleError(EllSolveError, RuntimeError):
    """CSR arrays used after release, or released twice."""


class SolverError(EllSolveError, RuntimeError):
    """Failure inside one solve configuration."""


class SingularMatrixError(SolverError):
    """Numerical factorization hit a zero or non-finite pivot."""


class ConvergenceError(SolverError):
    """Refinement hit its iteration cap before reaching tolerance.

    The last iterate is kept on ``result``.
    """

    def __init__(self, message: str, result: Optional[Any] = None) -> None:
        super().__init__(message)
        self.result = result


class UseAfterRelease(SolverError):
    """The solver state was closed, or never opened."""
