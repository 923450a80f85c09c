# operators/solve.py
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from scipy.sparse.csgraph import reverse_cuthill_mckee

from core.errors import ConvergenceError, SingularMatrixError, SolverError, UseAfterRelease
from operators.csr import CSRMatrix

log = logging.getLogger(__name__)

MATRIX_TYPES = ("real_unsymmetric", "real_structurally_symmetric")


class Permutation(Enum):
    OFF = "off"
    ON = "on"


class RefinementScheme(Enum):
    CGS = "cgs"
    STATIONARY = "stationary"


class SolverPhase(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    ANALYZED = "analyzed"
    FACTORIZED = "factorized"
    SOLVED = "solved"
    REFINED = "refined"
    RELEASED = "released"


@dataclass(frozen=True)
class SolveConfig:
    """One benchmark configuration: permutation on/off and refinement step cap."""
    permutation: Permutation = Permutation.OFF
    refinement_steps: int = 0
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.permutation, Permutation):
            raise ValueError(f"permutation must be a Permutation, got {self.permutation!r}")
        if int(self.refinement_steps) < 0:
            raise ValueError("refinement_steps must be >= 0")

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        return f"perm={self.permutation.value}, refine={self.refinement_steps}"


@dataclass(frozen=True)
class SolverOptions:
    """
    ordering:
        column ordering SuperLU applies itself when permutation is off
    tolerance:
        normwise backward-error tolerance, a solve converged when
            |A u - b|_inf <= tolerance * (|A|_inf |u|_inf + |b|_inf)
    refinement:
        scheme used when refinement_steps > 0
    reuse_factorization:
        keep the LU factor of the last matrix per ordering and skip refactoring
    raise_on_nonconvergence:
        raise ConvergenceError (carrying the result) instead of only warning
    """
    ordering: str = "COLAMD"
    tolerance: float = 1e-12
    refinement: RefinementScheme = RefinementScheme.CGS
    reuse_factorization: bool = False
    raise_on_nonconvergence: bool = False


@dataclass
class SolveResult:
    u: np.ndarray
    residual: np.ndarray
    residual_max: float
    threshold: float
    converged: bool
    elapsed: float
    config: SolveConfig
    iterations: int = 0
    permutation_computed: bool = False
    factor_reused: bool = False
    timings: Dict[str, float] = field(default_factory=dict)


def _as_scipy(A: Union[CSRMatrix, sp.spmatrix]) -> sp.csr_matrix:
    if isinstance(A, CSRMatrix):
        return A.to_scipy()
    return sp.csr_matrix(A)


def residual(A: Union[CSRMatrix, sp.spmatrix], u: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    res = A u - b
    """
    return _as_scipy(A) @ u - b


class SparseSolver:
    """
    Phase-driven sparse direct solver with reusable state.

    UNINITIALIZED -> INITIALIZED -> ANALYZED -> FACTORIZED -> SOLVED -> (REFINED)
    and RELEASED from anywhere via close(). The solver state is not reentrant,
    so solve() calls are serialised.

    Usage
    -----
        with SparseSolver().open(A.nrows) as solver:
            result = solver.solve(A, b, SolveConfig(Permutation.ON, 6))
    """

    def __init__(self, options: SolverOptions = SolverOptions()) -> None:
        self.options = options
        self.phase = SolverPhase.UNINITIALIZED
        self.nrows: Optional[int] = None
        self.matrix_type: Optional[str] = None
        self._lock = threading.Lock()
        self._perm: Optional[np.ndarray] = None
        self._perm_nnz: Optional[int] = None
        self._factors: Dict[str, Any] = {}
        self._factor_owner: Optional[object] = None
        self._factor_values: Optional[sp.csr_matrix] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, nrows: int, matrix_type: str = "real_unsymmetric") -> "SparseSolver":
        with self._lock:
            if self.phase is SolverPhase.RELEASED:
                raise UseAfterRelease("solver state was released")
            if self.phase is not SolverPhase.UNINITIALIZED:
                raise SolverError("solver state is already initialized")
            if matrix_type not in MATRIX_TYPES:
                raise ValueError(f"matrix_type must be one of {MATRIX_TYPES}")
            if int(nrows) < 1:
                raise ValueError("nrows must be >= 1")
            self.nrows = int(nrows)
            self.matrix_type = matrix_type
            self._set_phase(SolverPhase.INITIALIZED)
        return self

    def close(self) -> None:
        """Free factors and cached permutation. Safe from any phase."""
        with self._lock:
            self._factors.clear()
            self._factor_owner = None
            self._factor_values = None
            self._perm = None
            self._perm_nnz = None
            self._set_phase(SolverPhase.RELEASED)

    def __enter__(self) -> "SparseSolver":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def permutation(self) -> Optional[np.ndarray]:
        """Cached fill-reducing ordering, None until a permuted solve ran."""
        return None if self._perm is None else self._perm.copy()

    def _set_phase(self, phase: SolverPhase) -> None:
        log.debug("solver phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _analyze(self, A: sp.csr_matrix, config: SolveConfig) -> tuple[Optional[np.ndarray], bool]:
        if config.permutation is Permutation.OFF:
            return None, False
        if self._perm is not None and self._perm_nnz == A.nnz:
            return self._perm, False
        # RCM on the pattern of A + A^T
        perm = reverse_cuthill_mckee(A, symmetric_mode=False).astype(np.int64)
        self._perm = perm
        self._perm_nnz = A.nnz
        self._factors.pop("permuted", None)
        return perm, True

    def _same_values(self, A: sp.csr_matrix) -> bool:
        """True if A has the pattern and values the cached factors were built from."""
        ref = self._factor_values
        if ref is None or ref.shape != A.shape or ref.nnz != A.nnz:
            return False
        return (
            np.array_equal(ref.indptr, A.indptr)
            and np.array_equal(ref.indices, A.indices)
            and np.array_equal(ref.data, A.data)
        )

    def _factorize(self, A: sp.csr_matrix, owner: object, perm: Optional[np.ndarray]) -> tuple[Any, bool]:
        key = "default" if perm is None else "permuted"
        if self.options.reuse_factorization and key in self._factors:
            if self._factor_owner is owner and self._same_values(A):
                return self._factors[key], True
            # values changed in place or a different matrix: every cached factor is stale
            self._factors.clear()

        if perm is None:
            M = A.tocsc()
            permc_spec = self.options.ordering
        else:
            M = A[perm][:, perm].tocsc()
            permc_spec = "NATURAL"
        try:
            lu = spla.splu(M, permc_spec=permc_spec)
        except RuntimeError as exc:
            raise SingularMatrixError(f"factorization failed: {exc}") from exc

        if self.options.reuse_factorization:
            if self._factor_owner is not owner or not self._same_values(A):
                self._factors.clear()
                self._factor_owner = owner
                self._factor_values = A.copy()
            self._factors[key] = lu
        return lu, False

    @staticmethod
    def _direct(lu: Any, perm: Optional[np.ndarray], b: np.ndarray) -> np.ndarray:
        if perm is None:
            return lu.solve(b)
        x = np.empty_like(b)
        x[perm] = lu.solve(b[perm])
        return x

    def _refine(
        self,
        A: sp.csr_matrix,
        b: np.ndarray,
        u: np.ndarray,
        lu: Any,
        perm: Optional[np.ndarray],
        steps: int,
        threshold: float,
    ) -> tuple[np.ndarray, int]:
        if self.options.refinement is RefinementScheme.STATIONARY:
            it = 0
            while it < steps:
                r = b - A @ u
                if np.max(np.abs(r)) <= threshold:
                    break
                u = u + self._direct(lu, perm, r)
                it += 1
            return u, it

        count = [0]

        def _count(_xk: np.ndarray) -> None:
            count[0] += 1

        M = spla.LinearOperator(A.shape, matvec=lambda v: self._direct(lu, perm, np.asarray(v).reshape(-1)))
        x, info = spla.cgs(A, b, x0=u, rtol=0.0, atol=threshold, maxiter=steps, M=M, callback=_count)
        if info < 0:
            log.warning("CGS breakdown (info=%d), keeping the direct solution", info)
            return u, count[0]
        return x, count[0]

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------

    def solve(
        self,
        A: Union[CSRMatrix, sp.spmatrix],
        b: np.ndarray,
        config: SolveConfig = SolveConfig(),
    ) -> SolveResult:
        """
        Solve A u = b for one configuration.

        Neither A nor b is modified. Returns the solution, the residual A u - b
        and timings. Raises SingularMatrixError when factorization fails and,
        if options.raise_on_nonconvergence, ConvergenceError when refinement
        stops above tolerance.
        """
        b = np.asarray(b, dtype=np.float64).reshape(-1)
        with self._lock:
            # checked under the lock, a concurrent close() may have won it
            if self.phase is SolverPhase.RELEASED:
                raise UseAfterRelease("solve() called after the solver state was released")
            if self.phase is SolverPhase.UNINITIALIZED:
                raise SolverError("solve() called before open()")

            t_start = time.perf_counter()
            timings: Dict[str, float] = {}
            Acsr = _as_scipy(A)
            if Acsr.shape != (self.nrows, self.nrows):
                raise ValueError(f"matrix has shape {Acsr.shape}, solver opened for {self.nrows}")
            if b.shape != (self.nrows,):
                raise ValueError(f"b has shape {b.shape}, expected ({self.nrows},)")

            t = time.perf_counter()
            perm, computed = self._analyze(Acsr, config)
            timings["analyze"] = time.perf_counter() - t
            self._set_phase(SolverPhase.ANALYZED)

            t = time.perf_counter()
            lu, reused = self._factorize(Acsr, A, perm)
            timings["factorize"] = time.perf_counter() - t
            self._set_phase(SolverPhase.FACTORIZED)

            t = time.perf_counter()
            u = self._direct(lu, perm, b)
            timings["solve"] = time.perf_counter() - t
            if not np.all(np.isfinite(u)):
                raise SingularMatrixError("direct solve produced non-finite values")
            self._set_phase(SolverPhase.SOLVED)

            a_norm = float(abs(Acsr).sum(axis=1).max())
            b_norm = float(np.max(np.abs(b)))
            res = Acsr @ u - b
            threshold = self.options.tolerance * (a_norm * float(np.max(np.abs(u))) + b_norm)

            iterations = 0
            if config.refinement_steps > 0:
                t = time.perf_counter()
                u_ref, iterations = self._refine(
                    Acsr, b, u, lu, perm, int(config.refinement_steps), threshold
                )
                res_ref = Acsr @ u_ref - b
                # never hand back an iterate worse than the direct solution
                if np.all(np.isfinite(u_ref)) and np.max(np.abs(res_ref)) <= np.max(np.abs(res)):
                    u, res = u_ref, res_ref
                timings["refine"] = time.perf_counter() - t
                self._set_phase(SolverPhase.REFINED)

            res_max = float(np.max(np.abs(res)))
            result = SolveResult(
                u=u,
                residual=res,
                residual_max=res_max,
                threshold=float(threshold),
                converged=bool(res_max <= threshold),
                elapsed=time.perf_counter() - t_start,
                config=config,
                iterations=iterations,
                permutation_computed=computed,
                factor_reused=reused,
                timings=timings,
            )

        log.info(
            "%s: %.3E s, |res|_inf = %.3E%s",
            config.label, result.elapsed, res_max, "" if result.converged else " (not converged)",
        )
        if not result.converged and config.refinement_steps > 0:
            msg = (
                f"{config.label}: refinement stopped after {iterations} of "
                f"{config.refinement_steps} steps with |res|_inf = {res_max:.3E} > {threshold:.3E}"
            )
            if self.options.raise_on_nonconvergence:
                raise ConvergenceError(msg, result=result)
            log.warning(msg)
        return result
