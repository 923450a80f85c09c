from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from .config import BoundaryConfig
from .grid import Grid, INTERIOR, OUTER


def brill_source(r: np.ndarray, z: np.ndarray, amplitude: float = 1.0) -> np.ndarray:
    """
    Linear term of the Brill-wave Hamiltonian constraint,
        s = (1/4) (q_rr + q_zz)   with   q = a r^2 exp(-r^2 - z^2),
    which simplifies to
        s = a exp(-r^2 - z^2) (0.5 + r^2 (-3 + r^2 + z^2)).
    """
    r2 = r * r
    z2 = z * z
    return float(amplitude) * np.exp(-r2 - z2) * (0.5 + r2 * (-3.0 + r2 + z2))


def manufactured_solution(r: np.ndarray, z: np.ndarray) -> np.ndarray:
    """u = exp(-r^2 - z^2): even in r and z, smooth on the axis."""
    return np.exp(-r * r - z * z)


def manufactured_rhs(r: np.ndarray, z: np.ndarray, s: np.ndarray) -> np.ndarray:
    """
    f = u_rr + u_r / r + u_zz + s u for the manufactured solution.

    With u = exp(-r^2 - z^2):
        u_rr + u_r / r = (4 r^2 - 4) u,   u_zz = (4 z^2 - 2) u
    """
    u = manufactured_solution(r, z)
    return (4.0 * r * r + 4.0 * z * z - 6.0) * u + s * u


def manufactured_robin_data(r: np.ndarray, z: np.ndarray) -> np.ndarray:
    """g = r u_r + z u_z + u for the manufactured solution."""
    return (1.0 - 2.0 * r * r - 2.0 * z * z) * manufactured_solution(r, z)


def assemble_rhs(
    grid: Grid,
    f: np.ndarray,
    boundary: BoundaryConfig = BoundaryConfig(),
    g: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Right-hand side vector matching the rows emitted by assemble_operator.

    - interior rows:        f
    - axis/equator ghosts:  0 (parity rows are homogeneous)
    - outer boundary rows:  g, or u_inf for a Robin boundary when g is None

    Returns
    -------
    b : ndarray, shape (dim,)
    """
    f = np.asarray(f, dtype=np.float64).reshape(-1)
    if f.size != grid.dim:
        raise ValueError(f"f has size {f.size}, expected {grid.dim}")

    kinds = grid.point_kinds().reshape(-1)
    b = np.zeros(grid.dim, dtype=np.float64)
    interior = kinds == INTERIOR
    b[interior] = f[interior]

    outer = kinds == OUTER
    if g is None:
        if boundary.outer == "dirichlet":
            raise ValueError("Dirichlet boundary needs boundary values g")
        b[outer] = float(boundary.u_inf)
    else:
        g = np.asarray(g, dtype=np.float64).reshape(-1)
        if g.size != grid.dim:
            raise ValueError(f"g has size {g.size}, expected {grid.dim}")
        b[outer] = g[outer]
    return b


def brill_problem(grid: Grid, amplitude: float = 1.0) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Default benchmark problem: L[u] = 0 with the Brill linear term.

    Returns (s, f, u0) grid functions; u0 = 1 is the flat-space guess.
    """
    r, z = grid.coordinates()
    s = brill_source(r, z, amplitude)
    f = np.zeros(grid.dim, dtype=np.float64)
    u0 = np.ones(grid.dim, dtype=np.float64)
    return s, f, u0
