# operators/assemble.py
from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from core.config import BoundaryConfig
from core.errors import AssemblyError
from core.grid import Grid
from operators.csr import BASE, INDEX_DTYPE, CSRMatrix

log = logging.getLogger(__name__)

Weight = Union[float, np.ndarray]
Taps = Dict[Tuple[int, int], Weight]


# ----------------------------------------------------------------------
# 1D finite-difference weights, keyed by offset.
# Second derivatives are in units of 1/h^2, first derivatives of 1/h.
# ----------------------------------------------------------------------

D2_CENTRED = {
    2: {-1: 1.0, 0: -2.0, 1: 1.0},
    4: {-2: -1.0 / 12, -1: 16.0 / 12, 0: -30.0 / 12, 1: 16.0 / 12, 2: -1.0 / 12},
}

D1_CENTRED = {
    2: {-1: -0.5, 1: 0.5},
    4: {-2: 1.0 / 12, -1: -8.0 / 12, 1: 8.0 / 12, 2: -1.0 / 12},
}

# 4th order, shifted one point back: used on the last line before the outer boundary.
D2_SHIFTED = {-4: 1.0 / 12, -3: -6.0 / 12, -2: 14.0 / 12, -1: -4.0 / 12, 0: -15.0 / 12, 1: 10.0 / 12}
D1_SHIFTED = {-3: -1.0 / 12, -2: 6.0 / 12, -1: -18.0 / 12, 0: 10.0 / 12, 1: 3.0 / 12}

# One-sided, on the outer boundary itself.
D1_BACKWARD = {
    2: {-2: 0.5, -1: -2.0, 0: 1.5},
    4: {-4: 3.0 / 12, -3: -16.0 / 12, -2: 36.0 / 12, -1: -48.0 / 12, 0: 25.0 / 12},
}


def second_derivative_weights(order: int, i: int, n_total: int) -> Dict[int, float]:
    if order == 4 and i == n_total - 2:
        return D2_SHIFTED
    return D2_CENTRED[order]


def first_derivative_weights(order: int, i: int, n_total: int) -> Dict[int, float]:
    if i == n_total - 1:
        return D1_BACKWARD[order]
    if order == 4 and i == n_total - 2:
        return D1_SHIFTED
    return D1_CENTRED[order]


@dataclass(frozen=True)
class Segment:
    """
    Consecutive rows j0 <= j < j1 of one r-line that share a tap pattern.

    offsets : sorted (di, dj), i.e. sorted by flattened column
    weights : (len(offsets), j1 - j0)
    """
    j0: int
    j1: int
    offsets: Tuple[Tuple[int, int], ...]
    weights: np.ndarray

    @property
    def nrows(self) -> int:
        return self.j1 - self.j0

    @property
    def width(self) -> int:
        return len(self.offsets)


def _add(taps: Taps, key: Tuple[int, int], w: Weight) -> None:
    taps[key] = taps.get(key, 0.0) + w


def _segment(j0: int, j1: int, taps: Taps) -> Segment:
    n = j1 - j0
    offsets = tuple(sorted(taps))
    weights = np.empty((len(offsets), n), dtype=np.float64)
    for t, key in enumerate(offsets):
        weights[t] = np.broadcast_to(np.asarray(taps[key], dtype=np.float64), (n,))
    return Segment(j0=j0, j1=j1, offsets=offsets, weights=weights)


class StencilBuilder:
    """
    Produces the rows of L[u] = u_rr + u_r / r + u_zz + s u, one r-line at a time.

    Rows are classified as axis ghost (i < ghost), equator ghost (j < ghost),
    outer boundary (last line in r or z) or interior; see core.grid.Grid.point_kinds.
    """

    def __init__(self, grid: Grid, s: Optional[np.ndarray], boundary: BoundaryConfig) -> None:
        self.grid = grid
        self.boundary = boundary
        self.order = int(grid.order)
        self.nr, self.nz = grid.shape
        self.r = grid.r()
        self.z = grid.z()
        if s is None:
            self.s = np.zeros(grid.shape, dtype=np.float64)
        else:
            self.s = grid.as_field(np.asarray(s, dtype=np.float64))

    # -- row kinds --------------------------------------------------------

    def _parity_r(self, i: int) -> Taps:
        g = self.grid.ghost
        return {(0, 0): 1.0, (2 * g - 1 - 2 * i, 0): -float(self.boundary.parity_r)}

    def _parity_z(self, j: int) -> Taps:
        g = self.grid.ghost
        return {(0, 0): 1.0, (0, 2 * g - 1 - 2 * j): -float(self.boundary.parity_z)}

    def _interior(self, i: int, js: np.ndarray) -> Taps:
        dr, dz = float(self.grid.dr), float(self.grid.dz)
        ri = self.r[i]
        taps: Taps = {}
        for di, w in second_derivative_weights(self.order, i, self.nr).items():
            _add(taps, (di, 0), w / (dr * dr))
        for di, w in first_derivative_weights(self.order, i, self.nr).items():
            _add(taps, (di, 0), w / (dr * ri))
        # all rows of a segment share the z pattern, so js[0] picks it
        for dj, w in second_derivative_weights(self.order, int(js[0]), self.nz).items():
            _add(taps, (0, dj), w / (dz * dz))
        _add(taps, (0, 0), self.s[i, js])
        return taps

    def _outer(self, i: int, js: np.ndarray) -> Taps:
        if self.boundary.outer == "dirichlet":
            return {(0, 0): 1.0}
        dr, dz = float(self.grid.dr), float(self.grid.dz)
        taps: Taps = {}
        for di, w in first_derivative_weights(self.order, i, self.nr).items():
            _add(taps, (di, 0), w * self.r[i] / dr)
        for dj, w in first_derivative_weights(self.order, int(js[0]), self.nz).items():
            _add(taps, (0, dj), w * self.z[js] / dz)
        _add(taps, (0, 0), 1.0)
        return taps

    # -- one r-line --------------------------------------------------------

    def _split_interior_j(self) -> List[Tuple[int, int]]:
        """j-ranges of rows that share a z pattern, between the equator ghosts and the boundary."""
        g, nz = self.grid.ghost, self.nz
        if self.order == 4:
            return [(g, nz - 2), (nz - 2, nz - 1)]
        return [(g, nz - 1)]

    def line(self, i: int) -> List[Segment]:
        g, nz = self.grid.ghost, self.nz
        if i < g:
            return [_segment(0, nz, self._parity_r(i))]

        segments = [_segment(j, j + 1, self._parity_z(j)) for j in range(g)]
        body = self._outer if i == self.nr - 1 else self._interior
        for j0, j1 in self._split_interior_j():
            if j1 > j0:
                segments.append(_segment(j0, j1, body(i, np.arange(j0, j1))))
        segments.append(_segment(nz - 1, nz, self._outer(i, np.array([nz - 1]))))
        return segments

    def check(self, i: int, seg: Segment) -> None:
        for di, dj in seg.offsets:
            ii = i + di
            if not (0 <= ii < self.nr and seg.j0 + dj >= 0 and seg.j1 - 1 + dj < self.nz):
                raise AssemblyError(
                    f"stencil at (i={i}, j={seg.j0}..{seg.j1 - 1}) reaches offset ({di}, {dj}) "
                    f"outside the {self.nr} x {self.nz} grid (ghost={self.grid.ghost}, order={self.order})"
                )


def _default_workers() -> int:
    return max(1, min(4, os.cpu_count() or 1))


def _line_chunks(nr: int, workers: int) -> List[range]:
    bounds = np.linspace(0, nr, workers + 1).astype(int)
    return [range(lo, hi) for lo, hi in zip(bounds[:-1], bounds[1:]) if hi > lo]


def assemble_operator(
    grid: Grid,
    s: Optional[np.ndarray] = None,
    boundary: BoundaryConfig = BoundaryConfig(),
    workers: Optional[int] = None,
) -> CSRMatrix:
    """
    Assemble the axisymmetric operator
        L[u] = u_rr + u_r / r + u_zz + s(r, z) u
    on a ghosted grid into 1-based CSR storage.

    Boundary closure
    ----------------
    - axis ghosts     u[i, j] = parity_r * u[2g-1-i, j]
    - equator ghosts  u[i, j] = parity_z * u[i, 2g-1-j]
    - outer boundary  Robin  r u_r + z u_z + u = g,  or Dirichlet  u = g

    Parameters
    ----------
    grid : Grid
        sizes, spacings and finite-difference order (2 or 4)
    s : ndarray (dim,), optional
        linear term; zero if omitted
    boundary : BoundaryConfig
        outer boundary kind and parities
    workers : int, optional
        fill threads; each owns a contiguous block of r-lines

    Returns
    -------
    A : CSRMatrix (dim, dim)
    """
    workers = _default_workers() if workers is None else int(workers)
    if workers < 1:
        raise ValueError("workers must be >= 1")

    builder = StencilBuilder(grid, s, boundary)
    nr, nz = grid.shape
    dim = grid.dim

    # Counting pass: every row's width is fixed by its segment.
    row_nnz = np.zeros(dim, dtype=np.int64)
    for i in range(nr):
        for seg in builder.line(i):
            builder.check(i, seg)
            row_nnz[i * nz + seg.j0: i * nz + seg.j1] = seg.width

    nnz = int(row_nnz.sum())
    if nnz >= np.iinfo(INDEX_DTYPE).max:
        raise AssemblyError(f"nnz = {nnz} does not fit the CSR index type")

    A = CSRMatrix.allocate(dim, dim, nnz)
    A.ia[0] = BASE
    np.cumsum(row_nnz, out=row_nnz)
    A.ia[1:] = row_nnz + BASE
    log.debug("CSR layout: dim=%d nnz=%d workers=%d", dim, nnz, workers)

    def fill(lines: range) -> None:
        for i in lines:
            for seg in builder.line(i):
                k0 = i * nz + seg.j0
                start = int(A.ia[k0]) - BASE
                stop = start + seg.nrows * seg.width
                js = np.arange(seg.j0, seg.j1)
                cols = np.empty((seg.width, seg.nrows), dtype=np.int64)
                for t, (di, dj) in enumerate(seg.offsets):
                    cols[t] = (i + di) * nz + js + dj
                A.a[start:stop] = seg.weights.T.reshape(-1)
                A.ja[start:stop] = cols.T.reshape(-1) + BASE

    chunks = _line_chunks(nr, workers)
    if len(chunks) == 1:
        fill(chunks[0])
    else:
        with ThreadPoolExecutor(max_workers=len(chunks)) as pool:
            # list() surfaces worker exceptions here
            list(pool.map(fill, chunks))

    log.info(
        "Assembled order-%d operator: %d x %d grid, dim=%d, nnz=%d",
        grid.order, nr, nz, dim, nnz,
    )
    return A
