# core/grid.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import ConfigurationError


GHOST_BY_ORDER = {2: 2, 4: 3}

# point classes, see Grid.point_kinds
INTERIOR, AXIS, EQUATOR, OUTER = 0, 1, 2, 3


def ghost_for_order(order: int) -> int:
    """
    Ghost layers on the axis/equator side for a finite-difference order.
    """
    try:
        return GHOST_BY_ORDER[int(order)]
    except KeyError:
        raise ConfigurationError(
            "norder", f"finite difference order {order} is not supported, only 2 or 4"
        ) from None


@dataclass(frozen=True)
class GridIndex:
    """
    Row-major affine map between (i, j) and the flattened index k = i * nz + j.
    """
    nr: int
    nz: int

    @property
    def size(self) -> int:
        return self.nr * self.nz

    def contains(self, i: int, j: int) -> bool:
        return 0 <= i < self.nr and 0 <= j < self.nz

    def flat(self, i: int, j: int) -> int:
        if not self.contains(i, j):
            raise IndexError(f"(i, j) = ({i}, {j}) outside [0, {self.nr}) x [0, {self.nz})")
        return i * self.nz + j

    def unflat(self, k: int) -> Tuple[int, int]:
        if not 0 <= k < self.size:
            raise IndexError(f"k = {k} outside [0, {self.size})")
        return divmod(int(k), self.nz)

    def flat_array(self, i: np.ndarray, j: np.ndarray) -> np.ndarray:
        """Vectorised flat(); callers are responsible for bounds."""
        return np.asarray(i, dtype=np.int64) * self.nz + np.asarray(j, dtype=np.int64)


@dataclass(frozen=True)
class Grid:
    """
    Uniform cell-centred (r, z) grid with ghost zones.

    Point (i, j) sits at
        r_i = (i - ghost + 0.5) * dr,   z_j = (j - ghost + 0.5) * dz
    so the first `ghost` lines in each direction lie behind the axis (r < 0)
    or the equator (z < 0), and the last line is the outer boundary.
    """
    nr_interior: int
    nz_interior: int
    dr: float
    dz: float
    order: int = 2

    def __post_init__(self) -> None:
        ghost_for_order(self.order)
        if int(self.nr_interior) < 1 or int(self.nz_interior) < 1:
            raise ConfigurationError("NrInterior/NzInterior", "need at least one interior point")
        if float(self.dr) <= 0.0 or float(self.dz) <= 0.0:
            raise ConfigurationError("dr/dz", "spatial steps must be positive")

    @property
    def ghost(self) -> int:
        return ghost_for_order(self.order)

    @property
    def nr_total(self) -> int:
        return self.ghost + int(self.nr_interior) + 1

    @property
    def nz_total(self) -> int:
        return self.ghost + int(self.nz_interior) + 1

    @property
    def dim(self) -> int:
        return self.nr_total * self.nz_total

    @property
    def shape(self) -> Tuple[int, int]:
        return self.nr_total, self.nz_total

    @property
    def index(self) -> GridIndex:
        return GridIndex(self.nr_total, self.nz_total)

    def r(self) -> np.ndarray:
        return (np.arange(self.nr_total) - self.ghost + 0.5) * float(self.dr)

    def z(self) -> np.ndarray:
        return (np.arange(self.nz_total) - self.ghost + 0.5) * float(self.dz)

    def mesh(self) -> Tuple[np.ndarray, np.ndarray]:
        return np.meshgrid(self.r(), self.z(), indexing="ij")

    def coordinates(self) -> Tuple[np.ndarray, np.ndarray]:
        """Flattened r and z grid functions of length dim."""
        R, Z = self.mesh()
        return R.reshape(-1), Z.reshape(-1)

    def zeros(self) -> np.ndarray:
        return np.zeros(self.dim, dtype=np.float64)

    def interior_slices(self) -> Tuple[slice, slice]:
        """Physical points, i.e. everything except ghosts and the outer boundary."""
        return slice(self.ghost, self.nr_total - 1), slice(self.ghost, self.nz_total - 1)

    def point_kinds(self) -> np.ndarray:
        """
        Classify every point as INTERIOR, AXIS, EQUATOR or OUTER, shape (nr_total, nz_total).

        Axis ghosts take precedence over equator ghosts, and both over the outer boundary.
        """
        g = self.ghost
        kinds = np.full(self.shape, INTERIOR, dtype=np.int8)
        kinds[-1, :] = OUTER
        kinds[:, -1] = OUTER
        kinds[:, :g] = EQUATOR
        kinds[:g, :] = AXIS
        return kinds

    def as_field(self, u: np.ndarray) -> np.ndarray:
        """Reshape a grid function (dim,) to (nr_total, nz_total)."""
        u = np.asarray(u)
        if u.size != self.dim:
            raise ValueError(f"grid function has size {u.size}, expected {self.dim}")
        return u.reshape(self.shape)
