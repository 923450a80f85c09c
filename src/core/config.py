
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError
from .grid import Grid, GHOST_BY_ORDER


@dataclass(frozen=True)
class GridLimits:
    """Valid parameter ranges accepted by the driver."""
    nr_min: int = 32
    nr_max: int = 2048
    nz_min: int = 32
    nz_max: int = 2048
    dr_min: float = 0.000976562
    dr_max: float = 1.0
    dz_min: float = 0.000976562
    dz_max: float = 1.0


@dataclass(frozen=True)
class BoundaryConfig:
    """
    Closure of the ghosted grid.

    outer:
        "robin"      r u_r + z u_z + u = g   (monopole fall-off towards u_inf)
        "dirichlet"  u = g
    parity_r, parity_z:
        +1 for even, -1 for odd symmetry across the axis / equator.
    """
    outer: str = "robin"
    u_inf: float = 1.0
    parity_r: int = 1
    parity_z: int = 1

    def __post_init__(self) -> None:
        if self.outer not in ("robin", "dirichlet"):
            raise ConfigurationError("outer", f"unknown boundary kind '{self.outer}'")
        if self.parity_r not in (-1, 1) or self.parity_z not in (-1, 1):
            raise ConfigurationError("parity", "parity must be +1 or -1")


@dataclass(frozen=True)
class RunConfig:
    dirname: str = "output"
    order: int = 2
    nr_interior: int = 256
    nz_interior: int = 64
    dr: float = 0.03125
    dz: float = 0.125
    amplitude: float = 1.0
    boundary: BoundaryConfig = BoundaryConfig()
    workers: Optional[int] = None

    def grid(self) -> Grid:
        return Grid(
            nr_interior=int(self.nr_interior),
            nz_interior=int(self.nz_interior),
            dr=float(self.dr),
            dz=float(self.dz),
            order=int(self.order),
        )


DEFAULT_RUN = RunConfig()


def validate_parameters(run: RunConfig, limits: GridLimits = GridLimits()) -> Grid:
    """
    Check a run configuration against the valid ranges and build its grid.

    Raises ConfigurationError naming the first offending parameter.
    """
    if run.order not in GHOST_BY_ORDER:
        raise ConfigurationError(
            "norder", f"finite difference order {run.order} is not supported, only 2 or 4"
        )
    if not limits.nr_min <= run.nr_interior <= limits.nr_max:
        raise ConfigurationError(
            "NrInterior", f"{run.nr_interior} is out of range [{limits.nr_min}, {limits.nr_max}]"
        )
    if not limits.nz_min <= run.nz_interior <= limits.nz_max:
        raise ConfigurationError(
            "NzInterior", f"{run.nz_interior} is out of range [{limits.nz_min}, {limits.nz_max}]"
        )
    if not limits.dr_min <= run.dr <= limits.dr_max:
        raise ConfigurationError(
            "dr", f"{run.dr:.3E} is out of range [{limits.dr_min:.3E}, {limits.dr_max:.3E}]"
        )
    if not limits.dz_min <= run.dz <= limits.dz_max:
        raise ConfigurationError(
            "dz", f"{run.dz:.3E} is out of range [{limits.dz_min:.3E}, {limits.dz_max:.3E}]"
        )
    if run.workers is not None and int(run.workers) < 1:
        raise ConfigurationError("workers", "need at least one worker thread")
    return run.grid()
