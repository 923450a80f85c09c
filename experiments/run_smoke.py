from __future__ import annotations
from pathlib import Path
import logging

from core.grid import Grid
from core.config import BoundaryConfig
from algorithm.grid_refinement import convergence_study
from diagnostics import plot_convergence


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    errors = {}
    h = None
    for order in (2, 4):
        grid = Grid(nr_interior=32, nz_interior=32, dr=0.125, dz=0.125, order=order)
        study = convergence_study(grid, levels=3, boundary=BoundaryConfig(outer="dirichlet"))
        print(f"order {order}: max errors {study['max_error']}, observed orders {study['orders']}")
        errors[order] = study["max_error"]
        h = study["h"]
    plot_convergence(h, errors, path=Path("outputs") / "figs" / "convergence.png")


if __name__ == "__main__":
    main()
