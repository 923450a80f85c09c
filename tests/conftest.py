"""Pytest configuration and shared fixtures."""

import matplotlib

matplotlib.use("Agg")

import pytest

from core.grid import Grid
from core.sources import assemble_rhs, brill_problem
from operators.assemble import assemble_operator


@pytest.fixture
def example_grid():
    """The 32 x 32 grid with dr = dz = 1/16 used throughout the benchmark examples."""
    return Grid(nr_interior=32, nz_interior=32, dr=0.0625, dz=0.0625, order=2)


@pytest.fixture
def brill_system(example_grid):
    """Assembled Brill-wave operator and right-hand side on the example grid."""
    s, f, _ = brill_problem(example_grid)
    A = assemble_operator(example_grid, s, workers=2)
    b = assemble_rhs(example_grid, f)
    return A, b
