import numpy as np
import pytest

from algorithm.grid_refinement import (
    convergence_study,
    l2_norm,
    observed_orders,
    refine_grid,
    solve_manufactured,
)
from core.config import BoundaryConfig
from core.grid import Grid


def _coarse(order):
    return Grid(nr_interior=32, nz_interior=32, dr=0.125, dz=0.125, order=order)


def test_refine_grid_keeps_order_and_scales_spacing():
    fine = refine_grid(_coarse(4), 2)
    assert (fine.nr_interior, fine.nz_interior) == (64, 64)
    assert fine.dr == pytest.approx(0.0625)
    assert fine.order == 4
    with pytest.raises(ValueError):
        refine_grid(_coarse(2), 1)


def test_observed_orders_of_a_clean_sequence():
    orders = observed_orders([1.0, 0.25, 0.0625], r=2)
    np.testing.assert_allclose(orders, [2.0, 2.0])


def test_l2_norm_of_a_constant():
    grid = _coarse(2)
    u = np.ones(grid.dim)
    expected = np.sqrt(grid.nr_interior * grid.nz_interior * grid.dr * grid.dz)
    assert l2_norm(u, grid) == pytest.approx(expected)


def test_manufactured_solution_is_recovered():
    run = solve_manufactured(_coarse(2))
    assert run["max_error"] < 1e-2
    assert run["residual_max"] < 1e-8
    assert run["l2_error"] > 0.0


@pytest.mark.parametrize(
    "order, outer, expected",
    [
        (2, "dirichlet", 1.8),
        (2, "robin", 1.8),
        (4, "dirichlet", 3.3),
        (4, "robin", 3.0),
    ],
)
def test_observed_order_matches_the_stencil(order, outer, expected):
    study = convergence_study(_coarse(order), levels=2, boundary=BoundaryConfig(outer=outer))
    assert study["max_error"][1] < study["max_error"][0]
    assert study["orders"][0] > expected


def test_convergence_study_needs_two_levels():
    with pytest.raises(ValueError):
        convergence_study(_coarse(2), levels=1)
