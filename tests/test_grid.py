import numpy as np
import pytest

from core.config import BoundaryConfig, GridLimits, RunConfig, validate_parameters
from core.errors import ConfigurationError
from core.grid import AXIS, EQUATOR, INTERIOR, OUTER, Grid, GridIndex


@pytest.mark.parametrize("order, ghost", [(2, 2), (4, 3)])
def test_totals_follow_ghost_width(order, ghost):
    grid = Grid(nr_interior=40, nz_interior=33, dr=0.1, dz=0.2, order=order)
    assert grid.ghost == ghost
    assert grid.nr_total == ghost + 40 + 1
    assert grid.nz_total == ghost + 33 + 1
    assert grid.dim == grid.nr_total * grid.nz_total


def test_example_dimensions(example_grid):
    assert (example_grid.nr_total, example_grid.nz_total) == (35, 35)
    assert example_grid.dim == 1225


def test_cell_centred_coordinates():
    grid = Grid(nr_interior=32, nz_interior=32, dr=0.125, dz=0.25, order=4)
    r, z = grid.r(), grid.z()
    g = grid.ghost
    assert r[g] == pytest.approx(0.0625)
    assert z[g] == pytest.approx(0.125)
    # ghost points mirror the first physical points across the axis
    np.testing.assert_allclose(r[:g][::-1], -r[g:2 * g])
    assert r[-1] == pytest.approx((32 + 0.5) * 0.125)

    R, Z = grid.coordinates()
    k = grid.index.flat(5, 7)
    assert R[k] == pytest.approx(r[5])
    assert Z[k] == pytest.approx(z[7])


def test_grid_index_roundtrip_and_bounds():
    index = GridIndex(nr=4, nz=7)
    assert index.flat(2, 3) == 2 * 7 + 3
    assert index.unflat(17) == (2, 3)
    with pytest.raises(IndexError):
        index.flat(4, 0)
    with pytest.raises(IndexError):
        index.flat(0, -1)
    with pytest.raises(IndexError):
        index.unflat(28)


def test_point_kinds():
    grid = Grid(nr_interior=32, nz_interior=32, dr=0.1, dz=0.1, order=2)
    kinds = grid.point_kinds()
    g = grid.ghost
    assert np.all(kinds[:g, :] == AXIS)
    assert np.all(kinds[g:, :g] == EQUATOR)
    assert np.all(kinds[g:, -1] == OUTER)
    assert np.all(kinds[-1, g:] == OUTER)
    assert np.count_nonzero(kinds == INTERIOR) == 32 * 32


def test_grid_rejects_bad_order():
    with pytest.raises(ConfigurationError) as info:
        Grid(nr_interior=32, nz_interior=32, dr=0.1, dz=0.1, order=3)
    assert info.value.parameter == "norder"


@pytest.mark.parametrize(
    "changes, parameter",
    [
        ({"order": 6}, "norder"),
        ({"nr_interior": 16}, "NrInterior"),
        ({"nz_interior": 4096}, "NzInterior"),
        ({"dr": 2.0}, "dr"),
        ({"dz": 1e-4}, "dz"),
    ],
)
def test_validate_parameters_names_the_offender(changes, parameter):
    run = RunConfig(**changes)
    with pytest.raises(ConfigurationError) as info:
        validate_parameters(run)
    assert info.value.parameter == parameter
    assert isinstance(info.value, ValueError)


def test_validate_parameters_accepts_defaults_and_limits():
    grid = validate_parameters(RunConfig())
    assert (grid.nr_interior, grid.nz_interior) == (256, 64)

    limits = GridLimits()
    for n in (limits.nr_min, limits.nr_max):
        validate_parameters(RunConfig(nr_interior=n, nz_interior=n))


def test_boundary_config_validation():
    with pytest.raises(ConfigurationError):
        BoundaryConfig(outer="neumann")
    with pytest.raises(ConfigurationError):
        BoundaryConfig(parity_r=0)
