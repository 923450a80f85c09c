import numpy as np
import pytest

from core.config import BoundaryConfig
from core.errors import AssemblyError
from core.grid import INTERIOR, Grid
from core.sources import assemble_rhs, brill_source
from operators.assemble import assemble_operator


def _interior_row_widths(grid, A):
    kinds = grid.point_kinds()
    widths = np.diff(A.ia).reshape(grid.shape)
    return kinds, widths


@pytest.mark.parametrize("order", [2, 4])
@pytest.mark.parametrize("outer", ["robin", "dirichlet"])
def test_csr_invariants(order, outer):
    grid = Grid(nr_interior=32, nz_interior=40, dr=0.125, dz=0.1, order=order)
    r, z = grid.coordinates()
    A = assemble_operator(grid, brill_source(r, z), BoundaryConfig(outer=outer))

    assert A.shape == (grid.dim, grid.dim)
    assert A.ia[0] == 1
    assert A.ia[-1] - A.ia[0] == A.nnz
    assert np.all(np.diff(A.ia) >= 0)
    A.validate()


@pytest.mark.parametrize("order", [2, 4])
def test_assembly_is_deterministic_across_runs_and_workers(order):
    grid = Grid(nr_interior=33, nz_interior=32, dr=0.1, dz=0.1, order=order)
    r, z = grid.coordinates()
    s = brill_source(r, z)
    A1 = assemble_operator(grid, s, workers=1)
    A2 = assemble_operator(grid, s, workers=1)
    A3 = assemble_operator(grid, s, workers=3)
    for other in (A2, A3):
        assert np.array_equal(A1.a, other.a)
        assert np.array_equal(A1.ia, other.ia)
        assert np.array_equal(A1.ja, other.ja)


def test_order2_interior_rows_are_five_point():
    grid = Grid(nr_interior=32, nz_interior=32, dr=0.1, dz=0.1, order=2)
    A = assemble_operator(grid)
    kinds, widths = _interior_row_widths(grid, A)
    assert np.all(widths[kinds == INTERIOR] == 5)


def test_order4_interior_rows_are_nine_point_away_from_the_boundary():
    grid = Grid(nr_interior=32, nz_interior=32, dr=0.1, dz=0.1, order=4)
    A = assemble_operator(grid)
    kinds, widths = _interior_row_widths(grid, A)
    g = grid.ghost
    assert np.all(widths[g:-2, g:-2] == 9)
    # last line before the outer boundary: shifted 6-point stencil in one direction
    assert np.all(widths[-2, g:-2] == 10)
    assert np.all(widths[g:-2, -2] == 10)
    assert widths[-2, -2] == 11
    assert np.all(widths[kinds == INTERIOR] >= 9)


def test_parity_rows_point_at_their_mirror():
    grid = Grid(nr_interior=32, nz_interior=32, dr=0.1, dz=0.1, order=4)
    A = assemble_operator(grid, boundary=BoundaryConfig(parity_r=-1, parity_z=1))
    index = grid.index
    g = grid.ghost

    cols, vals = A.row(index.flat(0, 10))
    np.testing.assert_array_equal(cols, [index.flat(0, 10), index.flat(2 * g - 1, 10)])
    np.testing.assert_array_equal(vals, [1.0, 1.0])

    cols, vals = A.row(index.flat(10, 1))
    np.testing.assert_array_equal(cols, [index.flat(10, 1), index.flat(10, 2 * g - 2)])
    np.testing.assert_array_equal(vals, [1.0, -1.0])


@pytest.mark.parametrize("order", [2, 4])
def test_quadratic_is_reproduced_exactly(order):
    # u = r^2 + z^2:  u_rr + u_r / r + u_zz = 6,  r u_r + z u_z + u = 3 u
    grid = Grid(nr_interior=32, nz_interior=32, dr=0.125, dz=0.1, order=order)
    r, z = grid.coordinates()
    u = r * r + z * z
    s = brill_source(r, z)

    A = assemble_operator(grid, s)
    b = assemble_rhs(grid, 6.0 + s * u, g=3.0 * u)
    np.testing.assert_allclose(A.matvec(u), b, rtol=0.0, atol=1e-8)


def test_dirichlet_rows_are_identity():
    grid = Grid(nr_interior=32, nz_interior=32, dr=0.1, dz=0.1, order=2)
    A = assemble_operator(grid, boundary=BoundaryConfig(outer="dirichlet"))
    k = grid.index.flat(grid.nr_total - 1, 10)
    cols, vals = A.row(k)
    np.testing.assert_array_equal(cols, [k])
    np.testing.assert_array_equal(vals, [1.0])


def test_stencil_leaving_the_grid_is_an_assembly_error():
    # one interior point cannot hold the shifted 4th-order stencil
    grid = Grid(nr_interior=1, nz_interior=32, dr=0.1, dz=0.1, order=4)
    with pytest.raises(AssemblyError, match="outside"):
        assemble_operator(grid)


def test_linear_term_shape_is_checked():
    grid = Grid(nr_interior=32, nz_interior=32, dr=0.1, dz=0.1, order=2)
    with pytest.raises(ValueError):
        assemble_operator(grid, s=np.zeros(10))


@pytest.mark.parametrize("order", [2, 4])
@pytest.mark.parametrize("nr, nz", [(32, 32), (2048, 32), (32, 2048)])
def test_extreme_grid_sizes_assemble(order, nr, nz):
    grid = Grid(nr_interior=nr, nz_interior=nz, dr=1.0 / 32, dz=1.0 / 32, order=order)
    A = assemble_operator(grid)
    A.validate()


@pytest.mark.slow
def test_largest_grid_assembles():
    """Full-size grid; deselected by default, run with `pytest -m slow`."""
    grid = Grid(nr_interior=2048, nz_interior=2048, dr=0.000976562, dz=0.000976562, order=2)
    A = assemble_operator(grid)
    A.validate()
