import numpy as np
import pytest

from core.config import RunConfig
from driver import main, parse_run, prepare_directory, run

ARGS = ["2", "32", "32", "0.0625", "0.0625"]
OUTPUTS = ("r.asc", "z.asc", "s.asc", "f.asc", "u.asc", "res.asc")


def _no(_prompt):
    return "n"


def test_full_run_writes_all_grid_functions(tmp_path):
    outdir = tmp_path / "run"
    assert main([str(outdir), *ARGS, "--yes", "--workers", "2"]) == 0

    for name in OUTPUTS:
        assert (outdir / name).exists()
    u = np.loadtxt(outdir / "u.asc")
    assert u.size == 35 * 35
    assert np.all(np.isfinite(u))


def test_plots_on_request(tmp_path):
    outdir = tmp_path / "run"
    assert main([str(outdir), *ARGS, "--yes", "--plot", "--refinement-steps", "0"]) == 0
    assert (outdir / "u.png").exists()
    assert (outdir / "res.png").exists()


@pytest.mark.parametrize(
    "params",
    [
        ["2", "16", "32", "0.0625", "0.0625"],
        ["3", "32", "32", "0.0625", "0.0625"],
        ["2", "32", "32", "2.0", "0.0625"],
        ["2", "thirty", "32", "0.0625", "0.0625"],
    ],
)
def test_invalid_parameters_exit_with_status_1(tmp_path, params):
    outdir = tmp_path / "run"
    assert main([str(outdir), *params, "--yes"]) == 1
    assert not outdir.exists()


def test_negative_refinement_steps_are_rejected(tmp_path):
    assert main([str(tmp_path / "run"), *ARGS, "--yes", "--refinement-steps", "-1"]) == 1


def test_wrong_argument_count_can_be_declined():
    assert main(["only", "two"], input_fn=_no) == 1


def test_wrong_argument_count_falls_back_to_defaults():
    run = parse_run(["x"], assume_yes=True, workers=3, amplitude=0.5)
    assert (run.order, run.nr_interior, run.nz_interior) == (2, 256, 64)
    assert run.workers == 3
    assert run.amplitude == 0.5


def test_existing_directory_needs_confirmation(tmp_path):
    assert prepare_directory(str(tmp_path), input_fn=_no) is None
    assert prepare_directory(str(tmp_path), input_fn=lambda _p: "yes") == tmp_path
    assert main([str(tmp_path), *ARGS], input_fn=_no) == 1


def test_without_refinement_steps_only_direct_configurations_run(tmp_path):
    run_cfg = RunConfig(nr_interior=32, nz_interior=32, dr=0.0625, dz=0.0625, workers=1)
    records = run(run_cfg, tmp_path, refinement_steps=0)
    labels = [rec.config.label for rec in records]
    assert labels == ["Normal solver", "Permutation calculation", "Solver with permutation"]
    assert all(rec.config.refinement_steps == 0 for rec in records)

    records = run(run_cfg, tmp_path, refinement_steps=3)
    assert len(records) == 5
    assert [rec.config.refinement_steps for rec in records] == [0, 0, 0, 3, 3]
