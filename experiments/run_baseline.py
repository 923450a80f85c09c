from __future__ import annotations
from pathlib import Path
import logging
import numpy as np

from core.config import RunConfig, validate_parameters
from core.sources import assemble_rhs, brill_problem
from operators.assemble import assemble_operator
from algorithm.benchmark import run_benchmark, format_report
from diagnostics import save_npz, plot_field


def run_case(run: RunConfig, outdir: Path) -> dict[str, float]:
    outdir.mkdir(parents=True, exist_ok=True)

    grid = validate_parameters(run)
    s, f, _ = brill_problem(grid, run.amplitude)
    A = assemble_operator(grid, s, run.boundary, workers=run.workers)
    b = assemble_rhs(grid, f, run.boundary)

    records = run_benchmark(A, b)
    print(format_report(records))

    metrics = {rec.config.label: float(rec.elapsed) for rec in records}
    last = records[-1].result
    if last is not None:
        save_npz(outdir / "fields" / "solution_and_residual.npz",
                 u=last.u, res=last.residual, s=s, b=b)
        plot_field(grid, last.u, title="u", path=outdir / "figs" / "u.png")
        plot_field(grid, last.residual, title="residual", path=outdir / "figs" / "residual.png", log_abs=True)

    save_npz(outdir / "metrics.npz", **{k: np.array(v) for k, v in metrics.items()})
    return metrics


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    base_out = Path("outputs")

    for order in (2, 4):
        for n in (64, 128, 256):
            run = RunConfig(order=order, nr_interior=n, nz_interior=n, dr=8.0 / n, dz=8.0 / n)
            outdir = base_out / f"order_{order}" / f"n_{n}"
            metrics = run_case(run, outdir)
            print(order, n, metrics)


if __name__ == "__main__":
    main()
