"""
Command-line benchmark driver.

    ellsolve dirname norder NrInterior NzInterior dr dz

Assembles the Brill-wave operator, solves it with every benchmark
configuration and writes r, z, s, f, u and res as ASCII grid functions.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from core.config import DEFAULT_RUN, RunConfig, validate_parameters
from core.errors import ConfigurationError
from core.sources import assemble_rhs, brill_problem
from operators.assemble import assemble_operator
from operators.solve import SolveConfig, SolverOptions
from algorithm.benchmark import (
    DEFAULT_CONFIGS,
    BenchmarkRecord,
    best_result,
    format_report,
    run_benchmark,
)
from diagnostics import plot_field, residual_norms, write_single_file

log = logging.getLogger("ellsolve")

InputFn = Callable[[str], str]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ellsolve",
        description="Axisymmetric elliptic solver benchmark (Brill-wave initial data).",
        epilog=(
            "positional arguments: dirname norder NrInterior NzInterior dr dz\n"
            "  dirname     output directory\n"
            "  norder      finite difference order, 2 or 4\n"
            "  NrInterior  interior points in r\n"
            "  NzInterior  interior points in z\n"
            "  dr, dz      spatial steps"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("params", nargs="*", metavar="ARG", help=argparse.SUPPRESS)
    parser.add_argument("-y", "--yes", action="store_true", help="answer yes to every prompt")
    parser.add_argument("--plot", action="store_true", help="also write u.png and res.png")
    parser.add_argument("--workers", type=int, default=None, help="assembly threads")
    parser.add_argument("--amplitude", type=float, default=1.0, help="Brill wave amplitude")
    parser.add_argument("--refinement-steps", type=int, default=6, help="CGS steps for refined configurations")
    parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")
    return parser


def _confirm(question: str, assume_yes: bool, input_fn: InputFn) -> bool:
    if assume_yes:
        return True
    answer = input_fn(f"{question} (y/n): ").strip()
    return answer[:1] in ("y", "Y")


def _parse_number(name: str, text: str, kind: type) -> float:
    try:
        return kind(text)
    except ValueError:
        raise ConfigurationError(name, f"'{text}' is not a valid {kind.__name__}") from None


def parse_run(
    params: Sequence[str],
    *,
    assume_yes: bool = False,
    input_fn: InputFn = input,
    workers: Optional[int] = None,
    amplitude: float = 1.0,
) -> Optional[RunConfig]:
    """
    Turn the six positional arguments into a RunConfig.

    With the wrong number of arguments the user may fall back to the defaults;
    returns None if they decline.
    """
    if len(params) != 6:
        log.warning("Usage is: ellsolve dirname norder NrInterior NzInterior dr dz")
        if not _confirm("Proceed with default arguments?", assume_yes, input_fn):
            log.info("User chose to abort.")
            return None
        log.info("User chose to proceed with default arguments.")
        return RunConfig(
            dirname=DEFAULT_RUN.dirname,
            order=DEFAULT_RUN.order,
            nr_interior=DEFAULT_RUN.nr_interior,
            nz_interior=DEFAULT_RUN.nz_interior,
            dr=DEFAULT_RUN.dr,
            dz=DEFAULT_RUN.dz,
            amplitude=amplitude,
            workers=workers,
        )

    dirname, norder, nr, nz, dr, dz = params
    return RunConfig(
        dirname=dirname,
        order=int(_parse_number("norder", norder, int)),
        nr_interior=int(_parse_number("NrInterior", nr, int)),
        nz_interior=int(_parse_number("NzInterior", nz, int)),
        dr=float(_parse_number("dr", dr, float)),
        dz=float(_parse_number("dz", dz, float)),
        amplitude=amplitude,
        workers=workers,
    )


def prepare_directory(dirname: str, *, assume_yes: bool = False, input_fn: InputFn = input) -> Optional[Path]:
    path = Path(dirname)
    if path.exists():
        log.warning("Directory %s already exists.", path)
        if not _confirm("Proceed and possibly overwrite files?", assume_yes, input_fn):
            log.info("User chose to abort.")
            return None
    path.mkdir(parents=True, exist_ok=True)
    return path


def run(run_cfg: RunConfig, outdir: Path, *, plot: bool = False, refinement_steps: int = 6) -> List[BenchmarkRecord]:
    grid = validate_parameters(run_cfg)
    log.info(
        "System parameters: NrInt=%d NzInt=%d ghost=%d dr=%.8E dz=%.8E order=%d",
        grid.nr_interior, grid.nz_interior, grid.ghost, grid.dr, grid.dz, grid.order,
    )

    r, z = grid.coordinates()
    s, f, u = brill_problem(grid, run_cfg.amplitude)
    write_single_file(r, outdir / "r.asc", grid.nr_total, grid.nz_total)
    write_single_file(z, outdir / "z.asc", grid.nr_total, grid.nz_total)
    write_single_file(s, outdir / "s.asc", grid.nr_total, grid.nz_total)
    write_single_file(f, outdir / "f.asc", grid.nr_total, grid.nz_total)

    A = assemble_operator(grid, s, run_cfg.boundary, workers=run_cfg.workers)
    b = assemble_rhs(grid, f, run_cfg.boundary)

    # with no refinement steps the refined configurations would repeat the direct ones
    configs = [
        SolveConfig(c.permutation, refinement_steps, c.name) if c.refinement_steps else c
        for c in DEFAULT_CONFIGS
        if refinement_steps > 0 or not c.refinement_steps
    ]
    records = run_benchmark(A, b, configs, SolverOptions())
    for line in format_report(records).splitlines():
        log.info(line)

    best = best_result(records)
    if best is not None:
        u, res = best.u, best.residual
        log.info("Residual norms: %s", residual_norms(res, b, u))
    else:
        res = grid.zeros()
        log.error("No configuration produced a solution.")

    write_single_file(u, outdir / "u.asc", grid.nr_total, grid.nz_total)
    write_single_file(res, outdir / "res.asc", grid.nr_total, grid.nz_total)
    if plot:
        plot_field(grid, u, title="u", path=outdir / "u.png")
        plot_field(grid, res, title="res", path=outdir / "res.png", log_abs=True)

    A.deallocate()
    return records


def main(argv: Optional[Sequence[str]] = None, input_fn: InputFn = input) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    try:
        run_cfg = parse_run(
            args.params,
            assume_yes=args.yes,
            input_fn=input_fn,
            workers=args.workers,
            amplitude=args.amplitude,
        )
        if run_cfg is None:
            return 1
        validate_parameters(run_cfg)
        if args.refinement_steps < 0:
            raise ConfigurationError("refinement-steps", "must be >= 0")
    except ConfigurationError as exc:
        log.error("ERROR! %s", exc)
        return 1

    outdir = prepare_directory(run_cfg.dirname, assume_yes=args.yes, input_fn=input_fn)
    if outdir is None:
        return 1

    records = run(run_cfg, outdir, plot=args.plot, refinement_steps=args.refinement_steps)
    return 0 if any(rec.ok for rec in records) else 2


if __name__ == "__main__":
    sys.exit(main())
