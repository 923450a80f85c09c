# diagnostics.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
import matplotlib.pyplot as plt

from core.grid import Grid


PathLike = Union[str, Path]


# -----------------------------
# ASCII grid functions
# -----------------------------

def write_single_file(u: np.ndarray, fname: PathLike, nr_total: int, nz_total: int) -> Path:
    """
    Write a grid function as plain text, one value per line, in row-major (i, j) order.
    """
    u = np.asarray(u, dtype=np.float64).reshape(-1)
    if u.size != int(nr_total) * int(nz_total):
        raise ValueError(f"u has size {u.size}, expected {nr_total}*{nz_total}")
    path = Path(fname)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(path, u, fmt="%.16E")
    return path


def read_single_file(fname: PathLike, nr_total: int, nz_total: int) -> np.ndarray:
    """Inverse of write_single_file; returns a (nr_total * nz_total,) vector."""
    u = np.loadtxt(Path(fname), dtype=np.float64, ndmin=1)
    if u.size != int(nr_total) * int(nz_total):
        raise ValueError(f"{fname} holds {u.size} values, expected {nr_total}*{nz_total}")
    return u


def save_npz(path: Path, **arrays: np.ndarray) -> None:
    """Save compressed .npz (creates parent dirs)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(path, **arrays)


# -----------------------------
# Norms
# -----------------------------

def residual_norms(res: np.ndarray, b: np.ndarray, u: np.ndarray) -> Dict[str, float]:
    """
    Common residual diagnostics for res = A u - b.
    """
    bn = float(np.linalg.norm(b))
    rn = float(np.linalg.norm(res))
    return {
        "||r||2": rn,
        "||b||2": bn,
        "||r||2/||b||2": rn / bn if bn > 0 else np.nan,
        "||u||2": float(np.linalg.norm(u)),
        "||r||inf": float(np.max(np.abs(res))),
    }


def interior_max_error(grid: Grid, u: np.ndarray, u_exact: np.ndarray) -> float:
    """Max |u - u_exact| over physical points (no ghosts, no outer boundary)."""
    si, sj = grid.interior_slices()
    err = grid.as_field(u)[si, sj] - grid.as_field(u_exact)[si, sj]
    return float(np.max(np.abs(err)))


# -----------------------------
# Plotting
# -----------------------------

def plot_field(
    grid: Grid,
    u: np.ndarray,
    *,
    title: str = "",
    path: Optional[Path] = None,
    log_abs: bool = False,
    log_eps: float = 1e-16,
    cmap: str | None = None,
    physical_only: bool = True,
    show: bool = False,
    close: bool = True,
) -> None:
    """
    Plot a grid function in (r, z).

    Parameters
    ----------
    log_abs:
        plot log10(|u| + log_eps), useful for residuals
    physical_only:
        drop ghost zones and the outer boundary line
    path:
        If provided, saves the figure to this path (parent dirs created).
    """
    U = grid.as_field(u)
    r, z = grid.r(), grid.z()
    if physical_only:
        si, sj = grid.interior_slices()
        U, r, z = U[si, sj], r[si], z[sj]
    Z = np.log10(np.abs(U) + log_eps) if log_abs else U

    fig, ax = plt.subplots()
    im = ax.imshow(
        Z.T,
        origin="lower",
        aspect="auto",
        cmap=cmap,
        extent=(float(r[0]), float(r[-1]), float(z[0]), float(z[-1])),
    )
    fig.colorbar(im, ax=ax)
    ax.set_title(f"{title} (log10|·|)" if log_abs and title else title)
    ax.set_xlabel("r")
    ax.set_ylabel("z")
    fig.tight_layout()

    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=200)

    if show:
        plt.show()

    if close:
        plt.close(fig)


def plot_convergence(
    spacings: np.ndarray,
    errors: Dict[int, np.ndarray],
    *,
    path: Optional[Path] = None,
    show: bool = False,
) -> None:
    """Log-log max-error vs spacing, one curve per finite-difference order."""
    fig, ax = plt.subplots()
    h = np.asarray(spacings, dtype=float)
    for order, err in sorted(errors.items()):
        ax.loglog(h, err, "o-", label=f"order {order}")
        ax.loglog(h, err[0] * (h / h[0]) ** order, "k--", lw=0.8)
    ax.set_xlabel("h")
    ax.set_ylabel("max |u - u_exact|")
    ax.legend()
    fig.tight_layout()
    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=200)
    if show:
        plt.show()
    plt.close(fig)
