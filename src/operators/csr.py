# operators/csr.py
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Optional, TextIO

import numpy as np
import scipy.sparse as sp

from core.errors import AssemblyError, CSRLifecycleError


# Index base of the row-pointer and column arrays.
BASE = 1

INDEX_DTYPE = np.int32


@dataclass
class CSRMatrix:
    """
    Compressed sparse row storage with 1-based indices.

    a  : values, length nnz
    ia : row pointers, length nrows + 1, ia[0] = BASE, ia[nrows] = BASE + nnz
    ja : column indices, length nnz, strictly increasing within each row
    """
    nrows: int
    ncols: int
    nnz: int
    a: Optional[np.ndarray] = field(default=None, repr=False)
    ia: Optional[np.ndarray] = field(default=None, repr=False)
    ja: Optional[np.ndarray] = field(default=None, repr=False)
    base: int = BASE
    _released: bool = field(default=False, repr=False)

    @classmethod
    def allocate(cls, nrows: int, ncols: int, nnz: int) -> "CSRMatrix":
        """
        Reserve exactly nnz value/column slots and nrows+1 row pointers.

        Values and columns are zeroed; row pointers are left for the assembler.
        """
        nrows, ncols, nnz = int(nrows), int(ncols), int(nnz)
        if nrows < 0 or ncols < 0 or nnz < 0:
            raise ValueError("CSR dimensions must be non-negative")
        return cls(
            nrows=nrows,
            ncols=ncols,
            nnz=nnz,
            a=np.zeros(nnz, dtype=np.float64),
            ia=np.empty(nrows + 1, dtype=INDEX_DTYPE),
            ja=np.zeros(nnz, dtype=INDEX_DTYPE),
        )

    @property
    def shape(self) -> tuple[int, int]:
        return self.nrows, self.ncols

    @property
    def released(self) -> bool:
        return self._released

    def _check_live(self) -> None:
        if self._released:
            raise CSRLifecycleError("CSR matrix arrays were already released")

    def deallocate(self) -> None:
        """Release all three arrays. A second call is a caller error."""
        self._check_live()
        self.a = None
        self.ia = None
        self.ja = None
        self._released = True

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def row(self, k: int) -> tuple[np.ndarray, np.ndarray]:
        """0-based (columns, values) of row k."""
        self._check_live()
        if not 0 <= k < self.nrows:
            raise IndexError(f"row {k} outside [0, {self.nrows})")
        lo = int(self.ia[k]) - self.base
        hi = int(self.ia[k + 1]) - self.base
        return self.ja[lo:hi] - self.base, self.a[lo:hi]

    def to_scipy(self) -> sp.csr_matrix:
        """0-based scipy view (copies the index arrays, shares nothing mutable)."""
        self._check_live()
        return sp.csr_matrix(
            (self.a.copy(), self.ja - self.base, self.ia - self.base),
            shape=self.shape,
        )

    def matvec(self, u: np.ndarray) -> np.ndarray:
        return self.to_scipy() @ np.asarray(u, dtype=np.float64)

    def diagonal(self) -> np.ndarray:
        return self.to_scipy().diagonal()

    def validate(self, require_diagonal: bool = True) -> None:
        """
        Check the structural invariants the sparse solver relies on.

        Raises AssemblyError on the first violation.
        """
        self._check_live()
        ia = self.ia.astype(np.int64)
        ja = self.ja.astype(np.int64)
        if ia.shape != (self.nrows + 1,) or ja.shape != (self.nnz,) or self.a.shape != (self.nnz,):
            raise AssemblyError("CSR array lengths do not match nrows/nnz")
        if ia[0] != self.base or ia[-1] != self.base + self.nnz:
            raise AssemblyError(
                f"row pointers span [{ia[0]}, {ia[-1]}], expected [{self.base}, {self.base + self.nnz}]"
            )
        counts = np.diff(ia)
        if np.any(counts < 0):
            raise AssemblyError("row pointers are decreasing")
        if self.nnz and (ja.min() < self.base or ja.max() >= self.base + self.ncols):
            raise AssemblyError(f"column index outside [{self.base}, {self.base + self.ncols - 1}]")

        rows = np.repeat(np.arange(self.nrows), counts)
        # within a row consecutive columns must strictly increase
        same_row = rows[1:] == rows[:-1]
        if np.any(ja[1:][same_row] <= ja[:-1][same_row]):
            bad = int(rows[1:][same_row][np.argmax(ja[1:][same_row] <= ja[:-1][same_row])])
            raise AssemblyError(f"columns of row {bad} are not strictly increasing")

        if require_diagonal:
            has_diag = np.zeros(self.nrows, dtype=bool)
            on_diag = (ja - self.base) == rows
            has_diag[rows[on_diag]] = True
            if not np.all(has_diag):
                raise AssemblyError(f"row {int(np.argmin(has_diag))} has no diagonal entry")

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def render(self, value_label: str = "a", ptr_label: str = "ia", col_label: str = "ja") -> str:
        self._check_live()
        with np.printoptions(threshold=sys.maxsize, linewidth=120):
            return "\n".join(
                [
                    f"CSR {self.nrows} x {self.ncols}, nnz = {self.nnz}, base = {self.base}",
                    f"{value_label} = {np.array2string(self.a, precision=8)}",
                    f"{ptr_label} = {np.array2string(self.ia)}",
                    f"{col_label} = {np.array2string(self.ja)}",
                ]
            )

    def print(
        self,
        value_label: str = "a",
        ptr_label: str = "ia",
        col_label: str = "ja",
        file: Optional[TextIO] = None,
    ) -> None:
        """Write the three arrays for inspection; no numerical side effects."""
        out = sys.stdout if file is None else file
        out.write(self.render(value_label, ptr_label, col_label) + "\n")
