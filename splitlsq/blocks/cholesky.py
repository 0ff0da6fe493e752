"""
Dynamic Cholesky factorization with maskable rows.

Solves A X = B for a symmetric positive definite A restricted to a subset of
its rows/columns. Rows can be removed from the system ("masked") and put
back ("unmasked") without refactoring:

  - unmasking appends the row to the bottom of the factor: one forward
    substitution against the current factor, O(ncurr²);
  - masking deletes the row and restores triangularity with a sweep of
    Givens rotations over the rows below it, O((ncurr - row)·ncurr).

Storage
-------
Two n x n buffers:
  * `_Lfull`: lower triangle = Cholesky factor of the complete matrix,
    strict upper triangle = strict upper triangle of A (kept so masked rows
    can be reinserted without the original matrix); `_adiag_full` = diag(A).
  * `_L`: leading ncurr x ncurr block = factor of A restricted to the active
    rows in `IndexMap` order; `_adiag` = diag(A) for those rows.

References
----------
Golub & Van Loan, "Matrix Computations", 2nd ed. (column Cholesky, Givens).
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import numpy as np
from scipy.linalg import solve_triangular

from .errors import (
    DegenerateSystemError,
    DimensionMismatchError,
    NotPositiveDefiniteError,
)
from .index_map import IndexMap
from .kernels import k_append_row, k_cache_matrix, k_cholesky_full, k_downdate


class DynamicCholesky:
    """
    Cholesky factor of a symmetric matrix over a dynamic set of active rows.

    Parameters
    ----------
    A : array_like, shape (n, n)
        Symmetric matrix. Only read during construction.
    row : int, optional
        If given, start with every index except `row` masked and skip the
        full O(n³) factorization; the factor is grown by `unmask_row`.

    Notes
    -----
    `is_spd` reflects the check made on the *full* matrix at construction
    (squareness, exact symmetry, positive pivots) or, with `row`, on
    A[row, row] alone. It is never re-derived from the active block.
    """

    def __init__(self, A, row: Optional[int] = None):
        M = np.asarray(A, dtype=float)
        if M.ndim != 2:
            raise DimensionMismatchError(f"A must be 2-D, got shape {M.shape}")
        n = M.shape[0]
        square = M.shape[1] == n
        if not square:
            # keep the leading n x n block so storage stays square; is_spd is cleared
            S = np.zeros((n, n))
            m = min(n, M.shape[1])
            S[:, :m] = M[:, :m]
            M = S
        M = np.ascontiguousarray(M)

        self.n = n
        self._Lfull = np.zeros((n, n))
        self._adiag_full = np.zeros(n)
        self._L = np.zeros((n, n))
        self._adiag = np.zeros(n)

        if row is None:
            self._index = IndexMap(n, active=True)
            spd = k_cholesky_full(M, self._Lfull, self._adiag_full)
            self._isspd = bool(square and spd)
            np.copyto(self._L, self._Lfull)
            np.copyto(self._adiag, self._adiag_full)
        else:
            self._check_index(row)
            self._index = IndexMap(n, active=False)
            k_cache_matrix(M, self._Lfull, self._adiag_full)
            self._isspd = bool(square and self._adiag_full[row] > 0.0)
            self._seed(row)

        if not self._isspd:
            logging.warning("DynamicCholesky: matrix of size %d is not symmetric positive definite", n)
        logging.debug("DynamicCholesky: n=%d, active=%d, spd=%s", n, self.ncurr, self._isspd)

    # ------------------------------ queries ------------------------------
    @property
    def is_spd(self) -> bool:
        return self._isspd

    def isSPD(self) -> bool:
        return self._isspd

    @property
    def ncurr(self) -> int:
        """Number of active (unmasked) rows."""
        return self._index.ncurr

    @property
    def active_indices(self) -> np.ndarray:
        """Active full indices in factor order."""
        return self._index.active()

    @property
    def masked_indices(self) -> List[int]:
        return self._index.masked()

    @property
    def index_map(self) -> IndexMap:
        return self._index

    @property
    def factor(self) -> np.ndarray:
        """Lower-triangular factor of the active block (copy)."""
        nc = self.ncurr
        return np.tril(self._L[:nc, :nc])

    def get_mask(self, k: int) -> bool:
        """True if full index `k` is masked."""
        self._check_index(k)
        return self._index.is_masked(k)

    getmask = get_mask

    def full_matrix(self) -> np.ndarray:
        """The matrix A, rebuilt from the cached triangle and diagonal."""
        U = np.triu(self._Lfull, 1)
        return U + U.T + np.diag(self._adiag_full)

    def active_matrix(self) -> np.ndarray:
        """A restricted to the active rows/columns, in factor order."""
        idx = self._index.active()
        return self.full_matrix()[np.ix_(idx, idx)]

    def check_factorization(self) -> float:
        """Max abs entry of L Lᵀ - A_active; 0.0 when nothing is active."""
        if self.ncurr == 0:
            return 0.0
        L = self.factor
        return float(np.max(np.abs(L @ L.T - self.active_matrix())))

    # ------------------------------ masking ------------------------------
    def mask_row(self, row_to_mask: int) -> None:
        """
        Remove a row from the system and downdate the factor.

        (1) find the factor row of `row_to_mask`
        (2) Givens sweep over the rows below it, then close the gap
        (3) update the maps and the mask
        """
        self._check_index(row_to_mask)
        if self._index.is_masked(row_to_mask):
            logging.debug("mask_row(%d): already masked", row_to_mask)
            return
        row = self._index.position(row_to_mask)
        k_downdate(self._L, self._adiag, row, self._index.ncurr)
        self._index.remove(row_to_mask)
        logging.debug("mask_row(%d): factor row %d removed, %d active", row_to_mask, row, self.ncurr)

    def mask_rows(self, rows: Iterable[int]) -> None:
        for r in rows:
            self.mask_row(int(r))

    def unmask_row(self, row_to_unmask: int) -> None:
        """Put a masked row back as the last row of the factor."""
        self._check_index(row_to_unmask)
        if not self._index.is_masked(row_to_unmask):
            logging.debug("unmask_row(%d): already active", row_to_unmask)
            return
        newrow = self._index.append(row_to_unmask)
        pivot = k_append_row(
            self._L,
            self._adiag,
            self._Lfull,
            self._adiag_full,
            self._index.partial2full,
            newrow,
            row_to_unmask,
        )
        if not pivot > 0.0:
            logging.warning(
                "unmask_row(%d): non-positive pivot %.3e, active block is not positive definite",
                row_to_unmask,
                pivot,
            )
        logging.debug("unmask_row(%d): appended as factor row %d", row_to_unmask, newrow)

    def unmask_rows(self, rows: Iterable[int]) -> None:
        for r in rows:
            self.unmask_row(int(r))

    def mask_all_but_one(self, row: int) -> None:
        """Reset the mask so that only `row` is active."""
        self._check_index(row)
        self._L.fill(0.0)
        self._adiag.fill(0.0)
        self._seed(row)

    # ------------------------------ solving ------------------------------
    def solve(self, B) -> np.ndarray:
        """
        Solve A_active X = B_active.

        Parameters
        ----------
        B : array_like, shape (n,) or (n, k)
            One row per full index; masked rows are ignored.

        Returns
        -------
        X : np.ndarray, same shape as B
            Solution scattered back to full indexing, zero on masked rows.

        Raises
        ------
        DimensionMismatchError
            B does not have n rows.
        NotPositiveDefiniteError
            The matrix failed the SPD check at construction.
        DegenerateSystemError
            Every row is masked.
        """
        Bm = np.asarray(B, dtype=float)
        if Bm.ndim not in (1, 2) or Bm.shape[0] != self.n:
            raise DimensionMismatchError(
                f"Matrix row dimensions must agree: expected {self.n} rows, got shape {Bm.shape}"
            )
        if not self._isspd:
            raise NotPositiveDefiniteError("Matrix is not symmetric positive definite.")
        nc = self.ncurr
        if nc < 1:
            raise DegenerateSystemError("Cannot solve equation with all rows masked.")

        idx = self._index.partial2full[:nc]
        Lact = self._L[:nc, :nc]
        # solve_triangular only reads the lower triangle; the upper holds cached A entries
        Y = solve_triangular(Lact, Bm[idx], lower=True, check_finite=False)
        Xp = solve_triangular(Lact, Y, lower=True, trans="T", check_finite=False)

        X = np.zeros_like(Bm)
        X[idx] = Xp
        return X

    # ------------------------------ internals ----------------------------
    def _check_index(self, k: int) -> None:
        if k < 0 or k >= self.n:
            raise IndexError(f"Index {k} out of range for matrix of size {self.n}")

    def _seed(self, row: int) -> None:
        """Single active row: L = [[sqrt(A[row, row])]]."""
        self._index.reset_to(row)
        self._adiag[0] = self._adiag_full[row]
        self._L[0, 0] = np.sqrt(max(self._adiag[0], 0.0))
