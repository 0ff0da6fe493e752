# kernels.py
# Numba kernels for the dynamic Cholesky factorization.
# All kernels work in place on preallocated n x n buffers; only the leading
# ncurr x ncurr block of the active factor is meaningful.
import numpy as np
from numba import njit


@njit(cache=True, error_model="numpy")
def k_cholesky_full(A: np.ndarray, Lfull: np.ndarray, adiag_full: np.ndarray) -> bool:
    """
    Column Cholesky of the full matrix into the lower triangle of Lfull.

    The strict upper triangle of Lfull is then overwritten with the strict
    upper triangle of A and adiag_full receives diag(A), so the original
    matrix can be recovered from (Lfull, adiag_full) alone.

    Returns False if A is not exactly symmetric or a pivot is not positive.
    Non-positive pivots are clamped to zero before the square root.
    """
    n = A.shape[0]
    spd = True
    for j in range(n):
        d = 0.0
        for k in range(j):
            s = 0.0
            for i in range(k):
                s += Lfull[k, i] * Lfull[j, i]
            s = (A[j, k] - s) / Lfull[k, k]
            Lfull[j, k] = s
            d = d + s * s
            spd = spd and (A[k, j] == A[j, k])
        d = A[j, j] - d
        spd = spd and (d > 0.0)
        Lfull[j, j] = np.sqrt(max(d, 0.0))
        for k in range(j + 1, n):
            Lfull[j, k] = 0.0

    for i in range(n):
        adiag_full[i] = A[i, i]
        for k in range(i + 1, n):
            Lfull[i, k] = A[i, k]
    return spd


@njit(cache=True, error_model="numpy")
def k_cache_matrix(A: np.ndarray, Lfull: np.ndarray, adiag_full: np.ndarray) -> None:
    """Store diag(A) and the strict upper triangle of A without factorizing."""
    n = A.shape[0]
    for i in range(n):
        adiag_full[i] = A[i, i]
        for k in range(i + 1, n):
            Lfull[i, k] = A[i, k]


@njit(cache=True, error_model="numpy")
def k_givens(a: float, b: float):
    """
    Givens parameters (c, s) with s*a + c*b = 0 for the rotation
        [c -s]
        [s  c]
    (Golub & Van Loan, Alg. 5.1.3).
    """
    if b != 0.0:
        if abs(b) > abs(a):
            tau = -a / b
            s = 1.0 / np.sqrt(1.0 + tau * tau)
            c = s * tau
        else:
            tau = -b / a
            c = 1.0 / np.sqrt(1.0 + tau * tau)
            s = c * tau
    else:
        c = 1.0
        s = 0.0
    return c, s


@njit(cache=True, error_model="numpy")
def k_downdate(L: np.ndarray, adiag: np.ndarray, row: int, ncurr: int) -> None:
    """
    Delete row/column `row` from the active factor L (size ncurr).

    (1) Rotate column pairs (i-1, i) for i = row+1..ncurr-1 so that the rows
        below `row` become lower triangular once `row` is dropped; the sign
        is chosen so the new diagonal entry stays non-negative.
    (2) Shift the lower triangle up, the cached upper triangle left/up, and
        adiag up by one, then zero the freed last row and column.
    """
    for i in range(row + 1, ncurr):
        x0 = L[i, i - 1]
        x1 = L[i, i]
        c, s = k_givens(x0, x1)
        if (c * x0 - s * x1) < 0.0:
            c = -c
            s = -s
        for j in range(i, ncurr):
            x0 = L[j, i - 1]
            x1 = L[j, i]
            L[j, i - 1] = c * x0 - s * x1
            L[j, i] = s * x0 + c * x1

    # lower triangle: rows below `row` move up
    for i in range(row + 1, ncurr):
        for k in range(i):
            L[i - 1, k] = L[i, k]
    # upper triangle, rows above `row`: columns right of `row` move left
    for i in range(row):
        for k in range(row + 1, ncurr):
            L[i, k - 1] = L[i, k]
    # upper triangle, rows below `row`: entries move up and left
    for i in range(row + 1, ncurr):
        for k in range(i + 1, ncurr):
            L[i - 1, k - 1] = L[i, k]

    for i in range(row + 1, ncurr):
        adiag[i - 1] = adiag[i]

    last = ncurr - 1
    for i in range(ncurr):
        L[i, last] = 0.0
        L[last, i] = 0.0
    adiag[last] = 0.0


@njit(cache=True, error_model="numpy")
def k_append_row(
    L: np.ndarray,
    adiag: np.ndarray,
    Lfull: np.ndarray,
    adiag_full: np.ndarray,
    partial2full: np.ndarray,
    newrow: int,
    full_row: int,
) -> float:
    """
    Append full index `full_row` as active row `newrow`.

    Copies A[partial2full[i], full_row] from the cached upper triangle of
    Lfull into column `newrow` of L, then forward substitutes for the new
    factor row. Returns the squared new pivot (before the square root).
    """
    for i in range(newrow):
        full_i = partial2full[i]
        if full_row > full_i:
            L[i, newrow] = Lfull[full_i, full_row]
        else:
            L[i, newrow] = Lfull[full_row, full_i]

    adiag[newrow] = adiag_full[full_row]

    for i in range(newrow):
        rsum = L[i, newrow]
        for j in range(i):
            rsum = rsum - L[newrow, j] * L[i, j]
        L[newrow, i] = rsum / L[i, i]

    rsum = adiag[newrow]
    for j in range(newrow):
        x = L[newrow, j]
        rsum = rsum - x * x
    L[newrow, newrow] = np.sqrt(rsum)
    return rsum
