from __future__ import annotations

from typing import List

import numpy as np

from .errors import ActiveSetInvariantError


class IndexMap:
    """
    Bookkeeping between full indices 0..n-1 and rows of the active factor.

    `partial2full[:ncurr]` lists the active full indices in factor order,
    `full2partial[i]` is the factor row of active index i and -1 otherwise,
    `mask[i]` is True iff i is inactive. Every mutation goes through
    `append`, `remove` or `reset_to`, each of which leaves the two maps
    mutually inverse on the active domain.
    """

    __slots__ = ("n", "ncurr", "full2partial", "partial2full", "mask")

    def __init__(self, n: int, active: bool = True):
        self.n = int(n)
        if active:
            self.ncurr = self.n
            self.full2partial = np.arange(self.n, dtype=np.int64)
            self.partial2full = np.arange(self.n, dtype=np.int64)
            self.mask = np.zeros(self.n, dtype=bool)
        else:
            self.ncurr = 0
            self.full2partial = np.full(self.n, -1, dtype=np.int64)
            self.partial2full = np.full(self.n, -1, dtype=np.int64)
            self.mask = np.ones(self.n, dtype=bool)

    # ------------------------------ queries ------------------------------
    def is_masked(self, full: int) -> bool:
        return bool(self.mask[full])

    def position(self, full: int) -> int:
        return int(self.full2partial[full])

    def active(self) -> np.ndarray:
        return self.partial2full[: self.ncurr].copy()

    def masked(self) -> List[int]:
        return np.flatnonzero(self.mask).tolist()

    # ------------------------------ mutations ----------------------------
    def append(self, full: int) -> int:
        """Make `full` active as the last factor row; returns that row."""
        newrow = self.ncurr
        self.partial2full[newrow] = full
        self.full2partial[full] = newrow
        self.mask[full] = False
        self.ncurr = newrow + 1
        return newrow

    def remove(self, full: int) -> int:
        """Drop `full` from the active rows, closing the gap; returns its old row."""
        row = int(self.full2partial[full])
        nc = self.ncurr
        shifted = self.partial2full[row + 1 : nc].copy()
        self.partial2full[row : nc - 1] = shifted
        self.full2partial[shifted] -= 1
        self.partial2full[nc - 1] = -1
        self.full2partial[full] = -1
        self.mask[full] = True
        self.ncurr = nc - 1
        return row

    def reset_to(self, full: int) -> None:
        """Mask everything except `full`, which becomes factor row 0."""
        self.full2partial.fill(-1)
        self.partial2full.fill(-1)
        self.mask.fill(True)
        self.ncurr = 0
        self.append(full)

    # ------------------------------ checks -------------------------------
    def check(self) -> None:
        """Raise ActiveSetInvariantError if the maps are out of sync."""
        nmasked = int(np.count_nonzero(self.mask))
        if self.ncurr != self.n - nmasked:
            raise ActiveSetInvariantError(
                f"ncurr={self.ncurr} but {nmasked} of {self.n} indices are masked"
            )
        act = self.partial2full[: self.ncurr]
        if np.any(self.mask[act]):
            raise ActiveSetInvariantError("masked index present in the active ordering")
        if not np.array_equal(self.full2partial[act], np.arange(self.ncurr)):
            raise ActiveSetInvariantError("full2partial is not the inverse of partial2full")
        if np.any(self.full2partial[self.mask] != -1):
            raise ActiveSetInvariantError("masked index still has a factor row")
