"""
Error taxonomy for the dynamic Cholesky / active-set stack.

Boundary conditions (bad shapes, non-SPD input, an empty active set) and
internal invariant violations get distinct types so callers can tell a
bad problem from a solver bug. Nothing here is retried: the factorization
is deterministic, so the same input always fails the same way.
"""

from __future__ import annotations

import numpy as np


class SplitLSQError(Exception):
    """Base class for every error raised by splitlsq."""


class DimensionMismatchError(SplitLSQError, ValueError):
    """Operands have incompatible shapes (e.g. right-hand side rows != n)."""


class NotPositiveDefiniteError(SplitLSQError, np.linalg.LinAlgError):
    """The matrix failed the symmetry / positive-definiteness check at construction."""


class DegenerateSystemError(SplitLSQError, np.linalg.LinAlgError):
    """A solve was requested while every row of the system is masked."""


class ActiveSetInvariantError(SplitLSQError, RuntimeError):
    """The active-set iteration reached a state that should be impossible."""
