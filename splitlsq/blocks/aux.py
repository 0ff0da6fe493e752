# aux.py
# Shared configuration, status codes and telemetry for the active-set solver.

from __future__ import annotations

# =========================
# Standard library
# =========================
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

# =========================
# Third-party
# =========================
import numpy as np

from .errors import DimensionMismatchError


# ======================================
# Enums
# ======================================
class SolveStatus(Enum):
    """How the returned solution was obtained."""

    OPTIMAL = "optimal"              # KKT conditions hold within tolerance
    UNCONSTRAINED = "unconstrained"  # single solve, negatives clamped to zero


# ======================================
# Global configuration
# ======================================
@dataclass
class ActiveSetConfig:
    """
    Configuration for the non-negative active-set solver.

    Notes
    -----
    • `feas_tol` and `opt_tol` default to the same value (1e-10). They are
      absolute, so badly scaled problems may need them loosened together.
    • The result is invariant under scaling (A, b) -> (c·A, c·b) only while
      rounding in the gradient stays below `opt_tol`. Scaling A and b by more
      than ~1e4 requires scaling `opt_tol` with it; otherwise an active
      gradient of order c·1e-16 trips ActiveSetInvariantError.
    • `max_iter=None` runs to completion; termination follows from the
      finiteness of the active-set partitions.
    """

    # ---------------- Core toggles ----------------
    verbose: bool = False
    check_invariants: bool = False  # verify maps + factor after every mask change

    # ---------------- Tolerances ----------------
    feas_tol: float = 1e-10  # x_i < -feas_tol counts as infeasible
    opt_tol: float = 1e-10   # gradient tolerance for optimality / consistency

    # ---------------- Iteration ----------------
    initial_value: float = 1.0  # strictly positive starting point for old_x
    max_iter: Optional[int] = None  # outer iterations; None = unbounded
    factor_tol: float = 1e-8  # allowed ||L Lᵀ - A_active||_max under check_invariants


# ======================================
# Telemetry
# ======================================
@dataclass
class ActiveSetInfo:
    status: SolveStatus
    outer_iterations: int = 0
    masked_steps: int = 0
    unmasked_steps: int = 0
    n_active: int = 0
    active_indices: List[int] = field(default_factory=list)
    objective: float = 0.0
    max_kkt_violation: float = 0.0
    time: float = 0.0


# ======================================
# Input coercion
# ======================================
def _as_matrix(A, name: str = "A") -> np.ndarray:
    M = np.asarray(A, dtype=float)
    if M.ndim != 2:
        raise DimensionMismatchError(f"{name} must be 2-D, got shape {M.shape}")
    return M


def _as_rhs(b, n: int, name: str = "b") -> np.ndarray:
    v = np.asarray(b, dtype=float)
    if v.ndim == 2 and v.shape[1] == 1:
        v = v[:, 0]
    if v.ndim != 1 or v.size != n:
        raise DimensionMismatchError(f"{name} must have shape ({n},), got {np.shape(b)}")
    return v


def objective(XtX: np.ndarray, Xty: np.ndarray, x: np.ndarray) -> float:
    """½ xᵀ XtX x − xᵀ Xty."""
    return float(0.5 * x @ (XtX @ x) - x @ Xty)


def kkt_violation(XtX: np.ndarray, Xty: np.ndarray, x: np.ndarray) -> float:
    """
    Largest violation of x ≥ 0, XtX x − Xty ≥ 0 and x ∘ (XtX x − Xty) = 0.
    """
    if x.size == 0:
        return 0.0
    r = XtX @ x - Xty
    primal = float(np.max(np.maximum(-x, 0.0)))
    dual = float(np.max(np.maximum(-r, 0.0)))
    comp = float(np.max(np.abs(x * r)))
    return max(primal, dual, comp)
