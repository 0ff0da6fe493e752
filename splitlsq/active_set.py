# active_set.py
# Active-set method for non-negatively constrained quadratic programs
#
#     minimize_x   ½ xᵀ A x − xᵀ b     subject to  x ≥ 0
#
# with A symmetric positive definite (normal equations XᵀX, Xᵀy). Returns x
# such that
#     [Ax − b]_i ≥ 0   for all i
#     [Ax − b]_i = 0   for all i with x_i > 0
# The active set lives in the mask of a DynamicCholesky: masked variables are
# pinned to zero, unmasked ones are solved for.
from __future__ import annotations

import logging
import time
from typing import Optional, Tuple

import numpy as np

from .blocks.aux import (
    ActiveSetConfig,
    ActiveSetInfo,
    SolveStatus,
    _as_matrix,
    _as_rhs,
    kkt_violation,
    objective,
)
from .blocks.cholesky import DynamicCholesky
from .blocks.errors import ActiveSetInvariantError


# =============================================================================
# Active-set solver
# =============================================================================
class ActiveSet:
    """
    Non-negative least squares on the normal equations by the active-set method.

    The solve runs in the constructor; read the result with `get_soln`.

    Parameters
    ----------
    XtX : array_like, shape (n, n)
        Symmetric positive definite matrix XᵀX.
    Xty : array_like, shape (n,) or (n, 1)
        Right-hand side Xᵀy.
    constrain : bool
        If False, solve the unconstrained system once and set negative entries
        to zero. This is a cheap approximation, not a non-negative solve.
    config : ActiveSetConfig, optional

    Attributes
    ----------
    x : np.ndarray
        Solution vector.
    info : ActiveSetInfo
        Iteration counts, final active set, objective and KKT residual.
    """

    def __init__(
        self,
        XtX,
        Xty,
        constrain: bool = True,
        config: Optional[ActiveSetConfig] = None,
    ):
        self.cfg = config if config is not None else ActiveSetConfig()
        t0 = time.perf_counter()

        A = _as_matrix(XtX, "XtX")
        n = A.shape[0]
        b = _as_rhs(Xty, n, "Xty")
        self.n = n

        chol = DynamicCholesky(A)
        if not constrain:
            x = chol.solve(b)
            x[x < 0.0] = 0.0
            self.info = ActiveSetInfo(status=SolveStatus.UNCONSTRAINED)
        else:
            self.info = ActiveSetInfo(status=SolveStatus.OPTIMAL)
            x = self._solve_constrained(chol, A, b)
            # components within feas_tol of zero are accepted as feasible
            x[x < 0.0] = 0.0

        self.x = x
        self.info.n_active = chol.ncurr
        self.info.active_indices = sorted(chol.active_indices.tolist())
        self.info.objective = objective(A, b, x)
        self.info.max_kkt_violation = kkt_violation(A, b, x)
        self.info.time = time.perf_counter() - t0
        if self.cfg.verbose:
            logging.info(
                "ActiveSet: n=%d status=%s outer=%d masked=%d unmasked=%d active=%d f=%.6e kkt=%.2e",
                n,
                self.info.status.value,
                self.info.outer_iterations,
                self.info.masked_steps,
                self.info.unmasked_steps,
                self.info.n_active,
                self.info.objective,
                self.info.max_kkt_violation,
            )

    # ------------------------------ results ------------------------------
    def get_soln(self, i: Optional[int] = None):
        """Solution vector, or its i-th entry."""
        if i is None:
            return self.x
        if i < 0 or i >= self.n:
            raise IndexError(f"Index of element invalid: {i}")
        return float(self.x[i])

    getSoln = get_soln

    # ------------------------------ internals ----------------------------
    def _check(self, chol: DynamicCholesky) -> None:
        if not self.cfg.check_invariants:
            return
        chol.index_map.check()
        err = chol.check_factorization()
        if err > self.cfg.factor_tol:
            raise ActiveSetInvariantError(f"factor drifted from the active block: max error {err:.3e}")

    def _feasible_solve(self, chol: DynamicCholesky, b: np.ndarray, old_x: np.ndarray) -> np.ndarray:
        """
        Solve on the current mask; while the solution has negative entries,
        walk from old_x towards it, stop at the first bound hit and mask that
        variable. old_x is moved in place.
        """
        cfg = self.cfg
        n = b.size
        while True:
            if chol.ncurr == 0:
                # every variable pinned: the only point of this face
                return np.zeros(n)
            x = chol.solve(b)

            neg = np.flatnonzero(x < -cfg.feas_tol)
            if neg.size == 0:
                return x

            # fraction of the step old_x -> x at which x_i hits zero
            delta = old_x[neg] / (old_x[neg] - x[neg])
            k = int(np.argmin(delta))
            bad_i = int(neg[k])
            min_delta = float(delta[k])

            act = ~chol.index_map.mask
            old_x[act] += min_delta * (x[act] - old_x[act])

            chol.mask_row(bad_i)
            self.info.masked_steps += 1
            self._check(chol)

    def _solve_constrained(self, chol: DynamicCholesky, A: np.ndarray, b: np.ndarray) -> np.ndarray:
        cfg = self.cfg
        n = b.size
        # arbitrary strictly positive starting point
        old_x = np.full(n, cfg.initial_value, dtype=float)

        while True:
            x = self._feasible_solve(chol, b, old_x)
            old_x = np.maximum(x, 0.0)
            self.info.outer_iterations += 1

            # gradient of ½xᵀAx − xᵀb, doubled
            grad = 2.0 * (A @ x - b)
            mask = chol.index_map.mask

            active = np.flatnonzero(~mask)
            if active.size:
                j = int(active[np.argmax(np.abs(grad[active]))])
                if abs(grad[j]) > cfg.opt_tol:
                    raise ActiveSetInvariantError(
                        f"Problem in the active set method: gradient {grad[j]:.3e} "
                        f"at unconstrained variable {j}"
                    )

            masked = np.flatnonzero(mask)
            if masked.size == 0:
                break
            k = int(np.argmin(grad[masked]))
            bad_i = int(masked[k])
            bad_val = float(grad[bad_i])

            if cfg.verbose:
                logging.info(
                    "ActiveSet iter %d: %d active, most negative masked gradient %.3e at %d",
                    self.info.outer_iterations,
                    chol.ncurr,
                    bad_val,
                    bad_i,
                )
            if bad_val > -cfg.opt_tol:
                break
            if cfg.max_iter is not None and self.info.outer_iterations >= cfg.max_iter:
                raise ActiveSetInvariantError(
                    f"Active set method did not converge in {cfg.max_iter} iterations"
                )

            chol.unmask_row(bad_i)
            self.info.unmasked_steps += 1
            self._check(chol)

        return x


# =============================================================================
# Functional entry point
# =============================================================================
def solve_nnls(
    XtX,
    Xty,
    constrain: bool = True,
    config: Optional[ActiveSetConfig] = None,
) -> Tuple[np.ndarray, ActiveSetInfo]:
    """Run `ActiveSet` and return (x, info)."""
    solver = ActiveSet(XtX, Xty, constrain=constrain, config=config)
    return solver.get_soln(), solver.info
