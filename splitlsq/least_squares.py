# least_squares.py
# Least-squares split weights: builds the normal equations for a set of splits
# and a distance matrix and hands them to the active-set solver.
#
# Conventions
# -----------
#   splits    : bool array (nsplits, ntax); row i marks one side of split i
#   distances : symmetric array (ntax, ntax)
#   pairs     : taxa pairs ordered (0,1), (0,2), ..., (0,n-1), (1,2), ...
#   A         : topological matrix (npairs, nsplits), A[p, i] = 1 iff split i
#               separates the two taxa of pair p
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .active_set import solve_nnls
from .blocks.aux import ActiveSetConfig
from .blocks.errors import DimensionMismatchError


# ---------- helpers ----------
def _as_splits(splits) -> np.ndarray:
    S = np.asarray(splits, dtype=bool)
    if S.ndim != 2:
        raise DimensionMismatchError(f"splits must be 2-D (nsplits, ntax), got shape {S.shape}")
    return S


def _pairs(ntax: int):
    return np.triu_indices(ntax, 1)


def _pair_vector(M, ntax: int, name: str) -> np.ndarray:
    """Upper triangle of a (ntax, ntax) matrix as a pair-indexed vector."""
    D = np.asarray(M, dtype=float)
    if D.shape != (ntax, ntax):
        raise DimensionMismatchError(
            f"Splits and {name} have different numbers of taxa: expected ({ntax}, {ntax}), got {D.shape}"
        )
    return D[_pairs(ntax)]


def topological_matrix(splits) -> np.ndarray:
    """Dense topological matrix A, shape (ntax·(ntax−1)/2, nsplits)."""
    S = _as_splits(splits)
    a, b = _pairs(S.shape[1])
    return (S[:, a] != S[:, b]).T.astype(float)


# ---------- normal equations ----------
def topological_gram_ols(splits) -> np.ndarray:
    """
    AᵀA in O(m²n) from intersection sizes: for splits I, J with x = |I ∩ J|,
        (AᵀA)_IJ = x (n − |I| − |J| + x) + (|I| − x)(|J| − x).
    """
    S = _as_splits(splits).astype(float)
    ntax = S.shape[1]
    size = S.sum(axis=1)
    X = S @ S.T
    si = size[:, None]
    sj = size[None, :]
    return X * (ntax - si - sj + X) + (si - X) * (sj - X)


def topological_gram_weighted(splits, w) -> np.ndarray:
    """AᵀWA with W = diag(w), w indexed by pairs."""
    A = topological_matrix(splits)
    w = np.asarray(w, dtype=float).ravel()
    if w.size != A.shape[0]:
        raise DimensionMismatchError(f"Weight vector of wrong dimension: expected {A.shape[0]}, got {w.size}")
    return A.T @ (w[:, None] * A)


def topological_gram_wls(splits, variances) -> np.ndarray:
    """AᵀWA with W = diag(1/var), variances given as a (ntax, ntax) matrix."""
    S = _as_splits(splits)
    var = _pair_vector(variances, S.shape[1], "variances")
    return topological_gram_weighted(S, 1.0 / var)


def at_w_d(splits, distances, variances=None) -> np.ndarray:
    """AᵀWd; W is the identity when no variances are given."""
    S = _as_splits(splits)
    ntax = S.shape[1]
    d = _pair_vector(distances, ntax, "distances")
    if variances is not None:
        d = d / _pair_vector(variances, ntax, "variances")
    return topological_matrix(S).T @ d


def at_v(splits, v) -> np.ndarray:
    """Aᵀv for a pair-indexed vector (or matrix with pair-indexed rows) v."""
    A = topological_matrix(splits)
    V = np.asarray(v, dtype=float)
    if V.shape[0] != A.shape[0]:
        raise DimensionMismatchError(f"Row dimension incorrect for at_v: expected {A.shape[0]}, got {V.shape[0]}")
    return A.T @ V


def a_v(splits, weights) -> np.ndarray:
    """Av: pair-indexed path lengths induced by split weights."""
    A = topological_matrix(splits)
    v = np.asarray(weights, dtype=float).ravel()
    if v.size != A.shape[1]:
        raise DimensionMismatchError(f"Row dimension incorrect for a_v: expected {A.shape[1]}, got {v.size}")
    return A @ v


# ---------- driver ----------
def optimize_ls(
    splits,
    distances,
    variances=None,
    constrain: bool = True,
    config: Optional[ActiveSetConfig] = None,
) -> np.ndarray:
    """
    Optimal (weighted) least-squares split weights.

    Parameters
    ----------
    splits : array_like of bool, shape (nsplits, ntax)
    distances : array_like, shape (ntax, ntax)
    variances : array_like, shape (ntax, ntax), optional
        Pairwise variances for weighted least squares. Ordinary least
        squares (and the closed-form AᵀA) is used when omitted.
    constrain : bool
        Constrain weights to be non-negative.
    config : ActiveSetConfig, optional

    Returns
    -------
    np.ndarray, shape (nsplits,)
        Weight of split i at index i.
    """
    S = _as_splits(splits)
    ntax = S.shape[1]
    D = np.asarray(distances, dtype=float)
    if D.shape != (ntax, ntax):
        raise DimensionMismatchError("Splits and distances have different numbers of taxa")

    if variances is None:
        XtX = topological_gram_ols(S)
    else:
        XtX = topological_gram_wls(S, variances)
    Xty = at_w_d(S, D, variances)

    x, info = solve_nnls(XtX, Xty, constrain=constrain, config=config)
    logging.debug(
        "optimize_ls: %d splits, %d taxa, %d non-zero weights, %d outer iterations",
        S.shape[0],
        ntax,
        int(np.count_nonzero(x)),
        info.outer_iterations,
    )
    return x


# ---------- fit statistics ----------
@dataclass
class SplitsFit:
    fit: float      # 100 (1 − Σ|p − d| / Σd), floored at 0
    ls_fit: float   # 100 (1 − Σ(p − d)² / Σd²), floored at 0
    stress: float   # sqrt(Σ(p − d)² / Σp²)


def compute_fits(splits, distances, weights) -> SplitsFit:
    """Compare the path lengths p = Aw of weighted splits with the distances d."""
    S = _as_splits(splits)
    d = _pair_vector(distances, S.shape[1], "distances")
    p = a_v(S, weights)
    diff = np.abs(p - d)
    with np.errstate(divide="ignore", invalid="ignore"):
        fit = 100.0 * (1.0 - diff.sum() / d.sum())
        ls_fit = 100.0 * (1.0 - (diff**2).sum() / (d**2).sum())
        stress = np.sqrt((diff**2).sum() / (p**2).sum())
    return SplitsFit(fit=float(max(fit, 0.0)), ls_fit=float(max(ls_fit, 0.0)), stress=float(stress))
