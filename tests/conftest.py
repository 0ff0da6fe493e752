import numpy as np
import pytest


def make_spd(rng: np.random.Generator, n: int, shift: float = None) -> np.ndarray:
    """Well-conditioned symmetric positive definite matrix B Bᵀ + shift·I."""
    B = rng.standard_normal((n, n))
    A = B @ B.T + (n if shift is None else shift) * np.eye(n)
    return 0.5 * (A + A.T)


@pytest.fixture
def rng():
    return np.random.default_rng(20040120)


@pytest.fixture
def spd_5x5(rng):
    return make_spd(rng, 5)


@pytest.fixture
def spd_factory(rng):
    def _make(n, shift=None):
        return make_spd(rng, n, shift)

    return _make
