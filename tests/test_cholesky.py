"""Tests for the dynamic Cholesky factorization."""

import numpy as np
import pytest
from scipy.linalg import cholesky

from splitlsq.blocks.cholesky import DynamicCholesky
from splitlsq.blocks.errors import (
    DegenerateSystemError,
    DimensionMismatchError,
    NotPositiveDefiniteError,
)
from splitlsq.blocks.kernels import k_givens


def _masked_solve(A, B, active):
    """Reference: solve on the active block, zeros elsewhere."""
    X = np.zeros_like(B, dtype=float)
    idx = np.asarray(sorted(active))
    X[idx] = np.linalg.solve(A[np.ix_(idx, idx)], B[idx])
    return X


class TestFullFactorization:
    def test_factor_matches_scipy(self, spd_5x5):
        chol = DynamicCholesky(spd_5x5)
        np.testing.assert_allclose(chol.factor, cholesky(spd_5x5, lower=True), atol=1e-10)
        assert chol.is_spd
        assert chol.isSPD()
        assert chol.ncurr == 5

    @pytest.mark.parametrize("n", [1, 2, 7, 20])
    @pytest.mark.parametrize("k", [1, 3])
    def test_solve(self, spd_factory, rng, n, k):
        A = spd_factory(n)
        B = rng.standard_normal((n, k))
        X = DynamicCholesky(A).solve(B)
        np.testing.assert_allclose(A @ X, B, rtol=1e-8, atol=1e-10)

    def test_solve_vector_keeps_shape(self, spd_5x5, rng):
        b = rng.standard_normal(5)
        x = DynamicCholesky(spd_5x5).solve(b)
        assert x.shape == (5,)
        np.testing.assert_allclose(spd_5x5 @ x, b, atol=1e-10)

    def test_solve_identity_gives_inverse(self, spd_5x5):
        X = DynamicCholesky(spd_5x5).solve(spd_5x5)
        np.testing.assert_allclose(X, np.eye(5), atol=1e-10)

    def test_full_matrix_is_cached(self, spd_5x5):
        chol = DynamicCholesky(spd_5x5)
        np.testing.assert_array_equal(chol.full_matrix(), spd_5x5)
        assert chol.check_factorization() < 1e-10


class TestSPDFlag:
    def test_asymmetric(self):
        A = np.array([[2.0, 1.0], [0.5, 2.0]])
        chol = DynamicCholesky(A)
        assert not chol.is_spd
        with pytest.raises(NotPositiveDefiniteError):
            chol.solve(np.ones(2))

    def test_indefinite(self):
        A = np.array([[1.0, 2.0], [2.0, 1.0]])
        chol = DynamicCholesky(A)
        assert not chol.is_spd
        # negative pivot clamped to zero, no NaN in the factor
        assert np.all(np.isfinite(chol.factor))
        with pytest.raises(NotPositiveDefiniteError):
            chol.solve(np.ones(2))

    def test_not_square(self):
        chol = DynamicCholesky(np.ones((2, 3)))
        assert not chol.is_spd

    def test_not_spd_error_is_linalg_error(self):
        chol = DynamicCholesky(-np.eye(2))
        with pytest.raises(np.linalg.LinAlgError):
            chol.solve(np.ones(2))


class TestMasking:
    def test_mask_matches_reference(self, spd_factory, rng):
        A = spd_factory(6)
        B = rng.standard_normal((6, 2))
        chol = DynamicCholesky(A)
        chol.mask_row(2)
        assert chol.get_mask(2)
        assert chol.ncurr == 5
        np.testing.assert_allclose(chol.solve(B), _masked_solve(A, B, [0, 1, 3, 4, 5]), atol=1e-10)
        assert chol.check_factorization() < 1e-10

    def test_factor_stays_lower_with_nonnegative_diagonal(self, spd_factory):
        A = spd_factory(8)
        chol = DynamicCholesky(A)
        for r in (0, 5, 3):
            chol.mask_row(r)
            L = chol.factor
            assert np.all(np.diag(L) >= 0.0)
            np.testing.assert_allclose(L @ L.T, chol.active_matrix(), atol=1e-10)

    def test_mask_last_and_first(self, spd_factory, rng):
        A = spd_factory(5)
        b = rng.standard_normal(5)
        chol = DynamicCholesky(A)
        chol.mask_row(4)
        chol.mask_row(0)
        np.testing.assert_allclose(chol.solve(b), _masked_solve(A, b, [1, 2, 3]), atol=1e-10)

    def test_mask_twice_is_noop(self, spd_5x5):
        chol = DynamicCholesky(spd_5x5)
        chol.mask_row(1)
        L = chol.factor
        chol.mask_row(1)
        assert chol.ncurr == 4
        np.testing.assert_array_equal(chol.factor, L)

    def test_unmask_active_is_noop(self, spd_5x5):
        chol = DynamicCholesky(spd_5x5)
        chol.unmask_row(3)
        assert chol.ncurr == 5
        np.testing.assert_array_equal(chol.active_indices, np.arange(5))

    @pytest.mark.parametrize("row", [0, 2, 4])
    def test_mask_unmask_round_trip(self, spd_5x5, rng, row):
        B = rng.standard_normal((5, 3))
        chol = DynamicCholesky(spd_5x5)
        before = chol.solve(B)
        chol.mask_row(row)
        chol.unmask_row(row)
        assert not chol.get_mask(row)
        assert chol.active_indices[-1] == row
        np.testing.assert_allclose(chol.solve(B), before, atol=1e-10)

    def test_random_sequence(self, spd_factory, rng):
        n = 10
        A = spd_factory(n)
        b = rng.standard_normal(n)
        chol = DynamicCholesky(A)
        active = set(range(n))
        for _ in range(60):
            i = int(rng.integers(n))
            if i in active and len(active) > 1:
                chol.mask_row(i)
                active.discard(i)
            elif i not in active:
                chol.unmask_row(i)
                active.add(i)
            chol.index_map.check()
            assert chol.ncurr == len(active)
            assert set(chol.active_indices.tolist()) == active
            f2p = chol.index_map.full2partial
            p2f = chol.index_map.partial2full
            for j in active:
                assert p2f[f2p[j]] == j
            np.testing.assert_allclose(chol.solve(b), _masked_solve(A, b, active), atol=1e-9)

    def test_mask_rows_unmask_rows(self, spd_factory, rng):
        A = spd_factory(7)
        b = rng.standard_normal(7)
        chol = DynamicCholesky(A)
        chol.mask_rows([6, 1, 3])
        assert chol.masked_indices == [1, 3, 6]
        chol.unmask_rows([3, 6])
        np.testing.assert_allclose(chol.solve(b), _masked_solve(A, b, [0, 2, 3, 4, 5, 6]), atol=1e-10)

    def test_get_mask_out_of_range(self, spd_5x5):
        chol = DynamicCholesky(spd_5x5)
        with pytest.raises(IndexError):
            chol.get_mask(5)
        with pytest.raises(IndexError):
            chol.getmask(-1)


class TestSingleRowStart:
    def test_starts_with_one_row(self, spd_factory, rng):
        A = spd_factory(6)
        b = rng.standard_normal(6)
        chol = DynamicCholesky(A, row=3)
        assert chol.ncurr == 1
        assert chol.is_spd
        assert chol.masked_indices == [0, 1, 2, 4, 5]
        np.testing.assert_allclose(chol.solve(b), _masked_solve(A, b, [3]), atol=1e-12)

    def test_grow_to_full(self, spd_factory, rng):
        A = spd_factory(6)
        b = rng.standard_normal(6)
        chol = DynamicCholesky(A, row=2)
        chol.unmask_rows([0, 5, 1, 4, 3])
        assert chol.ncurr == 6
        np.testing.assert_allclose(A @ chol.solve(b), b, atol=1e-9)
        assert chol.check_factorization() < 1e-10

    def test_nonpositive_diagonal(self):
        A = np.array([[0.0, 0.0], [0.0, 1.0]])
        assert not DynamicCholesky(A, row=0).is_spd
        assert DynamicCholesky(A, row=1).is_spd

    def test_mask_all_but_one(self, spd_factory, rng):
        A = spd_factory(5)
        b = rng.standard_normal(5)
        chol = DynamicCholesky(A)
        chol.mask_row(2)
        chol.mask_all_but_one(4)
        assert chol.ncurr == 1
        chol.index_map.check()
        np.testing.assert_allclose(chol.solve(b), _masked_solve(A, b, [4]), atol=1e-12)
        chol.unmask_row(0)
        np.testing.assert_allclose(chol.solve(b), _masked_solve(A, b, [0, 4]), atol=1e-10)


class TestErrors:
    def test_all_masked(self, spd_5x5):
        chol = DynamicCholesky(spd_5x5)
        chol.mask_rows(range(5))
        assert chol.ncurr == 0
        with pytest.raises(DegenerateSystemError):
            chol.solve(np.ones(5))

    def test_row_mismatch(self, spd_5x5):
        chol = DynamicCholesky(spd_5x5)
        with pytest.raises(DimensionMismatchError):
            chol.solve(np.ones(4))
        with pytest.raises(ValueError):
            chol.solve(np.ones((6, 2)))


class TestGivens:
    @pytest.mark.parametrize("a, b", [(3.0, 4.0), (4.0, 3.0), (-1.0, 2.0), (2.0, -0.5), (1.0, 0.0)])
    def test_zeroes_second_component(self, a, b):
        c, s = k_givens(a, b)
        assert c * c + s * s == pytest.approx(1.0)
        assert s * a + c * b == pytest.approx(0.0, abs=1e-14)
