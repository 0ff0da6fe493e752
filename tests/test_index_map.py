import numpy as np
import pytest

from splitlsq.blocks.errors import ActiveSetInvariantError
from splitlsq.blocks.index_map import IndexMap


def test_all_active_is_identity():
    m = IndexMap(4)
    assert m.ncurr == 4
    np.testing.assert_array_equal(m.active(), [0, 1, 2, 3])
    assert m.masked() == []
    m.check()


def test_remove_closes_gap():
    m = IndexMap(5)
    row = m.remove(1)
    assert row == 1
    np.testing.assert_array_equal(m.active(), [0, 2, 3, 4])
    assert m.position(3) == 2
    assert m.position(1) == -1
    assert m.is_masked(1)
    m.check()


def test_append_goes_last():
    m = IndexMap(5)
    m.remove(0)
    m.remove(3)
    assert m.append(0) == 3
    np.testing.assert_array_equal(m.active(), [1, 2, 4, 0])
    assert m.masked() == [3]
    m.check()


def test_reset_to_single_row():
    m = IndexMap(6)
    m.reset_to(4)
    assert m.ncurr == 1
    np.testing.assert_array_equal(m.active(), [4])
    assert m.masked() == [0, 1, 2, 3, 5]
    m.check()


def test_random_sequence_keeps_bijection(rng):
    n = 12
    m = IndexMap(n)
    for _ in range(200):
        i = int(rng.integers(n))
        if m.is_masked(i):
            m.append(i)
        else:
            m.remove(i)
        m.check()
        act = m.active()
        for full in act:
            assert m.partial2full[m.full2partial[full]] == full
        assert m.ncurr == n - len(m.masked())


def test_check_detects_corruption():
    m = IndexMap(3)
    m.full2partial[0] = 2
    with pytest.raises(ActiveSetInvariantError):
        m.check()
