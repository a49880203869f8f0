# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Tests for csr_matrix_plus row-wise operations."""

import numpy as np
import pytest
from numpy.testing import assert_array_almost_equal, assert_array_equal

from atena.sparse.matrix import csr_matrix_plus


# --- Fixtures ---

@pytest.fixture
def m3x3():
    return csr_matrix_plus([[1, 0, 2], [0, 0, 3], [4, 5, 6]], dtype=np.float64)


@pytest.fixture
def m_ties():
    """Matrix with tied max values per row."""
    return csr_matrix_plus([[5, 0, 5], [3, 1, 0], [0, 0, 9]], dtype=np.float64)


# --- Sums and counts ---

def test_row_sums(m3x3):
    assert_array_equal(m3x3.row_sums(), [3, 3, 15])


def test_colsums(m3x3):
    assert_array_equal(m3x3.colsums(), [5, 5, 11])


def test_count(m3x3):
    assert_array_equal(m3x3.count(1), [2, 1, 3])
    assert m3x3.count() == 6


# --- Normalisation ---

class TestNorm:
    def test_rows(self, m3x3):
        n = m3x3.norm(1)
        assert_array_almost_equal(n.toarray()[0], [1 / 3, 0, 2 / 3])
        assert_array_almost_equal(n.row_sums(), [1, 1, 1])

    def test_columns(self, m3x3):
        n = m3x3.norm(0)
        assert_array_almost_equal(n.colsums(), [1, 1, 1])

    def test_total(self, m3x3):
        assert m3x3.norm().data.sum() == pytest.approx(1.0)

    def test_zero_row_left_alone(self):
        m = csr_matrix_plus([[0, 0], [1, 3]], dtype=np.float64)
        assert_array_almost_equal(m.norm(1).toarray(), [[0, 0], [0.25, 0.75]])

    def test_returns_same_class(self, m3x3):
        assert isinstance(m3x3.norm(1), csr_matrix_plus)

    def test_invalid_axis(self, m3x3):
        with pytest.raises(ValueError):
            m3x3.norm(2)


def test_scale(m3x3):
    assert_array_almost_equal(m3x3.scale().toarray()[2], [4 / 6, 5 / 6, 1])


def test_multiply_rows_and_cols(m3x3):
    assert_array_equal(m3x3.multiply_rows([1, 2, 0]).toarray()[1], [0, 0, 6])
    assert_array_equal(m3x3.multiply_cols([1, 0, 10]).toarray()[0], [1, 0, 20])


# --- Reassignment helpers ---

class TestBinmax:
    def test_ties(self, m_ties):
        assert_array_equal(m_ties.binmax(1).toarray(), [[1, 0, 1], [1, 0, 0], [0, 0, 1]])

    def test_dtype(self, m_ties):
        assert m_ties.binmax(1).dtype == np.int8


class TestChooseRandom:
    def test_one_per_row(self, m_ties):
        chosen = m_ties.binmax(1).choose_random(1, np.random.default_rng(42))
        assert_array_equal(chosen.count(1), [1, 1, 1])

    def test_seeded(self, m_ties):
        a = m_ties.choose_random(1, np.random.default_rng(7)).toarray()
        b = m_ties.choose_random(1, np.random.default_rng(7)).toarray()
        assert_array_equal(a, b)


def test_threshold_filter(m3x3):
    assert_array_equal(m3x3.threshold_filter(3).toarray(), [[0, 0, 0], [0, 0, 0], [4, 5, 6]])


def test_indicator(m3x3):
    ind = m3x3.indicator()
    assert ind.dtype == np.int8
    assert_array_equal(ind.toarray(), [[1, 0, 1], [0, 0, 1], [1, 1, 1]])
