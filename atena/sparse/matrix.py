# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""CSR matrix with the row-wise operations needed by the EM models.

The matrix is used as an arena of (read, feature, weight) triples: ``indptr``
and ``indices`` never change once the matrix is built, and the E-step only
rewrites ``data``. Row-wise helpers therefore operate directly on the CSR
arrays instead of going through scipy broadcasting.
"""

import numpy as np
import scipy.sparse


class csr_matrix_plus(scipy.sparse.csr_matrix):

    def _new(self, data):
        return type(self)((data, self.indices.copy(), self.indptr.copy()), shape=self.shape)

    def row_ids(self):
        """Row index of every stored element."""
        return np.repeat(np.arange(self.shape[0]), np.diff(self.indptr))

    def row_sums(self):
        return np.bincount(self.row_ids(), weights=self.data, minlength=self.shape[0])

    def count(self, axis=None):
        """Number of stored elements along *axis*."""
        return self.getnnz(axis=axis)

    def norm(self, axis=None):
        """Normalise so that the whole matrix (None), each column (0) or each
        row (1) sums to one. Rows or columns summing to zero are left as is.
        """
        _data = self.data.astype(np.float64)
        if axis is None:
            _total = _data.sum()
            return self._new(_data / _total if _total else _data)
        if axis == 1:
            _sums = self.row_sums()[self.row_ids()]
        elif axis == 0:
            _colsums = np.bincount(self.indices, weights=_data, minlength=self.shape[1])
            _sums = _colsums[self.indices]
        else:
            raise ValueError(f'Invalid axis: {axis}')
        _out = np.divide(_data, _sums, out=_data.copy(), where=_sums != 0)
        return self._new(_out)

    def scale(self):
        """Scale values by the maximum value in the matrix."""
        _data = self.data.astype(np.float64)
        _max = _data.max() if _data.size else 0
        return self._new(_data / _max if _max else _data)

    def multiply_cols(self, vec):
        """Multiply column j by ``vec[j]``."""
        return self._new(self.data * np.asarray(vec, dtype=np.float64)[self.indices])

    def multiply_rows(self, vec):
        """Multiply row i by ``vec[i]``."""
        return self._new(self.data * np.asarray(vec, dtype=np.float64)[self.row_ids()])

    def binmax(self, axis=1):
        """Indicator (int8) of the maximum value(s) in each row."""
        if axis != 1:
            raise NotImplementedError('binmax is only implemented for rows')
        _rows = self.row_ids()
        _rowmax = np.full(self.shape[0], -np.inf)
        np.maximum.at(_rowmax, _rows, self.data)
        return self._new((self.data == _rowmax[_rows]).astype(np.int8))

    def choose_random(self, axis=1, rng=None):
        """Keep one randomly chosen stored element per row."""
        if axis != 1:
            raise NotImplementedError('choose_random is only implemented for rows')
        rng = rng if rng is not None else np.random.default_rng()
        _out = np.zeros_like(self.data)
        for i in range(self.shape[0]):
            start, end = self.indptr[i], self.indptr[i + 1]
            _nz = np.flatnonzero(self.data[start:end])
            if len(_nz):
                j = start + _nz[rng.integers(len(_nz))]
                _out[j] = self.data[j]
        ret = self._new(_out)
        ret.eliminate_zeros()
        return ret

    def threshold_filter(self, thresh):
        """Keep values strictly greater than *thresh*."""
        ret = self._new(np.where(self.data > thresh, self.data, 0))
        ret.eliminate_zeros()
        return ret

    def indicator(self):
        """Binary (int8) indicator of stored nonzero values."""
        ret = self._new((self.data != 0).astype(np.int8))
        ret.eliminate_zeros()
        return ret

    def colsums(self):
        return np.bincount(self.indices, weights=self.data, minlength=self.shape[1])
