# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""EM models for multi-mapping read reassignment.

Both models work on a read-by-feature compatibility matrix and expose the
same interface: ``estep``, ``mstep``, ``objective`` (negative log-likelihood
or log-posterior, to be minimised), ``em`` and ``counts``. Parameters are
passed to the fixed-point machinery as flat vectors.
"""

import logging as lg

import numpy as np

from ..sparse.matrix import csr_matrix_plus
from .squarem import fixptiter, squarem


class _EMModel:
    """Shared fitting loop."""

    tol = 1e-7
    max_iter = 100
    accelerate = True

    def fixptfn(self, par):
        return self.pack(*self.mstep(self.estep(*self.unpack(par)), *self.unpack(par)))

    def feasible(self, par):
        return bool(np.all(par >= 0))

    def em(self, loglev=lg.DEBUG):
        """Fit the model, by SQUAREM or by plain EM iterations."""
        par0 = self.pack(*self.params)
        if self.accelerate:
            par, self.fitinfo = squarem(
                par0, self.fixptfn, self.objective, tol=self.tol, maxiter=self.max_iter,
                feasible=self.feasible, loglev=loglev,
            )
        else:
            par, self.fitinfo = fixptiter(
                par0, self.fixptfn, self.objective, tol=self.tol, maxiter=self.max_iter, loglev=loglev,
            )
        self.params = self.unpack(par)
        self.z = self.estep(*self.params).copy()
        self.lnl = -self.fitinfo.objective

        _name = type(self).__name__
        if self.fitinfo.converged:
            lg.log(loglev, f'{_name}: EM converged after {self.fitinfo.iterations:d} iterations.')
        else:
            lg.warning(f'{_name}: EM did not converge after {self.fitinfo.iterations:d} iterations.')
        if self.fitinfo.fallbacks:
            lg.debug(f'{_name}: {self.fitinfo.fallbacks:d} extrapolation steps rejected.')
        lg.log(loglev, f'Final log-likelihood: {self.lnl:f}.')

    def _fallback_rows(self, z, init):
        """Rows of *z* that summed to zero take their values from *init*."""
        _sums = z.row_sums()
        _zero = _sums == 0
        if np.any(_zero):
            _mask = _zero[z.row_ids()]
            z.data[_mask] = init.data[_mask]
            _sums[_zero] = 1.0
        z.data /= _sums[z.row_ids()]
        return z


class TEtranscriptsLikelihood(_EMModel):
    """Proportional EM over feature abundances (Jin et al. 2015).

    The abundance ``pi`` starts from the unique read counts plus an even
    split of each multi-mapping read, and each iteration redistributes
    every read over its features in proportion to the current abundances.
    Counts are the expected (fractional) read numbers per feature.
    """

    def __init__(self, score_matrix, config):
        self.tol = config.convergence_tol
        self.max_iter = config.max_iter
        self.accelerate = config.accelerate

        _m = csr_matrix_plus(score_matrix)
        _m.eliminate_zeros()
        self.Q = csr_matrix_plus(_m.indicator(), dtype=np.float64)
        self.N, self.K = self.Q.shape
        self.Y_amb = self.Q.count(1) > 1

        self.z_init = self.Q.norm(1)
        self.pi_init = self.z_init.colsums() / self.N if self.N else np.zeros(self.K)
        self.params = (self.pi_init.copy(),)
        # E-step workspace; only its data array is rewritten
        self._z = self.z_init.copy()
        self.z = None
        self.lnl = float('nan')
        self.fitinfo = None

    @property
    def pi(self):
        return self.params[0]

    def pack(self, pi):
        return np.asarray(pi, dtype=np.float64)

    def unpack(self, par):
        return (par,)

    def estep(self, pi):
        np.multiply(self.Q.data, pi[self.Q.indices], out=self._z.data)
        return self._fallback_rows(self._z, self.z_init)

    def mstep(self, z, pi_old=None):
        if self.N == 0:
            return (pi_old,)
        return (z.colsums() / self.N,)

    def objective(self, par):
        _inner = self.Q.multiply_cols(par).row_sums()
        with np.errstate(divide='ignore', invalid='ignore'):
            return -np.sum(np.log(_inner))

    def counts(self):
        return self.z.colsums()


class TelescopeLikelihood(_EMModel):
    """Telescope mixture model (Bendall et al. 2019).

    ``pi[j]`` is the proportion of fragments originating from feature j and
    ``theta[j]`` the proportion of ambiguous fragments reassigned to j. The
    MAP estimates are found by EM, with optional priors ``pi_prior`` and
    ``theta_prior`` given as pseudo-counts of fragments.
    """

    REASSIGN_MODES = ['exclude', 'choose', 'average', 'conf', 'unique', 'all']

    def __init__(self, score_matrix, config):
        self.tol = config.convergence_tol
        self.max_iter = config.max_iter
        self.accelerate = config.accelerate
        self.conf_prob = config.conf_prob
        self.rng = np.random.default_rng(config.seed)

        """ Raw scores """
        self.raw_scores = csr_matrix_plus(score_matrix, dtype=np.float64)
        self.raw_scores.eliminate_zeros()
        self.N, self.K = self.raw_scores.shape

        """ Scaled and exponentiated mapping qualities """
        self.scale_factor = 100.0
        self.Q = self.raw_scores.scale()
        self.Q.data = np.expm1(self.Q.data * self.scale_factor)

        """ Ambiguity indicator per fragment """
        _nnz = self.Q.count(1)
        self.Y_amb = _nnz > 1
        self.Y_uni = _nnz == 1
        self._amb_elem = self.Y_amb[self.Q.row_ids()]

        """ Fragment weights, scaled so that the largest is one """
        _rowmax = np.zeros(self.N)
        if self.N:
            np.maximum.at(_rowmax, self.Q.row_ids(), self.Q.data)
        _wmax = _rowmax.max() if self.N else 1.0
        self._weights = _rowmax / _wmax if _wmax else _rowmax
        self._total_wt = self._weights.sum()
        self._ambig_wt = self._weights[self.Y_amb].sum()
        self._unique_wt = self._weights[self.Y_uni].sum()

        """ Weighted priors """
        self.pi_prior = config.pi_prior
        self.theta_prior = config.theta_prior
        self._pi_prior_wt = float(self.pi_prior)
        self._theta_prior_wt = float(self.theta_prior)
        self._pisum0 = self.Q.norm(1).multiply_rows(self._weights * self.Y_uni).colsums()
        self._theta_denom = self._ambig_wt + self._theta_prior_wt * self.K
        self._pi_denom = self._total_wt + self._pi_prior_wt * self.K

        self.z_init = self.Q.norm(1)
        self._z = self.z_init.copy()
        self.z = None

        _flat = np.repeat(1.0 / self.K, self.K) if self.K else np.zeros(0)
        self.params = (_flat, _flat.copy())
        self.pi_init = self.theta_init = None
        self.lnl = float('nan')
        self.fitinfo = None

    @property
    def pi(self):
        return self.params[0]

    @property
    def theta(self):
        return self.params[1]

    def pack(self, pi, theta):
        return np.concatenate([pi, theta]).astype(np.float64)

    def unpack(self, par):
        return par[:self.K], par[self.K:]

    def estep(self, pi, theta):
        """ Expected values of z
                E(z[i,j]) = ( pi[j] * theta[j]**Y[i] * Q[i,j] ) / sum_k( ... )
        """
        _idx = self.Q.indices
        _w = pi[_idx] * np.where(self._amb_elem, theta[_idx], 1.0)
        np.multiply(self.Q.data, _w, out=self._z.data)
        return self._fallback_rows(self._z, self.z_init)

    def mstep(self, z, pi_old=None, theta_old=None):
        """ Maximum a posteriori (MAP) estimates for pi and theta """
        _weighted = z.multiply_rows(self._weights * self.Y_amb)
        _thetasum = _weighted.colsums()

        if self._theta_denom > 0:
            _theta_hat = (_thetasum + self._theta_prior_wt) / self._theta_denom
        else:
            _theta_hat = theta_old if theta_old is not None else self.theta

        if self._pi_denom > 0:
            _pi_hat = (self._pisum0 + _thetasum + self._pi_prior_wt) / self._pi_denom
        else:
            _pi_hat = pi_old if pi_old is not None else self.pi
        return _pi_hat, _theta_hat

    def objective(self, par):
        """Negative weighted log-posterior of (pi, theta)."""
        pi, theta = self.unpack(par)
        _idx = self.Q.indices
        _w = pi[_idx] * np.where(self._amb_elem, theta[_idx], 1.0)
        _inner = np.bincount(self.Q.row_ids(), weights=self.Q.data * _w, minlength=self.N)
        with np.errstate(divide='ignore', invalid='ignore'):
            ret = np.sum(self._weights * np.log(_inner))
            if self._pi_prior_wt > 0:
                ret += self._pi_prior_wt * np.sum(np.log(pi))
            if self._theta_prior_wt > 0:
                ret += self._theta_prior_wt * np.sum(np.log(theta))
        return -ret

    def em(self, loglev=lg.DEBUG):
        if self.K:
            self.pi_init, self.theta_init = self.mstep(self.estep(*self.params))
        super().em(loglev)

    def reassign(self, mode, thresh=None):
        """Reassign fragments to features.

        In the first four modes the feature with the highest posterior
        probability is selected; ties are broken by:
            "exclude" - the fragment does not contribute to the counts.
            "choose"  - one of the best features is picked at random.
            "average" - the fragment is divided evenly among the best.
            "conf"    - only assignments with posterior above ``thresh``
                        count; with ``thresh > 0.5`` ties cannot occur.
        The last two modes ignore the fitted model:
            "unique"  - only fragments aligned to a single feature count.
            "all"     - every feature a fragment aligns to gets one count.

        Returns:
            csr_matrix_plus where m[i,j] is the weight of fragment i on
            feature j.
        """
        if mode not in self.REASSIGN_MODES:
            raise ValueError(f'Argument "mode" should be one of {self.REASSIGN_MODES}')
        if mode == 'exclude':
            bestmat = self.z.binmax(1)
            nbest = bestmat.row_sums()
            return bestmat.multiply_rows(nbest == 1)
        elif mode == 'choose':
            return self.z.binmax(1).choose_random(1, self.rng)
        elif mode == 'average':
            return self.z.binmax(1).norm(1)
        elif mode == 'conf':
            thresh = self.conf_prob if thresh is None else thresh
            return self.z.threshold_filter(thresh).indicator()
        elif mode == 'unique':
            return self.raw_scores.indicator().multiply_rows(self.Y_uni)
        return self.raw_scores.indicator()

    def counts(self, mode='exclude', thresh=None):
        return self.reassign(mode, thresh).colsums()
