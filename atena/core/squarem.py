# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Fixed-point iteration with SQUAREM acceleration.

SQUAREM (Varadhan and Roland, 2008; Du and Varadhan, 2020) combines two
successive fixed-point updates into one extrapolated step. This is the
``squarem1`` scheme with the third step length, a stabilising fixed-point
step after each extrapolation, and a monotonicity check: when the
extrapolated point is infeasible or worsens the objective, the plain
two-step update is used instead.

``objfn`` is minimised, so EM models pass the negative log-likelihood.
"""

import logging as lg
from dataclasses import dataclass, field
from time import perf_counter

import numpy as np


@dataclass
class FitInfo:
    """Information about a fit"""
    converged: bool = False
    reached_max: bool = False
    iterations: int = 0
    fpevals: int = 0
    objfevals: int = 0
    fallbacks: int = 0
    objective: float = float('nan')
    trace: list = field(default_factory=list)
    elapsed: float = 0.0


def _objective(objfn, par, info):
    info.objfevals += 1
    with np.errstate(all='ignore'):
        return float(objfn(par))


def fixptiter(par, fixptfn, objfn, tol=1e-7, maxiter=100, loglev=lg.DEBUG):
    """Plain fixed-point iteration (no acceleration).

    Stops when the L2 norm of the parameter change is below *tol* or after
    *maxiter* iterations.

    Returns:
        (par, FitInfo)
    """
    info = FitInfo()
    stime = perf_counter()
    p = np.asarray(par, dtype=np.float64)
    lold = _objective(objfn, p, info)
    while info.iterations < maxiter:
        p_new = fixptfn(p)
        info.fpevals += 1
        res = np.sqrt(np.sum((p_new - p) ** 2))
        p = p_new
        lold = _objective(objfn, p, info)
        info.iterations += 1
        info.trace.append(lold)
        lg.log(loglev, f'Iteration {info.iterations:d}, objective={lold:.6g}, diff={res:.5g}')
        if res < tol:
            info.converged = True
            break
    info.reached_max = not info.converged
    info.objective = lold
    info.elapsed = perf_counter() - stime
    return p, info


def squarem(par, fixptfn, objfn, tol=1e-7, maxiter=100, feasible=None,
            step_min0=1.0, step_max0=1.0, mstep=4.0, objfn_inc=0.0, loglev=lg.DEBUG):
    """Minimise *objfn* by SQUAREM-accelerated iteration of *fixptfn*.

    Args:
        par: Starting parameter vector.
        fixptfn: Fixed-point map (one EM step).
        objfn: Objective to minimise; must not increase under *fixptfn*.
        tol (float): Convergence tolerance on the L2 norm of ``F(p) - p``.
        maxiter (int): Maximum number of iterations.
        feasible: Optional predicate on parameter vectors. Extrapolated
            points failing it are rejected.
        step_min0, step_max0, mstep: Step length bounds and their growth
            factor.
        objfn_inc (float): Allowed objective increase for an accepted
            extrapolation. Zero keeps the objective monotone.
        loglev: Logging level for per-iteration messages.

    Returns:
        (par, FitInfo)
    """
    info = FitInfo()
    stime = perf_counter()
    p = np.asarray(par, dtype=np.float64)
    lold = _objective(objfn, p, info)
    step_min, step_max = step_min0, step_max0

    while info.iterations < maxiter:
        p1 = fixptfn(p)
        info.fpevals += 1
        q1 = p1 - p
        sr2 = np.dot(q1, q1)
        if np.sqrt(sr2) < tol:
            p = p1
            lold = _objective(objfn, p, info)
            info.converged = True
            break

        p2 = fixptfn(p1)
        info.fpevals += 1
        q2 = p2 - p1
        sq2 = np.sqrt(np.dot(q2, q2))
        if sq2 < tol:
            p = p2
            lold = _objective(objfn, p, info)
            info.iterations += 1
            info.trace.append(lold)
            info.converged = True
            break

        v = q2 - q1
        sv2 = np.dot(v, v)
        alpha = np.sqrt(sr2 / sv2) if sv2 > 0 else step_max
        alpha = max(step_min, min(step_max, alpha))
        p_new = p + 2.0 * alpha * q1 + alpha ** 2 * v

        accepted = feasible is None or feasible(p_new)
        if accepted:
            if abs(alpha - 1.0) > 0.01:
                p_new = fixptfn(p_new)
                info.fpevals += 1
            lnew = _objective(objfn, p_new, info)
            accepted = (
                np.all(np.isfinite(p_new))
                and (feasible is None or feasible(p_new))
                and np.isfinite(lnew)
                and lnew <= lold + objfn_inc
            )

        if not accepted:
            lg.log(loglev, f'Iteration {info.iterations + 1:d}: extrapolation rejected (alpha={alpha:.4g})')
            p_new = p2
            lnew = _objective(objfn, p_new, info)
            info.fallbacks += 1
            if alpha == step_max:
                step_max = max(step_max0, step_max / mstep)
            alpha = 1.0

        if alpha == step_max:
            step_max = mstep * step_max
        if step_min < 0 and alpha == step_min:
            step_min = mstep * step_min

        p = p_new
        lold = lnew
        info.iterations += 1
        info.trace.append(lold)
        lg.log(loglev, f'Iteration {info.iterations:d}, objective={lold:.6g}, diff={np.sqrt(sr2):.5g}')

    info.reached_max = not info.converged
    info.objective = lold
    info.elapsed = perf_counter() - stime
    return p, info
