"""
Karush-Kuhn-Tucker diagnostics for quadratic programs.

With multipliers ``lam`` (equalities) and ``mu`` (inequalities) a point ``x``
is optimal for ``min 1/2 x^T A x + b^T x`` s.t. ``C^T x >= c``, ``D^T x = d``
if ``A x + b = D lam + C mu``, ``mu >= 0``, ``x`` is feasible and
``mu_i (C^T x - c)_i = 0``.
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np

from .core import QPProblem


def kkt_residuals(
    problem: QPProblem,
    x: np.ndarray,
    eq_multipliers: Optional[np.ndarray] = None,
    ineq_multipliers: Optional[np.ndarray] = None,
) -> Dict[str, float]:
    """
    Compute infinity norms of the KKT residuals at ``x``.

    Missing multipliers are taken as zero. The returned keys are
    ``primal_eq``, ``primal_ineq``, ``dual``, ``complementary`` and
    ``dual_sign`` (magnitude of the most negative inequality multiplier).
    """

    x = np.asarray(x, dtype=float).reshape(-1)
    if x.shape[0] != problem.dimension:
        raise ValueError("x must match the problem dimension")
    lam = (
        np.zeros(problem.equality_count)
        if eq_multipliers is None
        else np.asarray(eq_multipliers, dtype=float).reshape(-1)
    )
    mu = (
        np.zeros(problem.inequality_count)
        if ineq_multipliers is None
        else np.asarray(ineq_multipliers, dtype=float).reshape(-1)
    )
    if lam.shape[0] != problem.equality_count or mu.shape[0] != problem.inequality_count:
        raise ValueError("Multiplier lengths must match the constraint counts")

    stationarity = problem.gradient(x) - problem.d_mat @ lam - problem.c_mat @ mu

    primal_eq = 0.0
    if problem.equality_count:
        primal_eq = float(np.linalg.norm(problem.d_mat.T @ x - problem.d_vec, ord=np.inf))

    primal_ineq = complementary = dual_sign = 0.0
    if problem.inequality_count:
        slack = problem.c_mat.T @ x - problem.c_vec
        primal_ineq = float(np.linalg.norm(np.minimum(slack, 0.0), ord=np.inf))
        complementary = float(np.linalg.norm(slack * mu, ord=np.inf))
        dual_sign = float(np.linalg.norm(np.minimum(mu, 0.0), ord=np.inf))

    return {
        "primal_eq": primal_eq,
        "primal_ineq": primal_ineq,
        "dual": float(np.linalg.norm(stationarity, ord=np.inf)),
        "complementary": complementary,
        "dual_sign": dual_sign,
    }


def is_kkt_optimal(
    problem: QPProblem,
    x: np.ndarray,
    eq_multipliers: Optional[np.ndarray] = None,
    ineq_multipliers: Optional[np.ndarray] = None,
    tol: float = 1e-6,
) -> bool:
    """
    Return True if all KKT residuals are below ``tol``.
    """

    residuals = kkt_residuals(problem, x, eq_multipliers, ineq_multipliers)
    return all(value <= tol for value in residuals.values())


__all__ = ["kkt_residuals", "is_kkt_optimal"]
