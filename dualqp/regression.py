"""
Constrained linear least-squares regression.

Fits coefficients ``beta`` minimizing ``||y - M beta||^2`` for a design matrix
``M`` under linear restrictions on ``beta``. The fit is rewritten as the QP

    argmin 1/2 beta^T (M^T M) beta - (M^T y)^T beta

and handed to :func:`dualqp.qp.goldfarb_idnani`, so ``M`` must have full
column rank.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .core import DEFAULT_MAXITER, OptimizeResult, QPProblem, Status
from .logging import get_logger
from .qp import goldfarb_idnani
from .regions import Region

logger = get_logger(__name__)


def polynomial_design_matrix(points: np.ndarray, order: int) -> np.ndarray:
    """Return the design matrix with columns ``1, t, ..., t^order``."""
    if order < 0:
        raise ValueError("order must be non-negative")
    points = np.asarray(points, dtype=float).reshape(-1)
    return np.vander(points, order + 1, increasing=True)


def constrained_least_squares(
    design: np.ndarray,
    observations: np.ndarray,
    *regions: Region,
    weights: Optional[np.ndarray] = None,
    maxiter: int = DEFAULT_MAXITER,
) -> OptimizeResult:
    """
    Solve ``min ||y - M beta||^2`` subject to ``regions`` on ``beta``.

    With ``weights`` the objective becomes ``sum_j w_j (y_j - M_j beta)^2``;
    rows of ``M`` and ``y`` are scaled by ``sqrt(w_j)``. The returned ``fun`` is
    the (weighted) residual sum of squares at the coefficients.

    Raises:
        ValueError: If there are fewer observations than coefficients, the
            shapes disagree or a weight is not positive.
        ArithmeticError: If the underlying QP does not converge.
    """

    design = np.asarray(design, dtype=float)
    y = np.asarray(observations, dtype=float).reshape(-1)
    if design.ndim != 2 or design.shape[0] != y.shape[0]:
        raise ValueError("Design matrix rows must match the number of observations")
    if design.shape[0] < design.shape[1]:
        raise ValueError("Fewer observations than coefficients")
    if weights is not None:
        w = np.asarray(weights, dtype=float).reshape(-1)
        if w.shape != y.shape or np.any(w <= 0.0):
            raise ValueError("weights must be positive, one per observation")
        scale = np.sqrt(w)
        design = design * scale[:, None]
        y = y * scale

    problem = QPProblem.from_regions(design.T @ design, -(design.T @ y), *regions)
    result = goldfarb_idnani(problem, maxiter=maxiter)
    if result.status is not Status.PROPER_RESULT:
        raise ArithmeticError(f"Constrained regression failed: {result.message}")

    residual = y - design @ result.x
    result.fun = float(residual @ residual)
    logger.debug("Constrained regression residual sum of squares %.6g", result.fun)
    return result


__all__ = ["constrained_least_squares", "polynomial_design_matrix"]
