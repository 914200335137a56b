"""
Dense linear algebra primitives consumed by the dual active-set solver.

The solver never inverts ``A`` explicitly. It needs a Cholesky solve of
``A x = rhs`` (LAPACK ``posv``), the inverse of the lower Cholesky factor
built from triangular solves against unit vectors (``trsv``), and the
coefficients of Givens rotations. Factorizations are delegated to
:mod:`scipy.linalg`; everything else is plain NumPy.
"""

from __future__ import annotations

import math

import numpy as np
from scipy import linalg as sla


def symmetrize(matrix: np.ndarray) -> np.ndarray:
    """
    Return the symmetric part of ``matrix``.

    The solver only reads one triangle of ``A`` through the Cholesky factor;
    using ``0.5 * (matrix + matrix.T)`` keeps the objective value and the
    factorization consistent for inputs with round-off asymmetries.
    """

    return 0.5 * (matrix + matrix.T)


def cholesky_factor(matrix: np.ndarray) -> np.ndarray:
    """
    Return the lower-triangular Cholesky factor ``L`` with ``matrix = L L^T``.

    Raises:
        ValueError: If ``matrix`` is not (numerically) positive definite.
    """

    try:
        return sla.cholesky(matrix, lower=True, check_finite=True)
    except sla.LinAlgError as exc:
        raise ValueError("A must be symmetric positive definite") from exc


def cholesky_solve(lower: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    """Solve ``L L^T x = rhs`` given the lower factor ``L``."""

    return sla.cho_solve((lower, True), rhs, check_finite=False)


def inverse_lower_factor(lower: np.ndarray) -> np.ndarray:
    """
    Return ``L^{-1}`` for a lower-triangular ``L``.

    Equivalent to solving ``L y = e_j`` for every unit vector ``e_j``.
    """

    n = lower.shape[0]
    return sla.solve_triangular(lower, np.eye(n), lower=True, check_finite=False)


def back_substitution(upper: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    """Solve ``U y = rhs`` for an upper-triangular ``U`` (empty systems allowed)."""

    if rhs.shape[0] == 0:
        return np.zeros(0)
    return sla.solve_triangular(upper, rhs, lower=False, check_finite=False)


def givens(a: float, b: float, eps: float) -> tuple[float, float, float] | None:
    """
    Coefficients of the Givens rotation that maps ``(a, b)`` to ``(+-h, 0)``.

    The rotation is applied as the symmetric reflection ``[[c, s], [s, -c]]``
    with the sign chosen so that ``c >= 0``. The returned ``h`` is the new
    value of the first component (negative when ``a`` was negative).

    Returns:
        ``(c, s, h)``, or ``None`` when ``math.hypot(a, b) < eps`` and nothing has to
        be rotated.
    """

    h = math.hypot(a, b)
    if h < eps:
        return None
    c = a / h
    s = b / h
    if c < 0.0:
        return -c, -s, -h
    return c, s, h


def rotate_columns(
    matrix: np.ndarray, first: int, second: int, c: float, s: float, rows: slice = slice(None)
) -> None:
    """
    Apply the rotation ``[[c, s], [s, -c]]`` to two columns of ``matrix`` in place.

    Uses the update ``second <- s / (1 + c) * (first + first_new) - second``,
    which needs one multiplication less than the direct form.
    """

    t1 = matrix[rows, first].copy()
    t2 = matrix[rows, second].copy()
    matrix[rows, first] = c * t1 + s * t2
    matrix[rows, second] = (s / (1.0 + c)) * (t1 + matrix[rows, first]) - t2


__all__ = [
    "back_substitution",
    "cholesky_factor",
    "cholesky_solve",
    "givens",
    "inverse_lower_factor",
    "rotate_columns",
    "symmetrize",
]
