"""
Core problem and result containers for the dual active-set QP solver.

The solver minimizes ``1/2 x^T A x + b^T x`` subject to inequality constraints
``C^T x >= c`` and equality constraints ``D^T x = d``. Constraint matrices are
stored column-wise: every column of ``C`` (``D``) is the normal vector of one
inequality (equality) constraint, so both matrices have ``n`` rows. A block
without constraints is represented by an ``(n, 0)`` matrix and an empty vector.

References:
    - D. Goldfarb, A. Idnani, *A numerically stable dual method for solving
      strictly convex quadratic programs*, Mathematical Programming 27 (1983)
    - Nocedal & Wright, *Numerical Optimization* (2006)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

import numpy as np

from .utils import symmetrize

if TYPE_CHECKING:  # pragma: no cover
    from .regions import Region

EPSILON = float(np.finfo(float).eps)
FEASIBILITY_SCALE = 100.0
DEFAULT_MAXITER = 100


class Status(Enum):
    """Classification of a solve."""

    PROPER_RESULT = "proper_result"
    DEGENERATE = "degenerate"
    ROUND_OFF_ERROR = "round_off_error"
    ITERATION_LIMIT_EXCEEDED = "iteration_limit_exceeded"


class LinearlyDependentConstraintsError(ArithmeticError):
    """Raised when an equality constraint depends linearly on earlier ones.

    No meaningful partial result exists in that case, so the solve is aborted.
    """

    status = Status.DEGENERATE

    def __init__(self, index: int, message: Optional[str] = None) -> None:
        self.index = index
        super().__init__(
            message or f"The equality constraints are linearly dependent (constraint {index})."
        )


def _constraint_block(
    mat: Optional[np.ndarray], vec: Optional[np.ndarray], n: int, name: str
) -> tuple[np.ndarray, np.ndarray]:
    if mat is None:
        if vec is not None and np.asarray(vec).size:
            raise ValueError(f"{name} vector given without a constraint matrix")
        return np.zeros((n, 0)), np.zeros(0)
    arr = np.array(mat, dtype=float)
    if arr.ndim == 1 and n == arr.shape[0]:
        arr = arr.reshape(n, 1)
    if arr.ndim != 2 or arr.shape[0] != n:
        raise ValueError(f"{name} matrix must have {n} rows (one per variable)")
    rhs = np.zeros(arr.shape[1]) if vec is None else np.array(vec, dtype=float).reshape(-1)
    if rhs.shape[0] != arr.shape[1]:
        raise ValueError(f"{name} vector length must match the number of constraint columns")
    return arr, rhs


@dataclass(frozen=True, eq=False)
class QPProblem:
    """
    Strictly convex quadratic program with dense linear constraints.

    Inputs are copied into float arrays and validated on construction; ``A``
    is replaced by its symmetric part. Instances are read-only and may be
    shared between any number of concurrent solves.
    """

    a_mat: np.ndarray
    b_vec: np.ndarray
    c_mat: Optional[np.ndarray] = None
    c_vec: Optional[np.ndarray] = None
    d_mat: Optional[np.ndarray] = None
    d_vec: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        b_vec = np.array(self.b_vec, dtype=float).reshape(-1)
        n = b_vec.shape[0]
        if n == 0:
            raise ValueError("The problem dimension must be positive")
        a_mat = np.array(self.a_mat, dtype=float)
        if a_mat.shape != (n, n):
            raise ValueError("A must be square and match the dimension of b")
        c_mat, c_vec = _constraint_block(self.c_mat, self.c_vec, n, "Inequality")
        d_mat, d_vec = _constraint_block(self.d_mat, self.d_vec, n, "Equality")
        for name, value in (
            ("a_mat", symmetrize(a_mat)),
            ("b_vec", b_vec),
            ("c_mat", c_mat),
            ("c_vec", c_vec),
            ("d_mat", d_mat),
            ("d_vec", d_vec),
        ):
            value.setflags(write=False)
            object.__setattr__(self, name, value)

    @property
    def dimension(self) -> int:
        return self.b_vec.shape[0]

    @property
    def inequality_count(self) -> int:
        return self.c_mat.shape[1]

    @property
    def equality_count(self) -> int:
        return self.d_mat.shape[1]

    def objective(self, x: np.ndarray) -> float:
        """Return ``1/2 x^T A x + b^T x``."""
        x = np.asarray(x, dtype=float)
        return float(0.5 * x @ (self.a_mat @ x) + self.b_vec @ x)

    def gradient(self, x: np.ndarray) -> np.ndarray:
        return self.a_mat @ np.asarray(x, dtype=float) + self.b_vec

    @classmethod
    def from_regions(cls, a_mat: np.ndarray, b_vec: np.ndarray, *regions: "Region") -> "QPProblem":
        """Build a problem from constraint regions (box, linear in/equality)."""
        from .regions import assemble_constraints

        dimension = np.asarray(b_vec).reshape(-1).shape[0]
        system = assemble_constraints(dimension, regions)
        return cls(
            a_mat,
            b_vec,
            c_mat=system.c_mat,
            c_vec=system.c_vec,
            d_mat=system.d_mat,
            d_vec=system.d_vec,
        )


@dataclass
class OptimizeResult:
    """
    Solution and solver state of a single solve.

    Attributes:
        x: Best known primal point (the minimizer for ``PROPER_RESULT``).
        fun: Objective value tracked by the solver at ``x``.
        status: Classification of the solve.
        message: Human-readable explanation of ``status``.
        nit: Number of dual-loop iterations performed.
        nfev: Number of constraint feasibility evaluations.
        active_set: Indices of the inequality constraints active at ``x``.
        eq_multipliers: Lagrange multipliers of the equality constraints.
        ineq_multipliers: Lagrange multipliers of all inequality constraints
            (zero for inactive ones).
        primal_residual: Largest violation of any constraint at ``x``.
    """

    x: np.ndarray
    fun: float
    status: Status
    message: str
    nit: int
    nfev: int = 1
    active_set: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=int))
    eq_multipliers: np.ndarray = field(default_factory=lambda: np.zeros(0))
    ineq_multipliers: np.ndarray = field(default_factory=lambda: np.zeros(0))
    primal_residual: Optional[float] = None

    @property
    def success(self) -> bool:
        return self.status is Status.PROPER_RESULT


__all__ = [
    "DEFAULT_MAXITER",
    "EPSILON",
    "FEASIBILITY_SCALE",
    "LinearlyDependentConstraintsError",
    "OptimizeResult",
    "QPProblem",
    "Status",
]
