"""
Dual active-set solver for strictly convex quadratic programs.

Implements the method of Goldfarb and Idnani (1983): start from the
unconstrained minimizer ``x0 = -A^{-1} b`` and add violated constraints one at
a time while keeping the iterate dual feasible. The reduced inverse Hessian is
never formed; instead the pair ``(J, R)`` with ``J = L^{-T} Q`` and the upper
triangular ``R`` of the active normals is updated by Givens rotations whenever a
constraint enters or leaves the active set (§4 of the paper).

Example
-------
>>> import numpy as np
>>> from dualqp.qp import solve_qp
>>> res = solve_qp(np.eye(2), np.zeros(2), c_mat=np.array([[1.0], [0.0]]), c_vec=np.array([1.0]))
>>> res.status
<Status.PROPER_RESULT: 'proper_result'>
>>> res.x
array([1., 0.])
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .core import (
    DEFAULT_MAXITER,
    EPSILON,
    FEASIBILITY_SCALE,
    LinearlyDependentConstraintsError,
    OptimizeResult,
    QPProblem,
    Status,
)
from .logging import get_logger
from .utils import (
    back_substitution,
    cholesky_factor,
    cholesky_solve,
    givens,
    inverse_lower_factor,
    rotate_columns,
)

logger = get_logger(__name__)

_MESSAGES = {
    Status.PROPER_RESULT: "All constraints satisfied within tolerance",
    Status.ROUND_OFF_ERROR: "No step in primal or dual space possible (round-off error)",
    Status.ITERATION_LIMIT_EXCEEDED: "Maximum iterations reached",
}

# Outcomes of a pivot on one violated constraint.
_ADDED = "added"
_DEGENERATE = "degenerate"
_NO_STEP = "no_step"


@dataclass
class QPWorkspace:
    """
    Scratch buffers owned by one solve.

    ``j_mat`` and ``r_mat`` hold the factorization, ``u_vec``/``active`` the
    duals and ids of the active constraints (equalities are stored as
    ``-(i + 1)``); their slot ``q`` is reserved for the constraint currently
    being added. The ``*_saved`` buffers keep the state at the start of a
    dual-loop iteration for rollbacks.

    A workspace may be reused for consecutive solves of the same size, but
    never by two solves at the same time.
    """

    dimension: int
    constraint_count: int
    j_mat: np.ndarray
    r_mat: np.ndarray
    d_vec: np.ndarray
    z_vec: np.ndarray
    u_vec: np.ndarray
    active: np.ndarray
    slack: np.ndarray
    j_saved: np.ndarray
    r_saved: np.ndarray
    u_saved: np.ndarray
    active_saved: np.ndarray
    x_saved: np.ndarray
    q: int = 0
    r_norm: float = 1.0
    q_saved: int = 0
    r_norm_saved: float = 1.0
    fun_saved: float = 0.0

    @classmethod
    def allocate(cls, dimension: int, constraint_count: int) -> "QPWorkspace":
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        if constraint_count < 0:
            raise ValueError("constraint_count must be non-negative")
        n, m = dimension, constraint_count
        return cls(
            dimension=n,
            constraint_count=m,
            j_mat=np.zeros((n, n)),
            r_mat=np.zeros((n, n)),
            d_vec=np.zeros(n),
            z_vec=np.zeros(n),
            u_vec=np.zeros(m + 1),
            active=np.zeros(m + 1, dtype=int),
            slack=np.zeros(m),
            j_saved=np.zeros((n, n)),
            r_saved=np.zeros((n, n)),
            u_saved=np.zeros(m + 1),
            active_saved=np.zeros(m + 1, dtype=int),
            x_saved=np.zeros(n),
        )

    def check(self, problem: QPProblem) -> None:
        count = problem.equality_count + problem.inequality_count
        if self.dimension != problem.dimension:
            raise ValueError(
                f"Workspace dimension {self.dimension} does not match problem dimension "
                f"{problem.dimension}"
            )
        if self.constraint_count < count:
            raise ValueError(
                f"Workspace holds {self.constraint_count} constraints, problem has {count}"
            )

    def reset(self) -> None:
        self.r_mat.fill(0.0)
        self.u_vec.fill(0.0)
        self.active.fill(0)
        self.q = 0
        self.r_norm = 1.0

    def save(self, x: np.ndarray, fun: float) -> None:
        np.copyto(self.j_saved, self.j_mat)
        np.copyto(self.r_saved, self.r_mat)
        np.copyto(self.u_saved, self.u_vec)
        np.copyto(self.active_saved, self.active)
        np.copyto(self.x_saved, x)
        self.q_saved = self.q
        self.r_norm_saved = self.r_norm
        self.fun_saved = fun

    def restore(self, x: np.ndarray) -> float:
        np.copyto(self.j_mat, self.j_saved)
        np.copyto(self.r_mat, self.r_saved)
        np.copyto(self.u_vec, self.u_saved)
        np.copyto(self.active, self.active_saved)
        np.copyto(x, self.x_saved)
        self.q = self.q_saved
        self.r_norm = self.r_norm_saved
        return self.fun_saved


def _step_direction(ws: QPWorkspace, n_plus: np.ndarray) -> np.ndarray:
    """
    Compute ``d = J^T n+``, the primal direction ``z = J_2 d_2`` and ``r = R^{-1} d_1``.

    ``z`` is left in ``ws.z_vec``; ``-r`` is the step direction in dual space.
    """

    q = ws.q
    np.dot(ws.j_mat.T, n_plus, out=ws.d_vec)
    np.dot(ws.j_mat[:, q:], ws.d_vec[q:], out=ws.z_vec)
    return back_substitution(ws.r_mat[:q, :q], ws.d_vec[:q])


def _add_constraint(ws: QPWorkspace) -> bool:
    """
    Fold the constraint with direction ``d`` into ``J`` and ``R``.

    Rotations zero ``d[q+1:]`` from the bottom up while rotating the matching
    columns of ``J``; the leading ``q + 1`` entries of ``d`` become the new
    column of ``R``. Returns ``False`` when the new diagonal element of ``R`` is
    negligible relative to the largest one seen so far (the constraint is
    linearly dependent on the active set) or when ``R`` is already full; in the
    first case the workspace is left with the constraint counted, and the caller
    has to undo the addition.
    """

    if ws.q >= ws.dimension:
        return False
    d = ws.d_vec
    for j in range(ws.dimension - 1, ws.q, -1):
        rotation = givens(d[j - 1], d[j], EPSILON)
        if rotation is None:
            continue
        c, s, h = rotation
        d[j] = 0.0
        d[j - 1] = h
        rotate_columns(ws.j_mat, j - 1, j, c, s)

    ws.q += 1
    q = ws.q
    ws.r_mat[:q, q - 1] = d[:q]
    pivot = abs(d[q - 1])
    if pivot <= EPSILON * ws.r_norm:
        return False
    ws.r_norm = max(ws.r_norm, pivot)
    return True


def _delete_constraint(ws: QPWorkspace, constraint: int, equality_count: int) -> None:
    """
    Remove inequality ``constraint`` from the active set.

    Later entries of the active set, the duals (including the slot of the
    constraint being added) and the columns of ``R`` move one position to the
    left. The resulting upper Hessenberg ``R`` is made triangular again with
    one rotation per shifted column, applied to the rows of ``R`` and the
    columns of ``J``. Equality constraints are never searched.
    """

    q = ws.q
    position = -1
    for i in range(equality_count, q):
        if ws.active[i] == constraint:
            position = i
            break
    if position < 0:
        raise ValueError(f"Inequality constraint {constraint} is not active")

    ws.active[position:q] = ws.active[position + 1 : q + 1].copy()
    ws.u_vec[position:q] = ws.u_vec[position + 1 : q + 1].copy()
    ws.r_mat[:, position : q - 1] = ws.r_mat[:, position + 1 : q].copy()
    ws.active[q] = 0
    ws.u_vec[q] = 0.0
    ws.r_mat[:q, q - 1] = 0.0
    ws.q = q = q - 1

    r_mat = ws.r_mat
    for j in range(position, q):
        rotation = givens(r_mat[j, j], r_mat[j + 1, j], EPSILON)
        if rotation is None:
            continue
        c, s, h = rotation
        r_mat[j + 1, j] = 0.0
        r_mat[j, j] = h
        # rows j, j+1 of R are columns of its transpose
        rotate_columns(r_mat.T, j, j + 1, c, s, rows=slice(j + 1, q))
        rotate_columns(ws.j_mat, j, j + 1, c, s)


def _pivot(
    ws: QPWorkspace,
    problem: QPProblem,
    candidate: int,
    x: np.ndarray,
    slack: np.ndarray,
    fun: float,
    is_active: np.ndarray,
) -> tuple[str, float]:
    """
    Move towards feasibility of inequality ``candidate`` until it can be added.

    Each pass takes either a pure dual step, a partial step (both ending with
    the blocking constraint dropped and the same candidate retried) or the
    full step followed by the addition of ``candidate``.
    """

    meq = problem.equality_count
    n_plus = problem.c_mat[:, candidate]
    ws.u_vec[ws.q] = 0.0
    ws.active[ws.q] = candidate

    while True:
        r_vec = _step_direction(ws, n_plus)
        z_vec = ws.z_vec
        q = ws.q

        partial_step = np.inf
        blocking = -1
        for k in range(meq, q):
            if r_vec[k] > 0.0 and ws.u_vec[k] / r_vec[k] < partial_step:
                partial_step = ws.u_vec[k] / r_vec[k]
                blocking = int(ws.active[k])

        z_dot_n = float(z_vec @ n_plus)
        if abs(float(z_vec @ z_vec)) > EPSILON:
            full_step = -slack[candidate] / z_dot_n
        else:
            full_step = np.inf
        step = min(partial_step, full_step)

        if not np.isfinite(step):
            return _NO_STEP, fun

        if not np.isfinite(full_step):
            logger.debug("Dual step %.6g, dropping constraint %d", step, blocking)
            ws.u_vec[:q] -= step * r_vec
            ws.u_vec[q] += step
            is_active[blocking] = False
            _delete_constraint(ws, blocking, meq)
            continue

        x += step * z_vec
        fun += step * z_dot_n * (0.5 * step + ws.u_vec[q])
        ws.u_vec[:q] -= step * r_vec
        ws.u_vec[q] += step

        if abs(step - full_step) < EPSILON:
            if _add_constraint(ws):
                logger.debug("Full step %.6g, constraint %d added", step, candidate)
                return _ADDED, fun
            return _DEGENERATE, fun

        logger.debug("Partial step %.6g, dropping constraint %d", step, blocking)
        is_active[blocking] = False
        _delete_constraint(ws, blocking, meq)
        slack[candidate] = float(n_plus @ x) - problem.c_vec[candidate]


def _result(
    problem: QPProblem,
    ws: Optional[QPWorkspace],
    x: np.ndarray,
    fun: float,
    status: Status,
    nit: int,
    nfev: int,
    x0: Optional[np.ndarray],
) -> OptimizeResult:
    meq = problem.equality_count
    eq_multipliers = np.zeros(meq)
    ineq_multipliers = np.zeros(problem.inequality_count)
    active_set = np.zeros(0, dtype=int)
    if ws is not None:
        for k in range(ws.q):
            index = int(ws.active[k])
            if index < 0:
                eq_multipliers[-index - 1] = ws.u_vec[k]
            else:
                ineq_multipliers[index] = ws.u_vec[k]
        active_set = ws.active[meq : ws.q].copy()

    eq_res = (
        float(np.linalg.norm(problem.d_mat.T @ x - problem.d_vec, ord=np.inf))
        if problem.equality_count
        else 0.0
    )
    ineq_res = (
        float(np.max(np.maximum(problem.c_vec - problem.c_mat.T @ x, 0.0)))
        if problem.inequality_count
        else 0.0
    )

    if (
        isinstance(x0, np.ndarray)
        and x0.dtype == np.float64
        and x0.shape == x.shape
        and x0.flags.writeable
    ):
        np.copyto(x0, x)

    return OptimizeResult(
        x=x.copy(),
        fun=float(fun),
        status=status,
        message=_MESSAGES[status],
        nit=nit,
        nfev=nfev,
        active_set=active_set,
        eq_multipliers=eq_multipliers,
        ineq_multipliers=ineq_multipliers,
        primal_residual=max(eq_res, ineq_res),
    )


def goldfarb_idnani(
    problem: QPProblem,
    x0: Optional[np.ndarray] = None,
    maxiter: int = DEFAULT_MAXITER,
    workspace: Optional[QPWorkspace] = None,
) -> OptimizeResult:
    """
    Solve ``problem`` with the dual active-set method of Goldfarb and Idnani.

    Parameters
    ----------
    problem:
        The quadratic program; ``A`` must be symmetric positive definite.
    x0:
        Optional initial guess. The dual method always starts from the
        unconstrained minimizer, so the value is only checked for its shape;
        a writable float64 array receives the solution on exit.
    maxiter:
        Hard cap on the iterations of the inequality loop.
    workspace:
        Optional preallocated :class:`QPWorkspace`; a fresh one is used
        otherwise.

    Returns
    -------
    OptimizeResult
        ``PROPER_RESULT`` on convergence, ``ROUND_OFF_ERROR`` if neither a
        primal nor a dual step is possible, ``ITERATION_LIMIT_EXCEEDED`` when
        ``maxiter`` is exhausted; the best known point is returned in all cases.

    Raises
    ------
    LinearlyDependentConstraintsError
        If an equality constraint is linearly dependent on the previous ones.
    ValueError
        For inconsistent input sizes, ``maxiter < 0`` or a non positive
        definite ``A``.
    """

    if maxiter < 0:
        raise ValueError("maxiter must be non-negative")
    n = problem.dimension
    meq = problem.equality_count
    mineq = problem.inequality_count
    if x0 is not None and np.asarray(x0).reshape(-1).shape[0] != n:
        raise ValueError("Initial guess must match the problem dimension")

    # Unconstrained minimum x = -A^{-1} b with 1/2 x^T A x + b^T x = 1/2 b^T x.
    lower = cholesky_factor(problem.a_mat)
    x = -cholesky_solve(lower, problem.b_vec)
    fun = 0.5 * float(problem.b_vec @ x)
    nfev = 1
    if meq + mineq == 0:
        return _result(problem, None, x, fun, Status.PROPER_RESULT, 1, nfev, x0)

    ws = workspace if workspace is not None else QPWorkspace.allocate(n, meq + mineq)
    ws.check(problem)
    ws.reset()

    l_inv = inverse_lower_factor(lower)
    np.copyto(ws.j_mat, l_inv.T)
    # condition_estimate * trace(A) estimates cond(A)
    condition_estimate = float(np.trace(l_inv))
    trace_a = float(np.trace(problem.a_mat))
    logger.debug(
        "Unconstrained minimum %.10g, condition estimate %.3g",
        fun,
        condition_estimate * trace_a,
    )

    for i in range(meq):
        n_plus = problem.d_mat[:, i]
        r_vec = _step_direction(ws, n_plus)
        z_vec = ws.z_vec
        step = 0.0
        if abs(float(z_vec @ z_vec)) > EPSILON:
            step = -(float(n_plus @ x) - problem.d_vec[i]) / float(z_vec @ n_plus)
        x += step * z_vec
        q = ws.q
        ws.u_vec[q] = step
        ws.u_vec[:q] -= step * r_vec
        fun += 0.5 * step * step * float(z_vec @ n_plus)
        ws.active[q] = -(i + 1)
        if not _add_constraint(ws):
            logger.warning("Equality constraint %d is linearly dependent on the previous ones", i)
            raise LinearlyDependentConstraintsError(i)

    tolerance = FEASIBILITY_SCALE * mineq * EPSILON * trace_a * condition_estimate
    c_mat, c_vec = problem.c_mat, problem.c_vec
    slack = ws.slack[:mineq]
    is_active = np.zeros(mineq, dtype=bool)
    excluded = np.zeros(mineq, dtype=bool)
    nit = 0

    while True:
        nfev += 1
        np.dot(c_mat.T, x, out=slack)
        slack -= c_vec
        infeasibility = float(np.minimum(slack, 0.0).sum())
        if abs(infeasibility) <= tolerance:
            return _result(problem, ws, x, fun, Status.PROPER_RESULT, nit, nfev, x0)
        if nit >= maxiter:
            logger.warning(
                "Iteration limit %d reached with total infeasibility %.3g", maxiter, infeasibility
            )
            return _result(problem, ws, x, fun, Status.ITERATION_LIMIT_EXCEEDED, nit, nfev, x0)
        nit += 1

        ws.save(x, fun)
        excluded.fill(False)
        while True:
            candidates = np.flatnonzero(~is_active & ~excluded & (slack < 0.0))
            if candidates.size == 0:
                if excluded.any():
                    logger.warning(
                        "Only degenerate constraints remain violated: %s", np.flatnonzero(excluded)
                    )
                    return _result(problem, ws, x, fun, Status.ROUND_OFF_ERROR, nit, nfev, x0)
                return _result(problem, ws, x, fun, Status.PROPER_RESULT, nit, nfev, x0)
            candidate = int(candidates[np.argmin(slack[candidates])])
            logger.debug(
                "Iteration %d: adding constraint %d with slack %.6g",
                nit,
                candidate,
                slack[candidate],
            )

            outcome, fun = _pivot(ws, problem, candidate, x, slack, fun, is_active)
            if outcome == _ADDED:
                is_active[candidate] = True
                break
            if outcome == _NO_STEP:
                logger.warning(
                    "Constraint %d admits neither a primal nor a dual step", candidate
                )
                return _result(problem, ws, x, fun, Status.ROUND_OFF_ERROR, nit, nfev, x0)

            logger.warning("Constraint %d is degenerate, rolling back", candidate)
            fun = ws.restore(x)
            is_active.fill(False)
            is_active[ws.active[meq : ws.q]] = True
            excluded[candidate] = True
            np.dot(c_mat.T, x, out=slack)
            slack -= c_vec


def solve_qp(
    a_mat: np.ndarray,
    b_vec: np.ndarray,
    c_mat: Optional[np.ndarray] = None,
    c_vec: Optional[np.ndarray] = None,
    d_mat: Optional[np.ndarray] = None,
    d_vec: Optional[np.ndarray] = None,
    x0: Optional[np.ndarray] = None,
    maxiter: int = DEFAULT_MAXITER,
) -> OptimizeResult:
    """
    Minimize ``1/2 x^T A x + b^T x`` s.t. ``C^T x >= c`` and ``D^T x = d``.

    Array-level entry point; see :func:`goldfarb_idnani` for the semantics.
    """

    problem = QPProblem(a_mat, b_vec, c_mat=c_mat, c_vec=c_vec, d_mat=d_mat, d_vec=d_vec)
    return goldfarb_idnani(problem, x0=x0, maxiter=maxiter)


__all__ = ["QPWorkspace", "goldfarb_idnani", "solve_qp"]
