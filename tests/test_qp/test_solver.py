import numpy as np
import pytest

from dualqp.core import LinearlyDependentConstraintsError, QPProblem, Status
from dualqp.kkt import is_kkt_optimal
from dualqp import qp
from dualqp.qp import goldfarb_idnani, solve_qp
from dualqp.regions import Interval, LinearEquality, LinearInequality


def _random_feasible_problem(seed: int, n: int = 5, m_ineq: int = 8, m_eq: int = 2) -> QPProblem:
    rng = np.random.default_rng(seed)
    m = rng.standard_normal((n, n))
    a_mat = m @ m.T + n * np.eye(n)
    b_vec = rng.standard_normal(n)
    x_feasible = rng.standard_normal(n)
    c_mat = rng.standard_normal((n, m_ineq))
    c_vec = c_mat.T @ x_feasible - rng.uniform(0.0, 1.0, m_ineq)
    d_mat = rng.standard_normal((n, m_eq))
    d_vec = d_mat.T @ x_feasible
    return QPProblem(a_mat, b_vec, c_mat=c_mat, c_vec=c_vec, d_mat=d_mat, d_vec=d_vec)


def test_no_constraints_identity():
    result = solve_qp(np.eye(2), np.zeros(2))
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(result.x, [0.0, 0.0])
    assert result.fun == pytest.approx(0.0, abs=1e-14)
    assert result.nit == 1


def test_single_inequality_becomes_active():
    result = solve_qp(
        np.eye(2), np.zeros(2), c_mat=np.array([[1.0], [0.0]]), c_vec=np.array([1.0])
    )
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(result.x, [1.0, 0.0], atol=1e-12)
    assert result.fun == pytest.approx(0.5, rel=1e-12)
    assert list(result.active_set) == [0]
    assert result.ineq_multipliers == pytest.approx([1.0])


def test_one_dimensional_unconstrained_minimum():
    result = solve_qp(np.array([[2.0]]), np.array([-4.0]))
    assert result.status is Status.PROPER_RESULT
    assert result.x[0] == pytest.approx(2.0)
    # 1/2 b^T x0 = 1/2 * (-4) * 2
    assert result.fun == pytest.approx(-4.0)


def test_single_equality_constraint():
    result = solve_qp(
        np.eye(2), np.zeros(2), d_mat=np.array([[1.0], [1.0]]), d_vec=np.array([1.0])
    )
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(result.x, [0.5, 0.5], atol=1e-12)
    assert result.fun == pytest.approx(0.25)
    assert result.eq_multipliers == pytest.approx([0.5])


def test_zero_iteration_cap_with_violated_inequality():
    result = solve_qp(
        np.eye(2),
        np.zeros(2),
        c_mat=np.array([[1.0], [0.0]]),
        c_vec=np.array([1.0]),
        maxiter=0,
    )
    assert result.status is Status.ITERATION_LIMIT_EXCEEDED
    assert result.nit == 0
    assert np.allclose(result.x, [0.0, 0.0])
    assert not result.success


def test_zero_iteration_cap_with_satisfied_inequality():
    result = solve_qp(
        np.eye(2),
        np.zeros(2),
        c_mat=np.array([[1.0], [0.0]]),
        c_vec=np.array([-1.0]),
        maxiter=0,
    )
    assert result.status is Status.PROPER_RESULT


def test_two_dimensional_unconstrained_reference():
    a_mat = np.array([[4.0, -2.0], [-2.0, 4.0]])
    result = solve_qp(a_mat, np.array([6.0, 0.0]))
    assert np.allclose(result.x, [-2.0, -1.0], atol=1e-7)
    assert result.fun == pytest.approx(-6.0, abs=1e-7)


def test_two_dimensional_with_box_equality_and_inequality():
    a_mat = np.array([[4.0, -2.0], [-2.0, 4.0]])
    problem = QPProblem.from_regions(
        a_mat,
        np.array([6.0, 0.0]),
        Interval(np.zeros(2), np.array([np.nan, np.nan])),
        LinearEquality(np.array([[1.0], [1.0]]), np.array([3.0])),
        LinearInequality(np.array([[1.0], [1.0]]), np.array([2.0])),
    )
    result = goldfarb_idnani(problem)
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(result.x, [1.0, 2.0], atol=1e-7)
    assert result.fun == pytest.approx(12.0, abs=1e-7)


def test_three_dimensional_unconstrained_reference():
    a_mat = np.array([[5.0, -2.0, -1.0], [-2.0, 4.0, 3.0], [-1.0, 3.0, 5.0]])
    result = solve_qp(a_mat, np.array([2.0, -35.0, -47.0]))
    assert np.allclose(result.x, [3.0, 5.0, 7.0], atol=1e-7)
    assert result.fun == pytest.approx(-249.0, abs=1e-7)


def test_box_and_budget_constraints():
    # min x0^2 + 4 x1^2 - 8 x0 - 16 x1  s.t.  x0 + x1 <= 5, 0 <= x0 <= 3, x1 >= 0
    problem = QPProblem.from_regions(
        np.diag([2.0, 8.0]),
        np.array([-8.0, -16.0]),
        Interval(np.zeros(2), np.array([3.0, np.nan])),
        LinearInequality(np.array([[-1.0], [-1.0]]), np.array([-5.0])),
    )
    result = goldfarb_idnani(problem)
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(result.x, [3.0, 2.0], atol=1e-7)
    assert result.fun == pytest.approx(-31.0, abs=1e-7)


def test_three_dimensional_with_two_inequalities():
    a_mat = np.array([[2.0, 1.0, 0.0], [1.0, 4.0, 2.0], [0.0, 2.0, 4.0]])
    problem = QPProblem.from_regions(
        a_mat,
        np.array([4.0, 6.0, 12.0]),
        Interval.lower_bounded(np.zeros(3)),
        LinearInequality(
            np.array([[1.0, -1.0], [1.0, -1.0], [1.0, 2.0]]), np.array([6.0, 2.0])
        ),
    )
    result = goldfarb_idnani(problem)
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(result.x, [10.0 / 3.0, 0.0, 8.0 / 3.0], atol=1e-7)
    assert result.fun == pytest.approx(70.0 + 2.0 / 3.0, abs=1e-7)
    assert is_kkt_optimal(problem, result.x, result.eq_multipliers, result.ineq_multipliers)


def test_partial_step_drops_blocking_constraint():
    # x0 + x1 >= 2 becomes active first and has to leave again for x0 >= 3.
    c_mat = np.array([[2.0, 1.0], [2.0, 0.0]])
    c_vec = np.array([4.0, 3.0])
    result = solve_qp(np.eye(2), np.zeros(2), c_mat=c_mat, c_vec=c_vec)
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(result.x, [3.0, 0.0], atol=1e-12)
    assert result.fun == pytest.approx(4.5)
    assert list(result.active_set) == [1]
    assert np.allclose(result.ineq_multipliers, [0.0, 3.0], atol=1e-12)
    assert result.nit == 2


def test_dual_step_replaces_parallel_constraint():
    # 0.1 (x0 + x1) >= 0.3 has the normal of the active x0 + x1 >= 2
    c_mat = np.array([[1.0, 0.1], [1.0, 0.1]])
    c_vec = np.array([2.0, 0.3])
    result = solve_qp(np.eye(2), np.zeros(2), c_mat=c_mat, c_vec=c_vec)
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(result.x, [1.5, 1.5], atol=1e-12)
    assert result.fun == pytest.approx(2.25)
    assert list(result.active_set) == [1]
    assert np.allclose(result.ineq_multipliers, [0.0, 15.0], atol=1e-10)


def test_two_active_inequalities_have_positive_multipliers():
    c_mat = np.array([[1.0, 1.0], [1.0, 0.0]])
    c_vec = np.array([2.0, 1.5])
    result = solve_qp(np.eye(2), np.zeros(2), c_mat=c_mat, c_vec=c_vec)
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(result.x, [1.5, 0.5], atol=1e-12)
    assert np.allclose(result.ineq_multipliers, [0.5, 1.0], atol=1e-12)
    assert sorted(result.active_set) == [0, 1]


def test_contradicting_inequalities_report_round_off_error():
    # x0 >= 1 and x0 <= 0
    c_mat = np.array([[1.0, -1.0], [0.0, 0.0]])
    c_vec = np.array([1.0, 0.0])
    result = solve_qp(np.eye(2), np.zeros(2), c_mat=c_mat, c_vec=c_vec)
    assert result.status is Status.ROUND_OFF_ERROR
    assert result.primal_residual == pytest.approx(1.0)
    assert np.allclose(result.x, [1.0, 0.0])


def test_linearly_dependent_equalities_raise():
    d_mat = np.array([[1.0, 2.0], [0.0, 0.0]])
    d_vec = np.array([1.0, 2.0])
    with pytest.raises(LinearlyDependentConstraintsError) as excinfo:
        solve_qp(np.eye(2), np.zeros(2), d_mat=d_mat, d_vec=d_vec)
    assert excinfo.value.status is Status.DEGENERATE
    assert excinfo.value.index == 1
    assert isinstance(excinfo.value, ArithmeticError)


def test_more_equalities_than_variables_raise():
    with pytest.raises(LinearlyDependentConstraintsError) as excinfo:
        solve_qp(np.eye(1), np.zeros(1), d_mat=[[1.0, 2.0]], d_vec=[1.0, 2.0])
    assert excinfo.value.index == 1

    d_mat = np.array([[1.0, 0.0, 1.0], [0.0, 1.0, 1.0]])
    with pytest.raises(LinearlyDependentConstraintsError) as excinfo:
        solve_qp(np.eye(2), np.zeros(2), d_mat=d_mat, d_vec=np.array([1.0, 1.0, 2.0]))
    assert excinfo.value.index == 2
    assert excinfo.value.status is Status.DEGENERATE


def test_degenerate_fold_rolls_back_iteration(monkeypatch):
    fold = qp._add_constraint
    calls = []

    def fail_second_fold(ws):
        calls.append(ws.q)
        if len(calls) == 2:
            return False
        return fold(ws)

    monkeypatch.setattr(qp, "_add_constraint", fail_second_fold)
    c_mat = np.array([[1.0, 1.0], [1.0, 0.0]])
    c_vec = np.array([2.0, 1.5])
    result = solve_qp(np.eye(2), np.zeros(2), c_mat=c_mat, c_vec=c_vec)

    assert len(calls) == 2
    assert result.status is Status.ROUND_OFF_ERROR
    assert np.allclose(result.x, [1.0, 1.0], atol=1e-12)
    assert result.fun == pytest.approx(1.0)
    assert list(result.active_set) == [0]
    assert np.allclose(result.ineq_multipliers, [1.0, 0.0], atol=1e-12)
    assert result.primal_residual == pytest.approx(0.5)


def test_iteration_cap_stops_before_second_constraint():
    c_mat = np.array([[1.0, 1.0], [1.0, 0.0]])
    c_vec = np.array([2.0, 1.5])
    result = solve_qp(np.eye(2), np.zeros(2), c_mat=c_mat, c_vec=c_vec, maxiter=1)
    assert result.status is Status.ITERATION_LIMIT_EXCEEDED
    assert result.nit == 1
    assert np.allclose(result.x, [1.0, 1.0], atol=1e-12)
    assert list(result.active_set) == [0]


def test_redundant_inequality_is_not_added_twice():
    # the second constraint is implied once the first one is active
    c_mat = np.array([[1.0, 1.0], [0.0, 0.0]])
    c_vec = np.array([1.0, 0.5])
    result = solve_qp(np.eye(2), np.zeros(2), c_mat=c_mat, c_vec=c_vec)
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(result.x, [1.0, 0.0])
    assert list(result.active_set) == [0]


@pytest.mark.parametrize("n", [1, 3, 6, 10])
def test_unconstrained_random_problem(n, rng, spd_factory):
    a_mat = spd_factory(n)
    b_vec = rng.standard_normal(n)
    result = solve_qp(a_mat, b_vec)
    assert np.linalg.norm(a_mat @ result.x + b_vec) < 1e-10
    assert result.fun == pytest.approx(0.5 * b_vec @ result.x, rel=1e-12)


@pytest.mark.parametrize("seed", range(8))
def test_random_problem_is_feasible_and_kkt_optimal(seed):
    problem = _random_feasible_problem(seed)
    result = goldfarb_idnani(problem)
    assert result.status is Status.PROPER_RESULT
    assert np.allclose(problem.d_mat.T @ result.x, problem.d_vec, atol=1e-9)
    assert np.all(problem.c_mat.T @ result.x >= problem.c_vec - 1e-9)
    assert np.all(result.ineq_multipliers >= -1e-10)
    assert result.fun == pytest.approx(problem.objective(result.x), rel=1e-9, abs=1e-9)
    assert is_kkt_optimal(
        problem, result.x, result.eq_multipliers, result.ineq_multipliers, tol=1e-7
    )


@pytest.mark.parametrize("seed", range(3))
def test_resolve_from_solution_is_idempotent(seed):
    problem = _random_feasible_problem(seed)
    first = goldfarb_idnani(problem)
    second = goldfarb_idnani(problem, x0=first.x.copy())
    assert second.status is Status.PROPER_RESULT
    assert abs(second.nit - first.nit) <= 1
    assert second.fun == pytest.approx(first.fun, rel=1e-10, abs=1e-12)
    assert np.allclose(second.x, first.x, atol=1e-10)


def test_matches_scipy_slsqp():
    optimize = pytest.importorskip("scipy.optimize")
    problem = _random_feasible_problem(11, n=4, m_ineq=6, m_eq=1)
    result = goldfarb_idnani(problem)

    reference = optimize.minimize(
        problem.objective,
        np.zeros(problem.dimension),
        jac=problem.gradient,
        method="SLSQP",
        constraints=[
            {
                "type": "ineq",
                "fun": lambda x: problem.c_mat.T @ x - problem.c_vec,
                "jac": lambda x: problem.c_mat.T,
            },
            {
                "type": "eq",
                "fun": lambda x: problem.d_mat.T @ x - problem.d_vec,
                "jac": lambda x: problem.d_mat.T,
            },
        ],
        options={"ftol": 1e-12, "maxiter": 500},
    )
    assert reference.success
    assert np.allclose(result.x, reference.x, atol=1e-5)
    assert result.fun == pytest.approx(reference.fun, rel=1e-6, abs=1e-8)


def test_initial_guess_receives_solution():
    x0 = np.array([5.0, -5.0])
    result = solve_qp(
        np.eye(2), np.zeros(2), c_mat=np.array([[1.0], [0.0]]), c_vec=np.array([1.0]), x0=x0
    )
    assert np.allclose(x0, result.x)
    assert x0 is not result.x


def test_invalid_inputs():
    with pytest.raises(ValueError):
        solve_qp(np.array([[1.0, 2.0], [2.0, 1.0]]), np.zeros(2))
    with pytest.raises(ValueError):
        solve_qp(np.eye(2), np.zeros(2), maxiter=-1)
    with pytest.raises(ValueError):
        solve_qp(np.eye(2), np.zeros(2), x0=np.zeros(3))
    with pytest.raises(ValueError):
        solve_qp(np.eye(2), np.zeros(2), c_mat=np.ones((3, 1)), c_vec=np.ones(1))
