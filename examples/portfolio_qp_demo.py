"""
Example: Portfolio construction with the dual active-set QP solver.

Three small problems from everyday quant work, each validated through the
KKT diagnostics:

1. minimum-variance portfolio with a budget constraint and no short sales,
2. mean-variance portfolio with a return target and position limits,
3. a monotone (non-decreasing) quadratic fit of a noisy discount curve.
"""

import numpy as np

from dualqp import (
    Interval,
    LinearEquality,
    LinearInequality,
    QPProblem,
    Status,
    constrained_least_squares,
    goldfarb_idnani,
    is_kkt_optimal,
    kkt_residuals,
    polynomial_design_matrix,
)

COVARIANCE = np.array(
    [
        [0.040, 0.006, 0.012, 0.002],
        [0.006, 0.025, 0.004, 0.003],
        [0.012, 0.004, 0.090, 0.010],
        [0.002, 0.003, 0.010, 0.016],
    ]
)
EXPECTED_RETURNS = np.array([0.07, 0.05, 0.11, 0.03])


def example_minimum_variance():
    """Minimize w^T S w subject to sum(w) = 1 and w >= 0."""
    print("=" * 60)
    print("Example 1: Minimum-variance portfolio (long only)")
    print("=" * 60)

    n = COVARIANCE.shape[0]
    problem = QPProblem.from_regions(
        2.0 * COVARIANCE,
        np.zeros(n),
        LinearEquality(np.ones((n, 1)), np.array([1.0])),
        Interval.lower_bounded(np.zeros(n)),
    )
    result = goldfarb_idnani(problem)
    print(f"Status: {result.status}")
    if result.status == Status.PROPER_RESULT:
        print(f"Weights: {np.round(result.x, 4)}")
        print(f"Variance: {result.x @ COVARIANCE @ result.x:.6f}")
        print(f"Iterations: {result.nit}")
        print(
            "KKT optimal: "
            f"{is_kkt_optimal(problem, result.x, result.eq_multipliers, result.ineq_multipliers)}"
        )
    print()


def example_mean_variance():
    """Minimize risk for a target return with position limits of 40%."""
    print("=" * 60)
    print("Example 2: Mean-variance portfolio with position limits")
    print("=" * 60)

    n = COVARIANCE.shape[0]
    problem = QPProblem.from_regions(
        2.0 * COVARIANCE,
        np.zeros(n),
        LinearEquality(np.ones((n, 1)), np.array([1.0])),
        LinearInequality(EXPECTED_RETURNS.reshape(n, 1), np.array([0.065])),
        Interval(np.zeros(n), np.full(n, 0.4)),
    )
    result = goldfarb_idnani(problem)
    print(f"Status: {result.status}")
    if result.status == Status.PROPER_RESULT:
        residuals = kkt_residuals(
            problem, result.x, result.eq_multipliers, result.ineq_multipliers
        )
        print(f"Weights: {np.round(result.x, 4)}")
        print(f"Expected return: {EXPECTED_RETURNS @ result.x:.4f}")
        print(f"Active inequalities: {result.active_set}")
        print(f"Dual residual: {residuals['dual']:.2e}")
    print()


def example_monotone_fit():
    """Fit a quadratic to noisy discount factors with a non-increasing slope constraint."""
    print("=" * 60)
    print("Example 3: Constrained least-squares curve fit")
    print("=" * 60)

    rng = np.random.default_rng(7)
    tenors = np.linspace(0.5, 10.0, 12)
    observed = np.exp(-0.03 * tenors) + 0.002 * rng.standard_normal(tenors.size)
    design = polynomial_design_matrix(tenors, 2)

    # slope beta_1 + 2 beta_2 t <= 0 on the tenor grid: -(beta_1 + 2 beta_2 t) >= 0
    slope_rows = np.column_stack([np.zeros(tenors.size), -np.ones(tenors.size), -2.0 * tenors])
    region = LinearInequality(slope_rows.T, np.zeros(tenors.size))

    result = constrained_least_squares(design, observed, region)
    print(f"Status: {result.status}")
    print(f"Coefficients: {np.round(result.x, 6)}")
    print(f"Residual sum of squares: {result.fun:.3e}")
    print()


if __name__ == "__main__":
    print("\n" + "=" * 60)
    print("dualqp - Portfolio QP Examples")
    print("=" * 60 + "\n")

    example_minimum_variance()
    example_mean_variance()
    example_monotone_fit()

    print("=" * 60)
    print("All examples completed successfully!")
    print("=" * 60)
