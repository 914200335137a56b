"""dualqp - a numerically stable dual active-set solver for strictly convex QPs."""

__version__ = "0.1.0"

from . import core, kkt, qp, regions, regression, utils

# Problem and result types
from .core import (
    DEFAULT_MAXITER,
    EPSILON,
    LinearlyDependentConstraintsError,
    OptimizeResult,
    QPProblem,
    Status,
)

# Diagnostics
from .kkt import is_kkt_optimal, kkt_residuals

# Logging
from .logging import configure_logging, get_logger, log_level, set_log_level

# Solver
from .qp import QPWorkspace, goldfarb_idnani, solve_qp

# Constraint regions
from .regions import (
    ConstraintSystem,
    Interval,
    LinearEquality,
    LinearInequality,
    Region,
    assemble_constraints,
)

# Regression
from .regression import constrained_least_squares, polynomial_design_matrix

__all__ = [
    "__version__",
    "core",
    "kkt",
    "qp",
    "regions",
    "regression",
    "utils",
    # Core types
    "DEFAULT_MAXITER",
    "EPSILON",
    "LinearlyDependentConstraintsError",
    "OptimizeResult",
    "QPProblem",
    "Status",
    # Solver
    "QPWorkspace",
    "goldfarb_idnani",
    "solve_qp",
    # Regions
    "ConstraintSystem",
    "Interval",
    "LinearEquality",
    "LinearInequality",
    "Region",
    "assemble_constraints",
    # Diagnostics
    "is_kkt_optimal",
    "kkt_residuals",
    # Regression
    "constrained_least_squares",
    "polynomial_design_matrix",
    # Logging
    "configure_logging",
    "get_logger",
    "log_level",
    "set_log_level",
]
