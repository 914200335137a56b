"""
Constraint regions and their flattening into solver matrices.

A feasible region is described by any mix of

* :class:`Interval` -- element-wise bounds ``lower <= x <= upper``,
* :class:`LinearInequality` -- ``M^T x >= v``,
* :class:`LinearEquality` -- ``M^T x = v``.

:func:`assemble_constraints` turns a sequence of regions into the dense
column-wise pairs ``(C, c)`` and ``(D, d)`` consumed by the solver; the solver
itself never sees region types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

import numpy as np


def _as_columns(matrix: np.ndarray, vector: np.ndarray, kind: str) -> tuple[np.ndarray, np.ndarray]:
    mat = np.array(matrix, dtype=float)
    if mat.ndim == 1:
        mat = mat.reshape(-1, 1)
    if mat.ndim != 2:
        raise ValueError(f"{kind} matrix must be two-dimensional")
    vec = np.array(vector, dtype=float).reshape(-1)
    if vec.shape[0] != mat.shape[1]:
        raise ValueError(f"{kind} vector length must match the number of columns")
    return mat, vec


@dataclass(frozen=True, eq=False)
class Interval:
    """
    Box region ``lower <= x <= upper``.

    ``NaN`` and infinite entries mark unbounded sides. Every finite lower bound
    yields the inequality ``e_j^T x >= lower_j`` and every finite upper bound
    ``-e_j^T x >= -upper_j``.
    """

    lower: np.ndarray
    upper: np.ndarray

    def __post_init__(self) -> None:
        lower = np.array(self.lower, dtype=float).reshape(-1)
        upper = np.array(self.upper, dtype=float).reshape(-1)
        if lower.shape != upper.shape:
            raise ValueError("Lower and upper bounds must have the same length")
        both = np.isfinite(lower) & np.isfinite(upper)
        if np.any(lower[both] > upper[both]):
            raise ValueError("Lower bound exceeds upper bound")
        object.__setattr__(self, "lower", lower)
        object.__setattr__(self, "upper", upper)

    @classmethod
    def lower_bounded(cls, lower: np.ndarray) -> "Interval":
        lower = np.asarray(lower, dtype=float).reshape(-1)
        return cls(lower, np.full(lower.shape, np.inf))

    @property
    def dimension(self) -> int:
        return self.lower.shape[0]

    def constraints(self) -> tuple[np.ndarray, np.ndarray]:
        n = self.dimension
        columns: List[np.ndarray] = []
        rhs: List[float] = []
        for j in range(n):
            if np.isfinite(self.lower[j]):
                col = np.zeros(n)
                col[j] = 1.0
                columns.append(col)
                rhs.append(self.lower[j])
            if np.isfinite(self.upper[j]):
                col = np.zeros(n)
                col[j] = -1.0
                columns.append(col)
                rhs.append(-self.upper[j])
        if not columns:
            return np.zeros((n, 0)), np.zeros(0)
        return np.column_stack(columns), np.asarray(rhs)


@dataclass(frozen=True, eq=False)
class LinearInequality:
    """Region ``matrix^T x >= vector``; ``matrix`` has one column per constraint."""

    matrix: np.ndarray
    vector: np.ndarray

    def __post_init__(self) -> None:
        mat, vec = _as_columns(self.matrix, self.vector, "Inequality")
        object.__setattr__(self, "matrix", mat)
        object.__setattr__(self, "vector", vec)

    @property
    def dimension(self) -> int:
        return self.matrix.shape[0]

    def constraints(self) -> tuple[np.ndarray, np.ndarray]:
        return self.matrix, self.vector


@dataclass(frozen=True, eq=False)
class LinearEquality:
    """Region ``matrix^T x = vector``; ``matrix`` has one column per constraint."""

    matrix: np.ndarray
    vector: np.ndarray

    def __post_init__(self) -> None:
        mat, vec = _as_columns(self.matrix, self.vector, "Equality")
        object.__setattr__(self, "matrix", mat)
        object.__setattr__(self, "vector", vec)

    @property
    def dimension(self) -> int:
        return self.matrix.shape[0]

    def constraints(self) -> tuple[np.ndarray, np.ndarray]:
        return self.matrix, self.vector


Region = Union[Interval, LinearInequality, LinearEquality]


@dataclass
class ConstraintSystem:
    c_mat: np.ndarray
    c_vec: np.ndarray
    d_mat: np.ndarray
    d_vec: np.ndarray


def assemble_constraints(dimension: Optional[int], regions: Iterable[Region]) -> ConstraintSystem:
    """
    Flatten ``regions`` into ``C^T x >= c`` and ``D^T x = d``.

    Columns keep the order in which the regions are given. When ``dimension``
    is ``None`` it is taken from the first region.

    Raises:
        ValueError: If the regions disagree on the dimension.
        TypeError: For objects that are not one of the supported regions.
    """

    ineq_cols: List[np.ndarray] = []
    ineq_rhs: List[np.ndarray] = []
    eq_cols: List[np.ndarray] = []
    eq_rhs: List[np.ndarray] = []

    n = dimension
    for region in regions:
        if isinstance(region, (Interval, LinearInequality)):
            target_cols, target_rhs = ineq_cols, ineq_rhs
        elif isinstance(region, LinearEquality):
            target_cols, target_rhs = eq_cols, eq_rhs
        else:
            raise TypeError(f"Unsupported constraint region: {type(region).__name__}")
        if n is None:
            n = region.dimension
        elif region.dimension != n:
            raise ValueError(
                f"Region of dimension {region.dimension} does not match problem dimension {n}"
            )
        mat, vec = region.constraints()
        target_cols.append(mat)
        target_rhs.append(vec)

    if n is None:
        raise ValueError("The dimension cannot be inferred without any region")

    def _stack(cols: List[np.ndarray], rhs: List[np.ndarray]) -> tuple[np.ndarray, np.ndarray]:
        if not cols:
            return np.zeros((n, 0)), np.zeros(0)
        return np.hstack(cols), np.concatenate(rhs)

    c_mat, c_vec = _stack(ineq_cols, ineq_rhs)
    d_mat, d_vec = _stack(eq_cols, eq_rhs)
    return ConstraintSystem(c_mat=c_mat, c_vec=c_vec, d_mat=d_mat, d_vec=d_vec)


__all__ = [
    "ConstraintSystem",
    "Interval",
    "LinearEquality",
    "LinearInequality",
    "Region",
    "assemble_constraints",
]
