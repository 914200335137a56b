"""Pytest configuration and shared fixtures for the dualqp tests.

Provides a deterministic RNG fixture and helpers that build random strictly
convex quadratic programs.
"""

import os

import numpy as np
import pytest


def _seed() -> int:
    return int(os.environ.get("TEST_RNG_SEED", "0"))


@pytest.fixture(scope="function")
def rng() -> np.random.Generator:
    """Provide a deterministic numpy RNG for tests.

    Uses seed from TEST_RNG_SEED environment variable (default: 0).

    Returns:
        A seeded numpy.random.Generator instance.
    """
    return np.random.default_rng(_seed())


@pytest.fixture(scope="function", autouse=True)
def set_random_seed() -> None:
    """Seed numpy's global RNG for every test."""
    np.random.seed(_seed())


def random_spd(rng: np.random.Generator, n: int, shift: float = 1.0) -> np.ndarray:
    """Return a well-conditioned random symmetric positive definite matrix."""
    m = rng.standard_normal((n, n))
    return m @ m.T + shift * n * np.eye(n)


@pytest.fixture
def spd_factory(rng: np.random.Generator):
    """Factory fixture returning random SPD matrices of a given size."""

    def _make(n: int) -> np.ndarray:
        return random_spd(rng, n)

    return _make
