"""Global pytest configuration and shared fixtures for tdprop."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest

from tdprop.operators import TimeDependentMatrix, TimeDependentSchroedingerMatrix

if TYPE_CHECKING:
    from numpy.typing import NDArray


# -----------------------------------------------------------------------------
# Global markers registration safety (for local pytest runs)
# -----------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used by the test suite."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as running many steps (order tables, tight tolerances)",
    )


# -----------------------------------------------------------------------------
# Operator families
# -----------------------------------------------------------------------------

SIGMA_Z = np.array([[1.0, 0.0], [0.0, -1.0]])
SIGMA_X = np.array([[0.0, 1.0], [1.0, 0.0]])


def _one(_t: float) -> float:
    return 1.0


def _zero(_t: float) -> float:
    return 0.0


@pytest.fixture
def two_level() -> TimeDependentSchroedingerMatrix:
    """Driven two-level system ``H(t) = sigma_z + cos(t) sigma_x``."""
    return TimeDependentSchroedingerMatrix(
        [SIGMA_Z, SIGMA_X],
        [_one, np.cos],
        [_zero, lambda t: -np.sin(t)],
    )


@pytest.fixture
def two_level_no_derivative() -> TimeDependentSchroedingerMatrix:
    """Same system without coefficient derivatives."""
    return TimeDependentSchroedingerMatrix([SIGMA_Z, SIGMA_X], [_one, np.cos])


@pytest.fixture
def static_two_level() -> TimeDependentSchroedingerMatrix:
    """Time-independent ``H = diag(1, -1)`` (exact solution known)."""
    return TimeDependentSchroedingerMatrix([SIGMA_Z])


@pytest.fixture
def damped_linear() -> TimeDependentMatrix:
    """Non-normal real family ``A(t) = A0 + t A1`` of dimension 6."""
    rng = np.random.default_rng(7)
    a0 = rng.standard_normal((6, 6)) / 3.0
    a1 = rng.standard_normal((6, 6)) / 3.0
    return TimeDependentMatrix([a0, a1], [_one, lambda t: t], [_zero, _one])


@pytest.fixture
def psi0() -> NDArray[np.complexfloating]:
    """Normalized initial state with weight on both levels."""
    return np.array([1.0, 1.0j], dtype=np.complex128) / np.sqrt(2.0)
