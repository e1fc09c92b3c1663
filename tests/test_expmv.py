# tests/test_expmv.py
"""Unit tests for tdprop.expmv.

Coverage in this file:
- Krylov action against scipy.linalg.expm (Hermitian and non-normal).
- Sub-stepping when the Krylov space is small relative to the step.
- Dense fallback (tol == 0), z == 0, in-place aliasing, happy breakdown.
- Krylov dimension resolution and workspace validation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest
from scipy.linalg import expm

from tdprop.errors import ConfigurationError, DimensionError
from tdprop.expmv import as_dense, expmv, resolve_krylov_dimension
from tdprop.operators import MatrixState
from tdprop.workspace import Workspace

if TYPE_CHECKING:
    from numpy.typing import NDArray


def _random_hermitian(n: int, seed: int = 0) -> NDArray[np.complexfloating]:
    """Return a random Hermitian matrix with spectral radius of order one.

    Args:
        n: Dimension.
        seed: RNG seed.

    Returns:
        Dense Hermitian matrix.
    """
    rng = np.random.default_rng(seed)
    g = rng.standard_normal((n, n)) + 1j * rng.standard_normal((n, n))
    return (g + g.conj().T) / (2.0 * np.sqrt(n))


def _random_state(n: int, seed: int = 1) -> NDArray[np.complexfloating]:
    """Return a random normalized complex vector."""
    rng = np.random.default_rng(seed)
    x = rng.standard_normal(n) + 1j * rng.standard_normal(n)
    return x / np.linalg.norm(x)


# -------------------------------------------------------------------
# Krylov path
# -------------------------------------------------------------------


@pytest.mark.parametrize("dt", [0.1, 1.0, 3.0])
def test_krylov_matches_expm_hermitian(dt: float) -> None:
    """exp(-i dt H) x agrees with the dense exponential."""
    n = 60
    h = _random_hermitian(n)
    x = _random_state(n)
    y = np.empty(n, dtype=np.complex128)

    expmv(y, dt, MatrixState(h, schroedinger=True), x, tol=1e-10)

    expected = expm(-1j * dt * h) @ x
    assert np.allclose(y, expected, atol=1e-8)
    assert np.linalg.norm(y) == pytest.approx(1.0, abs=1e-8)


def test_krylov_substeps_with_small_subspace() -> None:
    """A long step with a small Krylov space is covered by sub-steps."""
    n = 60
    h = _random_hermitian(n, seed=3)
    x = _random_state(n, seed=4)
    y = np.empty(n, dtype=np.complex128)

    expmv(y, 20.0, MatrixState(h, schroedinger=True), x, tol=1e-10, m=8)

    expected = expm(-20.0j * h) @ x
    assert np.allclose(y, expected, atol=1e-6)


def test_krylov_matches_expm_non_normal() -> None:
    """A real non-normal generator with a real step."""
    rng = np.random.default_rng(11)
    n = 40
    a = rng.standard_normal((n, n)) / np.sqrt(n)
    x = _random_state(n, seed=5)
    y = np.empty(n, dtype=np.complex128)

    expmv(y, 0.5, MatrixState(a), x, tol=1e-11)

    assert np.allclose(y, expm(0.5 * a) @ x, atol=1e-8)


def test_happy_breakdown_is_exact() -> None:
    """An invariant Krylov subspace gives the exact exponential."""
    h = np.diag([1.0, -1.0])
    x = np.array([1.0, 0.0], dtype=np.complex128)
    y = np.empty(2, dtype=np.complex128)

    expmv(y, 1.0, MatrixState(h, schroedinger=True), x, tol=1e-10)

    assert np.allclose(y, [np.exp(-1j), 0.0], atol=1e-12)


def test_in_place_aliasing() -> None:
    """y may be the same array as x."""
    n = 20
    h = _random_hermitian(n, seed=8)
    x = _random_state(n, seed=9)
    expected = expm(-0.7j * h) @ x

    expmv(x, 0.7, MatrixState(h, schroedinger=True), x, tol=1e-10)

    assert np.allclose(x, expected, atol=1e-8)


def test_shared_workspace_is_reused() -> None:
    """A caller-owned workspace with m + 2 slots is accepted."""
    n = 30
    h = _random_hermitian(n, seed=2)
    x = _random_state(n, seed=3)
    y = np.empty(n, dtype=np.complex128)
    ws = Workspace.allocate(12, n)

    expmv(y, 0.5, MatrixState(h, schroedinger=True), x, tol=1e-10, m=10, workspace=ws)

    assert np.allclose(y, expm(-0.5j * h) @ x, atol=1e-8)


# -------------------------------------------------------------------
# Special cases
# -------------------------------------------------------------------


def test_dense_fallback_when_tol_zero() -> None:
    """tol == 0 selects scipy.linalg.expm."""
    n = 10
    h = _random_hermitian(n, seed=6)
    x = _random_state(n, seed=7)
    y = np.empty(n, dtype=np.complex128)

    expmv(y, 2.0, MatrixState(h, schroedinger=True), x, tol=0.0)

    assert np.allclose(y, expm(-2.0j * h) @ x, atol=1e-13)


def test_zero_step_copies_input() -> None:
    """z == 0 leaves the vector unchanged."""
    x = _random_state(5)
    y = np.zeros(5, dtype=np.complex128)

    expmv(y, 0.0, MatrixState(_random_hermitian(5)), x)

    assert np.array_equal(y, x)


def test_zero_vector_stays_zero() -> None:
    """The exponential of anything applied to zero is zero."""
    x = np.zeros(4, dtype=np.complex128)
    y = np.ones(4, dtype=np.complex128)

    expmv(y, 1.0, MatrixState(_random_hermitian(4)), x, tol=1e-8)

    assert np.array_equal(y, x)


def test_as_dense_probes_states_without_to_dense() -> None:
    """States exposing only apply are densified column by column."""
    h = _random_hermitian(4, seed=12)
    inner = MatrixState(h, schroedinger=True)

    class _ApplyOnly:
        shape = (4, 4)

        def check_square(self) -> int:
            return 4

        def apply(self, out: NDArray[np.complexfloating], b: NDArray) -> None:
            inner.apply(out, b)

    assert np.allclose(as_dense(_ApplyOnly()), -1j * h)


# -------------------------------------------------------------------
# Validation
# -------------------------------------------------------------------


def test_negative_tol_raises() -> None:
    """Tolerances must be non-negative."""
    x = _random_state(3)
    with pytest.raises(ConfigurationError, match="tolerance must be >= 0"):
        expmv(x, 1.0, MatrixState(np.eye(3)), x, tol=-1.0)


def test_too_small_workspace_raises() -> None:
    """The workspace needs m + 2 slots."""
    x = _random_state(6)
    ws = Workspace.allocate(3, 6)
    with pytest.raises(ConfigurationError, match="needs at least 6"):
        expmv(x, 1.0, MatrixState(np.eye(6)), x, m=4, workspace=ws)


def test_vector_dimension_mismatch_raises() -> None:
    """x must match the operator dimension."""
    x = np.ones(3, dtype=np.complex128)
    y = np.ones(4, dtype=np.complex128)
    with pytest.raises(DimensionError):
        expmv(y, 1.0, MatrixState(np.eye(4)), x)


def test_resolve_krylov_dimension_default_and_clip() -> None:
    """Default is min(30, n); larger requests are clipped with a warning."""
    assert resolve_krylov_dimension(100) == 30
    assert resolve_krylov_dimension(7) == 7
    assert resolve_krylov_dimension(100, 12) == 12
    with pytest.warns(RuntimeWarning, match="exceeds the operator dimension"):
        assert resolve_krylov_dimension(5, 40) == 5


def test_resolve_krylov_dimension_rejects_non_positive() -> None:
    """m must be at least one."""
    with pytest.raises(ConfigurationError, match="positive integer"):
        resolve_krylov_dimension(10, 0)
