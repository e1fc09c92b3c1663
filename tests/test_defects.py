# tests/test_defects.py
"""Unit tests for tdprop.defects against dense reference formulas.

Coverage in this file:
- gamma for every supported order, plain and with modified constants.
- trapezoidal_defect for both signs.
- Order and sign validation.
"""

from __future__ import annotations

from math import comb, factorial
from typing import TYPE_CHECKING

import numpy as np
import pytest

from tdprop.defects import MAX_GAMMA_ORDER, gamma, trapezoidal_defect
from tdprop.errors import ConfigurationError
from tdprop.operators import MatrixState

if TYPE_CHECKING:
    from numpy.typing import NDArray

    ComplexArray = NDArray[np.complexfloating]

N = 5
DT = 0.3


def _random_complex(shape: tuple[int, ...], seed: int) -> ComplexArray:
    """Return a random complex array of the given shape."""
    rng = np.random.default_rng(seed)
    return rng.standard_normal(shape) + 1j * rng.standard_normal(shape)


def _setup() -> tuple[
    MatrixState, MatrixState, ComplexArray, ComplexArray, ComplexArray
]:
    """Build primary/derivative snapshots, their dense forms and a vector u.

    Returns:
        ``(H, Hd, B, A, u)`` with ``B``/``A`` the dense generators.
    """
    b_mat = _random_complex((N, N), seed=1) / N
    a_mat = _random_complex((N, N), seed=2) / N
    u = _random_complex((N,), seed=3)
    return MatrixState(b_mat), MatrixState(a_mat), b_mat, a_mat, u


def _scratch(k: int) -> tuple[ComplexArray, ...]:
    return tuple(np.zeros(N, dtype=np.complex128) for _ in range(k))


def _gamma_reference(
    b_mat: ComplexArray,
    a_mat: ComplexArray,
    u: ComplexArray,
    p: int,
    f: list[float],
) -> ComplexArray:
    """Dense ``B u + sum (-1)^a C(a+b, a) f_{a+b+1} B^b A B^a u``."""
    r = b_mat @ u
    for a in range(p):
        for b in range(p - a):
            term = np.linalg.matrix_power(b_mat, b) @ a_mat
            term = term @ np.linalg.matrix_power(b_mat, a) @ u
            r = r + (-1) ** a * comb(a + b, a) * f[a + b + 1] * term
    return r


# -------------------------------------------------------------------
# gamma
# -------------------------------------------------------------------


@pytest.mark.parametrize("p", range(1, MAX_GAMMA_ORDER + 1))
def test_gamma_matches_dense_expansion(p: int) -> None:
    """gamma reproduces the truncated commutator expansion."""
    H, Hd, b_mat, a_mat, u = _setup()
    r = np.zeros(N, dtype=np.complex128)
    f = [DT**k / factorial(k) for k in range(p + 1)]

    gamma(r, H, Hd, u, p, DT, _scratch(4))

    assert np.allclose(r, _gamma_reference(b_mat, a_mat, u, p, f), atol=1e-13)


@pytest.mark.parametrize(
    ("p", "effective_p", "last"),
    [(2, 3, DT**3 / 4.0), (4, 5, DT**5 / 144.0)],
)
def test_gamma_modified_constants(p: int, effective_p: int, last: float) -> None:
    """modified_Gamma raises the order by one with a sharper last constant."""
    H, Hd, b_mat, a_mat, u = _setup()
    r = np.zeros(N, dtype=np.complex128)
    f = [DT**k / factorial(k) for k in range(effective_p + 1)]
    f[effective_p] = last

    gamma(r, H, Hd, u, p, DT, _scratch(4), modified_Gamma=True)

    expected = _gamma_reference(b_mat, a_mat, u, effective_p, f)
    assert np.allclose(r, expected, atol=1e-13)


@pytest.mark.parametrize("p", [1, 3, 5, 6])
def test_gamma_modified_flag_ignored_for_other_orders(p: int) -> None:
    """Only p=2 and p=4 have modified constants."""
    H, Hd, _, _, u = _setup()
    r_plain = np.zeros(N, dtype=np.complex128)
    r_mod = np.zeros(N, dtype=np.complex128)

    gamma(r_plain, H, Hd, u, p, DT, _scratch(4))
    gamma(r_mod, H, Hd, u, p, DT, _scratch(4), modified_Gamma=True)

    assert np.array_equal(r_plain, r_mod)


def test_gamma_leaves_input_untouched() -> None:
    """u is read-only for the estimator."""
    H, Hd, _, _, u = _setup()
    u_before = u.copy()
    gamma(np.zeros(N, dtype=np.complex128), H, Hd, u, 4, DT, _scratch(4))
    assert np.array_equal(u, u_before)


def test_gamma_order_above_six_raises() -> None:
    """The expansion is only tabulated up to order 6."""
    H, Hd, _, _, u = _setup()
    with pytest.raises(ConfigurationError, match="p <= 6"):
        gamma(np.zeros(N, dtype=np.complex128), H, Hd, u, 7, DT, _scratch(4))


# -------------------------------------------------------------------
# trapezoidal_defect
# -------------------------------------------------------------------


@pytest.mark.parametrize("sign", [1, -1])
def test_trapezoidal_defect_matches_dense(sign: int) -> None:
    """r = dt/2 A u + s dt^2/12 B A u + 1/2 B u - s dt^2/12 A B u."""
    H, Hd, b_mat, a_mat, u = _setup()
    r = np.zeros(N, dtype=np.complex128)
    s, s1 = _scratch(2)

    trapezoidal_defect(r, H, Hd, u, sign, DT, s, s1)

    c = sign * DT**2 / 12.0
    expected = (
        0.5 * DT * (a_mat @ u)
        + c * (b_mat @ a_mat @ u)
        + 0.5 * (b_mat @ u)
        - c * (a_mat @ b_mat @ u)
    )
    assert np.allclose(r, expected, atol=1e-13)


def test_trapezoidal_defect_invalid_sign_raises() -> None:
    """The sign selects before/after the exponential and must be +-1."""
    H, Hd, _, _, u = _setup()
    s, s1 = _scratch(2)
    with pytest.raises(ConfigurationError, match="sign must be"):
        trapezoidal_defect(np.zeros(N, dtype=np.complex128), H, Hd, u, 0, DT, s, s1)
