# src/tdprop/defects.py
"""Defect-based local error estimators.

Both routines write a correction term into ``r`` using only operator
applications of a primary snapshot ``H`` (generator ``B``) and a derivative
snapshot ``Hd`` (generator ``A``). Scratch vectors are caller-owned and must
not alias ``r`` or ``u``.

gamma:
    Truncated nested-commutator expansion

        r = B u + sum_{a+b+1 <= p} (-1)^a C(a+b, a) f_{a+b+1} B^b A B^a u,

    with ``f_k = dt^k / k!``. Orders up to 6 are supported.

trapezoidal_defect:
    Two-term trapezoidal-rule defect with a ``dt^2/12`` correction whose sign
    is chosen by the caller (``-1`` before an exponential, ``+1`` after it).
"""

from __future__ import annotations

from math import comb, factorial
from typing import TYPE_CHECKING

from .errors import ConfigurationError

if TYPE_CHECKING:
    from .operators import OperatorState, StateVector

MAX_GAMMA_ORDER = 6

_GAMMA_ORDER_ERROR_MSG = "gamma supports p <= {max_p}; got p={p}"
_SIGN_ERROR_MSG = "sign must be +1 or -1; got {sign}"


def check_gamma_order(p: int) -> None:
    """Raise ConfigurationError if ``gamma`` cannot expand to order ``p``."""
    if p > MAX_GAMMA_ORDER:
        raise ConfigurationError(
            _GAMMA_ORDER_ERROR_MSG.format(max_p=MAX_GAMMA_ORDER, p=p)
        )


def _taylor_coefficients(
    p: int,
    dt: float,
    *,
    modified_Gamma: bool,
) -> tuple[int, list[float]]:
    """Return the effective order and ``f[k] = dt^k/k!`` for ``k = 0..p``."""
    if modified_Gamma and p == 2:
        f = [dt**k / factorial(k) for k in range(4)]
        f[3] = dt**3 / 4.0
        return 3, f
    if modified_Gamma and p == 4:
        f = [dt**k / factorial(k) for k in range(6)]
        f[5] = dt**5 / 144.0
        return 5, f
    return p, [dt**k / factorial(k) for k in range(p + 1)]


def gamma(
    r: StateVector,
    H: OperatorState,
    Hd: OperatorState,
    u: StateVector,
    p: int,
    dt: float,
    scratch: tuple[StateVector, StateVector, StateVector, StateVector],
    *,
    modified_Gamma: bool = False,
) -> StateVector:
    """Nested-commutator defect of order ``p``.

    Args:
        r: Output vector.
        H: Primary snapshot (generator ``B``).
        Hd: Derivative snapshot (generator ``A``).
        u: Vector the expansion acts on.
        p: Expansion order, ``1 <= p <= 6``.
        dt: Step size.
        scratch: Four scratch vectors ``(s1, s2, s1a, s2a)``.
        modified_Gamma: Promote ``p=2`` to 3 (``f3 = dt^3/4``) and ``p=4`` to
            5 (``f5 = dt^5/144``).

    Raises:
        ConfigurationError: If ``p > 6``.

    Returns:
        ``r``.
    """
    check_gamma_order(p)
    p, f = _taylor_coefficients(int(p), dt, modified_Gamma=modified_Gamma)
    s1, s2, s1a, s2a = scratch

    # s2 = B u is both the leading term and the start of the B^a u chain
    H.apply(s2, u)
    r[:] = s2

    chain, chain_next = s2, s2a
    for a in range(p):
        base = u if a == 0 else chain
        cur, nxt = s1, s1a
        Hd.apply(cur, base)
        for b in range(p - a):
            coeff = (-1) ** a * comb(a + b, a) * f[a + b + 1]
            r += coeff * cur
            if b + 1 < p - a:
                H.apply(nxt, cur)
                cur, nxt = nxt, cur
        if a >= 1 and a + 1 < p:
            H.apply(chain_next, chain)
            chain, chain_next = chain_next, chain
    return r


def trapezoidal_defect(
    r: StateVector,
    H: OperatorState,
    Hd: OperatorState,
    u: StateVector,
    sign: int,
    dt: float,
    s: StateVector,
    s1: StateVector,
) -> StateVector:
    """Trapezoidal-rule defect term.

    ``r = dt/2 A u + sign dt^2/12 B A u + 1/2 B u - sign dt^2/12 A B u``.

    Raises:
        ConfigurationError: If ``sign`` is not ``+1`` or ``-1``.
    """
    if sign not in (1, -1):
        raise ConfigurationError(_SIGN_ERROR_MSG.format(sign=sign))
    c = sign * dt**2 / 12.0
    Hd.apply(s, u)
    r[:] = s
    r *= 0.5 * dt
    H.apply(s1, s)
    r += c * s1
    H.apply(s, u)
    r += 0.5 * s
    Hd.apply(s1, s)
    r -= c * s1
    return r
