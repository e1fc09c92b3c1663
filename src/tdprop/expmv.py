# src/tdprop/expmv.py
"""Action of the matrix exponential on a vector: ``y = exp(z X) x``.

The step engine treats this as a black-box numerical primitive. It only needs:

- an operator state ``X`` implementing ``apply(out, b)`` (any object honouring
  :class:`tdprop.operators.OperatorState`, including synthetic composites),
- externally supplied scratch space (a :class:`tdprop.workspace.Workspace`),
- ``tol == 0`` as a request for the dense fallback ``scipy.linalg.expm``.

Iterative path:
    Arnoldi projection of ``z X`` onto a Krylov space of dimension ``m``
    (``V_k``, Hessenberg ``H_k``), then ``y = beta V_k exp(tau H_k) e1``. The
    step fraction ``tau`` is halved until the a posteriori estimate

        beta * h_{k+1,k} * tau * |e_k^T phi_1(tau H_k) e1| <= tol * tau * beta

    holds, and the remaining fraction is covered by further projections
    (sub-stepping). ``exp`` and ``phi_1`` of the small Hessenberg matrix come
    from one augmented ``expm`` call. A happy breakdown (invariant subspace)
    makes the projection exact.

Performance hygiene:
    - The Krylov basis lives in workspace slots ``0..m`` and the Arnoldi work
      vector in slot ``m+1``; nothing state-sized is allocated per call apart
      from the final basis combination.
    - ``y`` may alias ``x``.
"""

from __future__ import annotations

import warnings
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import expm

from .errors import ConfigurationError, raise_dimension_mismatch
from .workspace import Workspace

if TYPE_CHECKING:
    from .operators import OperatorState, StateVector


DEFAULT_KRYLOV_DIMENSION = 30

_BREAKDOWN_TOL = 1e-12
_MAX_SUBSTEP_HALVINGS = 60
_DONE_TOL = 1e-14

_KRYLOV_DIM_ERROR_MSG = "expmv_m must be a positive integer; got {m}"
_KRYLOV_DIM_CLIP_MSG = "expmv_m={m} exceeds the operator dimension; using m={n}"
_NEGATIVE_TOL_ERROR_MSG = "expmv tolerance must be >= 0; got {tol}"
_SUBSTEP_STALL_MSG = (
    "Krylov sub-stepping could not meet tol={tol} (step fraction underflow)"
)


def resolve_krylov_dimension(n: int, m: int | None = None) -> int:
    """Resolve the Krylov subspace dimension for an ``n``-dimensional operator.

    Args:
        n: Operator dimension.
        m: Requested dimension, or None for ``min(30, n)``.

    Raises:
        ConfigurationError: If m is not positive.

    Returns:
        Dimension in ``[1, n]``.
    """
    if m is None:
        return max(1, min(DEFAULT_KRYLOV_DIMENSION, n))
    if int(m) < 1:
        raise ConfigurationError(_KRYLOV_DIM_ERROR_MSG.format(m=m))
    if int(m) > n:
        warnings.warn(
            _KRYLOV_DIM_CLIP_MSG.format(m=m, n=n),
            RuntimeWarning,
            stacklevel=2,
        )
        return max(1, n)
    return int(m)


def as_dense(state: OperatorState) -> NDArray[np.complexfloating]:
    """Return the dense generator of an operator state.

    States exposing ``to_dense()`` are converted directly; any other state is
    probed column by column through ``apply``.

    Args:
        state: Operator state.

    Returns:
        Dense complex matrix of the generator.
    """
    to_dense = getattr(state, "to_dense", None)
    if callable(to_dense):
        return np.asarray(to_dense(), dtype=np.complex128)

    n = state.check_square()
    dense = np.empty((n, n), dtype=np.complex128)
    unit = np.zeros(n, dtype=np.complex128)
    col = np.empty(n, dtype=np.complex128)
    for k in range(n):
        unit[k] = 1.0
        state.apply(col, unit)
        dense[:, k] = col
        unit[k] = 0.0
    return dense


def _arnoldi(
    state: OperatorState,
    z: complex,
    basis: NDArray[np.complexfloating],
    m: int,
) -> tuple[NDArray[np.complexfloating], int, float]:
    """Build the Arnoldi decomposition of ``z X`` from ``basis[0]``.

    Args:
        state: Operator state.
        z: Scalar multiplying the generator.
        basis: Array with at least ``m + 2`` rows; row 0 holds the normalized
            start vector, row ``m + 1`` is used as work vector.
        m: Maximal subspace dimension.

    Returns:
        Hessenberg matrix ``(k, k)``, subspace dimension ``k`` and the
        subdiagonal entry ``h_{k+1,k}`` (0.0 on happy breakdown).
    """
    h = np.zeros((m + 1, m), dtype=np.complex128)
    w = basis[m + 1]
    anorm = 0.0
    for j in range(m):
        state.apply(w, basis[j])
        w *= z
        for i in range(j + 1):
            h[i, j] = np.vdot(basis[i], w)
            w -= h[i, j] * basis[i]
        beta = float(np.linalg.norm(w))
        h[j + 1, j] = beta
        anorm = max(anorm, float(np.linalg.norm(h[: j + 2, j])))
        if beta <= _BREAKDOWN_TOL * anorm or beta == 0.0:
            return h[: j + 1, : j + 1], j + 1, 0.0
        np.divide(w, beta, out=basis[j + 1])
    return h[:m, :m], m, float(h[m, m - 1].real)


def _exp_phi1_e1(
    hk: NDArray[np.complexfloating],
    tau: float,
) -> tuple[NDArray[np.complexfloating], NDArray[np.complexfloating]]:
    """Return ``exp(tau H) e1`` and ``phi_1(tau H) e1`` via one augmented expm."""
    k = hk.shape[0]
    aug = np.zeros((k + 1, k + 1), dtype=np.complex128)
    aug[:k, :k] = tau * hk
    aug[0, k] = 1.0
    big = expm(aug)
    return big[:k, 0], big[:k, k]


def expmv(
    y: StateVector,
    z: complex,
    state: OperatorState,
    x: StateVector,
    *,
    tol: float = 1e-7,
    m: int | None = None,
    workspace: Workspace | None = None,
) -> StateVector:
    """Compute ``y <- exp(z X) x`` for the generator ``X`` of ``state``.

    Args:
        y: Output vector (may be the same array as ``x``).
        z: Scalar multiplying the generator (the time step for propagators).
        state: Operator state.
        x: Input vector.
        tol: Krylov error tolerance; ``0`` selects the dense fallback.
        m: Maximal Krylov dimension (``min(30, n)`` if None).
        workspace: Scratch pool with at least ``m + 2`` slots; allocated on the
            fly if None.

    Raises:
        ConfigurationError: If ``tol`` is negative or the workspace is too small.
        RuntimeError: If sub-stepping cannot meet the tolerance.

    Returns:
        ``y``.
    """
    n = state.check_square()
    if x.shape != (n,):
        raise_dimension_mismatch(name="x", expected=n, got=x.shape)
    if y.shape != (n,):
        raise_dimension_mismatch(name="y", expected=n, got=y.shape)
    if tol < 0.0:
        raise ConfigurationError(_NEGATIVE_TOL_ERROR_MSG.format(tol=tol))

    if z == 0:
        if y is not x:
            np.copyto(y, x)
        return y

    if tol == 0.0:
        np.copyto(y, expm(z * as_dense(state)) @ x)
        return y

    m_eff = min(m if m is not None else DEFAULT_KRYLOV_DIMENSION, n)
    m_eff = max(1, m_eff)
    if workspace is None:
        workspace = Workspace.allocate(m_eff + 2, n)
    workspace.require(m_eff + 2, scheme=state, m=m_eff)
    basis = workspace.buffers

    if y is not x:
        np.copyto(y, x)

    t_done = 0.0
    tau = 1.0
    while 1.0 - t_done > _DONE_TOL:
        tau = min(tau, 1.0 - t_done)
        beta = float(np.linalg.norm(y))
        if beta == 0.0:
            return y
        np.divide(y, beta, out=basis[0])
        hk, k, h_next = _arnoldi(state, z, basis, m_eff)

        for _ in range(_MAX_SUBSTEP_HALVINGS):
            f_exp, f_phi = _exp_phi1_e1(hk, tau)
            err = beta * abs(h_next) * tau * abs(f_phi[k - 1])
            if err <= tol * tau * beta:
                break
            tau *= 0.5
        else:
            raise RuntimeError(_SUBSTEP_STALL_MSG.format(tol=tol))

        np.copyto(y, f_exp @ basis[:k])
        y *= beta
        t_done += tau
        if err <= 0.1 * tol * tau * beta:
            tau *= 2.0

    return y
