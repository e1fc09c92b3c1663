# src/tdprop/step_engine.py
"""Single-step propagation with and without a local error estimate.

Public API:
    - ``step(psi, op, t, dt, scheme, workspace, ...)`` advances ``psi`` in
      place from ``t`` to ``t + dt``.
    - ``step_estimated(psi, psi_est, op, t, dt, scheme, workspace, ...)`` does
      the same and writes a correction ``psi_est`` such that ``psi - psi_est``
      is one order more accurate than ``psi``; ``psi_est`` doubles as the
      local error estimate.

Both dispatch on the scheme variant (commutator-free, Magnus, embedded
Runge-Kutta, estimator pair). ``dt == 0`` leaves ``psi`` untouched and zeroes
``psi_est``.

Workspace usage:
    - the Krylov kernel owns slots ``0 .. m+1`` during each exponential,
    - defect estimators use slots ``0 .. 4`` between exponentials,
    - Magnus composites use the last two slots,
    - Runge-Kutta stages use slots ``0 .. nstages``.
``psi`` and ``psi_est`` are never workspace slots.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from .defects import check_gamma_order, gamma, trapezoidal_defect
from .errors import ConfigurationError, raise_dimension_mismatch, raise_invalid_scheme
from .expmv import expmv, resolve_krylov_dimension
from .magnus import MAGNUS4_F, Magnus4DerivativeState, Magnus4State
from .schemes import (
    CommutatorFreeScheme,
    EmbeddedRungeKuttaScheme,
    MagnusScheme,
    SchemeEstimatorPair,
)
from .workspace import ESTIMATOR_SLOTS

if TYPE_CHECKING:
    from .operators import OperatorState, StateVector, TimeDependentOperator
    from .schemes import Scheme
    from .workspace import Workspace


# =============================================================================
# Errors / messages
# =============================================================================

_UNKNOWN_SCHEME_ERROR_MSG = "Unsupported scheme type: {typ}"
_ADJOINT_EVEN_ORDER_MSG = "adjoint_based=True requires an odd order; got p={p}"
_ADJOINT_MAGNUS_MSG = "adjoint_based=True is not available for Magnus schemes"
_ESTIMATE_ALIAS_ERROR_MSG = "psi_est must be a separate array from psi"
_WORKSPACE_ALIAS_ERROR_MSG = "{name} must not share memory with the workspace"

_SCHEME_TYPES = (
    CommutatorFreeScheme,
    MagnusScheme,
    EmbeddedRungeKuttaScheme,
    SchemeEstimatorPair,
)


# =============================================================================
# Internal helpers
# =============================================================================


@dataclass(frozen=True, slots=True)
class _Kernel:
    """Exponential-action settings shared by every exponential of one step."""

    workspace: Workspace
    tol: float
    m: int

    def __call__(self, psi: StateVector, dt: float, state: OperatorState) -> None:
        expmv(psi, dt, state, psi, tol=self.tol, m=self.m, workspace=self.workspace)


def _prepare(
    psi: StateVector,
    op: TimeDependentOperator,
    scheme: Scheme,
    workspace: Workspace,
    expmv_tol: float,
    expmv_m: int | None,
    *,
    estimated: bool,
) -> _Kernel:
    """Validate shapes and the workspace size; return the kernel settings."""
    if not isinstance(scheme, _SCHEME_TYPES):
        raise TypeError(_UNKNOWN_SCHEME_ERROR_MSG.format(typ=type(scheme).__name__))
    n = op.check_square()
    if psi.shape != (n,):
        raise_dimension_mismatch(name="psi", expected=n, got=psi.shape)
    if workspace.dimension != n:
        raise_dimension_mismatch(
            name="workspace slots", expected=n, got=workspace.dimension
        )
    if workspace.shares_memory(psi):
        raise ConfigurationError(_WORKSPACE_ALIAS_ERROR_MSG.format(name="psi"))
    m = resolve_krylov_dimension(n, expmv_m)
    need = scheme.workspace_size(m)
    if estimated and not isinstance(scheme, SchemeEstimatorPair):
        need = max(need, ESTIMATOR_SLOTS)
    workspace.require(need, scheme=scheme, m=m)
    return _Kernel(workspace, float(expmv_tol), m)


# =============================================================================
# Plain steps
# =============================================================================


def _step_cf(
    psi: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    scheme: CommutatorFreeScheme,
    kernel: _Kernel,
) -> None:
    tt = t + dt * scheme.c
    for j in range(scheme.number_of_exponentials):
        kernel(psi, dt, op.evaluate(tt, scheme.A[j]))


def _step_magnus(
    psi: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    scheme: MagnusScheme,
    kernel: _Kernel,
) -> None:
    c1, c2 = scheme.nodes
    H1 = op.evaluate(t + c1 * dt)
    H2 = op.evaluate(t + c2 * dt)
    HH = Magnus4State(H1, H2, MAGNUS4_F * dt, kernel.workspace.slots(-2, -1))
    kernel(psi, dt, HH)


def _rk_stages(
    psi: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    scheme: EmbeddedRungeKuttaScheme,
    workspace: Workspace,
) -> StateVector:
    """Run all stages, update ``psi`` with ``b``; return the last combination."""
    nstages = scheme.nstages
    K = workspace.buffers
    s = workspace.slot(nstages)
    for l in range(nstages):  # noqa: E741
        np.copyto(s, psi)
        for j in range(l):
            a = scheme.A[l, j]
            if a != 0.0:
                s += (dt * a) * K[j]
        op.evaluate(t + scheme.c[l] * dt).apply(K[l], s)
    for j in range(nstages):
        b = scheme.b[j]
        if b != 0.0:
            psi += (dt * b) * K[j]
    return s


def step(
    psi: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    scheme: Scheme,
    workspace: Workspace,
    *,
    expmv_tol: float = 1e-7,
    expmv_m: int | None = None,
) -> None:
    """Advance ``psi`` in place by one step of size ``dt``.

    Args:
        psi: State vector at ``t`` (overwritten with the state at ``t + dt``).
        op: Operator family.
        t: Current time.
        dt: Step size.
        scheme: Integration scheme.
        workspace: Scratch pool with at least ``scheme.workspace_size(m)``
            slots.
        expmv_tol: Krylov tolerance; ``0`` selects the dense exponential.
        expmv_m: Maximal Krylov dimension (``min(30, n)`` if None).

    Raises:
        ConfigurationError: If the workspace is too small.
        DimensionError: If ``psi`` does not match the operator.
        TypeError: If the scheme type is not supported.
    """
    kernel = _prepare(psi, op, scheme, workspace, expmv_tol, expmv_m, estimated=False)
    if dt == 0:
        return

    if isinstance(scheme, CommutatorFreeScheme):
        _step_cf(psi, op, t, dt, scheme, kernel)
    elif isinstance(scheme, MagnusScheme):
        _step_magnus(psi, op, t, dt, scheme, kernel)
    elif isinstance(scheme, EmbeddedRungeKuttaScheme):
        _rk_stages(psi, op, t, dt, scheme, workspace)
    elif isinstance(scheme, SchemeEstimatorPair):
        step(
            psi,
            op,
            t,
            dt,
            scheme.scheme,
            workspace,
            expmv_tol=expmv_tol,
            expmv_m=expmv_m,
        )
    else:
        raise TypeError(_UNKNOWN_SCHEME_ERROR_MSG.format(typ=type(scheme).__name__))


# =============================================================================
# Estimated steps: exponential midpoint rule
# =============================================================================


def _cf2_trapezoidal(
    psi: StateVector,
    psi_est: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    kernel: _Kernel,
) -> None:
    s = kernel.workspace.slot(0)
    tm = t + 0.5 * dt

    H1d = op.evaluate(tm, compute_derivative=True)
    H1d.apply(psi_est, psi)
    psi_est *= 0.25 * dt

    H1 = op.evaluate(tm)
    kernel(psi, dt, H1)
    kernel(psi_est, dt, H1)

    H1.apply(s, psi)
    psi_est += s
    op.evaluate(t + dt).apply(s, psi)
    psi_est -= s
    H1d.apply(s, psi)
    psi_est += (0.25 * dt) * s

    psi_est *= dt / 3.0


def _cf2_symmetrized(
    psi: StateVector,
    psi_est: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    kernel: _Kernel,
) -> None:
    s = kernel.workspace.slot(0)

    op.evaluate(t).apply(psi_est, psi)
    psi_est *= -0.5

    H1 = op.evaluate(t + 0.5 * dt)
    kernel(psi, dt, H1)
    kernel(psi_est, dt, H1)

    H1.apply(s, psi)
    psi_est += s
    op.evaluate(t + dt).apply(s, psi)
    psi_est -= 0.5 * s

    psi_est *= dt / 3.0


# =============================================================================
# Estimated steps: commutator-free
# =============================================================================


def _cf_adjoint(
    psi: StateVector,
    psi_est: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    scheme: CommutatorFreeScheme,
    kernel: _Kernel,
) -> None:
    """Compare with the adjoint composition (nodes ``1 - c``, rows reversed)."""
    if scheme.order % 2 == 0:
        raise_invalid_scheme(
            scheme, reason=_ADJOINT_EVEN_ORDER_MSG.format(p=scheme.order)
        )
    tt1 = t + dt * scheme.c
    tt2 = t + dt * (1.0 - scheme.c)
    np.copyto(psi_est, psi)
    J = scheme.number_of_exponentials
    for j in range(J):
        kernel(psi, dt, op.evaluate(tt1, scheme.A[j]))
        kernel(psi_est, dt, op.evaluate(tt2, scheme.A[J - 1 - j]))
    psi_est -= psi
    psi_est *= -0.5


def _step_estimated_cf(
    psi: StateVector,
    psi_est: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    scheme: CommutatorFreeScheme,
    kernel: _Kernel,
) -> None:
    if scheme.is_midpoint:
        if scheme.symmetrized_defect:
            _cf2_symmetrized(psi, psi_est, op, t, dt, kernel)
            return
        if scheme.trapezoidal_rule:
            _cf2_trapezoidal(psi, psi_est, op, t, dt, kernel)
            return
    if scheme.adjoint_based:
        _cf_adjoint(psi, psi_est, op, t, dt, scheme, kernel)
        return

    s, s1, s2, s1a, s2a = kernel.workspace.slots(0, 1, 2, 3, 4)
    tt = t + dt * scheme.c
    symmetrized = scheme.symmetrized_defect
    trapezoidal = scheme.trapezoidal_rule
    if not trapezoidal:
        check_gamma_order(scheme.order)

    if symmetrized:
        op.evaluate(t).apply(psi_est, psi)
        psi_est *= -0.5
    else:
        psi_est.fill(0.0)

    derivative_nodes = scheme.c - 0.5 if symmetrized else scheme.c
    for j in range(scheme.number_of_exponentials):
        H1 = op.evaluate(tt, scheme.A[j])
        H1d = op.evaluate(tt, derivative_nodes * scheme.A[j], compute_derivative=True)
        if trapezoidal:
            trapezoidal_defect(s, H1, H1d, psi, -1, dt, s1, s2)
            psi_est += s

        kernel(psi, dt, H1)
        # psi_est is still zero before the first factor unless pre-loaded
        if symmetrized or trapezoidal or j > 0:
            kernel(psi_est, dt, H1)

        if trapezoidal:
            trapezoidal_defect(s, H1, H1d, psi, +1, dt, s1, s2)
        else:
            gamma(
                s,
                H1,
                H1d,
                psi,
                scheme.order,
                dt,
                (s1, s2, s1a, s2a),
                modified_Gamma=scheme.modified_Gamma,
            )
        psi_est += s

    op.evaluate(t + dt).apply(s, psi)
    if symmetrized:
        s *= 0.5
    psi_est -= s
    psi_est *= dt / (scheme.order + 1)


# =============================================================================
# Estimated steps: Magnus, Runge-Kutta, pairs
# =============================================================================


def _step_estimated_magnus(
    psi: StateVector,
    psi_est: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    scheme: MagnusScheme,
    kernel: _Kernel,
) -> None:
    if scheme.adjoint_based:
        raise_invalid_scheme(scheme, reason=_ADJOINT_MAGNUS_MSG)
    s, s1, s2, s1a, s2a = kernel.workspace.slots(0, 1, 2, 3, 4)
    private = kernel.workspace.slots(-2, -1)
    f = MAGNUS4_F
    c1, c2 = scheme.nodes

    H1 = op.evaluate(t + c1 * dt)
    H2 = op.evaluate(t + c2 * dt)
    H1d = op.evaluate(t + c1 * dt, compute_derivative=True)
    H2d = op.evaluate(t + c2 * dt, compute_derivative=True)
    HH = Magnus4State(H1, H2, f * dt, private)
    if scheme.symmetrized_defect:
        HHd = Magnus4DerivativeState(
            H1, H2, H1d, H2d, dt, f, c1 - 0.5, c2 - 0.5, private
        )
        op.evaluate(t).apply(psi_est, psi)
        psi_est *= -0.5
    else:
        HHd = Magnus4DerivativeState(H1, H2, H1d, H2d, dt, f, c1, c2, private)
        psi_est.fill(0.0)

    if scheme.trapezoidal_rule:
        trapezoidal_defect(s, HH, HHd, psi, -1, dt, s1, s2)
        psi_est += s
        kernel(psi, dt, HH)
        kernel(psi_est, dt, HH)
        trapezoidal_defect(s, HH, HHd, psi, +1, dt, s1, s2)
    else:
        kernel(psi, dt, HH)
        if scheme.symmetrized_defect:
            kernel(psi_est, dt, HH)
        gamma(
            s,
            HH,
            HHd,
            psi,
            scheme.order,
            dt,
            (s1, s2, s1a, s2a),
            modified_Gamma=scheme.modified_Gamma,
        )
    psi_est += s

    op.evaluate(t + dt).apply(s, psi)
    if scheme.symmetrized_defect:
        s *= 0.5
    psi_est -= s
    psi_est *= dt / (scheme.order + 1)


def _step_estimated_pair(
    psi: StateVector,
    psi_est: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    scheme: SchemeEstimatorPair,
    workspace: Workspace,
    expmv_tol: float,
    expmv_m: int | None,
) -> None:
    np.copyto(psi_est, psi)
    step(psi, op, t, dt, scheme.scheme, workspace, expmv_tol=expmv_tol, expmv_m=expmv_m)
    dt1 = dt / scheme.substeps
    tk = t
    for _ in range(scheme.substeps):
        step(
            psi_est,
            op,
            tk,
            dt1,
            scheme.estimator,
            workspace,
            expmv_tol=expmv_tol,
            expmv_m=expmv_m,
        )
        tk += dt1
    np.subtract(psi, psi_est, out=psi_est)


def step_estimated(
    psi: StateVector,
    psi_est: StateVector,
    op: TimeDependentOperator,
    t: float,
    dt: float,
    scheme: Scheme,
    workspace: Workspace,
    *,
    expmv_tol: float = 1e-7,
    expmv_m: int | None = None,
) -> None:
    """Advance ``psi`` by one step and write the local error estimate.

    Args:
        psi: State vector at ``t`` (overwritten with the state at ``t + dt``).
        psi_est: Output for the correction / error estimate.
        op: Operator family (must provide derivative snapshots for
            defect-based estimates).
        t: Current time.
        dt: Step size.
        scheme: Integration scheme.
        workspace: Scratch pool (at least 5 slots for defect-based schemes).
        expmv_tol: Krylov tolerance; ``0`` selects the dense exponential.
        expmv_m: Maximal Krylov dimension (``min(30, n)`` if None).

    Raises:
        ConfigurationError: For an unusable flag combination (``adjoint_based``
            with an even order or a Magnus scheme, ``Gamma`` above order 6)
            or a workspace that is too small.
        DerivativeNotImplementedError: If the operator has no derivative.
        DimensionError: If ``psi`` or ``psi_est`` do not match the operator.
        TypeError: If the scheme type is not supported.
    """
    kernel = _prepare(psi, op, scheme, workspace, expmv_tol, expmv_m, estimated=True)
    if psi_est.shape != psi.shape:
        raise_dimension_mismatch(
            name="psi_est", expected=psi.shape[0], got=psi_est.shape
        )
    if np.shares_memory(psi_est, psi):
        raise ConfigurationError(_ESTIMATE_ALIAS_ERROR_MSG)
    if workspace.shares_memory(psi_est):
        raise ConfigurationError(_WORKSPACE_ALIAS_ERROR_MSG.format(name="psi_est"))
    if dt == 0:
        psi_est.fill(0.0)
        return

    if isinstance(scheme, CommutatorFreeScheme):
        _step_estimated_cf(psi, psi_est, op, t, dt, scheme, kernel)
    elif isinstance(scheme, MagnusScheme):
        _step_estimated_magnus(psi, psi_est, op, t, dt, scheme, kernel)
    elif isinstance(scheme, EmbeddedRungeKuttaScheme):
        last = _rk_stages(psi, op, t, dt, scheme, workspace)
        np.subtract(psi, last, out=psi_est)
    elif isinstance(scheme, SchemeEstimatorPair):
        _step_estimated_pair(
            psi, psi_est, op, t, dt, scheme, workspace, expmv_tol, expmv_m
        )
    else:
        raise TypeError(_UNKNOWN_SCHEME_ERROR_MSG.format(typ=type(scheme).__name__))
