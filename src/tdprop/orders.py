# src/tdprop/orders.py
"""Order-verification harness.

Runs a scheme with successively halved step sizes and reports the observed
order ``p = log2(err_{k-1} / err_k)`` per row:

- :func:`local_orders`: one step from ``t0`` against a finely resolved
  reference (``reference_steps`` steps of the reference scheme).
- :func:`local_orders_est`: as above, plus the quality of the local error
  estimate ``||psi - psi_ref - psi_est||``.
- :func:`global_orders`: full runs over ``[t0, tend]`` against a given final
  reference state.

Tables are returned as NumPy arrays and each row is logged at INFO level.
``psi`` is restored to its initial value after every row.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from .errors import ConfigurationError
from .expmv import resolve_krylov_dimension
from .presets import CF2, CF4
from .step_engine import step, step_estimated
from .steppers import EquidistantCorrectedTimeStepper, EquidistantTimeStepper
from .workspace import ESTIMATOR_SLOTS, Workspace

if TYPE_CHECKING:
    from .operators import StateVector, TimeDependentOperator
    from .schemes import Scheme

logger = logging.getLogger(__name__)

_ROWS_ERROR_MSG = "rows must be >= 1; got {rows}"
_REFERENCE_STEPS_ERROR_MSG = "reference_steps must be >= 1; got {steps}"


def _observed_order(err_old: float, err: float) -> float:
    if err_old <= 0.0 or err <= 0.0:
        return float("nan")
    return float(np.log2(err_old / err))


def _check_rows(rows: int, reference_steps: int = 1) -> None:
    if rows < 1:
        raise ConfigurationError(_ROWS_ERROR_MSG.format(rows=rows))
    if reference_steps < 1:
        raise ConfigurationError(
            _REFERENCE_STEPS_ERROR_MSG.format(steps=reference_steps)
        )


def _shared_workspace(
    op: TimeDependentOperator,
    schemes: tuple[Scheme, ...],
    expmv_m: int | None,
    *,
    estimated: bool,
) -> tuple[Workspace, int]:
    n = op.check_square()
    m = resolve_krylov_dimension(n, expmv_m)
    n_slots = max(s.workspace_size(m) for s in schemes)
    if estimated:
        n_slots = max(ESTIMATOR_SLOTS, n_slots)
    return Workspace.allocate(n_slots, n), m


def _reference(
    psi_ref: StateVector,
    psi0: StateVector,
    op: TimeDependentOperator,
    t0: float,
    dt: float,
    scheme: Scheme,
    steps: int,
    workspace: Workspace,
    expmv_tol: float,
    expmv_m: int,
) -> None:
    np.copyto(psi_ref, psi0)
    dt_ref = dt / steps
    for k in range(steps):
        step(
            psi_ref,
            op,
            t0 + k * dt_ref,
            dt_ref,
            scheme,
            workspace,
            expmv_tol=expmv_tol,
            expmv_m=expmv_m,
        )


def local_orders(
    op: TimeDependentOperator,
    psi: StateVector,
    t0: float,
    dt: float,
    *,
    scheme: Scheme = CF2,
    reference_scheme: Scheme | None = None,
    reference_steps: int = 10,
    rows: int = 8,
    expmv_tol: float = 1e-7,
    expmv_m: int | None = None,
) -> NDArray[np.float64]:
    """Tabulate the local error of one step for halved step sizes.

    Args:
        op: Operator family.
        psi: Initial state (restored on return).
        t0: Start time of the step.
        dt: Largest step size (first row).
        scheme: Scheme under test.
        reference_scheme: Scheme for the reference solution (``scheme`` if
            None).
        reference_steps: Reference sub-steps per step.
        rows: Number of halvings.
        expmv_tol: Krylov tolerance; ``0`` selects the dense exponential.
        expmv_m: Maximal Krylov dimension.

    Raises:
        ConfigurationError: If ``rows`` or ``reference_steps`` is not positive.

    Returns:
        Array ``(rows, 4)`` with columns ``dt, err, p, applications/dt``
        (``p`` is 0 in the first row).
    """
    _check_rows(rows, reference_steps)
    reference_scheme = scheme if reference_scheme is None else reference_scheme
    workspace, m = _shared_workspace(
        op, (scheme, reference_scheme), expmv_m, estimated=False
    )

    tab = np.zeros((rows, 4), dtype=np.float64)
    psi0 = psi.copy()
    psi_ref = psi.copy()
    dt1 = float(dt)
    err_old = 0.0
    logger.info("             dt         err      p    muls/dt")
    for row in range(rows):
        c0 = op.counter
        step(psi, op, t0, dt1, scheme, workspace, expmv_tol=expmv_tol, expmv_m=m)
        c1 = op.counter
        _reference(
            psi_ref,
            psi0,
            op,
            t0,
            dt1,
            reference_scheme,
            reference_steps,
            workspace,
            expmv_tol,
            m,
        )
        err = float(np.linalg.norm(psi - psi_ref))
        p = 0.0 if row == 0 else _observed_order(err_old, err)
        muls = (c1 - c0) / dt1
        tab[row] = (dt1, err, p, muls)
        logger.info("%3i%12.3e%12.3e%7.2f  %9.2f", row + 1, dt1, err, p, muls)

        err_old = err
        dt1 *= 0.5
        np.copyto(psi, psi0)
    return tab


def local_orders_est(
    op: TimeDependentOperator,
    psi: StateVector,
    t0: float,
    dt: float,
    *,
    scheme: Scheme = CF2,
    reference_scheme: Scheme = CF4,
    reference_steps: int = 10,
    rows: int = 8,
    expmv_tol: float = 1e-7,
    expmv_m: int | None = None,
) -> NDArray[np.float64]:
    """Like :func:`local_orders`, also measuring the error estimate.

    The estimate quality is ``err_est = ||psi - psi_ref - psi_est||``, which
    should decay one order faster than ``err``.

    Returns:
        Array ``(rows, 6)`` with columns
        ``dt, err, p, err_est, p_est, applications/dt``.
    """
    _check_rows(rows, reference_steps)
    workspace, m = _shared_workspace(
        op, (scheme, reference_scheme), expmv_m, estimated=True
    )

    tab = np.zeros((rows, 6), dtype=np.float64)
    psi0 = psi.copy()
    psi_ref = psi.copy()
    psi_est = np.zeros_like(psi)
    dt1 = float(dt)
    err_old = 0.0
    err_est_old = 0.0
    logger.info("             dt         err      p       err_est      p    muls/dt")
    for row in range(rows):
        c0 = op.counter
        step_estimated(
            psi, psi_est, op, t0, dt1, scheme, workspace, expmv_tol=expmv_tol, expmv_m=m
        )
        c1 = op.counter
        _reference(
            psi_ref,
            psi0,
            op,
            t0,
            dt1,
            reference_scheme,
            reference_steps,
            workspace,
            expmv_tol,
            m,
        )
        err = float(np.linalg.norm(psi - psi_ref))
        err_est = float(np.linalg.norm(psi - psi_ref - psi_est))
        if row == 0:
            p = p_est = 0.0
        else:
            p = _observed_order(err_old, err)
            p_est = _observed_order(err_est_old, err_est)
        muls = (c1 - c0) / dt1
        tab[row] = (dt1, err, p, err_est, p_est, muls)
        logger.info(
            "%3i%12.3e%12.3e%7.2f  %12.3e%7.2f  %9.2f",
            row + 1,
            dt1,
            err,
            p,
            err_est,
            p_est,
            muls,
        )

        err_old = err
        err_est_old = err_est
        dt1 *= 0.5
        np.copyto(psi, psi0)
    return tab


def global_orders(
    op: TimeDependentOperator,
    psi: StateVector,
    psi_ref: StateVector,
    t0: float,
    tend: float,
    dt: float,
    *,
    scheme: Scheme = CF2,
    rows: int = 8,
    expmv_tol: float = 1e-7,
    expmv_m: int | None = None,
    higher_order: bool = False,
) -> NDArray[np.float64]:
    """Tabulate the global error at ``tend`` for halved step sizes.

    Args:
        op: Operator family.
        psi: Initial state (restored on return).
        psi_ref: Reference solution at ``tend``.
        t0: Initial time.
        tend: Final time.
        dt: Largest step size (first row).
        scheme: Scheme under test.
        rows: Number of halvings.
        expmv_tol: Krylov tolerance; ``0`` selects the dense exponential.
        expmv_m: Maximal Krylov dimension.
        higher_order: Use the corrected equidistant stepper.

    Returns:
        Array ``(rows, 3)`` with columns ``dt, err, p``.
    """
    _check_rows(rows)
    stepper_cls: type[EquidistantTimeStepper | EquidistantCorrectedTimeStepper] = (
        EquidistantCorrectedTimeStepper if higher_order else EquidistantTimeStepper
    )

    tab = np.zeros((rows, 3), dtype=np.float64)
    psi0 = psi.copy()
    dt1 = float(dt)
    err_old = 0.0
    logger.info("             dt         err           C      p ")
    for row in range(rows):
        stepper_cls(
            op,
            psi,
            t0,
            tend,
            dt1,
            scheme=scheme,
            expmv_tol=expmv_tol,
            expmv_m=expmv_m,
        ).run()
        err = float(np.linalg.norm(psi - psi_ref))
        if row == 0:
            p = 0.0
            logger.info("%3i%12.3e%12.3e", row + 1, dt1, err)
        else:
            p = _observed_order(err_old, err)
            const = err / dt1**p if np.isfinite(p) else float("nan")
            logger.info("%3i%12.3e%12.3e%12.3e%7.2f", row + 1, dt1, err, const, p)
        tab[row] = (dt1, err, p)

        err_old = err
        dt1 *= 0.5
        np.copyto(psi, psi0)
    return tab
