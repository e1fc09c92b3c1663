# src/tdprop/steppers.py
"""Time-stepper state machines.

Each stepper owns its state vector ``psi`` (mutated in place) and one
preallocated :class:`~tdprop.workspace.Workspace`. Progress is driven by
``advance()``, which returns the new time or ``None`` once ``tend`` has been
reached; iterating a stepper yields the same sequence of times.

- :class:`EquidistantTimeStepper`: fixed ``dt``, one ``step`` per advance.
- :class:`EquidistantCorrectedTimeStepper`: fixed ``dt``, one
  ``step_estimated`` per advance followed by ``psi <- psi - psi_est``.
- :class:`AdaptiveTimeStepper`: local-error controlled ``dt`` with
  reject/retry.

The last interval is clipped so that the final time is exactly ``tend``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

import numpy as np

from .errors import ConfigurationError, raise_dimension_mismatch
from .expmv import resolve_krylov_dimension
from .presets import CF4
from .step_engine import step, step_estimated
from .workspace import ESTIMATOR_SLOTS, Workspace

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .operators import StateVector, TimeDependentOperator
    from .schemes import Scheme

logger = logging.getLogger(__name__)


# =============================================================================
# Errors / messages
# =============================================================================

_INTERVAL_ERROR_MSG = "tend must be >= t0; got t0={t0}, tend={tend}"
_DT_ERROR_MSG = "dt must be finite and > 0; got {dt}"
_TOL_ERROR_MSG = "tol must be > 0; got {tol}"
_DT_MAX_ERROR_MSG = "dt_max must be > 0; got {dt_max}"
_COMPLEX_STATE_ERROR_MSG = "psi must be a complex array; got dtype {dtype}"
_ALIAS_ERROR_MSG = "psi must not share memory with the workspace"
_CONTROLLER_ERROR_MSG = (
    "Invalid controller: need safety > 0 and 0 < fac_min <= 1 <= fac_max; "
    "got safety={safety}, fac_min={fac_min}, fac_max={fac_max}"
)

# steps ending this close to tend (relative) land exactly on tend
_SNAP_TOL = 64.0 * float(np.finfo(float).eps)


# =============================================================================
# Configuration / records
# =============================================================================


@dataclass(slots=True, frozen=True)
class DtControllerConfig:
    """Configuration for adaptive timestep control.

    Attributes:
        safety: Safety factor applied to dt updates.
        fac_min: Minimum multiplicative change factor.
        fac_max: Maximum multiplicative change factor.
    """

    safety: float = 0.9
    fac_min: float = 0.25
    fac_max: float = 4.0

    def __post_init__(self) -> None:
        if not (self.safety > 0.0 and 0.0 < self.fac_min <= 1.0 <= self.fac_max):
            raise ConfigurationError(
                _CONTROLLER_ERROR_MSG.format(
                    safety=self.safety, fac_min=self.fac_min, fac_max=self.fac_max
                )
            )


@dataclass(slots=True, frozen=True)
class StepReport:
    """Outcome of one adaptive step attempt.

    Attributes:
        t: Start time of the attempt.
        dt: Attempted step size.
        err: Normalized error ``||psi_est|| / tol``.
        dt_next: Step size proposed by the controller.
        accepted: Whether the attempt was accepted.
    """

    t: float
    dt: float
    err: float
    dt_next: float
    accepted: bool


def propose_dt(
    dt: float,
    err_norm: float,
    order: int,
    *,
    cfg: DtControllerConfig,
) -> float:
    """
    Propose a new dt based on the normalized error and the scheme order.

    Args:
        dt: Current dt.
        err_norm: Normalized error (``1`` is the acceptance threshold).
        order: Declared order of the scheme.
        cfg: Dt controller configuration.

    Returns:
        Proposed new dt, within ``[fac_min * dt, fac_max * dt]``.
    """
    if err_norm <= 0.0:
        fac = cfg.fac_max
    else:
        exp = 1.0 / float(order + 1)
        fac = cfg.safety * (err_norm ** (-exp))
        fac = min(cfg.fac_max, max(cfg.fac_min, fac))
    return dt * fac


def _land(t: float, dt: float, tend: float) -> float:
    """Return ``t + dt``, snapped onto ``tend`` when it reaches it."""
    t_next = t + dt
    if t_next >= tend or tend - t_next <= _SNAP_TOL * max(1.0, abs(tend)):
        return tend
    return t_next


# =============================================================================
# Shared plumbing
# =============================================================================


class _TimeStepper(ABC):
    """State common to all steppers: operator, state, interval, workspace."""

    def __init__(
        self,
        op: TimeDependentOperator,
        psi: StateVector,
        t0: float,
        tend: float,
        scheme: Scheme,
        *,
        expmv_tol: float,
        expmv_m: int | None,
        estimated: bool,
        workspace: Workspace | None,
    ) -> None:
        t0 = float(t0)
        tend = float(tend)
        if not tend >= t0:
            raise ConfigurationError(_INTERVAL_ERROR_MSG.format(t0=t0, tend=tend))

        n = op.check_square()
        if not isinstance(psi, np.ndarray) or psi.shape != (n,):
            raise_dimension_mismatch(
                name="psi", expected=n, got=getattr(psi, "shape", psi)
            )
        if not np.iscomplexobj(psi):
            raise ConfigurationError(_COMPLEX_STATE_ERROR_MSG.format(dtype=psi.dtype))

        m = resolve_krylov_dimension(n, expmv_m)
        if workspace is None:
            n_slots = scheme.workspace_size(m)
            if estimated:
                n_slots = max(ESTIMATOR_SLOTS, n_slots)
            workspace = Workspace.allocate(n_slots, n)
        if workspace.shares_memory(psi):
            raise ConfigurationError(_ALIAS_ERROR_MSG)

        self.op = op
        self.psi = psi
        self.t0 = t0
        self.tend = tend
        self.t = t0
        self.scheme = scheme
        self.expmv_tol = float(expmv_tol)
        self.expmv_m = m
        self.workspace = workspace

    @property
    def done(self) -> bool:
        return self.t >= self.tend

    @abstractmethod
    def advance(self) -> float | None:
        """Advance one step; return the new time or None once done."""

    def __iter__(self) -> Iterator[float]:
        while (t := self.advance()) is not None:
            yield t

    def run(self) -> float:
        """Advance until ``tend``; return the final time."""
        for _ in self:
            pass
        return self.t


def _check_dt(dt: float) -> float:
    dt = float(dt)
    if not (np.isfinite(dt) and dt > 0.0):
        raise ConfigurationError(_DT_ERROR_MSG.format(dt=dt))
    return dt


# =============================================================================
# Equidistant steppers
# =============================================================================


class EquidistantTimeStepper(_TimeStepper):
    """Fixed step size; one ``step`` per advance.

    Args:
        op: Operator family.
        psi: Initial state (complex, updated in place).
        t0: Initial time.
        tend: Final time.
        dt: Step size.
        scheme: Integration scheme.
        expmv_tol: Krylov tolerance; ``0`` selects the dense exponential.
        expmv_m: Maximal Krylov dimension (``min(30, n)`` if None).
        workspace: Optional preallocated scratch pool.

    Raises:
        ConfigurationError: On an invalid interval, step size or workspace.
        DimensionError: If ``psi`` does not match the operator.
    """

    def __init__(
        self,
        op: TimeDependentOperator,
        psi: StateVector,
        t0: float,
        tend: float,
        dt: float,
        *,
        scheme: Scheme = CF4,
        expmv_tol: float = 1e-7,
        expmv_m: int | None = None,
        workspace: Workspace | None = None,
    ) -> None:
        super().__init__(
            op,
            psi,
            t0,
            tend,
            scheme,
            expmv_tol=expmv_tol,
            expmv_m=expmv_m,
            estimated=False,
            workspace=workspace,
        )
        self.dt = _check_dt(dt)
        self.steps = 0

    def advance(self) -> float | None:
        if self.done:
            return None
        t_next = _land(self.t, self.dt, self.tend)
        step(
            self.psi,
            self.op,
            self.t,
            t_next - self.t,
            self.scheme,
            self.workspace,
            expmv_tol=self.expmv_tol,
            expmv_m=self.expmv_m,
        )
        self.t = t_next
        self.steps += 1
        return t_next


class EquidistantCorrectedTimeStepper(_TimeStepper):
    """Fixed step size with the defect correction ``psi <- psi - psi_est``.

    Takes the same arguments as :class:`EquidistantTimeStepper`; the scheme
    must support ``step_estimated``.
    """

    def __init__(
        self,
        op: TimeDependentOperator,
        psi: StateVector,
        t0: float,
        tend: float,
        dt: float,
        *,
        scheme: Scheme = CF4,
        expmv_tol: float = 1e-7,
        expmv_m: int | None = None,
        workspace: Workspace | None = None,
    ) -> None:
        super().__init__(
            op,
            psi,
            t0,
            tend,
            scheme,
            expmv_tol=expmv_tol,
            expmv_m=expmv_m,
            estimated=True,
            workspace=workspace,
        )
        self.dt = _check_dt(dt)
        self.psi_est = np.zeros_like(psi)
        self.steps = 0

    def advance(self) -> float | None:
        if self.done:
            return None
        t_next = _land(self.t, self.dt, self.tend)
        step_estimated(
            self.psi,
            self.psi_est,
            self.op,
            self.t,
            t_next - self.t,
            self.scheme,
            self.workspace,
            expmv_tol=self.expmv_tol,
            expmv_m=self.expmv_m,
        )
        self.psi -= self.psi_est
        self.t = t_next
        self.steps += 1
        return t_next


# =============================================================================
# Adaptive stepper
# =============================================================================


class AdaptiveTimeStepper(_TimeStepper):
    """Adaptive step size control driven by the local error estimate.

    The local error of a step is ``||psi_est||_2``; a step is accepted when
    ``err = ||psi_est||_2 / tol < 1``. Rejected steps are rolled back from a
    checkpoint and retried with the shrunk step size. There is no retry cap.

    Args:
        op: Operator family.
        psi: Initial state (complex, updated in place).
        t0: Initial time.
        tend: Final time.
        dt: Initial step size guess.
        tol: Tolerance for the local error.
        scheme: Integration scheme with an error estimate.
        dt_max: Upper bound on the step size.
        higher_order: Propagate the corrected solution ``psi - psi_est``.
        record_reports: Append a :class:`StepReport` per attempt to
            ``reports``.
        expmv_tol: Krylov tolerance; ``0`` selects the dense exponential.
        expmv_m: Maximal Krylov dimension (``min(30, n)`` if None).
        controller: Step size controller parameters.
        workspace: Optional preallocated scratch pool.

    Attributes:
        reports: One :class:`StepReport` per attempt, in order (empty
            when ``record_reports`` is False).
        accepted: Number of accepted steps.
        rejected: Number of rejected attempts.

    Raises:
        ConfigurationError: On invalid tolerances, interval or workspace.
        DimensionError: If ``psi`` does not match the operator.
    """

    def __init__(
        self,
        op: TimeDependentOperator,
        psi: StateVector,
        t0: float,
        tend: float,
        dt: float,
        tol: float,
        *,
        scheme: Scheme = CF4,
        dt_max: float = float("inf"),
        higher_order: bool = False,
        record_reports: bool = True,
        expmv_tol: float = 1e-7,
        expmv_m: int | None = None,
        controller: DtControllerConfig | None = None,
        workspace: Workspace | None = None,
    ) -> None:
        super().__init__(
            op,
            psi,
            t0,
            tend,
            scheme,
            expmv_tol=expmv_tol,
            expmv_m=expmv_m,
            estimated=True,
            workspace=workspace,
        )
        if not float(tol) > 0.0:
            raise ConfigurationError(_TOL_ERROR_MSG.format(tol=tol))
        if not float(dt_max) > 0.0:
            raise ConfigurationError(_DT_MAX_ERROR_MSG.format(dt_max=dt_max))

        self.dt = _check_dt(dt)
        self.tol = float(tol)
        self.dt_max = float(dt_max)
        self.higher_order = bool(higher_order)
        self.record_reports = bool(record_reports)
        self.order = scheme.order
        self.controller = controller if controller is not None else DtControllerConfig()

        self.psi_est = np.zeros_like(psi)
        self.psi0 = np.zeros_like(psi)

        self.reports: list[StepReport] = []
        self.accepted = 0
        self.rejected = 0

    def _error_norm(self) -> float:
        err = float(np.linalg.norm(self.psi_est)) / self.tol
        if not np.isfinite(err):
            return float("inf")
        return err

    def advance(self) -> float | None:
        """Take one accepted step (retrying rejected attempts).

        Returns:
            The new time, or None if ``tend`` was already reached.
        """
        if self.done:
            return None

        t = self.t
        dt = self.dt
        np.copyto(self.psi0, self.psi)
        while True:
            dt = min(dt, self.tend - t, self.dt_max)
            step_estimated(
                self.psi,
                self.psi_est,
                self.op,
                t,
                dt,
                self.scheme,
                self.workspace,
                expmv_tol=self.expmv_tol,
                expmv_m=self.expmv_m,
            )
            err = self._error_norm()
            dt_next = propose_dt(dt, err, self.order, cfg=self.controller)
            is_accepted = err < 1.0
            if self.record_reports:
                self.reports.append(StepReport(t, dt, err, dt_next, is_accepted))
            if is_accepted:
                break
            np.copyto(self.psi, self.psi0)
            self.rejected += 1
            logger.info(
                "t=%17.9e  err=%17.8e  dt=%17.8e  rejected...", t, err, dt_next
            )
            dt = dt_next

        if self.higher_order:
            self.psi -= self.psi_est
        self.t = _land(t, dt, self.tend)
        self.dt = dt_next
        self.accepted += 1
        logger.debug("t=%17.9e  err=%17.8e  dt=%17.8e  accepted", self.t, err, dt)
        return self.t


TimeStepper: TypeAlias = (
    EquidistantTimeStepper | EquidistantCorrectedTimeStepper | AdaptiveTimeStepper
)
