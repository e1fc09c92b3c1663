# src/tdprop/config.py
"""Configuration model for building time steppers from plain data.

``StepperSettings`` is the pydantic-facing form of the stepper parameters
(e.g. parsed from YAML or JSON) and translates into native objects:

- ``to_scheme()``: the named preset with any flag overrides applied,
- ``to_dt_controller()``: a :class:`~tdprop.steppers.DtControllerConfig`,
- ``build(op, psi, t0, tend, dt)``: the configured stepper.

Notes:
    - Unknown fields are allowed and ignored (``extra="allow"``).
    - Flag overrides left as None keep the preset's own value.
    - Flags only apply to commutator-free and Magnus presets; setting one on a
      Runge-Kutta preset raises ConfigurationError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError
from .presets import get_scheme
from .schemes import FLAG_NAMES, CommutatorFreeScheme, MagnusScheme
from .steppers import (
    AdaptiveTimeStepper,
    DtControllerConfig,
    EquidistantCorrectedTimeStepper,
    EquidistantTimeStepper,
)

if TYPE_CHECKING:
    from .operators import StateVector, TimeDependentOperator
    from .schemes import Scheme
    from .steppers import TimeStepper

StepperMode = Literal["equidistant", "corrected", "adaptive"]

_FLAGS_UNSUPPORTED_ERROR_MSG = (
    "Scheme {name} has no defect-estimator flags; cannot set {flags}"
)


class StepperSettings(BaseModel):
    """Configuration schema for a time stepper.

    Notes:
        - ``tol``, ``dt_max``, ``higher_order``, ``record_reports`` and the
          controller fields are used by the adaptive mode only.
    """

    model_config = ConfigDict(extra="allow")

    mode: StepperMode = Field(
        default="adaptive",
        description="Stepper kind",
    )

    scheme: str = Field(
        default="CF4",
        description="Name of a scheme preset (case-insensitive)",
    )

    # Defect-estimator flag overrides
    symmetrized_defect: bool | None = None
    trapezoidal_rule: bool | None = None
    modified_Gamma: bool | None = None
    adjoint_based: bool | None = None

    # Exponential-action kernel
    expmv_tol: float = Field(default=1e-7, ge=0.0)
    expmv_m: int | None = Field(default=None, ge=1)

    # Adaptive stepping controls
    tol: float = Field(default=1e-8, gt=0.0)
    dt_max: float = Field(default=float("inf"), gt=0.0)
    higher_order: bool = False
    record_reports: bool = True

    # dt controller controls
    safety: float = Field(default=0.9, gt=0.0)
    fac_min: float = Field(default=0.25, gt=0.0, le=1.0)
    fac_max: float = Field(default=4.0, ge=1.0)

    def flag_overrides(self) -> dict[str, bool]:
        """Return the flag overrides that were set explicitly."""
        return {
            name: value
            for name in FLAG_NAMES
            if (value := getattr(self, name)) is not None
        }

    def to_scheme(self) -> Scheme:
        """Resolve the preset and apply flag overrides.

        Raises:
            ConfigurationError: If the preset is unknown or does not take flags.

        Returns:
            Scheme instance.
        """
        scheme = get_scheme(self.scheme)
        overrides = self.flag_overrides()
        if not overrides:
            return scheme
        if not isinstance(scheme, CommutatorFreeScheme | MagnusScheme):
            raise ConfigurationError(
                _FLAGS_UNSUPPORTED_ERROR_MSG.format(
                    name=self.scheme, flags=sorted(overrides)
                )
            )
        return scheme.with_overrides(**overrides)

    def to_dt_controller(self) -> DtControllerConfig:
        return DtControllerConfig(
            safety=self.safety,
            fac_min=self.fac_min,
            fac_max=self.fac_max,
        )

    def build(
        self,
        op: TimeDependentOperator,
        psi: StateVector,
        t0: float,
        tend: float,
        dt: float,
    ) -> TimeStepper:
        """Construct the configured stepper.

        Args:
            op: Operator family.
            psi: Initial state (complex, updated in place by the stepper).
            t0: Initial time.
            tend: Final time.
            dt: Step size (initial guess in adaptive mode).

        Returns:
            Stepper instance ready to iterate.
        """
        scheme = self.to_scheme()
        if self.mode == "adaptive":
            return AdaptiveTimeStepper(
                op,
                psi,
                t0,
                tend,
                dt,
                self.tol,
                scheme=scheme,
                dt_max=self.dt_max,
                higher_order=self.higher_order,
                record_reports=self.record_reports,
                expmv_tol=self.expmv_tol,
                expmv_m=self.expmv_m,
                controller=self.to_dt_controller(),
            )
        stepper_cls: type[EquidistantTimeStepper | EquidistantCorrectedTimeStepper] = (
            EquidistantCorrectedTimeStepper
            if self.mode == "corrected"
            else EquidistantTimeStepper
        )
        return stepper_cls(
            op,
            psi,
            t0,
            tend,
            dt,
            scheme=scheme,
            expmv_tol=self.expmv_tol,
            expmv_m=self.expmv_m,
        )
