# tests/test_config.py
"""Tests for the pydantic stepper settings (tdprop.config)."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from tdprop.config import StepperSettings
from tdprop.errors import ConfigurationError
from tdprop.presets import CF4, DoPri45
from tdprop.steppers import (
    AdaptiveTimeStepper,
    DtControllerConfig,
    EquidistantCorrectedTimeStepper,
    EquidistantTimeStepper,
)


def test_defaults() -> None:
    """Defaults select adaptive CF4 with the standard controller."""
    settings = StepperSettings()
    assert settings.mode == "adaptive"
    assert settings.to_scheme() is CF4
    assert settings.to_dt_controller() == DtControllerConfig()
    assert settings.flag_overrides() == {}


def test_model_validate_from_mapping() -> None:
    """Plain dicts (e.g. parsed YAML) validate into settings."""
    settings = StepperSettings.model_validate(
        {"mode": "equidistant", "scheme": "magnus4", "expmv_tol": 0.0}
    )
    assert settings.mode == "equidistant"
    assert settings.to_scheme().name == "Magnus4"
    assert settings.expmv_tol == 0.0


def test_extra_fields_are_allowed() -> None:
    """Unknown keys are kept and ignored."""
    settings = StepperSettings.model_validate({"scheme": "CF2", "comment": "x"})
    assert settings.to_scheme().name == "CF2"


def test_flag_overrides_build_new_scheme() -> None:
    """Explicit flags yield a modified copy; the preset is untouched."""
    settings = StepperSettings(scheme="CF4", symmetrized_defect=True)

    scheme = settings.to_scheme()

    assert settings.flag_overrides() == {"symmetrized_defect": True}
    assert scheme is not CF4
    assert scheme.symmetrized_defect
    assert not CF4.symmetrized_defect


def test_flags_on_runge_kutta_raise() -> None:
    """Runge-Kutta presets have no estimator flags."""
    settings = StepperSettings(scheme="DoPri45", trapezoidal_rule=True)
    with pytest.raises(ConfigurationError, match="no defect-estimator flags"):
        settings.to_scheme()


def test_unknown_scheme_raises() -> None:
    """Unknown preset names surface as ConfigurationError."""
    with pytest.raises(ConfigurationError, match="Unknown scheme"):
        StepperSettings(scheme="RK4").to_scheme()


@pytest.mark.parametrize(
    "payload",
    [
        {"mode": "implicit"},
        {"tol": 0.0},
        {"expmv_tol": -1.0},
        {"expmv_m": 0},
        {"dt_max": 0.0},
        {"fac_min": 0.0},
        {"fac_min": 1.5},
        {"fac_max": 0.5},
        {"safety": 0.0},
    ],
)
def test_invalid_values_raise_validation_error(payload: dict) -> None:
    """Field constraints are enforced by pydantic."""
    with pytest.raises(ValidationError):
        StepperSettings.model_validate(payload)


@pytest.mark.parametrize(
    ("mode", "cls"),
    [
        ("adaptive", AdaptiveTimeStepper),
        ("equidistant", EquidistantTimeStepper),
        ("corrected", EquidistantCorrectedTimeStepper),
    ],
)
def test_build_returns_configured_stepper(two_level, psi0, mode: str, cls) -> None:
    """build() constructs the stepper for the selected mode."""
    settings = StepperSettings(mode=mode, scheme="CF4", expmv_tol=0.0, tol=1e-6)

    stepper = settings.build(two_level, psi0.copy(), 0.0, 0.5, 0.1)

    assert isinstance(stepper, cls)
    assert stepper.run() == 0.5


def test_build_adaptive_passes_controls(two_level, psi0) -> None:
    """Adaptive controls reach the stepper."""
    settings = StepperSettings(
        scheme="DoPri45",
        tol=1e-7,
        dt_max=0.2,
        higher_order=True,
        fac_max=2.0,
        record_reports=False,
    )

    stepper = settings.build(two_level, psi0.copy(), 0.0, 1.0, 0.1)

    assert isinstance(stepper, AdaptiveTimeStepper)
    assert stepper.scheme is DoPri45
    assert stepper.tol == 1e-7
    assert stepper.dt_max == 0.2
    assert stepper.higher_order
    assert stepper.controller.fac_max == 2.0
    assert not stepper.record_reports
