# src/tdprop/errors.py
"""Error types and standardized raise helpers for tdprop.

This module centralizes:
- explicit error classes with actionable messages, and
- small helpers that build those messages consistently.

All of these are fatal for the call that raises them: the step engine and the
time steppers never retry on them. Adaptive step rejection is ordinary control
flow and does not go through this module.
"""

from __future__ import annotations


class TdpropError(Exception):
    """Base exception for tdprop errors."""


class DimensionError(TdpropError, ValueError):
    """Raised when an operator is not square or a vector does not match it."""


class ConfigurationError(TdpropError, ValueError):
    """Raised when a scheme, workspace or stepper configuration is invalid."""


class DerivativeNotImplementedError(TdpropError, NotImplementedError):
    """Raised when a derivative snapshot is requested from a model without one."""


def raise_not_square(*, name: str, shape: tuple[int, ...]) -> None:
    """Raise a standardized DimensionError for a non-square operator.

    Args:
        name: Name of the offending object.
        shape: Observed shape.

    Raises:
        DimensionError: Always.
    """
    msg = f"{name} must be square; got shape {shape}."
    raise DimensionError(msg)


def raise_dimension_mismatch(*, name: str, expected: int, got: object) -> None:
    """Raise a standardized DimensionError for a vector/operator mismatch.

    Args:
        name: Name of the vector with the shape issue.
        expected: Operator dimension.
        got: Actual observed shape/value.

    Raises:
        DimensionError: Always.
    """
    msg = f"{name} must be a 1D vector of length {expected}. Got: {got!r}."
    raise DimensionError(msg)


def raise_invalid_scheme(scheme: object, *, reason: str) -> None:
    """Raise a standardized ConfigurationError for an unusable scheme setup.

    Args:
        scheme: Offending scheme (its type name is reported).
        reason: Human-readable reason the scheme cannot run.

    Raises:
        ConfigurationError: Always.
    """
    msg = f"Invalid {type(scheme).__name__} configuration. Reason: {reason}"
    raise ConfigurationError(msg)


def raise_derivative_not_implemented(model: object) -> None:
    """Raise a standardized DerivativeNotImplementedError.

    Args:
        model: Operator family that cannot produce derivative snapshots.

    Raises:
        DerivativeNotImplementedError: Always.
    """
    msg = (
        f"{type(model).__name__} cannot evaluate dA/dt. Defect-based error "
        "estimators need derivative snapshots; supply coefficient derivatives "
        "or use an EmbeddedRungeKuttaScheme or SchemeEstimatorPair instead."
    )
    raise DerivativeNotImplementedError(msg)
