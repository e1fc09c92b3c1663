# src/tdprop/schemes.py
"""Integration scheme descriptions (coefficients plus metadata).

Schemes are immutable data. The step engine (:mod:`tdprop.step_engine`)
dispatches on their type; this module only holds what each variant needs:

- :class:`CommutatorFreeScheme`: weight matrix ``A`` (one row per exponential),
  quadrature nodes ``c``, order ``p`` and the defect-estimator flags.
- :class:`MagnusScheme`: the 4th-order Magnus propagator and the same flags.
- :class:`EmbeddedRungeKuttaScheme`: explicit Butcher tableau ``(A, c)`` with
  embedded weights ``b``.
- :class:`SchemeEstimatorPair`: a primary scheme plus an independent
  estimator scheme advanced over ``substeps`` sub-intervals.

Flag variants are produced with ``with_overrides(**flags)``, which returns a new
instance; coefficient arrays are stored read-only.

Workspace contract (``workspace_size(m)`` for Krylov dimension ``m``):
    - commutator-free: ``m + 2`` (Krylov basis plus work vector),
    - Magnus: ``max(m + 2, 5) + 2`` (two private slots for the composite),
    - Runge-Kutta: ``nstages + 1``,
    - pair: maximum of both members.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np

from .errors import ConfigurationError, raise_invalid_scheme
from .workspace import ESTIMATOR_SLOTS

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


# =============================================================================
# Errors / messages
# =============================================================================

_UNKNOWN_FLAG_ERROR_MSG = "Unknown scheme flag(s) {names}; allowed: {allowed}"
_CF_SHAPE_ERROR_MSG = "A must be 2D with one column per node; got A{a} and c{c}"
_RK_SHAPE_ERROR_MSG = (
    "Butcher tableau shapes do not match: A{a}, c{c}, b{b} (expected square A)"
)
_RK_EXPLICIT_ERROR_MSG = "A must be strictly lower triangular (explicit scheme)"
_ORDER_ERROR_MSG = "order p must be a positive integer; got {p}"
_MAGNUS_ORDER_ERROR_MSG = "only p=4 is implemented; got p={p}"
_SUBSTEPS_ERROR_MSG = "substeps must be >= 1; got {substeps}"

FLAG_NAMES: tuple[str, ...] = (
    "symmetrized_defect",
    "trapezoidal_rule",
    "modified_Gamma",
    "adjoint_based",
)


def _readonly(values: ArrayLike, ndim: int) -> NDArray[np.float64]:
    arr = np.array(values, dtype=np.float64, ndmin=ndim)
    arr.setflags(write=False)
    return arr


def _check_order(scheme: object, p: int) -> None:
    if int(p) != p or p < 1:
        raise_invalid_scheme(scheme, reason=_ORDER_ERROR_MSG.format(p=p))


class _FlaggedScheme:
    """Copy-with-overrides for schemes carrying defect-estimator flags."""

    __slots__ = ()

    def with_overrides(self, **flags: bool) -> Any:
        """Return a copy with the given flags replaced.

        Args:
            **flags: Any of ``symmetrized_defect``, ``trapezoidal_rule``,
                ``modified_Gamma``, ``adjoint_based``.

        Raises:
            ConfigurationError: If an unknown flag is given.

        Returns:
            New scheme instance of the same type.
        """
        unknown = sorted(set(flags) - set(FLAG_NAMES))
        if unknown:
            raise ConfigurationError(
                _UNKNOWN_FLAG_ERROR_MSG.format(names=unknown, allowed=FLAG_NAMES)
            )
        overrides = {k: bool(v) for k, v in flags.items()}
        return replace(self, **overrides)  # type: ignore[type-var]


# =============================================================================
# Scheme variants
# =============================================================================


@dataclass(frozen=True, slots=True, eq=False)
class CommutatorFreeScheme(_FlaggedScheme):
    """Commutator-free exponential propagator.

    One step computes, with ``X(t)`` the generator of the operator family::

        psi(t+dt) = prod_{j=J..1} exp(dt * sum_k A[j,k] X(t + c[k] dt)) psi(t)

    i.e. the exponential of row 1 acts first. Note that ``A`` and ``c`` are the
    scheme coefficients, not the ODE matrix.

    Attributes:
        A: Weight matrix, shape ``(J, K)``.
        c: Quadrature nodes in ``[0, 1]``, shape ``(K,)``.
        p: Declared order.
        symmetrized_defect: Use the symmetrized defect for the estimate.
        trapezoidal_rule: Use the trapezoidal-rule defect (``CC``).
        modified_Gamma: Use the sharper ``Gamma`` constants for p=2 and p=4.
        adjoint_based: Estimate from the adjoint composition (odd p only).
        name: Optional preset name.
    """

    A: NDArray[np.float64]
    c: NDArray[np.float64]
    p: int
    symmetrized_defect: bool = False
    trapezoidal_rule: bool = False
    modified_Gamma: bool = False
    adjoint_based: bool = False
    name: str | None = None

    def __post_init__(self) -> None:
        a = _readonly(self.A, 2)
        c = _readonly(self.c, 1).ravel()
        if a.ndim != 2 or a.shape[1] != c.shape[0]:
            raise_invalid_scheme(
                self, reason=_CF_SHAPE_ERROR_MSG.format(a=a.shape, c=c.shape)
            )
        _check_order(self, self.p)
        object.__setattr__(self, "A", a)
        object.__setattr__(self, "c", c)

    @property
    def order(self) -> int:
        return int(self.p)

    @property
    def number_of_exponentials(self) -> int:
        return int(self.A.shape[0])

    @property
    def is_midpoint(self) -> bool:
        """True for the single-node exponential midpoint rule."""
        return self.c.shape == (1,) and float(self.c[0]) == 0.5

    def workspace_size(self, m: int) -> int:
        return int(m) + 2


@dataclass(frozen=True, slots=True, eq=False)
class MagnusScheme(_FlaggedScheme):
    """Fourth-order Magnus propagator realized through a composite operator.

    Attributes:
        p: Declared order (only 4 is implemented).
        symmetrized_defect: Use the symmetrized defect for the estimate.
        trapezoidal_rule: Use the trapezoidal-rule defect (``CC``).
        modified_Gamma: Use the sharper ``Gamma`` constant.
        adjoint_based: Not available for Magnus (its order is even).
        name: Optional preset name.
    """

    p: int = 4
    symmetrized_defect: bool = False
    trapezoidal_rule: bool = False
    modified_Gamma: bool = False
    adjoint_based: bool = False
    name: str | None = None

    def __post_init__(self) -> None:
        _check_order(self, self.p)
        if self.p != 4:
            raise_invalid_scheme(self, reason=_MAGNUS_ORDER_ERROR_MSG.format(p=self.p))

    @property
    def order(self) -> int:
        return int(self.p)

    @property
    def number_of_exponentials(self) -> int:
        return 1

    @property
    def nodes(self) -> tuple[float, float]:
        """Gauss nodes ``1/2 -+ sqrt(3)/6``."""
        s = np.sqrt(3.0) / 6.0
        return 0.5 - s, 0.5 + s

    def workspace_size(self, m: int) -> int:
        return max(int(m) + 2, ESTIMATOR_SLOTS) + 2


@dataclass(frozen=True, slots=True, eq=False)
class EmbeddedRungeKuttaScheme:
    """Explicit embedded Runge-Kutta pair.

    The propagated solution uses the weights ``b``; the last stage combination
    (row ``A[-1]``, evaluated at ``c[-1] = 1``) is the companion solution, and
    their difference is the local error estimate.

    Attributes:
        A: Strictly lower-triangular stage matrix ``(s, s)``.
        c: Stage nodes ``(s,)``.
        b: Update weights ``(s,)``.
        p: Declared order of the propagated solution.
        name: Optional preset name.
    """

    A: NDArray[np.float64]
    c: NDArray[np.float64]
    b: NDArray[np.float64]
    p: int
    name: str | None = None

    def __post_init__(self) -> None:
        a = _readonly(self.A, 2)
        c = _readonly(self.c, 1).ravel()
        b = _readonly(self.b, 1).ravel()
        s = c.shape[0]
        if a.shape != (s, s) or b.shape != (s,):
            raise_invalid_scheme(
                self,
                reason=_RK_SHAPE_ERROR_MSG.format(a=a.shape, c=c.shape, b=b.shape),
            )
        if np.any(np.triu(a) != 0.0):
            raise_invalid_scheme(self, reason=_RK_EXPLICIT_ERROR_MSG)
        _check_order(self, self.p)
        object.__setattr__(self, "A", a)
        object.__setattr__(self, "c", c)
        object.__setattr__(self, "b", b)

    @property
    def order(self) -> int:
        return int(self.p)

    @property
    def nstages(self) -> int:
        return int(self.c.shape[0])

    @property
    def number_of_exponentials(self) -> int:
        return 0

    def workspace_size(self, m: int) -> int:  # noqa: ARG002
        return self.nstages + 1


@dataclass(frozen=True, slots=True, eq=False)
class SchemeEstimatorPair:
    """Primary scheme with an independent estimator scheme.

    ``step_estimated`` returns ``psi_est = psi_primary - psi_estimator`` where
    the estimator covers the same interval in ``substeps`` equal sub-steps.

    Attributes:
        scheme: Primary scheme (drives order and output).
        estimator: Estimator scheme.
        substeps: Number of estimator sub-steps per step.
    """

    scheme: Scheme
    estimator: Scheme
    substeps: int = 1

    def __post_init__(self) -> None:
        if int(self.substeps) != self.substeps or self.substeps < 1:
            raise_invalid_scheme(
                self, reason=_SUBSTEPS_ERROR_MSG.format(substeps=self.substeps)
            )

    @property
    def order(self) -> int:
        return self.scheme.order

    @property
    def number_of_exponentials(self) -> int:
        return self.scheme.number_of_exponentials

    @property
    def name(self) -> str:
        return f"{_scheme_label(self.scheme)}/{_scheme_label(self.estimator)}"

    def workspace_size(self, m: int) -> int:
        return max(self.scheme.workspace_size(m), self.estimator.workspace_size(m))


Scheme: TypeAlias = (
    CommutatorFreeScheme | MagnusScheme | EmbeddedRungeKuttaScheme | SchemeEstimatorPair
)


def _scheme_label(scheme: Scheme) -> str:
    return scheme.name or type(scheme).__name__
