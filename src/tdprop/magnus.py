# src/tdprop/magnus.py
"""Composite operator states for the 4th-order Magnus propagator.

With ``X1 = X(t + c1 dt)`` and ``X2 = X(t + c2 dt)`` at the Gauss nodes
``c1,2 = 1/2 -+ sqrt(3)/6`` the Magnus step is ``exp(dt Omega)`` with

    Omega = 1/2 (X1 + X2) - f dt [X1, X2],    f = sqrt(3)/12.

:class:`Magnus4State` applies ``Omega`` without forming it, so it can be fed
straight to :func:`tdprop.expmv.expmv`. :class:`Magnus4DerivativeState` applies
the matching derivative operator used by the defect estimators.

Both states borrow two scratch vectors. The step engine hands them the last
two slots of the workspace, which the Krylov kernel never touches.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from .expmv import as_dense

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from .operators import OperatorState, StateVector

MAGNUS4_F = float(np.sqrt(3.0) / 12.0)


@dataclass(frozen=True, slots=True, eq=False)
class Magnus4State:
    """Operator state ``1/2 (X1 + X2) - f_dt (X1 X2 - X2 X1)``.

    Attributes:
        H1: Snapshot at the first Gauss node.
        H2: Snapshot at the second Gauss node.
        f_dt: ``f * dt``.
        scratch: Two private scratch vectors.
    """

    H1: OperatorState
    H2: OperatorState
    f_dt: float
    scratch: tuple[StateVector, StateVector] = field(repr=False)

    @property
    def shape(self) -> tuple[int, int]:
        return self.H1.shape

    @property
    def dimension(self) -> int:
        return int(self.H1.shape[0])

    @property
    def dtype(self) -> np.dtype:
        return np.result_type(self.H1.dtype, self.H2.dtype)

    def is_symmetric(self) -> bool:
        return self.H1.is_symmetric() and self.H2.is_symmetric()

    def is_hermitian(self) -> bool:
        return self.H1.is_hermitian() and self.H2.is_hermitian()

    def check_square(self) -> int:
        return self.H1.check_square()

    def apply(self, out: StateVector, b: StateVector) -> None:
        x, x1 = self.scratch
        self.H1.apply(x, b)
        np.multiply(x, 0.5, out=out)
        self.H2.apply(x1, x)
        out += self.f_dt * x1
        self.H2.apply(x, b)
        out += 0.5 * x
        self.H1.apply(x1, x)
        out -= self.f_dt * x1

    def to_dense(self) -> NDArray[np.complexfloating]:
        """Return the dense composite generator (small systems only)."""
        x1 = as_dense(self.H1)
        x2 = as_dense(self.H2)
        return 0.5 * (x1 + x2) - self.f_dt * (x1 @ x2 - x2 @ x1)


@dataclass(frozen=True, slots=True, eq=False)
class Magnus4DerivativeState:
    """Derivative companion of :class:`Magnus4State`.

    ``c1`` and ``c2`` are the node weights of the derivative snapshots; the
    symmetrized defect passes ``c - 1/2`` instead of ``c``.

    Attributes:
        H1: Snapshot at the first Gauss node.
        H2: Snapshot at the second Gauss node.
        H1d: Derivative snapshot at the first node.
        H2d: Derivative snapshot at the second node.
        dt: Step size.
        f: Commutator coefficient ``sqrt(3)/12``.
        c1: Weight of ``H1d``.
        c2: Weight of ``H2d``.
        scratch: Two private scratch vectors.
    """

    H1: OperatorState
    H2: OperatorState
    H1d: OperatorState
    H2d: OperatorState
    dt: float
    f: float
    c1: float
    c2: float
    scratch: tuple[StateVector, StateVector] = field(repr=False)

    @property
    def shape(self) -> tuple[int, int]:
        return self.H1.shape

    @property
    def dimension(self) -> int:
        return int(self.H1.shape[0])

    @property
    def dtype(self) -> np.dtype:
        return np.result_type(self.H1.dtype, self.H2.dtype)

    def is_symmetric(self) -> bool:
        return self.H1.is_symmetric() and self.H2.is_symmetric()

    def is_hermitian(self) -> bool:
        return self.H1.is_hermitian() and self.H2.is_hermitian()

    def check_square(self) -> int:
        return self.H1.check_square()

    def apply(self, out: StateVector, b: StateVector) -> None:
        x, x1 = self.scratch
        fdt1 = self.f * self.c1 * self.dt
        fdt2 = self.f * self.c2 * self.dt

        self.H1d.apply(x, b)
        np.multiply(x, 0.5 * self.c1, out=out)
        self.H2.apply(x1, x)
        out += fdt1 * x1

        self.H2d.apply(x, b)
        out += (0.5 * self.c2) * x
        self.H1.apply(x1, x)
        out -= fdt2 * x1

        self.H1.apply(x, b)
        self.H2.apply(x1, x)
        out += self.f * x1
        self.H2d.apply(x1, x)
        out += fdt2 * x1

        self.H2.apply(x, b)
        self.H1.apply(x1, x)
        out -= self.f * x1
        self.H1d.apply(x1, x)
        out -= fdt1 * x1
