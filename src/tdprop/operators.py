# src/tdprop/operators.py
"""Time-dependent operator families and their frozen snapshots.

An ODE ``dpsi/dt = A(t) psi`` is described by an operator *family* that can be
evaluated at a time (or at a weighted set of quadrature nodes) to produce an
immutable *state*: the operator frozen at that instant. Integration schemes only
ever talk to states, through a tiny contract:

- ``shape`` / ``dimension`` / ``dtype``
- ``is_symmetric()`` / ``is_hermitian()`` / ``check_square()``
- ``apply(out, b)``: ``out <- X b`` where ``X`` is the *generator*.

For a plain linear family the generator is ``A(t)``. For the Schrödinger
variant ``i dpsi/dt = H(t) psi`` the family stores ``H(t)`` and the generator
is ``-i H(t)``, so the ``-i`` factor is applied inside ``apply`` and every
scheme can treat both variants identically.

Design notes:
    * Backend-friendly surface: component matrices are dense ndarrays or CSR
      matrices, mirroring the operator types of a NumPy/SciPy backend.
    * Snapshots are cheap to build and discarded after one step; ``apply`` is
      the only expensive operation and writes into a caller-owned buffer.
    * Families count ``apply`` calls on their snapshots (``counter``), which the
      order harness reports as operator applications per unit time.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, TypeAlias, cast

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import csr_matrix, issparse

from .errors import (
    ConfigurationError,
    raise_derivative_not_implemented,
    raise_not_square,
)

if TYPE_CHECKING:
    from numpy.typing import ArrayLike


# =============================================================================
# Public operator types (backend-friendly)
# =============================================================================

DenseOperator: TypeAlias = NDArray[np.number]
SparseOperator: TypeAlias = csr_matrix
Operator: TypeAlias = DenseOperator | SparseOperator
CoefficientFunction: TypeAlias = Callable[[float], complex]
StateVector: TypeAlias = NDArray[np.complexfloating]


# =============================================================================
# Error message constants
# =============================================================================

_EMPTY_FAMILY_ERROR = "matrices must contain at least one operator"
_FAMILY_SHAPES_ERROR = "All operators must share one square shape; got shapes: {shapes}"
_COEFFICIENT_COUNT_ERROR = (
    "{name} must provide one function per matrix; got {got} for {expected} matrices"
)
_WEIGHTS_SHAPE_ERROR = (
    "weights shape {weights} does not match node times shape {times}"
)
_NODES_WITHOUT_WEIGHTS_ERROR = (
    "evaluate() got {count} node times but no weights to combine them"
)
_UNSUPPORTED_OPERATOR_TYPE_MSG = (
    "Unsupported operator type. Expected numpy.ndarray or scipy.sparse.csr_matrix; "
    "got {typ}"
)


# =============================================================================
# Contracts
# =============================================================================


class OperatorState(Protocol):
    """Operator frozen at a fixed time (or a weighted set of times).

    Anything implementing this protocol can be exponentiated by
    :func:`tdprop.expmv.expmv`, including synthetic composites such as the
    Magnus states.
    """

    @property
    def shape(self) -> tuple[int, int]:
        """Return the operator shape."""
        ...

    @property
    def dtype(self) -> np.dtype:
        """Return the scalar type of the generator."""
        ...

    def is_symmetric(self) -> bool:
        """Return True if the underlying matrix is symmetric."""
        ...

    def is_hermitian(self) -> bool:
        """Return True if the underlying matrix is Hermitian."""
        ...

    def check_square(self) -> int:
        """Return the dimension, raising DimensionError if not square."""
        ...

    def apply(self, out: StateVector, b: StateVector) -> None:
        """Compute ``out <- X b`` for the generator ``X``."""
        ...


class TimeDependentOperator(Protocol):
    """Operator family ``A(t)`` (or ``-i H(t)``) consumed by the step engine."""

    counter: int

    @property
    def shape(self) -> tuple[int, int]:
        """Return the operator shape."""
        ...

    @property
    def dtype(self) -> np.dtype:
        """Return the scalar type of the component matrices."""
        ...

    def is_symmetric(self) -> bool:
        """Return True if every snapshot is symmetric."""
        ...

    def is_hermitian(self) -> bool:
        """Return True if every snapshot is Hermitian."""
        ...

    def check_square(self) -> int:
        """Return the dimension, raising DimensionError if not square."""
        ...

    def evaluate(
        self,
        t: float | ArrayLike,
        weights: ArrayLike | None = None,
        *,
        compute_derivative: bool = False,
    ) -> OperatorState:
        """Return the snapshot at ``t`` or the weighted node combination."""
        ...


# =============================================================================
# Helpers
# =============================================================================


def _as_operator(op: object) -> Operator:
    """Normalize a matrix-like to a dense ndarray or a CSR matrix.

    Args:
        op: Dense array-like or scipy sparse matrix.

    Raises:
        TypeError: If op is neither array-like nor sparse.

    Returns:
        Operator as a supported NumPy/SciPy type.
    """
    if issparse(op):
        return csr_matrix(op)
    if isinstance(op, np.ndarray | list | tuple):
        return np.asarray(op)
    raise TypeError(_UNSUPPORTED_OPERATOR_TYPE_MSG.format(typ=type(op).__name__))


def _square_dimension(op: Operator, *, name: str) -> int:
    shape = tuple(int(s) for s in op.shape)
    if len(shape) != 2 or shape[0] != shape[1]:
        raise_not_square(name=name, shape=shape)
    return shape[0]


def _is_symmetric(op: Operator, *, conjugate: bool) -> bool:
    other = op.conj().T if conjugate else op.T
    if issparse(op):
        return (op != other).nnz == 0
    return bool(np.array_equal(op, other))


def _scalar(value: object) -> complex:
    # numpy scalars do not always defer to scipy.sparse in products
    if isinstance(value, np.generic):
        return value.item()
    return cast("complex", value)


def _combine(matrices: Sequence[Operator], coeffs: Sequence[complex]) -> Operator:
    """Return ``sum_k coeffs[k] * matrices[k]`` keeping the sparse/dense backend."""
    total = coeffs[0] * matrices[0]
    for coeff, mat in zip(coeffs[1:], matrices[1:], strict=True):
        total = total + coeff * mat
    if issparse(total):
        return cast("csr_matrix", total.tocsr())
    return np.asarray(total)


# =============================================================================
# Concrete snapshot
# =============================================================================


@dataclass(frozen=True, slots=True, eq=False)
class MatrixState:
    """Snapshot backed by an explicit (dense or CSR) matrix.

    Attributes:
        matrix: ``A`` for a linear family, ``H`` for a Schrödinger family.
        schroedinger: If True the generator is ``-i * matrix``.
        owner: Family whose application counter is incremented by ``apply``.
    """

    matrix: Operator
    schroedinger: bool = False
    owner: TimeDependentMatrix | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        _square_dimension(self.matrix, name="MatrixState")

    @property
    def shape(self) -> tuple[int, int]:
        n = int(self.matrix.shape[0])
        return n, n

    @property
    def dimension(self) -> int:
        return int(self.matrix.shape[0])

    @property
    def dtype(self) -> np.dtype:
        if self.schroedinger:
            return np.result_type(self.matrix.dtype, np.complex128)
        return np.dtype(self.matrix.dtype)

    def is_symmetric(self) -> bool:
        return _is_symmetric(self.matrix, conjugate=False)

    def is_hermitian(self) -> bool:
        return _is_symmetric(self.matrix, conjugate=True)

    def check_square(self) -> int:
        return _square_dimension(self.matrix, name="MatrixState")

    def apply(self, out: StateVector, b: StateVector) -> None:
        """Compute ``out <- X b`` in place.

        Args:
            out: Output buffer (complex, length n).
            b: Input vector (complex, length n).
        """
        if self.owner is not None:
            self.owner.counter += 1
        if issparse(self.matrix):
            np.copyto(out, self.matrix @ b)
        else:
            np.matmul(self.matrix, b, out=out)
        if self.schroedinger:
            out *= -1j

    def to_dense(self) -> NDArray[np.complexfloating]:
        """Return the dense generator (``A`` or ``-i H``) as a complex array."""
        dense = self.matrix.toarray() if issparse(self.matrix) else self.matrix
        dense = np.asarray(dense, dtype=np.complex128)
        if self.schroedinger:
            return -1j * dense
        return dense.copy()


# =============================================================================
# Concrete families
# =============================================================================


class TimeDependentMatrix:
    """Family ``A(t) = sum_k f_k(t) M_k`` for ``dpsi/dt = A(t) psi``.

    Args:
        matrices: Component matrices ``M_k`` (dense or CSR), all square and of
            equal shape.
        coefficients: Scalar functions ``f_k(t)``. If None, every component is
            constant (``f_k = 1``) and derivatives are identically zero.
        derivatives: Functions ``f_k'(t)``. Required for defect-based error
            estimation whenever ``coefficients`` are given.

    Raises:
        ConfigurationError: If matrices are missing or function counts mismatch.
        DimensionError: If the component matrices are not square.
    """

    schroedinger: bool = False

    def __init__(
        self,
        matrices: Sequence[object],
        coefficients: Sequence[CoefficientFunction] | None = None,
        derivatives: Sequence[CoefficientFunction] | None = None,
    ) -> None:
        if len(matrices) == 0:
            raise ConfigurationError(_EMPTY_FAMILY_ERROR)
        ops = tuple(_as_operator(m) for m in matrices)
        shapes = [tuple(int(s) for s in op.shape) for op in ops]
        for op in ops:
            _square_dimension(op, name=type(self).__name__)
        if len(set(shapes)) != 1:
            raise ConfigurationError(_FAMILY_SHAPES_ERROR.format(shapes=shapes))

        if coefficients is None:
            coefficients = tuple(_one for _ in ops)
            if derivatives is None:
                derivatives = tuple(_zero for _ in ops)

        checks = (("coefficients", coefficients), ("derivatives", derivatives))
        for name, funcs in checks:
            if funcs is not None and len(funcs) != len(ops):
                raise ConfigurationError(
                    _COEFFICIENT_COUNT_ERROR.format(
                        name=name,
                        got=len(funcs),
                        expected=len(ops),
                    )
                )

        self.matrices: tuple[Operator, ...] = ops
        self.coefficients: tuple[CoefficientFunction, ...] = tuple(coefficients)
        self.derivatives: tuple[CoefficientFunction, ...] | None = (
            tuple(derivatives) if derivatives is not None else None
        )
        self.counter = 0

    @property
    def shape(self) -> tuple[int, int]:
        n = int(self.matrices[0].shape[0])
        return n, n

    @property
    def dimension(self) -> int:
        return self.shape[0]

    @property
    def dtype(self) -> np.dtype:
        return np.result_type(*(m.dtype for m in self.matrices))

    def is_symmetric(self) -> bool:
        return all(_is_symmetric(m, conjugate=False) for m in self.matrices)

    def is_hermitian(self) -> bool:
        return all(_is_symmetric(m, conjugate=True) for m in self.matrices)

    def check_square(self) -> int:
        return _square_dimension(self.matrices[0], name=type(self).__name__)

    def evaluate(
        self,
        t: float | ArrayLike,
        weights: ArrayLike | None = None,
        *,
        compute_derivative: bool = False,
    ) -> MatrixState:
        """Freeze the family at ``t`` or at weighted quadrature nodes.

        With ``weights`` given, ``t`` holds the node times ``t_j`` and the
        snapshot is ``sum_j weights[j] * A(t_j)``. With ``compute_derivative``
        the same combination is formed from ``A'(t_j)``.

        Args:
            t: Time, or node times when ``weights`` is given.
            weights: Combination weights, one per node time.
            compute_derivative: Evaluate ``dA/dt`` instead of ``A``.

        Raises:
            ConfigurationError: If node times and weights do not match.

        Returns:
            Snapshot state.
        """
        times = np.atleast_1d(np.asarray(t, dtype=float))
        if weights is None:
            if times.size != 1:
                raise ConfigurationError(
                    _NODES_WITHOUT_WEIGHTS_ERROR.format(count=times.size)
                )
            w = np.ones(1)
        else:
            w = np.atleast_1d(np.asarray(weights))
            if w.shape != times.shape:
                raise ConfigurationError(
                    _WEIGHTS_SHAPE_ERROR.format(weights=w.shape, times=times.shape)
                )

        if compute_derivative:
            if self.derivatives is None:
                raise_derivative_not_implemented(self)
            funcs = cast("tuple[CoefficientFunction, ...]", self.derivatives)
        else:
            funcs = self.coefficients

        coeffs = [
            _scalar(sum(wj * f(float(tj)) for wj, tj in zip(w, times, strict=True)))
            for f in funcs
        ]
        matrix = _combine(self.matrices, coeffs)
        return MatrixState(matrix, schroedinger=self.schroedinger, owner=self)


class TimeDependentSchroedingerMatrix(TimeDependentMatrix):
    """Hamiltonian family ``H(t)`` for ``i dpsi/dt = H(t) psi``.

    Snapshots apply the generator ``-i H(t)``.
    """

    schroedinger = True


def _one(_t: float) -> float:
    return 1.0


def _zero(_t: float) -> float:
    return 0.0
