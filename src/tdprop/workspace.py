# src/tdprop/workspace.py
"""Preallocated scratch-vector pool shared by the step engine and the kernel.

A :class:`Workspace` is allocated once per stepper and reused by every step, so
the inner time-stepping loop never allocates state-sized arrays. Slots are
handed out by index:

- slots ``0 .. m+1`` belong to :func:`tdprop.expmv.expmv` while an
  exponential is being applied (Krylov basis plus one work vector),
- slots ``0 .. 4`` are estimator scratch *between* kernel calls,
- the last two slots of a Magnus workspace are private to the Magnus
  composite states, which run inside the kernel.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .errors import ConfigurationError

_TOO_SMALL_ERROR_MSG = (
    "Workspace has {have} slots but {scheme} needs at least {need} "
    "(expmv_m={m})"
)
_SLOT_INDEX_ERROR_MSG = "Workspace slot {index} out of range for {size} slots"

ESTIMATOR_SLOTS = 5


@dataclass(slots=True)
class Workspace:
    """Fixed-length pool of complex scratch vectors.

    Attributes:
        buffers: Array of shape ``(n_slots, n)``; row ``i`` is slot ``i``.
    """

    buffers: NDArray[np.complexfloating]

    @classmethod
    def allocate(cls, n_slots: int, n: int) -> Workspace:
        """Allocate a zeroed workspace of ``n_slots`` vectors of length ``n``.

        Args:
            n_slots: Number of scratch vectors.
            n: Vector length (operator dimension).

        Returns:
            New workspace.
        """
        return cls(np.zeros((int(n_slots), int(n)), dtype=np.complex128))

    def __len__(self) -> int:
        return int(self.buffers.shape[0])

    @property
    def dimension(self) -> int:
        return int(self.buffers.shape[1])

    def slot(self, index: int) -> NDArray[np.complexfloating]:
        """Return slot ``index`` (negative indices count from the end).

        Raises:
            ConfigurationError: If the index is out of range.
        """
        size = len(self)
        if not -size <= index < size:
            raise ConfigurationError(
                _SLOT_INDEX_ERROR_MSG.format(index=index, size=size)
            )
        return self.buffers[index]

    def slots(self, *indices: int) -> tuple[NDArray[np.complexfloating], ...]:
        return tuple(self.slot(i) for i in indices)

    def require(self, need: int, *, scheme: object, m: int) -> None:
        """Check that the pool has at least ``need`` slots.

        Args:
            need: Required number of slots.
            scheme: Scheme requesting the slots (for the message).
            m: Krylov dimension the requirement was computed for.

        Raises:
            ConfigurationError: If the workspace is too small.
        """
        if len(self) < need:
            raise ConfigurationError(
                _TOO_SMALL_ERROR_MSG.format(
                    have=len(self),
                    scheme=type(scheme).__name__,
                    need=need,
                    m=m,
                )
            )

    def shares_memory(self, array: NDArray[np.generic]) -> bool:
        """Return True if ``array`` overlaps any slot of this workspace."""
        return bool(np.shares_memory(self.buffers, array))
