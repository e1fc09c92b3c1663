# tests/test_orders.py
"""Order-verification harness tests (tdprop.orders).

Coverage in this file:
- local_orders: observed local order p + 1 for every preset (exponential,
  Magnus and Runge-Kutta); table layout; application counts.
- local_orders_est: the estimate quality decays one order faster.
- global_orders: observed global order p, plain and corrected.
- psi restoration, logging and argument validation.
"""

from __future__ import annotations

import logging

import numpy as np
import pytest

from tdprop.errors import ConfigurationError
from tdprop.orders import global_orders, local_orders, local_orders_est
from tdprop.presets import CF2, CF4, CF6, CF10, PRESETS, DoPri45
from tdprop.steppers import EquidistantTimeStepper

pytestmark = pytest.mark.slow

T0 = 0.25
DT = 0.5
ROWS = 6


def _reference(op, psi0, t0: float, tend: float, steps: int = 400) -> np.ndarray:
    """Return a fine CF6 solution at tend."""
    psi = psi0.copy()
    EquidistantTimeStepper(
        op, psi, t0, tend, (tend - t0) / steps, scheme=CF6, expmv_tol=0.0
    ).run()
    return psi


# -------------------------------------------------------------------
# local_orders
# -------------------------------------------------------------------


def _order_grid(order: int) -> tuple[float, int]:
    """Largest dt and number of halvings that keep the error above round-off."""
    if order <= 4:
        return DT, ROWS
    if order <= 7:
        return 2.0, 5
    return 3.0, 4


@pytest.mark.parametrize("name", sorted(PRESETS))
def test_local_orders_match_declared_order(two_level, psi0, name: str) -> None:
    """Every preset reaches its declared local order p + 1."""
    scheme = PRESETS[name]
    dt, rows = _order_grid(scheme.order)

    tab = local_orders(
        two_level,
        psi0.copy(),
        T0,
        dt,
        scheme=scheme,
        reference_scheme=CF10,
        reference_steps=40,
        rows=rows,
        expmv_tol=0.0,
    )

    assert np.all(tab[:, 1] > 0.0)
    assert np.max(tab[1:, 2]) >= scheme.order + 1 - 0.5


def test_local_orders_table_layout(two_level, psi0) -> None:
    """Columns are dt, err, p, applications/dt; dt halves per row."""
    tab = local_orders(
        two_level, psi0.copy(), T0, DT, scheme=DoPri45, rows=4, expmv_tol=0.0
    )

    assert tab.shape == (4, 4)
    assert np.allclose(tab[:, 0], DT * 0.5 ** np.arange(4))
    assert tab[0, 2] == 0.0
    assert np.all(tab[:, 1] > 0.0)
    assert np.all(np.diff(tab[:, 1]) < 0.0)
    # one application per stage, no exponentials
    assert np.allclose(tab[:, 3], DoPri45.nstages / tab[:, 0])


def test_local_orders_restore_psi(two_level, psi0) -> None:
    """psi is restored after every row."""
    psi = psi0.copy()
    local_orders(two_level, psi, T0, DT, scheme=CF4, rows=3)
    assert np.array_equal(psi, psi0)


def test_local_orders_count_krylov_applications(two_level, psi0) -> None:
    """With the Krylov kernel every exponential costs operator applications."""
    tab = local_orders(two_level, psi0.copy(), T0, DT, scheme=CF4, rows=2)
    assert np.all(tab[:, 3] > 0.0)


# -------------------------------------------------------------------
# local_orders_est
# -------------------------------------------------------------------


@pytest.mark.parametrize(
    ("scheme", "expected"),
    [(CF2, 4.0), (CF4, 6.0)],
    ids=["CF2", "CF4"],
)
def test_local_orders_est_gains_one_order(
    two_level, psi0, scheme, expected: float
) -> None:
    """The estimate quality decays like dt^(p+2)."""
    tab = local_orders_est(
        two_level,
        psi0.copy(),
        T0,
        DT,
        scheme=scheme,
        reference_scheme=CF6,
        rows=ROWS,
        expmv_tol=0.0,
    )

    assert tab.shape == (ROWS, 6)
    assert tab[-1, 2] == pytest.approx(expected - 1.0, abs=0.3)
    assert tab[-1, 4] == pytest.approx(expected, abs=0.4)
    assert np.all(tab[2:, 3] < tab[2:, 1])


# -------------------------------------------------------------------
# global_orders
# -------------------------------------------------------------------


def test_global_orders_cf4(two_level, psi0) -> None:
    """CF4 converges globally with order 4."""
    psi_ref = _reference(two_level, psi0, 0.0, 1.0)
    psi = psi0.copy()

    tab = global_orders(
        two_level, psi, psi_ref, 0.0, 1.0, 0.25, scheme=CF4, rows=4, expmv_tol=0.0
    )

    assert tab.shape == (4, 3)
    assert tab[-1, 2] == pytest.approx(4.0, abs=0.3)
    assert np.array_equal(psi, psi0)


def test_global_orders_corrected_gains_one_order(two_level, psi0) -> None:
    """higher_order=True runs the corrected stepper (order p + 1)."""
    psi_ref = _reference(two_level, psi0, 0.0, 1.0)

    tab = global_orders(
        two_level,
        psi0.copy(),
        psi_ref,
        0.0,
        1.0,
        0.25,
        scheme=CF2,
        rows=4,
        expmv_tol=0.0,
        higher_order=True,
    )

    assert tab[-1, 2] == pytest.approx(3.0, abs=0.3)


# -------------------------------------------------------------------
# Logging / validation
# -------------------------------------------------------------------


def test_tables_are_logged(two_level, psi0, caplog) -> None:
    """One header plus one line per row at INFO level."""
    caplog.set_level(logging.INFO, logger="tdprop.orders")
    local_orders(two_level, psi0.copy(), T0, DT, scheme=CF2, rows=3, expmv_tol=0.0)

    records = [r for r in caplog.records if r.name == "tdprop.orders"]
    assert len(records) == 4
    assert "muls/dt" in records[0].getMessage()


@pytest.mark.parametrize("rows", [0, -1])
def test_rows_must_be_positive(two_level, psi0, rows: int) -> None:
    """At least one row is needed."""
    with pytest.raises(ConfigurationError, match="rows must be >= 1"):
        local_orders(two_level, psi0.copy(), T0, DT, rows=rows)


def test_reference_steps_must_be_positive(two_level, psi0) -> None:
    """The reference needs at least one sub-step."""
    with pytest.raises(ConfigurationError, match="reference_steps must be >= 1"):
        local_orders_est(two_level, psi0.copy(), T0, DT, reference_steps=0)
