# tdprop/examples/driven_two_level.py
"""Driven two-level system propagated with the adaptive CF4 stepper.

The Hamiltonian is

    H(t) = sigma_z + cos(omega t) sigma_x,

and the state starts in the upper level. The example demonstrates:

- AdaptiveTimeStepper iterated as a generator (one yield per accepted step),
- the step reports (accepted and rejected attempts with their error norms),
- a fixed-step CF6 reference to measure the final error,
- norm conservation of the exponential integrator.

This script saves plots to disk (no interactive windows).
"""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

import tdprop

_OUTPUT_DIR = Path(__file__).resolve().parent / "output" / "two_level"

SIGMA_Z = np.diag([1.0, -1.0])
SIGMA_X = np.array([[0.0, 1.0], [1.0, 0.0]])


def build_hamiltonian(omega: float) -> tdprop.TimeDependentSchroedingerMatrix:
    """Build H(t) = sigma_z + cos(omega t) sigma_x with coefficient derivatives.

    Args:
        omega: Driving frequency.

    Returns:
        Operator family for i dpsi/dt = H(t) psi.
    """
    return tdprop.TimeDependentSchroedingerMatrix(
        [SIGMA_Z, SIGMA_X],
        [lambda t: 1.0, lambda t: np.cos(omega * t)],
        [lambda t: 0.0, lambda t: -omega * np.sin(omega * t)],
    )


def run_adaptive(
    op: tdprop.TimeDependentSchroedingerMatrix,
    psi0: np.ndarray,
    *,
    tend: float,
    tol: float,
) -> tuple[np.ndarray, np.ndarray, tdprop.AdaptiveTimeStepper]:
    """Propagate adaptively and record the upper-level population.

    Args:
        op: Hamiltonian family.
        psi0: Initial state (not modified).
        tend: Final time.
        tol: Local error tolerance.

    Returns:
        Accepted times, populations at those times, and the finished stepper.
    """
    psi = psi0.copy()
    stepper = tdprop.AdaptiveTimeStepper(
        op, psi, 0.0, tend, 0.1, tol, scheme=tdprop.CF4
    )

    times = [0.0]
    pops = [abs(psi[0]) ** 2]
    for t in stepper:
        times.append(t)
        pops.append(abs(psi[0]) ** 2)

    return np.asarray(times), np.asarray(pops), stepper


def reference_solution(
    op: tdprop.TimeDependentSchroedingerMatrix,
    psi0: np.ndarray,
    *,
    tend: float,
    steps: int,
) -> np.ndarray:
    """Fixed-step CF6 solution at ``tend``.

    Args:
        op: Hamiltonian family.
        psi0: Initial state (not modified).
        tend: Final time.
        steps: Number of equidistant steps.

    Returns:
        Reference state at ``tend``.
    """
    psi = psi0.copy()
    tdprop.EquidistantTimeStepper(
        op, psi, 0.0, tend, tend / steps, scheme=tdprop.CF6, expmv_tol=0.0
    ).run()
    return psi


def save_population_plot(
    times: np.ndarray,
    pops: np.ndarray,
    stepper: tdprop.AdaptiveTimeStepper,
    *,
    title: str,
    out_path: Path,
) -> None:
    """Save the population trajectory and the step-size history.

    Args:
        times: Accepted step times.
        pops: Upper-level population at ``times``.
        stepper: Finished adaptive stepper (its reports are plotted).
        title: Figure title.
        out_path: Output path for the saved figure.
    """
    accepted = [r for r in stepper.reports if r.accepted]
    rejected = [r for r in stepper.reports if not r.accepted]

    fig, (ax_pop, ax_dt) = plt.subplots(2, 1, figsize=(8, 7), sharex=True)

    ax_pop.plot(times, pops, marker=".", label="|psi_1|^2")
    ax_pop.set_ylabel("Population")
    ax_pop.grid(visible=True)
    ax_pop.legend()

    ax_dt.semilogy(
        [r.t for r in accepted], [r.dt for r in accepted], ".", label="accepted"
    )
    if rejected:
        ax_dt.semilogy(
            [r.t for r in rejected], [r.dt for r in rejected], "x", label="rejected"
        )
    ax_dt.set_xlabel("Time")
    ax_dt.set_ylabel("dt")
    ax_dt.grid(visible=True)
    ax_dt.legend()

    fig.suptitle(title)
    fig.tight_layout()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=150)
    plt.close(fig)


def main() -> None:
    """Run the driven two-level example and save its plot.

    Files are written to: examples/output/two_level/
    """
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    # ---------------------------------------------------------------------
    # Model parameters
    # ---------------------------------------------------------------------
    omega = 2.0
    tend = 10.0
    tol = 1e-8

    op = build_hamiltonian(omega)
    psi0 = np.array([1.0, 0.0], dtype=np.complex128)

    # ---------------------------------------------------------------------
    # Adaptive run and reference
    # ---------------------------------------------------------------------
    times, pops, stepper = run_adaptive(op, psi0, tend=tend, tol=tol)
    psi_ref = reference_solution(op, psi0, tend=tend, steps=4000)

    err = float(np.linalg.norm(stepper.psi - psi_ref))
    drift = abs(float(np.linalg.norm(stepper.psi)) - 1.0)

    print(  # noqa: T201
        f"accepted={stepper.accepted} rejected={stepper.rejected} "
        f"err={err:.3e} norm drift={drift:.3e}"
    )

    save_population_plot(
        times,
        pops,
        stepper,
        title=f"CF4 adaptive, tol={tol:g} (err={err:.2e})",
        out_path=_OUTPUT_DIR / "driven_two_level.png",
    )


if __name__ == "__main__":
    main()
