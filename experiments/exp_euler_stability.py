"""
Experiment: accuracy and stability of the fixed-step Euler integrator.

Runs the open-loop plant with heater 1 at full power using several step
sizes and compares each run against a tight-tolerance RK45 solution. Also
reports the linear stability limit 2/|lambda| at the starting state, for the
default board and for a low-thermal-mass board where the live step size is
no longer safe.
"""

import sys, os
from pathlib import Path

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from tclab_sim.models.plant import (
    ThermalPlantModel, simulate_euler, simulate_reference,
    steady_state_temperatures
)
from tclab_sim.utils.parameters import SIM_STEP, T_INITIAL
from tclab_sim.utils.plotting import plot_integrator_comparison

RESULTS = Path(__file__).resolve().parent / "results"

T_END = 600.0
STEP_SIZES = [SIM_STEP, 1.0, 10.0, 50.0]


def stability_limits():
    """Print dt_max for the default board and a light one."""
    for label, params in [("default", {}),
                          ("light (mass=1e-5, Cp=100)",
                           {'mass': 1e-5, 'Cp': 100.0})]:
        plant = ThermalPlantModel(T_INITIAL)
        plant.set_parameters(**params)
        dt_max = plant.max_stable_step()
        status = "stable" if SIM_STEP <= dt_max else "UNSTABLE"
        print(f"  {label:<28} dt_max = {dt_max:9.4f} s  "
              f"(live step {SIM_STEP} s: {status})")


def main():
    RESULTS.mkdir(exist_ok=True)

    print("Euler stability limits at the initial state:")
    stability_limits()

    T1_ss, T2_ss = steady_state_temperatures(100.0, 0.0)
    print(f"\nSteady state with Q1=100%, Q2=0%: "
          f"T1={T1_ss:.2f} degC, T2={T2_ss:.2f} degC")

    print(f"\n{'dt (s)':>8} {'max |T1 - T1_ref|':>20}")
    runs = {}
    t_ref = T1_ref = None
    for dt in STEP_SIZES:
        t, T1, T2 = simulate_euler(100.0, 0.0, T_END, dt=dt)
        _, T1_ref_at_t, _ = simulate_reference(100.0, 0.0, T_END, t_eval=t)
        err = np.max(np.abs(T1 - T1_ref_at_t))
        print(f"{dt:8.1f} {err:20.4f}")
        runs[f"Euler dt={dt}s"] = (t, T1)
        if dt == SIM_STEP:
            t_ref, T1_ref = t, T1_ref_at_t

    fig_path = RESULTS / "euler_vs_rk45.png"
    plot_integrator_comparison(t_ref, T1_ref, runs,
                               title="Heater 1 at 100%: Euler vs RK45",
                               save_path=fig_path)
    print(f"Saved: {fig_path}")


if __name__ == '__main__':
    main()
