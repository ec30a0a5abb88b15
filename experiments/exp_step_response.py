"""
Experiment: manual step test followed by a bumpless switch to PID control.

The heaters are held at fixed duties for the first part of the run, then the
simulator is switched to automatic mode and both channels track their
setpoints. Writes the full-history CSV export and a figure to ./results/.

Usage:
    python exp_step_response.py
    python exp_step_response.py --q1 60 --q2 20 --switch-at 300 --t-end 1200
"""

import argparse
import logging
import sys, os
from pathlib import Path

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from tclab_sim.simulation.history import export_filename
from tclab_sim.simulation.scheduler import SimulationScheduler
from tclab_sim.utils.metrics import history_metrics
from tclab_sim.utils.parameters import (
    KP, KI, KD, SETPOINT, SIM_STEP, T_INITIAL, validate_parameters
)
from tclab_sim.utils.plotting import plot_history

RESULTS = Path(__file__).resolve().parent / "results"


def run(q1, q2, switch_at, t_end, sp1, sp2, gains, params):
    """Run the step test and return the scheduler holding the history."""
    sim = SimulationScheduler(initial_temp=T_INITIAL)
    if params:
        sim.apply_settings(**params)
    sim.set_pid_gains(*gains)
    sim.set_setpoints(sp1, sp2)
    sim.set_manual(q1, q2)

    n_manual = int(round(switch_at / SIM_STEP))
    n_total = int(round(t_end / SIM_STEP))

    sim.advance(n_manual)
    Q_before = (sim.Q1, sim.Q2)
    sim.set_mode(True)
    sim.advance(1)
    print(f"Switch at t={switch_at:.1f}s: Q before = "
          f"({Q_before[0]:.2f}, {Q_before[1]:.2f}), after = "
          f"({sim.Q1:.2f}, {sim.Q2:.2f})")
    sim.advance(max(n_total - n_manual - 1, 0))
    return sim


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('--q1', type=float, default=50.0)
    parser.add_argument('--q2', type=float, default=30.0)
    parser.add_argument('--switch-at', type=float, default=300.0)
    parser.add_argument('--t-end', type=float, default=1200.0)
    parser.add_argument('--sp1', type=float, default=SETPOINT)
    parser.add_argument('--sp2', type=float, default=SETPOINT - 5.0)
    parser.add_argument('--kp', type=float, default=KP)
    parser.add_argument('--ki', type=float, default=KI)
    parser.add_argument('--kd', type=float, default=KD)
    parser.add_argument('--ta', type=float, default=None,
                        help='ambient temperature (degC)')
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s %(name)s: %(message)s')

    params = {}
    if args.ta is not None:
        params['Ta'] = args.ta
    validate_parameters(params)

    sim = run(args.q1, args.q2, args.switch_at, args.t_end, args.sp1,
              args.sp2, (args.kp, args.ki, args.kd), params)

    metrics = history_metrics(sim.history, args.sp1, args.sp2,
                              sim.plant.get_parameters())
    print(f"\n{'Channel':<8} {'RMSE':>8} {'Overshoot':>10} "
          f"{'Settle (s)':>11} {'Energy (J)':>11}")
    for ch, m in metrics.items():
        print(f"{ch:<8} {m['rmse']:8.2f} {m['max_overshoot']:10.2f} "
              f"{m['settling_time']:11.1f} {m['energy']:11.1f}")

    RESULTS.mkdir(exist_ok=True)
    csv_path = RESULTS / export_filename()
    csv_path.write_text(sim.export_csv())
    print(f"Saved: {csv_path}")

    fig_path = RESULTS / "step_response.png"
    plot_history(sim.history, setpoints=(args.sp1, args.sp2),
                 T_a=sim.plant.get_parameters()['Ta'],
                 title="Manual step, then PID", save_path=fig_path)


if __name__ == '__main__':
    main()
