"""
Offline figures for simulation runs.

Used by the experiment scripts to write report figures; the live dashboard
draws its own charts from the scheduler's window view.
"""

import logging

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from tclab_sim.utils.parameters import Q_MAX

_LOGGER = logging.getLogger(__name__)


def _finish(fig, save_path):
    plt.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        _LOGGER.info("Saved: %s", save_path)
    plt.close(fig)
    return fig


def plot_history(history, setpoints=None, T_a=None, title="TCLab Run",
                 save_path=None):
    """
    Dual-panel plot of a recorded run: temperatures and heater duties.

    Parameters
    ----------
    history : HistoryStore
        Recorded samples.
    setpoints : tuple of float, optional
        (setpoint1, setpoint2) to draw as dashed lines.
    T_a : float, optional
        Ambient temperature (deg C).
    title : str
        Figure title.
    save_path : str, optional
        Path to save figure.
    """
    data = history.as_arrays()
    t = data['time']

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 7), sharex=True,
                                    gridspec_kw={'height_ratios': [3, 1]})

    ax1.plot(t, data['T1'], 'r-', linewidth=1.5, label=r'$T_1$')
    ax1.plot(t, data['T2'], 'b-', linewidth=1.5, label=r'$T_2$')
    if setpoints is not None:
        ax1.axhline(y=setpoints[0], color='r', linestyle='--', alpha=0.5,
                    label=f'$SP_1 = {setpoints[0]}$°C')
        ax1.axhline(y=setpoints[1], color='b', linestyle='--', alpha=0.5,
                    label=f'$SP_2 = {setpoints[1]}$°C')
    if T_a is not None:
        ax1.axhline(y=T_a, color='cyan', linestyle=':', alpha=0.7,
                    label=f'$T_a = {T_a}$°C')
    ax1.set_ylabel('Temperature (°C)', fontsize=12)
    ax1.set_title(title, fontsize=14)
    ax1.legend(loc='lower right', fontsize=10)
    ax1.grid(True, alpha=0.3)

    ax2.plot(t, data['Q1'], 'r-', linewidth=1.2, label=r'$Q_1$')
    ax2.plot(t, data['Q2'], 'b-', linewidth=1.2, label=r'$Q_2$')
    ax2.set_xlabel('Time (s)', fontsize=12)
    ax2.set_ylabel('Heater (%)', fontsize=12)
    ax2.set_ylim(-2, Q_MAX * 1.05)
    ax2.legend(loc='upper right', fontsize=10)
    ax2.grid(True, alpha=0.3)

    return _finish(fig, save_path)


def plot_integrator_comparison(t_ref, T_ref, runs, title="Euler vs RK45",
                               save_path=None):
    """
    Overlay fixed-step runs on a reference solution.

    Parameters
    ----------
    t_ref, T_ref : ndarray
        Reference time and temperature.
    runs : dict
        {label: (t, T)} for each fixed-step run.
    """
    fig, ax = plt.subplots(figsize=(12, 6))

    ax.plot(t_ref, T_ref, 'k-', linewidth=2.0, label='Reference (RK45)')
    colors = plt.cm.tab10(np.linspace(0, 1, max(len(runs), 1)))
    for (label, (t, T)), color in zip(runs.items(), colors):
        ax.plot(t, T, '--', linewidth=1.2, label=label, color=color)

    ax.set_xlabel('Time (s)', fontsize=12)
    ax.set_ylabel('Temperature (°C)', fontsize=12)
    ax.set_title(title, fontsize=14)
    ax.legend(fontsize=9)
    ax.grid(True, alpha=0.3)

    return _finish(fig, save_path)
