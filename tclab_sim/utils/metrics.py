"""
Evaluation metrics for a recorded closed-loop run.

Every metric reads one heater/sensor channel out of the arrays returned by
:meth:`HistoryStore.as_arrays` (keys ``time``, ``T1``, ``T2``, ``Q1``,
``Q2``), so a run can be scored without reshaping the history first.
"""

import numpy as np
from scipy.integrate import trapezoid

from tclab_sim.utils.parameters import DEFAULT_PARAMS


def _channel(data, channel):
    """Return ``(time, T, Q)`` for channel 1 or 2."""
    if channel not in (1, 2):
        raise ValueError(f"Channel must be 1 or 2, got {channel!r}")
    return data['time'], data[f'T{channel}'], data[f'Q{channel}']


def heater_energy(data, channel, alpha=DEFAULT_PARAMS['alpha1']):
    """
    Electrical energy delivered by one heater, the trapezoidal integral of
    alpha*Q over the recorded time.

    Parameters
    ----------
    data : dict
        History arrays.
    channel : int
        1 or 2.
    alpha : float
        Heater power per % duty (W/%).

    Returns
    -------
    E : float
        Energy (J); 0 for fewer than two samples.
    """
    t, _, Q = _channel(data, channel)
    if t.size < 2:
        return 0.0
    return float(trapezoid(alpha * Q, t))


def temperature_rmse(data, channel, setpoint):
    """Time-weighted RMS of T - setpoint over the run (0 for an empty run)."""
    t, T, _ = _channel(data, channel)
    if t.size < 2 or t[-1] <= t[0]:
        return 0.0
    mean_sq = trapezoid((T - setpoint) ** 2, t) / (t[-1] - t[0])
    return float(np.sqrt(mean_sq))


def max_overshoot(data, channel, setpoint):
    """Largest excursion above the setpoint, 0 if it was never exceeded."""
    _, T, _ = _channel(data, channel)
    return float(np.max(T - setpoint, initial=0.0))


def settling_time(data, channel, setpoint, band=1.0):
    """
    First recorded time after which T stays within setpoint +/- band.

    Returns
    -------
    t_settle : float
        The time of the sample following the last excursion, the first
        recorded time if there was none, or inf if the run ends outside the
        band.
    """
    t, T, _ = _channel(data, channel)
    if t.size == 0:
        return 0.0

    outside = np.flatnonzero(np.abs(T - setpoint) > band)
    if outside.size == 0:
        return float(t[0])
    if outside[-1] == t.size - 1:
        return np.inf
    return float(t[outside[-1] + 1])


def channel_metrics(data, channel, setpoint, alpha=DEFAULT_PARAMS['alpha1'],
                    band=1.0):
    """rmse, max_overshoot, settling_time and energy for one channel."""
    return {
        'rmse': temperature_rmse(data, channel, setpoint),
        'max_overshoot': max_overshoot(data, channel, setpoint),
        'settling_time': settling_time(data, channel, setpoint, band),
        'energy': heater_energy(data, channel, alpha),
    }


def history_metrics(history, setpoint1, setpoint2, params=None, band=1.0):
    """
    Metrics for both channels of a :class:`HistoryStore`.

    Returns
    -------
    metrics : dict
        ``{'1': {...}, '2': {...}}`` as returned by :func:`channel_metrics`.
    """
    params = params or DEFAULT_PARAMS
    data = history.as_arrays()
    return {
        '1': channel_metrics(data, 1, setpoint1, params['alpha1'], band),
        '2': channel_metrics(data, 2, setpoint2, params['alpha2'], band),
    }
