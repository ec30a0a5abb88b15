"""
Two-node thermal plant: the TCLab heater/sensor board.

Each node (heater + thermistor) exchanges heat with the ambient by convection
and radiation, and with the other node through the area between them:

    Q_C12 = U*As*(T2 - T1)
    Q_R12 = eps*sigma*As*(T2^4 - T1^4)

    dT1/dt = 1/(m*Cp) * [U*A*(Ta - T1) + eps*sigma*A*(Ta^4 - T1^4)
                         + Q_C12 + Q_R12 + alpha1*Q1]
    dT2/dt = 1/(m*Cp) * [U*A*(Ta - T2) + eps*sigma*A*(Ta^4 - T2^4)
                         - Q_C12 - Q_R12 + alpha2*Q2]

All temperatures inside the model are in Kelvin. The live simulator advances
the plant with a fixed explicit Euler step; solve_ivp is only used offline to
produce reference solutions.

References:
- Hedengren JD. Temperature Control Lab (TCLab) and the Gekko model,
  apmonitor.com/pdc.
- Hairer E, Norsett SP, Wanner G. Solving Ordinary Differential Equations I.
  Springer, 1993. (Stability region of the explicit Euler method)
"""

import logging
import math

import numpy as np
from scipy.integrate import solve_ivp
from scipy.optimize import fsolve

from tclab_sim.utils.parameters import (
    AREA, AREA_BETWEEN, DEFAULT_PARAMS, KELVIN, PARAMETER_NAMES, Q_MAX,
    Q_MIN, SIGMA, SIM_STEP, T_INITIAL
)

_LOGGER = logging.getLogger(__name__)


def plant_rhs(t, T, Q, p):
    """
    Right-hand side of the two-node energy balance.

    Parameters
    ----------
    t : float
        Time (unused, the plant is autonomous for fixed Q).
    T : array-like of shape (2,)
        Node temperatures (K).
    Q : array-like of shape (2,)
        Heater duties (%).
    p : dict
        Physical parameters, with ``Ta`` in Kelvin.

    Returns
    -------
    dTdt : ndarray of shape (2,)
        Rates of change (K/s).
    """
    T1, T2 = T
    Ta = p['Ta']
    gain = _heat_gain(p)
    rad = p['eps'] * SIGMA

    # Degenerate parameters give inf/nan temperatures, never an exception
    with np.errstate(divide='ignore', over='ignore', invalid='ignore'):
        Q_C12 = p['U'] * AREA_BETWEEN * (T2 - T1)
        Q_R12 = rad * AREA_BETWEEN * (T2 ** 4 - T1 ** 4)

        dT1 = gain * (p['U'] * AREA * (Ta - T1)
                      + rad * AREA * (Ta ** 4 - T1 ** 4)
                      + Q_C12 + Q_R12
                      + p['alpha1'] * Q[0])
        dT2 = gain * (p['U'] * AREA * (Ta - T2)
                      + rad * AREA * (Ta ** 4 - T2 ** 4)
                      - Q_C12 - Q_R12
                      + p['alpha2'] * Q[1])
    return np.array([dT1, dT2])


def _heat_gain(p):
    """1/(m*Cp) as a numpy float: inf rather than ZeroDivisionError at zero."""
    with np.errstate(divide='ignore', invalid='ignore'):
        return np.divide(1.0, np.float64(p['mass']) * np.float64(p['Cp']))


class ThermalPlantModel:
    """
    Plant state and one-step transition.

    Parameters
    ----------
    initial_temp : float
        Uniform starting temperature of both nodes and of the ambient (deg C).
    """

    def __init__(self, initial_temp=T_INITIAL):
        self.params = dict(DEFAULT_PARAMS)
        self.params['Ta'] = initial_temp + KELVIN
        self.T = np.full(2, initial_temp + KELVIN)
        self.Q = np.zeros(2)

    def set_parameters(self, **params):
        """
        Merge any subset of the physical parameters (``Ta`` in deg C).

        Takes effect on the next call to :meth:`step`.
        """
        unknown = sorted(set(params) - set(PARAMETER_NAMES))
        if unknown:
            raise ValueError(
                f"Unknown plant parameter(s): {', '.join(unknown)}")

        for name, value in params.items():
            self.params[name] = value + KELVIN if name == 'Ta' else value
        _LOGGER.debug("Plant parameters updated: %s", params)

    def get_parameters(self):
        """Return the parameters in display units (``Ta`` in deg C)."""
        params = dict(self.params)
        params['Ta'] = self.params['Ta'] - KELVIN
        return params

    def set_heaters(self, Q1, Q2):
        """Set both heater duties, each clamped to [0, 100] %."""
        self.Q = np.clip([Q1, Q2], Q_MIN, Q_MAX).astype(float)

    def step(self, dt):
        """Advance both nodes by one explicit Euler step of ``dt`` seconds."""
        dTdt = plant_rhs(0.0, self.T, self.Q, self.params)
        self.T = self.T + dTdt * dt

    def get_sensors(self):
        """Return ``(T1, T2)`` in deg C."""
        return float(self.T[0] - KELVIN), float(self.T[1] - KELVIN)

    def jacobian(self):
        """Jacobian of :func:`plant_rhs` with respect to T at the current state."""
        T1, T2 = self.T
        p = self.params
        gain = _heat_gain(p)
        rad = p['eps'] * SIGMA

        with np.errstate(over='ignore', invalid='ignore'):
            k1 = p['U'] * AREA_BETWEEN + 4.0 * rad * AREA_BETWEEN * T1 ** 3
            k2 = p['U'] * AREA_BETWEEN + 4.0 * rad * AREA_BETWEEN * T2 ** 3
            a1 = p['U'] * AREA + 4.0 * rad * AREA * T1 ** 3
            a2 = p['U'] * AREA + 4.0 * rad * AREA * T2 ** 3

            return gain * np.array([[-a1 - k1, k2],
                                    [k1, -a2 - k2]])

    def max_stable_step(self):
        """
        Largest Euler step that is linearly stable at the current state.

        Explicit Euler is stable for an eigenvalue lambda when
        |1 + lambda*dt| <= 1, i.e. dt <= -2*Re(lambda)/|lambda|^2.

        Returns
        -------
        dt_max : float
            Step limit in seconds (inf if no eigenvalue is decaying, nan if
            the parameters or state are degenerate).
        """
        J = self.jacobian()
        if not np.all(np.isfinite(J)):
            return math.nan
        lam = np.linalg.eigvals(J)
        decaying = lam[lam.real < 0]
        if decaying.size == 0:
            return math.inf
        return float(np.min(-2.0 * decaying.real / np.abs(decaying) ** 2))


def _configured_plant(T0, params):
    plant = ThermalPlantModel(T0)
    if params:
        plant.set_parameters(**params)
    return plant


def simulate_euler(Q1, Q2, t_end, dt=SIM_STEP, T0=T_INITIAL, params=None):
    """
    Open-loop run with constant heater duties using the live integrator.

    Parameters
    ----------
    Q1, Q2 : float
        Heater duties (%).
    t_end : float
        Simulation end time (s).
    dt : float
        Euler step (s).
    T0 : float
        Initial node (and default ambient) temperature (deg C).
    params : dict, optional
        Parameter overrides in display units.

    Returns
    -------
    t : ndarray
        Time array, starting at 0.
    T1, T2 : ndarray
        Node temperatures (deg C).
    """
    plant = _configured_plant(T0, params)
    plant.set_heaters(Q1, Q2)

    n_steps = int(round(t_end / dt))
    t = np.arange(n_steps + 1) * dt
    T = np.empty((2, n_steps + 1))
    T[:, 0] = plant.get_sensors()
    for i in range(1, n_steps + 1):
        plant.step(dt)
        T[:, i] = plant.get_sensors()

    return t, T[0], T[1]


def simulate_reference(Q1, Q2, t_end, T0=T_INITIAL, params=None, t_eval=None,
                       rtol=1e-8, atol=1e-8):
    """
    High-accuracy solution of the same ODE with solve_ivp (RK45).

    Used to check the fixed-step integrator; never used by the live loop.

    Returns
    -------
    t : ndarray
    T1, T2 : ndarray
        Node temperatures (deg C).
    """
    plant = _configured_plant(T0, params)
    plant.set_heaters(Q1, Q2)
    p = plant.params
    Q = plant.Q

    # Fixed-step grids can overshoot t_end by a rounding error
    t_final = t_end if t_eval is None else max(t_end, float(t_eval[-1]))

    sol = solve_ivp(
        lambda t, T: plant_rhs(t, T, Q, p),
        [0, t_final],
        plant.T,
        t_eval=t_eval,
        method='RK45',
        rtol=rtol,
        atol=atol
    )
    if not sol.success:
        raise RuntimeError(f"Reference solution failed: {sol.message}")

    return sol.t, sol.y[0] - KELVIN, sol.y[1] - KELVIN


def steady_state_temperatures(Q1, Q2, params=None):
    """
    Equilibrium node temperatures for constant heater duties.

    Solves plant_rhs(T) = 0 with fsolve, starting from the ambient.

    Returns
    -------
    T1_ss, T2_ss : float
        Steady-state temperatures (deg C).
    """
    plant = _configured_plant(T_INITIAL, params)
    plant.set_heaters(Q1, Q2)
    p = plant.params
    Q = plant.Q

    guess = np.full(2, p['Ta'])
    T_ss = fsolve(lambda T: plant_rhs(0.0, T, Q, p), guess, xtol=1e-12)
    return float(T_ss[0] - KELVIN), float(T_ss[1] - KELVIN)
