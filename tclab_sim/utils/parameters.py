"""
Shared physical and simulation parameters for the TCLab simulator.

All units are SI unless otherwise noted. Temperatures exposed to callers are
in deg C; the plant converts to Kelvin internally.
"""

import math

# --- Environment ---
T_INITIAL = 21.0       # Initial uniform temperature of both nodes (deg C)
KELVIN = 273.15        # Offset deg C -> K

# --- Physical constants of the board (Gekko TCLab model) ---
DEFAULT_PARAMS = {
    'U': 10.0,         # Heat transfer coefficient (W/m^2-K)
    'mass': 0.004,     # Mass of one heater/sensor node (kg)
    'Cp': 500.0,       # Specific heat capacity (J/kg-K)
    'alpha1': 0.01,    # Heater 1 power per % duty (W/%)
    'alpha2': 0.01,    # Heater 2 power per % duty (W/%)
    'eps': 0.9,        # Surface emissivity
    'Ta': 21.0,        # Ambient temperature (deg C)
}
PARAMETER_NAMES = tuple(DEFAULT_PARAMS)

# Ranges offered by the settings dialog: (min, max, step)
PARAMETER_RANGES = {
    'U': (1.0, 50.0, 0.5),
    'mass': (0.001, 0.02, 0.001),
    'Cp': (100.0, 1000.0, 10.0),
    'alpha1': (0.001, 0.05, 0.001),
    'alpha2': (0.001, 0.05, 0.001),
    'eps': (0.1, 1.0, 0.05),
    'Ta': (10.0, 40.0, 0.5),
}

# --- Geometry ---
AREA = 10.0 / 100.0 ** 2          # Node-to-ambient area (m^2)
AREA_BETWEEN = 2.0 / 100.0 ** 2   # Area between heaters (m^2)
SIGMA = 5.67e-8                   # Stefan-Boltzmann (W/m^2-K^4)

# --- Actuation ---
Q_MIN = 0.0            # Heater duty lower bound (%)
Q_MAX = 100.0          # Heater duty upper bound (%)

# --- PID defaults (shared gains, per-channel setpoints) ---
KP = 2.0
KI = 0.1
KD = 1.0
SETPOINT = 40.0        # deg C

# --- Scheduling ---
SIM_STEP = 0.1         # Physics step per tick (s)
UPDATE_RATE = 0.1      # Wall-clock tick period (s)

# --- Display windows (s); inf shows the whole history ---
TIME_WINDOWS = {
    '1 Min': 60.0,
    '5 Min': 300.0,
    '10 Min': 600.0,
    'All': math.inf,
}
DEFAULT_WINDOW = 60.0


def validate_parameters(params):
    """
    Check a (partial) parameter set before committing it to a plant.

    Every constant except ``Ta`` must be strictly positive. The plant itself
    accepts anything; this is for callers that want to refuse degenerate
    settings at the boundary.

    Raises
    ------
    ValueError
        If a name is unknown or a constant is not strictly positive.
    """
    unknown = sorted(set(params) - set(PARAMETER_NAMES))
    if unknown:
        raise ValueError(f"Unknown plant parameter(s): {', '.join(unknown)}")

    bad = [name for name, value in params.items()
           if name != 'Ta' and not value > 0]
    if bad:
        raise ValueError(
            f"Plant parameter(s) must be strictly positive: {', '.join(bad)}")
