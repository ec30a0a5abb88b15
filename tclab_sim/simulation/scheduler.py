"""
Fixed-rate simulation loop for the TCLab digital twin.

Each tick reads the actuation source (manual duties or the two PID outputs),
steps the plant by exactly one physics step, samples the sensors and appends
to the history. Simulated time advances by ``sim_step`` per tick regardless
of how much wall-clock time has passed, so runs are reproducible even when
the tick thread is late.

Modes are orthogonal:
    running / paused      -- paused ticks do nothing
    manual / automatic    -- automatic ticks overwrite the manual duties
"""

import logging
import math
import threading

import numpy as np

from tclab_sim.controllers.pid import PIDController
from tclab_sim.models.plant import ThermalPlantModel
from tclab_sim.simulation.history import HistorySample, HistoryStore, window_size
from tclab_sim.utils.parameters import (
    DEFAULT_WINDOW, KD, KI, KP, Q_MAX, Q_MIN, SETPOINT, SIM_STEP, T_INITIAL,
    UPDATE_RATE
)

_LOGGER = logging.getLogger(__name__)


class SimulationScheduler:
    """
    Owns the plant, both PID channels and the run history.

    Parameters
    ----------
    initial_temp : float
        Starting temperature of the plant on construction and reset (deg C).
    sim_step : float
        Physics step per tick (s).
    update_rate : float
        Wall-clock tick period of the background driver (s).
    window : float or None
        Display window length (s); ``inf`` or ``None`` for the whole history.
    """

    def __init__(self, initial_temp=T_INITIAL, sim_step=SIM_STEP,
                 update_rate=UPDATE_RATE, window=DEFAULT_WINDOW):
        if not sim_step > 0:
            raise ValueError(f"sim_step must be positive, got {sim_step}")
        if not update_rate > 0:
            raise ValueError(f"update_rate must be positive, got {update_rate}")

        self.initial_temp = initial_temp
        self.sim_step = sim_step
        self.update_rate = update_rate

        self.plant = ThermalPlantModel(initial_temp)
        self.pid1 = PIDController(Kp=KP, Ki=KI, Kd=KD, setpoint=SETPOINT)
        self.pid2 = PIDController(Kp=KP, Ki=KI, Kd=KD, setpoint=SETPOINT)
        self.history = HistoryStore()

        self.time = 0.0
        self.Q1 = 0.0
        self.Q2 = 0.0
        self.paused = False
        self.automatic = False
        self.window_seconds = math.inf if window is None else window
        self._view = []
        self._settings = {}

        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._thread = None

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    def tick(self):
        """
        Run one scheduler tick.

        Returns
        -------
        sample : HistorySample or None
            The appended sample, or None while paused.
        """
        with self._lock:
            if self.paused:
                return None

            dt = self.sim_step
            if self.automatic:
                T1, T2 = self.plant.get_sensors()
                self.Q1 = self.pid1.compute(T1, dt)
                self.Q2 = self.pid2.compute(T2, dt)

            self.plant.set_heaters(self.Q1, self.Q2)
            self.plant.step(dt)

            T1, T2 = self.plant.get_sensors()
            self.time += dt
            sample = HistorySample(self.time, T1, T2, self.Q1, self.Q2)
            self.history.append(sample)
            self._refresh_view()
            return sample

    def advance(self, n_ticks):
        """Run ``n_ticks`` ticks back to back, without wall-clock pacing."""
        for _ in range(n_ticks):
            self.tick()

    def _refresh_view(self):
        self._view = self.history.window(self.window_seconds, self.sim_step)

    # ------------------------------------------------------------------
    # Real-time driver
    # ------------------------------------------------------------------
    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start ticking every ``update_rate`` seconds on a daemon thread."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True,
                                        name='tclab-sim')
        self._thread.start()
        _LOGGER.info("Simulation loop started (tick every %.3f s, step %.3f s)",
                     self.update_rate, self.sim_step)

    def stop(self):
        """Stop the background driver and wait for the current tick."""
        self._stop.set()
        if self._thread:
            self._thread.join()
            self._thread = None
        _LOGGER.info("Simulation loop stopped at t=%.1f s", self.time)

    def _loop(self):
        while not self._stop.wait(self.update_rate):
            try:
                self.tick()
            except Exception:
                _LOGGER.exception("Simulation tick failed at t=%.1f s; "
                                  "stopping the loop", self.time)
                return

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------
    def pause(self):
        with self._lock:
            self.paused = True

    def resume(self):
        with self._lock:
            self.paused = False

    def toggle_pause(self):
        with self._lock:
            self.paused = not self.paused
            return self.paused

    def set_mode(self, automatic):
        """
        Switch between manual and automatic (PID) control.

        Entering automatic mode seeds both controllers from the duties
        currently applied and the current sensor readings, so the heaters do
        not jump at the switch.
        """
        with self._lock:
            if automatic and not self.automatic:
                T1, T2 = self.plant.get_sensors()
                self.pid1.initialize(self.Q1, T1)
                self.pid2.initialize(self.Q2, T2)
            self.automatic = bool(automatic)
            _LOGGER.debug("Control mode: %s",
                          'automatic' if self.automatic else 'manual')

    def toggle_mode(self):
        with self._lock:
            self.set_mode(not self.automatic)
            return self.automatic

    # ------------------------------------------------------------------
    # Inputs from the presentation layer
    # ------------------------------------------------------------------
    def set_manual(self, Q1, Q2):
        """Manual heater duties (%); overwritten every tick in automatic mode."""
        with self._lock:
            self.Q1 = float(np.clip(Q1, Q_MIN, Q_MAX))
            self.Q2 = float(np.clip(Q2, Q_MIN, Q_MAX))

    def apply_settings(self, **params):
        """Commit a (partial) set of plant parameters, Ta in deg C."""
        with self._lock:
            self.plant.set_parameters(**params)
            self._settings.update(params)
            dt_max = self.plant.max_stable_step()
            if math.isfinite(dt_max) and self.sim_step > dt_max:
                _LOGGER.warning(
                    "Physics step %.3f s exceeds the Euler stability limit "
                    "%.3f s for these parameters; the simulation may diverge",
                    self.sim_step, dt_max)

    def set_pid_gains(self, Kp, Ki, Kd):
        """Apply the same gains to both channels; used from the next tick."""
        with self._lock:
            self.pid1.set_gains(Kp, Ki, Kd)
            self.pid2.set_gains(Kp, Ki, Kd)
            _LOGGER.debug("PID gains: Kp=%s Ki=%s Kd=%s", Kp, Ki, Kd)

    def set_setpoints(self, setpoint1, setpoint2):
        with self._lock:
            self.pid1.setpoint = setpoint1
            self.pid2.setpoint = setpoint2

    def set_window(self, seconds):
        """Change the display window; the view is recomputed immediately."""
        seconds = math.inf if seconds is None else seconds
        window_size(seconds, self.sim_step)
        with self._lock:
            self.window_seconds = seconds
            self._refresh_view()

    # ------------------------------------------------------------------
    # Reset and readers
    # ------------------------------------------------------------------
    def reset(self):
        """
        Start over: fresh plant, empty history, zero time and duties.

        Committed settings are re-applied to the new plant. Both PID channels
        are reset; pause and control mode are kept.
        """
        with self._lock:
            self.plant = ThermalPlantModel(self.initial_temp)
            if self._settings:
                self.plant.set_parameters(**self._settings)
            self.time = 0.0
            self.history.clear()
            self.pid1.reset()
            self.pid2.reset()
            self.Q1 = 0.0
            self.Q2 = 0.0
            self._refresh_view()
        _LOGGER.info("Simulation reset to %.1f degC", self.initial_temp)

    @property
    def window(self):
        """Current display view (list copy of the trailing samples)."""
        with self._lock:
            return list(self._view)

    def export_csv(self):
        """Full history in the ``Time,T1,T2,Q1,Q2`` format."""
        with self._lock:
            return self.history.to_csv()

    def snapshot(self):
        """Current readings and modes for the presentation layer."""
        with self._lock:
            T1, T2 = self.plant.get_sensors()
            return {
                'time': self.time,
                'T1': T1,
                'T2': T2,
                'Q1': self.Q1,
                'Q2': self.Q2,
                'paused': self.paused,
                'automatic': self.automatic,
                'setpoint1': self.pid1.setpoint,
                'setpoint2': self.pid2.setpoint,
                'window': self.window_seconds,
            }
