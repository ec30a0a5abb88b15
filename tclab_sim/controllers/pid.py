"""
PID controller for one TCLab heater channel.

    u(t) = Kp * e(t) + Ki * integral(e) - Kd * dy/dt

where e(t) = setpoint - y(t) is the tracking error and y is the measured
temperature. The derivative acts on the measurement rather than the error so
a setpoint change does not kick the output.

The output is clamped to [0, 100] % heater duty. Windup is prevented by
conditional integration: the integral only moves when the output is not
saturated, or when the error pulls the output back out of saturation.

References:
- Astrom KJ, Murray RM. Feedback Systems: An Introduction for Scientists
  and Engineers. 2nd ed. Princeton University Press, 2021.
  Chapter 11: PID Control.
- Astrom KJ, Hagglund T. Advanced PID Control. ISA, 2006.
  Section 3.5: Integrator windup; Section 13.5: Bumpless transfer.
"""

import logging

from tclab_sim.utils.parameters import KP, KI, KD, SETPOINT, Q_MIN, Q_MAX

_LOGGER = logging.getLogger(__name__)


class PIDController:
    """
    Discrete PID controller with conditional-integration anti-windup.

    Parameters
    ----------
    Kp : float
        Proportional gain (%/K).
    Ki : float
        Integral gain (%/(K*s)).
    Kd : float
        Derivative gain (%*s/K).
    setpoint : float
        Target temperature (deg C).
    output_min, output_max : float
        Saturation bounds of the output (%).
    """

    def __init__(self, Kp=KP, Ki=KI, Kd=KD, setpoint=SETPOINT,
                 output_min=Q_MIN, output_max=Q_MAX):
        self.Kp = Kp
        self.Ki = Ki
        self.Kd = Kd
        self.setpoint = setpoint
        self.output_min = output_min
        self.output_max = output_max

        # Internal state
        self.integral = 0.0
        self.prev_measurement = 0.0

    def set_gains(self, Kp, Ki, Kd):
        """Replace all three gains; the stored integral is left alone."""
        self.Kp = Kp
        self.Ki = Ki
        self.Kd = Kd

    def compute(self, measurement, dt):
        """
        Compute the next heater duty.

        Parameters
        ----------
        measurement : float
            Current temperature (deg C).
        dt : float
            Time since the previous call (s).

        Returns
        -------
        u : float
            Heater duty, clamped to [output_min, output_max].
        """
        error = self.setpoint - measurement

        derivative = (measurement - self.prev_measurement) / dt
        self.prev_measurement = measurement

        P = self.Kp * error
        D = -self.Kd * derivative

        # Saturation is judged on the output the current integral would give
        output = P + self.Ki * self.integral + D
        saturated_high = output > self.output_max
        saturated_low = output < self.output_min

        if not saturated_high and not saturated_low:
            self.integral += error * dt
        elif saturated_high and error < 0:
            self.integral += error * dt
        elif saturated_low and error > 0:
            self.integral += error * dt

        output = P + self.Ki * self.integral + D

        return max(self.output_min, min(self.output_max, output))

    def initialize(self, current_output, current_measurement):
        """
        Seed the internal state for a bumpless switch from manual control.

        The integral is back-solved so that P + Ki*integral equals the duty
        currently applied; the derivative is zero on the first call as long
        as the measurement has not moved.
        """
        self.prev_measurement = current_measurement
        error = self.setpoint - current_measurement

        if self.Ki != 0:
            self.integral = (current_output - self.Kp * error) / self.Ki
        else:
            self.integral = 0.0
        _LOGGER.debug("PID initialized: output=%.2f, measurement=%.2f, "
                      "integral=%.4f", current_output, current_measurement,
                      self.integral)

    def reset(self):
        """Reset controller internal state."""
        self.integral = 0.0
        self.prev_measurement = 0.0
