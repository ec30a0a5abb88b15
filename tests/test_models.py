"""Tests for the two-node thermal plant."""

import numpy as np
import pytest
import sys, os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from tclab_sim.models.plant import (
    ThermalPlantModel, plant_rhs, simulate_euler, simulate_reference,
    steady_state_temperatures
)
from tclab_sim.utils.parameters import DEFAULT_PARAMS, KELVIN, SIM_STEP


# ===================== Plant state =====================

class TestPlantState:
    @pytest.mark.parametrize("X", [-40.0, 0.0, 21.0, 25.0, 100.5])
    def test_initial_sensors_equal_initial_temp(self, X):
        plant = ThermalPlantModel(X)
        T1, T2 = plant.get_sensors()
        assert T1 == pytest.approx(X, abs=1e-9)
        assert T2 == pytest.approx(X, abs=1e-9)

    def test_ambient_starts_at_initial_temp(self):
        plant = ThermalPlantModel(25.0)
        assert plant.get_parameters()['Ta'] == pytest.approx(25.0)
        assert plant.params['Ta'] == pytest.approx(25.0 + KELVIN)

    def test_heaters_clamped(self):
        plant = ThermalPlantModel()
        plant.set_heaters(150.0, -5.0)
        assert plant.Q[0] == 100.0
        assert plant.Q[1] == 0.0

    def test_heaters_within_range_kept(self):
        plant = ThermalPlantModel()
        plant.set_heaters(37.5, 62.0)
        assert plant.Q.tolist() == [37.5, 62.0]

    def test_no_heating_at_ambient_is_equilibrium(self):
        plant = ThermalPlantModel(21.0)
        for _ in range(100):
            plant.step(1.0)
        T1, T2 = plant.get_sensors()
        assert T1 == pytest.approx(21.0, abs=1e-9)
        assert T2 == pytest.approx(21.0, abs=1e-9)


# ===================== Parameters =====================

class TestPlantParameters:
    def test_defaults(self):
        plant = ThermalPlantModel(21.0)
        assert plant.get_parameters() == pytest.approx(DEFAULT_PARAMS)

    def test_partial_update_leaves_others(self):
        plant = ThermalPlantModel()
        plant.set_parameters(U=20.0, eps=0.5)
        params = plant.get_parameters()
        assert params['U'] == 20.0
        assert params['eps'] == 0.5
        assert params['mass'] == DEFAULT_PARAMS['mass']
        assert params['alpha1'] == DEFAULT_PARAMS['alpha1']

    def test_ambient_given_in_celsius(self):
        plant = ThermalPlantModel(21.0)
        plant.set_parameters(Ta=30.0)
        assert plant.params['Ta'] == pytest.approx(30.0 + KELVIN)
        assert plant.get_parameters()['Ta'] == pytest.approx(30.0)

    def test_ambient_change_does_not_move_nodes(self):
        plant = ThermalPlantModel(21.0)
        plant.set_parameters(Ta=30.0)
        assert plant.get_sensors() == pytest.approx((21.0, 21.0))

    def test_unknown_parameter_rejected(self):
        plant = ThermalPlantModel()
        with pytest.raises(ValueError):
            plant.set_parameters(volume=1.0)

    def test_get_parameters_is_a_copy(self):
        plant = ThermalPlantModel()
        params = plant.get_parameters()
        params['U'] = 99.0
        assert plant.get_parameters()['U'] == DEFAULT_PARAMS['U']


# ===================== Euler step =====================

class TestStep:
    def test_first_step_by_hand(self):
        """From equilibrium only the heater term is non-zero: dT1 = alpha1*Q1/(m*Cp)."""
        plant = ThermalPlantModel(21.0)
        plant.set_heaters(100.0, 0.0)
        plant.step(1.0)
        T1, T2 = plant.get_sensors()
        # 0.01 W/% * 100 % / (0.004 kg * 500 J/kg-K) = 0.5 K/s
        assert T1 == pytest.approx(21.5, abs=1e-9)
        # Node 2 derivative uses the pre-step T1, which equals T2
        assert T2 == pytest.approx(21.0, abs=1e-9)

    def test_step_matches_rhs(self):
        plant = ThermalPlantModel(21.0)
        plant.set_heaters(80.0, 30.0)
        for _ in range(50):
            plant.step(1.0)
        T_before = plant.T.copy()
        expected = T_before + plant_rhs(0.0, T_before, plant.Q, plant.params) * 0.1
        plant.step(0.1)
        assert np.allclose(plant.T, expected, rtol=0, atol=1e-12)

    def test_monotonic_heating(self):
        plant = ThermalPlantModel(21.0)
        plant.set_heaters(100.0, 0.0)
        for _ in range(100):
            plant.step(1.0)
        T1, T2 = plant.get_sensors()
        assert T1 > 21.0
        assert T2 > 21.0  # coupling
        assert T1 > T2

    def test_cooling_after_heat_off(self):
        plant = ThermalPlantModel(21.0)
        plant.set_heaters(100.0, 0.0)
        for _ in range(100):
            plant.step(1.0)
        hot = plant.get_sensors()[0]

        plant.set_heaters(0.0, 0.0)
        T1_trace = []
        for _ in range(1000):
            plant.step(1.0)
            T1_trace.append(plant.get_sensors()[0])

        T1_trace = np.array(T1_trace)
        assert T1_trace[0] < hot
        assert np.all(np.diff(T1_trace) < 0), "T1 should fall while heaters are off"
        assert T1_trace.min() >= 21.0 - 1e-9, "T1 should not undershoot ambient"

    def test_heater_2_heats_node_2(self):
        plant = ThermalPlantModel(21.0)
        plant.set_heaters(0.0, 100.0)
        for _ in range(100):
            plant.step(1.0)
        T1, T2 = plant.get_sensors()
        assert T2 > T1 > 21.0


# ===================== Stability =====================

class TestStability:
    def test_default_board_stable_at_live_step(self):
        plant = ThermalPlantModel(21.0)
        assert plant.max_stable_step() > SIM_STEP

    def test_light_board_unstable_at_live_step(self):
        plant = ThermalPlantModel(21.0)
        plant.set_parameters(mass=1e-5, Cp=100.0)
        assert plant.max_stable_step() < SIM_STEP

    def test_lower_mass_lowers_limit(self):
        heavy = ThermalPlantModel(21.0)
        light = ThermalPlantModel(21.0)
        light.set_parameters(mass=0.001)
        assert light.max_stable_step() < heavy.max_stable_step()

    def test_jacobian_matches_finite_difference(self):
        plant = ThermalPlantModel(21.0)
        plant.T = plant.T + np.array([15.0, 5.0])
        J = plant.jacobian()
        h = 1e-4
        J_fd = np.empty((2, 2))
        for j in range(2):
            dT = np.zeros(2)
            dT[j] = h
            J_fd[:, j] = (plant_rhs(0, plant.T + dT, plant.Q, plant.params)
                          - plant_rhs(0, plant.T - dT, plant.Q, plant.params)) / (2 * h)
        assert np.allclose(J, J_fd, rtol=1e-5, atol=1e-10)

    def test_step_beyond_limit_diverges(self):
        plant = ThermalPlantModel(21.0)
        plant.set_parameters(mass=1e-5, Cp=100.0, Ta=20.0)
        dt = 5 * plant.max_stable_step()
        with np.errstate(all='ignore'):
            for _ in range(20):
                plant.step(dt)
        T1 = plant.get_sensors()[0]
        assert not np.isfinite(T1) or abs(T1 - 20.0) > 1e3

    def test_step_below_limit_settles(self):
        plant = ThermalPlantModel(21.0)
        plant.set_parameters(mass=1e-5, Cp=100.0, Ta=20.0)
        dt = 0.1 * plant.max_stable_step()
        for _ in range(1000):
            plant.step(dt)
        T1, T2 = plant.get_sensors()
        assert T1 == pytest.approx(20.0, abs=0.01)
        assert T2 == pytest.approx(20.0, abs=0.01)


# ===================== Offline solutions =====================

class TestOfflineSolutions:
    def test_euler_matches_reference(self):
        """At the live step size Euler stays close to a tight RK45 solution."""
        t, T1, T2 = simulate_euler(100.0, 0.0, 600.0, dt=SIM_STEP)
        _, T1_ref, T2_ref = simulate_reference(100.0, 0.0, 600.0, t_eval=t)
        assert np.max(np.abs(T1 - T1_ref)) < 0.05
        assert np.max(np.abs(T2 - T2_ref)) < 0.05

    def test_euler_output_shape(self):
        t, T1, T2 = simulate_euler(50.0, 0.0, 10.0, dt=1.0)
        assert len(t) == 11
        assert t[0] == 0.0
        assert T1[0] == pytest.approx(21.0)
        assert T1.shape == T2.shape == t.shape

    def test_steady_state_without_heating_is_ambient(self):
        T1_ss, T2_ss = steady_state_temperatures(0.0, 0.0, params={'Ta': 18.0})
        assert T1_ss == pytest.approx(18.0, abs=1e-6)
        assert T2_ss == pytest.approx(18.0, abs=1e-6)

    def test_long_run_reaches_steady_state(self):
        T1_ss, T2_ss = steady_state_temperatures(50.0, 20.0)
        t, T1, T2 = simulate_euler(50.0, 20.0, 3000.0, dt=1.0)
        assert T1[-1] == pytest.approx(T1_ss, abs=1e-3)
        assert T2[-1] == pytest.approx(T2_ss, abs=1e-3)
        assert T1_ss > T2_ss > 21.0

    def test_params_forwarded(self):
        _, T1_low, _ = simulate_euler(100.0, 0.0, 100.0, dt=1.0,
                                      params={'alpha1': 0.005})
        _, T1_high, _ = simulate_euler(100.0, 0.0, 100.0, dt=1.0,
                                       params={'alpha1': 0.02})
        assert T1_high[-1] > T1_low[-1]


# ===================== Degenerate parameters =====================

class TestDegenerateParameters:
    @pytest.mark.parametrize("params", [{'Cp': 0.0}, {'mass': 0.0}])
    def test_zero_heat_capacity_gives_non_finite_sensors(self, params):
        plant = ThermalPlantModel(21.0)
        plant.set_parameters(**params)
        plant.set_heaters(50.0, 0.0)
        plant.step(SIM_STEP)
        T1, T2 = plant.get_sensors()
        assert not np.isfinite(T1)
        assert not np.isfinite(T2)

    def test_zero_heat_capacity_stability_limit_is_nan(self):
        plant = ThermalPlantModel(21.0)
        plant.set_parameters(Cp=0.0)
        assert np.isnan(plant.max_stable_step())

    def test_non_finite_state_keeps_stepping(self):
        plant = ThermalPlantModel(21.0)
        plant.set_parameters(mass=0.0)
        plant.set_heaters(100.0, 100.0)
        for _ in range(10):
            plant.step(SIM_STEP)
        assert not np.all(np.isfinite(plant.T))
