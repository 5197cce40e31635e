"""
Integration tests for the closed-loop buck converter simulation

Runs the controller, plant and Euler driver together and checks the
trajectory properties of the complete loop.
"""

import dataclasses
import shutil
import tempfile
import unittest
from pathlib import Path

import numpy as np

from buck_sim.config import (
    BuckSimulationConfig,
    ConverterParameters,
    SimulationConfig,
    REFERENCE_CONFIG,
)
from buck_sim.simulation import BuckSimulation, SimulationStatus, simulate
from buck_sim.trajectory import (
    CsvTrajectorySink,
    MemoryTrajectorySink,
    TrajectorySinkError,
    load_trajectory,
)

SHORT = SimulationConfig(t_sim=2e-3, dt=1e-6)


def _config(**simulation_overrides) -> BuckSimulationConfig:
    return BuckSimulationConfig(simulation=dataclasses.replace(SHORT, **simulation_overrides))


class _FailingSink(MemoryTrajectorySink):
    """Memory sink that raises after a number of samples."""

    def __init__(self, fail_after: int):
        super().__init__()
        self.fail_after = fail_after

    def append(self, sample):
        if self.samples_written >= self.fail_after:
            raise TrajectorySinkError("disk full")
        super().append(sample)


class TestSteadyStateRegulation(unittest.TestCase):
    """Test regulation with the reference configuration"""

    @classmethod
    def setUpClass(cls):
        # Full 0.5 s reference run; sparse recording keeps memory small
        config = dataclasses.replace(
            REFERENCE_CONFIG,
            simulation=dataclasses.replace(REFERENCE_CONFIG.simulation, record_interval=100),
        )
        cls.result, cls.sink = simulate(config)

    def test_completes_all_steps(self):
        self.assertEqual(self.result.status, SimulationStatus.COMPLETED)
        self.assertEqual(self.result.steps_completed, 500000)
        self.assertEqual(self.result.samples_written, 5000 + 1)

    def test_output_voltage_converges(self):
        """Final output voltage within 0.5 V of the 20 V reference"""
        self.assertAlmostEqual(self.result.final_state.v_C, 20.0, delta=0.5)
        self.assertAlmostEqual(self.sink.voltages()[-1], 20.0, delta=0.5)

    def test_inductor_current_converges(self):
        """Final inductor current approaches V_ref / R = 2 A"""
        self.assertAlmostEqual(self.result.final_state.i_L, 2.0, delta=0.1)

    def test_settled_tail(self):
        """The last 10% of the run stays close to the reference"""
        tail = self.sink.voltages()[-500:]
        self.assertLess(np.max(np.abs(tail - 20.0)), 0.5)

    def test_continuous_conduction_holds(self):
        self.assertEqual(self.result.negative_current_steps, 0)

    def test_duty_clamp_active(self):
        """High-gain law saturates during start-up"""
        self.assertGreater(self.result.duty_saturated_steps, 0)
        duties = self.sink.duties()
        self.assertTrue(np.all((duties >= 0.0) & (duties <= 1.0)))


class TestTrajectoryProperties(unittest.TestCase):
    """Test determinism, recording cadence and the trailing sample"""

    def test_deterministic(self):
        """Two runs from the same configuration are bit-identical"""
        config = _config()
        _, first = simulate(config)
        _, second = simulate(config)
        np.testing.assert_array_equal(first.voltages(), second.voltages())
        np.testing.assert_array_equal(first.currents(), second.currents())

    def test_rerun_same_instance_restarts(self):
        """A second run on one simulation starts again from the initial state"""
        simulation = BuckSimulation(_config())
        first, second = MemoryTrajectorySink(), MemoryTrajectorySink()
        result_first = simulation.run(first)
        result_second = simulation.run(second)

        self.assertEqual(second.samples[0], first.samples[0])
        np.testing.assert_array_equal(first.voltages(), second.voltages())
        np.testing.assert_array_equal(first.currents(), second.currents())
        self.assertEqual(result_first.final_state, result_second.final_state)

    def test_length_with_every_step_recorded(self):
        result, sink = simulate(_config())
        self.assertEqual(len(sink), 2000 + 1)
        self.assertEqual(result.samples_written, SHORT.samples_expected)

    def test_trailing_sample_duplicates_last(self):
        """The final sample repeats the last in-loop sample at t_sim"""
        _, sink = simulate(_config())
        self.assertEqual(sink.samples[-1].v_C, sink.samples[-2].v_C)
        self.assertAlmostEqual(sink.samples[-1].time, 2e-3)

    def test_without_final_sample(self):
        result, sink = simulate(_config(emit_final_sample=False))
        self.assertEqual(len(sink), 2000)
        self.assertEqual(result.samples_written, 2000)

    def test_record_interval_subsamples(self):
        """Interval N keeps every N-th sample of the same evolution"""
        result_1, every = simulate(_config())
        result_7, sparse = simulate(_config(record_interval=7))

        self.assertEqual(len(sparse), 286 + 1)
        np.testing.assert_array_equal(every.voltages()[:-1][::7], sparse.voltages()[:-1])
        self.assertEqual(result_1.final_state, result_7.final_state)
        self.assertEqual(sparse.voltages()[-1], every.voltages()[-1])

    def test_sample_times(self):
        """Samples are stamped with the time after their update"""
        _, sink = simulate(_config(record_interval=500))
        np.testing.assert_allclose(sink.times(), [1e-6, 501e-6, 1001e-6, 1501e-6, 2e-3])


class TestEdgeCases(unittest.TestCase):
    """Test fixed point, finiteness and divergence handling"""

    def test_trajectories_finite(self):
        """Positive parameters with the clamp active never leave the finite range"""
        for conv in (
            ConverterParameters(),
            ConverterParameters(V_in=40.0, R=5.0),
            ConverterParameters(L=1e-3, C=470e-6, R=20.0),
        ):
            with self.subTest(converter=conv):
                config = BuckSimulationConfig(converter=conv, simulation=SHORT)
                result, sink = simulate(config)
                self.assertEqual(result.status, SimulationStatus.COMPLETED)
                self.assertTrue(np.all(np.isfinite(sink.voltages())))
                self.assertTrue(np.all(np.isfinite(sink.currents())))

    def test_divergence_detected(self):
        """Euler blow-up is reported and halts the run"""
        config = BuckSimulationConfig(
            converter=ConverterParameters(V_in=50.0, L=1e-6, C=1e-6, R=1.0),
            simulation=SimulationConfig(t_sim=1.0, dt=1e-3),
        )
        with self.assertLogs("buck_sim.simulation", level="ERROR"):
            result, sink = simulate(config)

        self.assertEqual(result.status, SimulationStatus.DIVERGED)
        self.assertFalse(result.completed)
        self.assertLess(result.steps_completed, config.simulation.steps_total)
        self.assertEqual(result.samples_written, result.steps_completed - 1)
        self.assertTrue(np.all(np.isfinite(sink.voltages())))
        self.assertTrue(sink.finalized)

    def test_non_zero_initial_state(self):
        config = BuckSimulationConfig(initial_state=(2.0, 20.0), simulation=SHORT)
        result, _ = simulate(config)
        self.assertAlmostEqual(result.final_state.v_C, 20.0, delta=0.5)

    def test_negative_inductor_current_reported(self):
        """Discharging an overcharged output drives i_L below zero"""
        # v_C = 40 V with the duty pinned at 0 ramps i_L down from the first step
        config = BuckSimulationConfig(
            initial_state=(0.0, 40.0),
            simulation=SimulationConfig(t_sim=1e-4, dt=1e-6),
        )
        with self.assertLogs("buck_sim.simulation", level="WARNING") as captured:
            result, sink = simulate(config)

        self.assertEqual(result.status, SimulationStatus.COMPLETED)
        self.assertGreater(result.negative_current_steps, 0)
        self.assertLess(sink.currents()[0], 0.0)
        first_occurrence = [
            line for line in captured.output if "continuous-conduction" in line
        ]
        self.assertEqual(len(first_occurrence), 1)
        self.assertTrue(
            any("steps with negative inductor current" in line for line in captured.output)
        )


class TestFileOutput(unittest.TestCase):
    """Test the simulation writing through the CSV sink"""

    def setUp(self):
        self.tmpdir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_bare_file_format(self):
        """One %.6f value per line with the trailing duplicate"""
        path = self.tmpdir / "buck.csv"
        result = BuckSimulation(_config()).run(CsvTrajectorySink(path))

        lines = path.read_text().splitlines()
        self.assertEqual(len(lines), SHORT.samples_expected)
        self.assertEqual(result.samples_written, len(lines))
        self.assertEqual(lines[-1], lines[-2])
        for line in lines[:5] + lines[-5:]:
            self.assertRegex(line, r"^-?\d+\.\d{6}$")

    def test_file_matches_memory_run(self):
        path = self.tmpdir / "buck.csv"
        BuckSimulation(_config()).run(CsvTrajectorySink(path))
        _, sink = simulate(_config())

        written = load_trajectory(path)["v_C"].to_numpy()
        np.testing.assert_allclose(written, sink.voltages(), atol=5e-7)

    def test_open_failure_aborts_before_stepping(self):
        simulation = BuckSimulation(_config())
        with self.assertRaises(TrajectorySinkError):
            simulation.run(CsvTrajectorySink(self.tmpdir / "no_such_dir" / "buck.csv"))
        self.assertEqual(simulation.state.v_C, 0.0)
        self.assertEqual(simulation.state.i_L, 0.0)

    def test_sink_released_on_write_failure(self):
        sink = _FailingSink(fail_after=10)
        with self.assertRaises(TrajectorySinkError):
            BuckSimulation(_config()).run(sink)
        self.assertTrue(sink.finalized)
        self.assertEqual(len(sink), 10)


if __name__ == "__main__":
    unittest.main()


def test_zero_reference_stays_at_rest(zero_reference_config):
    """V_ref = 0 from rest is a fixed point with zero duty every step"""
    result, sink = simulate(zero_reference_config)

    assert np.all(sink.voltages() == 0.0)
    assert np.all(sink.currents() == 0.0)
    assert np.all(sink.duties() == 0.0)
    assert result.duty_saturated_steps == 0


def test_short_run_rises_toward_reference(short_config):
    """Output charges from rest over the first 2 ms"""
    result, sink = simulate(short_config)

    assert result.completed
    assert sink.voltages()[0] == 0.0
    assert 0.0 < result.final_state.v_C <= 25.0
