"""Fixed-step closed-loop simulation driver.

Each step evaluates the controller on the present state, the plant
derivatives for the resulting duty cycle, and advances the state with one
explicit Euler update. Recorded samples stream into a TrajectorySink.
"""

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from buck_sim.config import BuckSimulationConfig, FeedbackCoefficients, REFERENCE_CONFIG
from buck_sim.controller import D_MAX, D_MIN, LinearStateFeedbackController, clamp_duty
from buck_sim.plant import BuckConverterModel, ConverterState
from buck_sim.trajectory import MemoryTrajectorySink, TrajectorySample, TrajectorySink

logger = logging.getLogger(__name__)


class SimulationStatus(Enum):
    """Outcome of a run."""
    COMPLETED = "completed"
    DIVERGED = "diverged"


@dataclass
class SimulationResult:
    """Summary of one simulation run."""
    status: SimulationStatus
    steps_completed: int
    samples_written: int
    final_state: ConverterState
    final_duty: float
    duty_saturated_steps: int
    negative_current_steps: int
    elapsed_s: float
    coefficients: FeedbackCoefficients

    @property
    def completed(self) -> bool:
        return self.status is SimulationStatus.COMPLETED


class BuckSimulation:
    """Closed-loop buck converter simulation.

    Owns the converter state and the sink for the duration of a run.
    Termination is purely count-bounded: there is no convergence check and
    no step-size control. A non-finite state stops the run early with
    status DIVERGED.
    """

    def __init__(self, config: BuckSimulationConfig = REFERENCE_CONFIG):
        """Initialize simulation.

        Args:
            config: Complete run configuration
        """
        self.config = config
        self.controller = LinearStateFeedbackController(config.controller)
        self.plant = BuckConverterModel(config.converter)
        self.state = ConverterState(*config.initial_state)

        x = config.controller.coefficients
        logger.info(f"Feedback coefficients x1: {x.x1:.6f}, x2: {x.x2:.6f}, x3: {x.x3:.6f}")

    def reset(self) -> None:
        """Return the state to the configured initial condition."""
        self.state = ConverterState(*self.config.initial_state)

    def run(self, sink: TrajectorySink) -> SimulationResult:
        """Run the full fixed-step simulation from the configured initial state.

        Args:
            sink: Destination for recorded samples; opened on entry and
                finalized on exit, also when the run raises

        Returns:
            result: Run summary

        Raises:
            TrajectorySinkError: If the sink cannot be opened or written
        """
        conv = self.config.converter
        sim = self.config.simulation
        dt = sim.dt
        n_steps = sim.steps_total
        interval = sim.record_interval

        logger.info(
            f"Start buck simulation: Vin={conv.V_in:.1f}V, L={conv.L*1e6:.1f}uH, "
            f"C={conv.C*1e6:.1f}uF, R={conv.R:.1f}Ohm, Vref={self.config.gains.V_ref:.1f}V, "
            f"{n_steps} steps of {dt:g}s"
        )

        controller = self.controller.unclamped_duty_from
        plant = self.plant.derivatives_from
        self.reset()
        i_L, v_C = self.state.i_L, self.state.v_C
        D = 0.0
        saturated = 0
        negative_current = 0
        status = SimulationStatus.COMPLETED
        steps_done = 0

        t_start = time.perf_counter()
        with sink:
            for i in range(n_steps):
                # t = i * dt; the system is time-invariant
                D_raw = controller(i_L, v_C)
                D = clamp_duty(D_raw)
                if D != D_raw:
                    saturated += 1

                di_L, dv_C = plant(i_L, v_C, D)
                i_L += di_L * dt
                v_C += dv_C * dt
                steps_done = i + 1

                if not (math.isfinite(i_L) and math.isfinite(v_C)):
                    self.state = ConverterState(i_L, v_C)
                    logger.error(
                        f"Non-finite state at step {i} (t={steps_done * dt:.6g}s): "
                        f"i_L={i_L}, v_C={v_C}; halting"
                    )
                    status = SimulationStatus.DIVERGED
                    break

                if i_L < 0:
                    if negative_current == 0:
                        logger.warning(
                            f"Inductor current negative at t={steps_done * dt:.6g}s "
                            f"(i_L={i_L:.6f}A); continuous-conduction model no longer valid"
                        )
                    negative_current += 1

                if i % interval == 0:
                    sink.append(TrajectorySample(steps_done * dt, v_C, i_L, D))

            self.state = ConverterState(i_L, v_C)
            if status is SimulationStatus.COMPLETED and sim.emit_final_sample:
                self._emit_final_sample(sink, n_steps * dt, D)

        elapsed = time.perf_counter() - t_start
        result = SimulationResult(
            status=status,
            steps_completed=steps_done,
            samples_written=sink.samples_written,
            final_state=ConverterState(self.state.i_L, self.state.v_C),
            final_duty=D,
            duty_saturated_steps=saturated,
            negative_current_steps=negative_current,
            elapsed_s=elapsed,
            coefficients=self.config.controller.coefficients,
        )
        self._log_summary(result)
        return result

    def _emit_final_sample(self, sink: TrajectorySink, t_end: float, duty: float) -> None:
        """Append the final state once more, stamped with the end time."""
        sink.append(TrajectorySample(t_end, self.state.v_C, self.state.i_L, duty))

    def _log_summary(self, result: SimulationResult) -> None:
        V_ref = self.config.gains.V_ref
        if result.negative_current_steps:
            logger.warning(
                f"{result.negative_current_steps} steps with negative inductor current"
            )
        if result.duty_saturated_steps:
            logger.info(
                f"Duty cycle saturated at {D_MIN:g} or {D_MAX:g} on "
                f"{result.duty_saturated_steps}/{result.steps_completed} steps"
            )
        logger.info(
            f"Simulation {result.status.value} after {result.steps_completed} steps "
            f"in {result.elapsed_s:.2f}s: vC={result.final_state.v_C:.3f}V "
            f"(expected {V_ref:.3f}V), iL={result.final_state.i_L:.3f}A "
            f"(expected {V_ref / self.config.converter.R:.3f}A)"
        )


def simulate(config: BuckSimulationConfig = REFERENCE_CONFIG,
             sink: Optional[TrajectorySink] = None) -> Tuple[SimulationResult, TrajectorySink]:
    """Run one simulation.

    Args:
        config: Run configuration
        sink: Output sink (in-memory when omitted)

    Returns:
        result: Run summary
        sink: The sink holding the trajectory
    """
    if sink is None:
        sink = MemoryTrajectorySink()
    result = BuckSimulation(config).run(sink)
    return result, sink
