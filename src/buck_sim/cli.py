"""Reference run of the closed-loop buck converter simulation.

Runs the reference configuration and streams the output voltage to
``buck_controlled_simulation_results.csv`` in the working directory.
"""

import logging
import sys
from pathlib import Path
from typing import Union

from buck_sim.config import BuckSimulationConfig, REFERENCE_CONFIG
from buck_sim.simulation import BuckSimulation
from buck_sim.trajectory import CsvTrajectorySink, DEFAULT_OUTPUT_FILE, TrajectorySinkError

EXIT_OK = 0
EXIT_SINK_ERROR = 1
EXIT_DIVERGED = 2


def print_banner(config: BuckSimulationConfig) -> None:
    conv = config.converter
    x = config.controller.coefficients
    print(f"\n{'='*60}")
    print("Buck Converter Closed-Loop Simulation")
    print(f"{'='*60}")
    print(f"Coefficients: x1={x.x1:.6f}, x2={x.x2:.6f}, x3={x.x3:.6f}")
    print(f"Parameters: Vin={conv.V_in:.1f}V, L={conv.L*1e6:.1f}uH, "
          f"C={conv.C*1e6:.1f}uF, R={conv.R:.1f}Ohm, Vref={config.gains.V_ref:.1f}V")
    print(f"Integration: T={config.simulation.t_sim:g}s, dt={config.simulation.dt:g}s, "
          f"{config.simulation.steps_total} steps")
    print(f"{'='*60}\n")


def main(output_path: Union[str, Path] = DEFAULT_OUTPUT_FILE,
         config: BuckSimulationConfig = REFERENCE_CONFIG) -> int:
    """Run the simulation and write the trajectory file.

    Returns:
        Process exit status
    """
    logging.basicConfig(level=logging.INFO)

    simulation = BuckSimulation(config)
    print_banner(config)
    try:
        result = simulation.run(CsvTrajectorySink(output_path))
    except TrajectorySinkError as exc:
        print(f"Cannot write results: {exc}", file=sys.stderr)
        return EXIT_SINK_ERROR

    if result.completed:
        print(f"Simulation completed! Results saved in {output_path}")
    else:
        print(f"Simulation diverged after {result.steps_completed} steps; "
              f"partial results in {output_path}")

    print("\nExpected Steady-State Value:")
    print(f"  Output voltage (Vout): {config.gains.V_ref:.3f} V")
    print(f"  vC: {result.final_state.v_C:.3f} V")
    print(f"  iL: {result.final_state.i_L:.3f} A")

    return EXIT_OK if result.completed else EXIT_DIVERGED


if __name__ == "__main__":
    sys.exit(main())
