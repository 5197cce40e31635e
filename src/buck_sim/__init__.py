"""Closed-loop buck converter simulation.

Fixed-step explicit Euler simulation of an averaged DC-DC buck converter
regulated by a static linear state-feedback duty-cycle controller.
"""

__version__ = "0.1.0"

from buck_sim.config import (
    BuckSimulationConfig,
    ConfigurationError,
    ControllerGains,
    ControllerParameters,
    ConverterParameters,
    FeedbackCoefficients,
    SimulationConfig,
    REFERENCE_CONFIG,
    compute_feedback_coefficients,
)
from buck_sim.controller import LinearStateFeedbackController
from buck_sim.plant import BuckConverterModel, ConverterState, StateDerivative
from buck_sim.simulation import BuckSimulation, SimulationResult, SimulationStatus, simulate
from buck_sim.trajectory import (
    CsvTrajectorySink,
    MemoryTrajectorySink,
    TrajectorySample,
    TrajectorySink,
    TrajectorySinkError,
    load_trajectory,
)

__all__ = [
    "BuckSimulationConfig",
    "ConfigurationError",
    "ControllerGains",
    "ConverterParameters",
    "SimulationConfig",
    "REFERENCE_CONFIG",
    "ControllerParameters",
    "FeedbackCoefficients",
    "LinearStateFeedbackController",
    "compute_feedback_coefficients",
    "BuckConverterModel",
    "ConverterState",
    "StateDerivative",
    "BuckSimulation",
    "SimulationResult",
    "SimulationStatus",
    "simulate",
    "CsvTrajectorySink",
    "MemoryTrajectorySink",
    "TrajectorySample",
    "TrajectorySink",
    "TrajectorySinkError",
    "load_trajectory",
]
