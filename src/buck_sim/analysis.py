"""Closed-loop analysis and trajectory post-processing.

While the duty command stays inside [0, 1] the closed loop is linear:

    x' = A_cl x + b_cl,   x = [i_L, v_C]

which gives the expected equilibrium and poles of the regulated converter.
"""

from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import linalg

from buck_sim.config import BuckSimulationConfig


def closed_loop_matrices(config: BuckSimulationConfig) -> Tuple[np.ndarray, np.ndarray]:
    """State matrix and constant input of the unsaturated closed loop.

    Args:
        config: Run configuration

    Returns:
        A_cl: Closed-loop state matrix (2x2)
        b_cl: Constant forcing term (2,)
    """
    L, C, R = config.converter.L, config.converter.C, config.converter.R
    x = config.controller.coefficients
    V_ref = config.gains.V_ref

    # D * V_in = x1 * v_C - x2 * i_L + x3 * V_ref
    A_cl = np.array([
        [-x.x2/L, (x.x1 - 1)/L],
        [1/C, -1/(R*C)]
    ])
    b_cl = np.array([x.x3 * V_ref / L, 0.0])
    return A_cl, b_cl


def closed_loop_equilibrium(config: BuckSimulationConfig) -> Tuple[float, float]:
    """Equilibrium (i_L, v_C) of the unsaturated closed loop."""
    A_cl, b_cl = closed_loop_matrices(config)
    x_eq = np.linalg.solve(A_cl, -b_cl)
    return float(x_eq[0]), float(x_eq[1])


def closed_loop_poles(config: BuckSimulationConfig) -> np.ndarray:
    """Eigenvalues of the unsaturated closed loop (1/s)."""
    A_cl, _ = closed_loop_matrices(config)
    return linalg.eigvals(A_cl)


def euler_stable(config: BuckSimulationConfig) -> bool:
    """Whether explicit Euler at the configured step is stable for the
    linear loop, i.e. |1 + lambda*dt| < 1 for every pole.

    High-gain designs fail this and are held bounded only by the duty
    clamp, which shows up as chattering around the equilibrium.
    """
    dt = config.simulation.dt
    return bool(np.all(np.abs(1 + closed_loop_poles(config) * dt) < 1))


def steady_state_metrics(voltages: np.ndarray, V_ref: float,
                         tail_fraction: float = 0.1) -> Dict[str, float]:
    """Summarize the settled tail of a voltage trajectory.

    Args:
        voltages: Capacitor voltage samples (V)
        V_ref: Reference voltage (V)
        tail_fraction: Fraction of samples at the end treated as settled

    Returns:
        metrics: mean, ripple (peak-to-peak), error and final value
    """
    voltages = np.asarray(voltages, dtype=float)
    if voltages.size == 0:
        raise ValueError("Cannot compute metrics of an empty trajectory")
    if not (0 < tail_fraction <= 1):
        raise ValueError(f"tail_fraction must be in (0, 1], got {tail_fraction}")

    n_tail = max(1, int(round(voltages.size * tail_fraction)))
    tail = voltages[-n_tail:]
    mean = float(np.mean(tail))
    return {
        'mean': mean,
        'ripple_pp': float(np.ptp(tail)),
        'error': mean - V_ref,
        'final': float(voltages[-1]),
    }


def plot_trajectory(frame: pd.DataFrame, V_ref: float, path: Optional[str] = None):
    """Plot capacitor voltage against time.

    Args:
        frame: Trajectory with ``time_s`` and ``v_C`` columns
        V_ref: Reference voltage drawn as a dashed line (V)
        path: Save the figure here when given

    Returns:
        fig: Matplotlib figure
    """
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=(8, 4))
    ax.plot(frame['time_s'] * 1e3, frame['v_C'], 'b-', linewidth=0.8, label='v_C')
    ax.axhline(V_ref, color='k', linestyle='--', linewidth=0.8, label='V_ref')
    ax.set_xlabel('Time (ms)')
    ax.set_ylabel('Output voltage (V)')
    ax.set_title('Closed-loop buck converter output')
    ax.grid(True, alpha=0.3)
    ax.legend()
    fig.tight_layout()

    if path is not None:
        fig.savefig(path, dpi=150)
    return fig
