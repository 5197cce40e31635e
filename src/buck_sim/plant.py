"""Averaged buck converter plant model.

This module implements the continuous-conduction-mode state equations of
an ideal buck converter driven by a duty-cycle command.
"""

import numpy as np
from dataclasses import dataclass
from typing import NamedTuple, Tuple

from buck_sim.config import ConverterParameters


@dataclass
class ConverterState:
    """Energy-storage state of the converter."""
    i_L: float = 0.0        # Inductor current (A)
    v_C: float = 0.0        # Capacitor voltage (V)

    def as_array(self) -> np.ndarray:
        return np.array([self.i_L, self.v_C])


class StateDerivative(NamedTuple):
    """Time derivative of ConverterState."""
    di_L: float             # A/s
    dv_C: float             # V/s


class BuckConverterModel:
    """Ideal averaged buck converter.

    State vector: x = [i_L, v_C]
    Input: duty cycle D applied to the input voltage V_in

        di_L/dt = (D * V_in - v_C) / L
        dv_C/dt = i_L / C - v_C / (R * C)

    Continuous conduction is assumed throughout; there is no
    discontinuous-mode branch, so results are only physical while
    i_L stays positive.
    """

    def __init__(self, converter: ConverterParameters):
        """Initialize buck converter model.

        Args:
            converter: Power stage parameters
        """
        self.converter = converter
        self._V_in = converter.V_in
        self._L = converter.L
        self._C = converter.C
        self._RC = converter.R * converter.C

    def derivatives(self, state: ConverterState, duty: float) -> StateDerivative:
        """Evaluate the state derivatives.

        Args:
            state: Present converter state
            duty: Applied duty cycle (0-1)

        Returns:
            derivative: (di_L/dt, dv_C/dt)
        """
        return self.derivatives_from(state.i_L, state.v_C, duty)

    def derivatives_from(self, i_L: float, v_C: float, duty: float) -> StateDerivative:
        di_L = (duty * self._V_in - v_C) / self._L
        dv_C = i_L / self._C - v_C / self._RC
        return StateDerivative(di_L, dv_C)

    def state_space_model(self) -> Tuple[np.ndarray, np.ndarray]:
        """Generate averaged state-space representation.

        State vector: x = [i_L, v_C]
        Input: u = D * V_in (averaged switch-node voltage)

        Returns:
            A: State matrix
            B: Input matrix
        """
        L, C, R = self.converter.L, self.converter.C, self.converter.R

        A = np.array([
            [0.0, -1/L],
            [1/C, -1/(R*C)]
        ])

        B = np.array([
            [1/L],
            [0.0]
        ])

        return A, B

    def open_loop_steady_state(self, duty: float) -> Tuple[float, float]:
        """Equilibrium for a constant duty cycle.

        Args:
            duty: Constant duty cycle (0-1)

        Returns:
            i_L: Inductor current (A)
            v_C: Capacitor voltage (V)
        """
        v_C = duty * self.converter.V_in
        return v_C / self.converter.R, v_C
