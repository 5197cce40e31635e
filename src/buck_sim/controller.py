"""Static linear state-feedback duty-cycle controller.

The control law maps the present converter state and a fixed reference
voltage to a duty-cycle command:

    D = (v_C / V_in) * x1 - (i_L / V_in) * x2 + (V_ref / V_in) * x3

The coefficients x1, x2, x3 are closed-form functions of the gains
(a, b, m, K) and the power stage (R, L, C), derived alongside the rest of
the configuration in ``buck_sim.config``. The command is always clamped
to the physical actuation range [0, 1].
"""

from buck_sim.config import ControllerParameters
from buck_sim.plant import ConverterState

D_MIN = 0.0
D_MAX = 1.0


class LinearStateFeedbackController:
    """Memoryless duty-cycle controller.

    Holds no history: the command depends only on the state passed in and
    the fixed coefficients. The reference term is constant and computed once.
    """

    def __init__(self, params: ControllerParameters):
        """Initialize controller.

        Args:
            params: Controller parameters with derived coefficients
        """
        self.params = params
        self._V_in = params.V_in
        x = params.coefficients
        self._x1, self._x2 = x.x1, x.x2
        self._ref_term = (params.V_ref / params.V_in) * x.x3

    def unclamped_duty(self, state: ConverterState) -> float:
        """Raw control law output, before the actuation limit."""
        return self.unclamped_duty_from(state.i_L, state.v_C)

    def unclamped_duty_from(self, i_L: float, v_C: float) -> float:
        V_in = self._V_in
        return (v_C / V_in) * self._x1 - (i_L / V_in) * self._x2 + self._ref_term

    def duty_cycle(self, state: ConverterState) -> float:
        """Duty-cycle command clamped to [0, 1].

        Args:
            state: Present converter state

        Returns:
            D: Duty cycle in [D_MIN, D_MAX]
        """
        return self.duty_cycle_from(state.i_L, state.v_C)

    def duty_cycle_from(self, i_L: float, v_C: float) -> float:
        return clamp_duty(self.unclamped_duty_from(i_L, v_C))


def clamp_duty(D: float) -> float:
    """Saturate a duty command to the actuation range.

    NaN maps to D_MIN so the plant never sees a non-finite input.
    """
    if D > D_MAX:
        return D_MAX
    if D >= D_MIN:
        return D
    return D_MIN
