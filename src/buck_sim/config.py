"""Simulation configuration for the closed-loop buck converter.

All physical, control and integration parameters live in frozen dataclasses
validated at construction. ``BuckSimulationConfig`` bundles them into the one
immutable object handed to the simulation driver and derives the feedback
coefficients exactly once.
"""

import math
from dataclasses import dataclass, field
from typing import Tuple


class ConfigurationError(ValueError):
    """Raised when a parameter set cannot produce a valid simulation."""


def _require_positive(owner: str, name: str, value: float) -> None:
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(
            f"{owner}.{name} must be finite and positive, got {value!r}"
        )


def _require_finite(owner: str, name: str, value: float) -> None:
    if not math.isfinite(value):
        raise ConfigurationError(f"{owner}.{name} must be finite, got {value!r}")


@dataclass(frozen=True)
class ConverterParameters:
    """Buck converter power stage.

    The averaged model assumes continuous conduction, i.e. the inductor
    current stays positive over the run.
    """
    name: str = "50V/20V reference buck"
    V_in: float = 50.0      # Input voltage (V)
    L: float = 15e-3        # Inductance (H)
    C: float = 1000e-6      # Capacitance (F)
    R: float = 10.0         # Load resistance (Ω)

    def __post_init__(self):
        for attr in ("V_in", "L", "C", "R"):
            _require_positive("ConverterParameters", attr, getattr(self, attr))


@dataclass(frozen=True)
class ControllerGains:
    """Gains of the static linear feedback law."""
    a: float = 8.2575
    b: float = 79.5011
    m: float = 4918.0
    K: float = 49596.0
    V_ref: float = 20.0     # Reference output voltage (V)

    def __post_init__(self):
        for attr in ("a", "b", "m", "K", "V_ref"):
            _require_finite("ControllerGains", attr, getattr(self, attr))
        if self.V_ref < 0:
            raise ConfigurationError(
                f"ControllerGains.V_ref must be non-negative, got {self.V_ref!r}"
            )


@dataclass(frozen=True)
class SimulationConfig:
    """Fixed-step integration settings.

    Attributes:
        t_sim: Total simulated time (s)
        dt: Euler time step (s)
        record_interval: Record every N-th step (1 = every step)
        emit_final_sample: Append the final state once more after the loop
    """
    t_sim: float = 0.5
    dt: float = 1e-6
    record_interval: int = 1
    emit_final_sample: bool = True

    def __post_init__(self):
        _require_positive("SimulationConfig", "t_sim", self.t_sim)
        _require_positive("SimulationConfig", "dt", self.dt)
        if self.dt > self.t_sim:
            raise ConfigurationError(
                f"SimulationConfig.dt ({self.dt}) exceeds t_sim ({self.t_sim})"
            )
        if (isinstance(self.record_interval, bool)
                or not isinstance(self.record_interval, int)
                or self.record_interval < 1):
            raise ConfigurationError(
                "SimulationConfig.record_interval must be an integer >= 1, "
                f"got {self.record_interval!r}"
            )

    @property
    def steps_total(self) -> int:
        """Number of Euler steps, floor(t_sim / dt).

        A ratio within 1e-9 (relative) of an integer snaps to it, so decimal
        settings such as 0.5 s / 1 µs give exactly 500000 steps.
        """
        ratio = self.t_sim / self.dt
        nearest = round(ratio)
        if math.isclose(ratio, nearest, rel_tol=1e-9):
            return int(nearest)
        return int(math.floor(ratio))

    @property
    def samples_expected(self) -> int:
        """Trajectory length for a run that completes."""
        recorded = -(-self.steps_total // self.record_interval)
        return recorded + (1 if self.emit_final_sample else 0)


@dataclass(frozen=True)
class FeedbackCoefficients:
    """Derived feedback coefficients."""
    x1: float   # Output-voltage coefficient
    x2: float   # Inductor-current coefficient
    x3: float   # Reference coefficient


def compute_feedback_coefficients(gains: ControllerGains,
                                  converter: ConverterParameters) -> FeedbackCoefficients:
    """Compute x1, x2, x3 from the gains and the power stage.

    Args:
        gains: Controller gains (a, b, m, K)
        converter: Power stage (R, L, C)

    Returns:
        coefficients: Feedback coefficients

    Raises:
        ConfigurationError: If a*R*C is zero or any result is not finite
    """
    a, b, m, K = gains.a, gains.b, gains.m, gains.K
    R, L, C = converter.R, converter.L, converter.C

    den = a * R * C
    if den == 0 or not math.isfinite(den):
        raise ConfigurationError(
            f"Feedback denominator a*R*C must be nonzero and finite, got {den!r} "
            f"(a={a}, R={R}, C={C})"
        )

    x1 = (a * R * C + b * L + a * L * K + m * R * L * C * (-K - 1)) / den
    x2 = (b * L * R + a * L * K * R + m * R * L * C) / den
    x3 = (m * R * L * C * (K + 1)) / den

    for name, value in (("x1", x1), ("x2", x2), ("x3", x3)):
        if not math.isfinite(value):
            raise ConfigurationError(f"Feedback coefficient {name} is not finite: {value!r}")

    return FeedbackCoefficients(x1=x1, x2=x2, x3=x3)


@dataclass(frozen=True)
class ControllerParameters:
    """Gains together with the coefficients derived from them."""
    gains: ControllerGains
    coefficients: FeedbackCoefficients
    V_in: float

    @classmethod
    def from_gains(cls, gains: ControllerGains,
                   converter: ConverterParameters) -> "ControllerParameters":
        return cls(
            gains=gains,
            coefficients=compute_feedback_coefficients(gains, converter),
            V_in=converter.V_in,
        )

    @property
    def V_ref(self) -> float:
        return self.gains.V_ref


@dataclass(frozen=True)
class BuckSimulationConfig:
    """Complete, immutable configuration of one simulation run.

    Derives ``controller`` (gains plus feedback coefficients) on
    construction, so an unusable parameter set fails here rather than
    producing inf/NaN coefficients mid-run.
    """
    converter: ConverterParameters = field(default_factory=ConverterParameters)
    gains: ControllerGains = field(default_factory=ControllerGains)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    initial_state: Tuple[float, float] = (0.0, 0.0)   # (i_L, v_C)
    controller: ControllerParameters = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if len(self.initial_state) != 2:
            raise ConfigurationError(
                f"initial_state must be (i_L, v_C), got {self.initial_state!r}"
            )
        i_L0, v_C0 = self.initial_state
        _require_finite("initial_state", "i_L", i_L0)
        _require_finite("initial_state", "v_C", v_C0)
        object.__setattr__(
            self, "initial_state", (float(i_L0), float(v_C0))
        )
        object.__setattr__(
            self,
            "controller",
            ControllerParameters.from_gains(self.gains, self.converter),
        )


# Reference operating point: 50 V in, 20 V regulated out, 10 Ω load

REFERENCE_CONVERTER = ConverterParameters()

REFERENCE_GAINS = ControllerGains()

REFERENCE_SIMULATION = SimulationConfig()

REFERENCE_CONFIG = BuckSimulationConfig(
    converter=REFERENCE_CONVERTER,
    gains=REFERENCE_GAINS,
    simulation=REFERENCE_SIMULATION,
)
