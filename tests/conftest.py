"""
Pytest configuration and shared fixtures for buck_sim tests.
"""

import sys
import os
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from buck_sim.config import (  # noqa: E402
    BuckSimulationConfig,
    ControllerGains,
    SimulationConfig,
)


@pytest.fixture
def short_config():
    """Reference plant and gains over 2 ms (2000 steps)"""
    return BuckSimulationConfig(simulation=SimulationConfig(t_sim=2e-3, dt=1e-6))


@pytest.fixture
def zero_reference_config():
    """Reference plant regulated to 0 V from rest"""
    return BuckSimulationConfig(
        gains=ControllerGains(V_ref=0.0),
        simulation=SimulationConfig(t_sim=1e-3, dt=1e-6),
    )
