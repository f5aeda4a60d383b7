"""Shared fixtures: small seeded regions and worlds."""

import numpy as np
import pytest

from outbreak_sim.config import RegionDefinition, SimulationConfig, SimulationSection
from outbreak_sim.disease import Disease
from outbreak_sim.region import Region


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture
def disease():
    return Disease()


@pytest.fixture
def small_region(rng):
    return Region("Town", 1000, 0.5, rng=rng)


@pytest.fixture
def small_config():
    """Two small regions, 5 seeded infections each."""
    return SimulationConfig(
        simulation=SimulationSection(seed=7, n_days=20, initial_infected=5),
        regions=[
            RegionDefinition("Alpha", 2000, 0.6),
            RegionDefinition("Beta", 800, 0.3),
        ],
    )
