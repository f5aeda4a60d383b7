"""Tests for outbreak_sim.types: health states, statistics maps, agent array."""

import numpy as np
import pytest

from outbreak_sim.types import (
    AGENT_DTYPE,
    CAN_BE_INFECTED,
    CAN_INFECT,
    N_STATES,
    STATE_NAMES,
    HealthState,
    allocate_agents,
    counts_to_statistics,
    empty_statistics,
    state_from_label,
)


class TestHealthState:
    def test_values(self):
        assert HealthState.HEALTHY == 0
        assert HealthState.INFECTED == 1
        assert HealthState.RECOVERED == 2
        assert HealthState.DECEASED == 3
        assert N_STATES == 4

    def test_labels(self):
        assert [s.label for s in HealthState] == list(STATE_NAMES)
        assert HealthState.INFECTED.label == "Infected"

    def test_only_infected_can_infect(self):
        assert [s.can_infect for s in HealthState] == [False, True, False, False]

    def test_healthy_and_recovered_can_be_infected(self):
        assert [s.can_be_infected for s in HealthState] == [True, False, True, False]

    def test_predicate_arrays_match_properties(self):
        for s in HealthState:
            assert bool(CAN_INFECT[s]) == s.can_infect
            assert bool(CAN_BE_INFECTED[s]) == s.can_be_infected

    def test_state_from_label(self):
        for s in HealthState:
            assert state_from_label(s.label) is s

    def test_state_from_unknown_label(self):
        with pytest.raises(ValueError, match="Unknown health state"):
            state_from_label("Zombie")


class TestStatistics:
    def test_empty_has_all_keys(self):
        assert empty_statistics() == {
            "Healthy": 0, "Infected": 0, "Recovered": 0, "Deceased": 0,
        }

    def test_counts_to_statistics(self):
        stats = counts_to_statistics(np.array([5, 3, 2, 1]))
        assert stats == {"Healthy": 5, "Infected": 3, "Recovered": 2, "Deceased": 1}
        assert all(isinstance(v, int) for v in stats.values())


class TestAllocateAgents:
    def test_shape_and_dtype(self):
        agents = allocate_agents(10)
        assert agents.shape == (10,)
        assert agents.dtype == AGENT_DTYPE

    def test_all_healthy(self):
        agents = allocate_agents(10)
        assert np.all(agents['state'] == HealthState.HEALTHY)
        assert np.all(agents['days_in_state'] == 0)

    def test_consecutive_ids(self):
        agents = allocate_agents(4, first_id=7)
        np.testing.assert_array_equal(agents['id'], [7, 8, 9, 10])

    def test_zero(self):
        assert allocate_agents(0).shape == (0,)
