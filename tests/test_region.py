"""Tests for outbreak_sim.region: populations, policies, the daily step,
individual handles and region persistence."""

import numpy as np
import pytest

from outbreak_sim.config import RegionDefinition
from outbreak_sim.disease import Disease
from outbreak_sim.policies import (
    LOCKDOWN,
    MASK_MANDATE,
    SOCIAL_DISTANCING,
    PolicyKind,
    custom_policy,
)
from outbreak_sim.region import (
    Region,
    RegionDayReport,
    load_region_definitions_yaml,
    save_region_definitions_yaml,
)
from outbreak_sim.types import HealthState


def _total(stats):
    return sum(stats.values())


# ═══════════════════════════════════════════════════════════════════════
# POPULATION
# ═══════════════════════════════════════════════════════════════════════

class TestPopulation:
    def test_starts_healthy(self, small_region):
        assert small_region.statistics() == {
            "Healthy": 1000, "Infected": 0, "Recovered": 0, "Deceased": 0,
        }
        assert small_region.disease is None

    def test_ids_unique(self, small_region):
        ids = small_region.agents['id']
        assert len(np.unique(ids)) == len(ids)

    def test_add_individuals(self, small_region):
        new_ids = small_region.add_individuals(5)
        assert new_ids == [1000, 1001, 1002, 1003, 1004]
        assert small_region.population_size == 1005
        assert small_region.get_individual(1004).state is HealthState.HEALTHY

    def test_remove_individuals_ids_not_reused(self, small_region):
        assert small_region.remove_individuals([0, 1, 999999]) == 2
        assert small_region.population_size == 998
        with pytest.raises(KeyError):
            small_region.get_individual(0)
        assert small_region.add_individuals(1) == [1000]

    def test_individuals_list(self):
        region = Region("Hamlet", 3, 0.1)
        assert [ind.id for ind in region.individuals()] == [0, 1, 2]

    def test_definition_round_trip(self, small_region):
        defn = small_region.to_definition()
        assert defn == RegionDefinition("Town", 1000, 0.5)
        rebuilt = Region.from_definition(defn)
        assert rebuilt.population_size == 1000
        assert rebuilt.density == 0.5
        assert rebuilt.statistics()["Healthy"] == 1000


# ═══════════════════════════════════════════════════════════════════════
# DISEASE INTRODUCTION
# ═══════════════════════════════════════════════════════════════════════

class TestIntroduceDisease:
    def test_seeds_exact_count(self, small_region, disease):
        assert small_region.introduce_disease(disease, 10) == 10
        assert small_region.statistics()["Infected"] == 10
        assert small_region.disease is disease

    def test_capped_at_eligible(self, disease):
        region = Region("Hamlet", 5, 0.5, rng=np.random.default_rng(0))
        assert region.introduce_disease(disease, 50) == 5
        assert region.statistics()["Infected"] == 5

    def test_zero_seeds_nothing(self, small_region, disease):
        assert small_region.introduce_disease(disease, 0) == 0
        assert small_region.disease is disease
        assert small_region.infected_count == 0

    def test_reintroduction_adds_more(self, small_region, disease):
        small_region.introduce_disease(disease, 10)
        assert small_region.set_initial_infected(15) == 15
        assert small_region.infected_count == 25

    def test_set_initial_infected_without_disease(self, small_region):
        assert small_region.set_initial_infected(10) == 0
        assert small_region.infected_count == 0

    def test_seeded_counter_zero(self, small_region, disease):
        small_region.introduce_disease(disease, 10)
        infected = small_region.agents['state'] == HealthState.INFECTED
        assert np.all(small_region.agents['days_in_state'][infected] == 0)


# ═══════════════════════════════════════════════════════════════════════
# POLICIES
# ═══════════════════════════════════════════════════════════════════════

class TestRegionPolicies:
    def test_no_policies_modifier_one(self, small_region):
        assert small_region.policy_modifier() == 1.0
        assert small_region.active_policies() == []

    def test_add_and_compose(self, small_region):
        assert small_region.add_policy(MASK_MANDATE)
        assert small_region.add_policy(SOCIAL_DISTANCING)
        assert small_region.policy_modifier() == pytest.approx(0.35)

    def test_duplicate_kind_is_noop(self, small_region):
        small_region.add_policy(LOCKDOWN)
        assert not small_region.add_policy(LOCKDOWN)
        assert len(small_region.active_policies()) == 1

    def test_remove_by_kind_name_or_policy(self, small_region):
        small_region.add_policy(MASK_MANDATE)
        small_region.add_policy(LOCKDOWN)
        small_region.add_policy(SOCIAL_DISTANCING)
        assert small_region.remove_policy(PolicyKind.MASK)
        assert small_region.remove_policy("Lockdown")
        assert small_region.remove_policy(SOCIAL_DISTANCING)
        assert small_region.active_policies() == []

    def test_remove_inactive_is_noop(self, small_region):
        assert not small_region.remove_policy(LOCKDOWN)

    def test_custom_policies_by_name(self, small_region):
        small_region.add_policy(custom_policy("Curfew", "", 0.8))
        small_region.add_policy(custom_policy("School Closure", "", 0.9))
        assert small_region.has_policy_active("Curfew")
        assert small_region.policy_modifier() == pytest.approx(0.72)
        assert small_region.remove_policy(PolicyKind.CUSTOM)
        assert not small_region.has_policy_active("School Closure")

    def test_active_policies_is_a_copy(self, small_region):
        small_region.add_policy(MASK_MANDATE)
        small_region.active_policies().clear()
        assert small_region.has_policy_active(PolicyKind.MASK)

    def test_clear_policies(self, small_region):
        small_region.add_policy(MASK_MANDATE)
        small_region.add_policy(custom_policy("Curfew", "", 0.8))
        small_region.clear_policies()
        assert small_region.active_policies() == []
        assert small_region.policy_modifier() == 1.0

    def test_contacts_per_day(self):
        region = Region("Dense", 10, 0.8)
        assert region.contacts_per_day() == 8
        region.add_policy(SOCIAL_DISTANCING)
        assert region.contacts_per_day() == 4

    def test_zero_density_zero_contacts(self):
        assert Region("Empty", 10, 0.0).contacts_per_day() == 0


# ═══════════════════════════════════════════════════════════════════════
# DAILY STEP
# ═══════════════════════════════════════════════════════════════════════

class TestSimulateDay:
    def test_no_disease_no_transmission(self, small_region):
        for _ in range(5):
            report = small_region.simulate_day()
            assert report == RegionDayReport(0, 0, 0)
        assert small_region.statistics()["Healthy"] == 1000

    def test_population_conserved(self, small_region, disease):
        small_region.introduce_disease(disease, 20)
        for _ in range(30):
            small_region.simulate_day()
            assert _total(small_region.statistics()) == 1000

    def test_deceased_monotone(self, small_region):
        small_region.introduce_disease(
            Disease(transmission_rate=0.6, mortality_rate=0.2, min_days_infected=2), 50)
        previous = 0
        for _ in range(30):
            small_region.simulate_day()
            deceased = small_region.statistics()["Deceased"]
            assert deceased >= previous
            previous = deceased

    def test_report_matches_counts(self, small_region, disease):
        small_region.introduce_disease(disease, 30)
        before = small_region.statistics()
        report = small_region.simulate_day()
        after = small_region.statistics()
        assert after["Deceased"] - before["Deceased"] == report.deaths
        assert (after["Healthy"] + after["Recovered"]
                == before["Healthy"] + before["Recovered"]
                - report.new_infections + report.recoveries)

    def test_town_scenario(self):
        """Certain transmission, certain recovery after one day."""
        region = Region("Town", 1000, 0.5, rng=np.random.default_rng(2024))
        d = Disease(transmission_rate=1.0, mortality_rate=0.0,
                    recovery_rate=1.0, min_days_infected=1)
        region.introduce_disease(d, 100)
        seeded = region.agents['id'][region.agents['state'] == HealthState.INFECTED]

        report = region.simulate_day()

        stats = region.statistics()
        assert 1 <= report.new_infections <= 100 * 5
        # Everyone infected today (seeded or new) passes the one-day minimum
        assert stats["Infected"] == 0
        assert stats["Deceased"] == 0
        assert stats["Recovered"] == 100 + report.new_infections
        assert stats["Healthy"] == 900 - report.new_infections
        for i in seeded:
            assert region.get_individual(int(i)).state is HealthState.RECOVERED

    def test_zero_transmission_no_new_infections(self, small_region):
        small_region.introduce_disease(Disease(transmission_rate=0.0), 50)
        for _ in range(10):
            assert small_region.simulate_day().new_infections == 0

    def test_zero_density_no_new_infections(self, disease):
        region = Region("Isolated", 500, 0.0, rng=np.random.default_rng(0))
        region.introduce_disease(Disease(transmission_rate=1.0), 50)
        for _ in range(5):
            assert region.simulate_day().new_infections == 0

    def test_recovered_can_be_reinfected(self):
        region = Region("Again", 200, 1.0, rng=np.random.default_rng(5))
        region.agents['state'] = HealthState.RECOVERED
        region.agents['state'][:20] = HealthState.INFECTED
        region.disease = Disease(transmission_rate=1.0, min_days_infected=10)
        report = region.simulate_day()
        assert report.new_infections > 0
        assert region.statistics()["Recovered"] == 180 - report.new_infections

    def test_policies_reduce_spread(self):
        def run(policies):
            region = Region("P", 5000, 1.0, rng=np.random.default_rng(11))
            for p in policies:
                region.add_policy(p)
            region.introduce_disease(Disease(transmission_rate=0.3), 50)
            return sum(region.simulate_day().new_infections for _ in range(5))

        assert run([LOCKDOWN]) < run([])

    def test_same_seed_same_trajectory(self, disease):
        def run():
            region = Region("R", 2000, 0.7, rng=np.random.default_rng(99))
            region.introduce_disease(disease, 20)
            for _ in range(15):
                region.simulate_day()
            return region.agents.copy()

        a, b = run(), run()
        np.testing.assert_array_equal(a['state'], b['state'])
        np.testing.assert_array_equal(a['days_in_state'], b['days_in_state'])

    def test_reset_to_initial_state(self, small_region, disease):
        small_region.introduce_disease(disease, 100)
        small_region.add_policy(LOCKDOWN)
        for _ in range(10):
            small_region.simulate_day()
        small_region.reset_to_initial_state()
        assert small_region.statistics()["Healthy"] == 1000
        assert small_region.active_policies() == []
        assert small_region.disease is disease
        assert np.all(small_region.agents['days_in_state'] == 0)


# ═══════════════════════════════════════════════════════════════════════
# INDIVIDUAL
# ═══════════════════════════════════════════════════════════════════════

class TestIndividual:
    def test_defaults(self, small_region):
        ind = small_region.get_individual(3)
        assert ind.id == 3
        assert ind.region is small_region
        assert ind.state is HealthState.HEALTHY
        assert ind.days_in_state == 0
        assert ind.can_be_infected()
        assert not ind.can_infect()

    def test_set_state_resets_counter(self, small_region):
        ind = small_region.get_individual(3)
        ind.set_state(HealthState.INFECTED)
        ind.increment_days_in_state()
        ind.increment_days_in_state()
        assert ind.days_in_state == 2
        ind.set_state(HealthState.RECOVERED)
        assert ind.days_in_state == 0

    def test_writes_through_to_region(self, small_region):
        small_region.get_individual(7).set_state(HealthState.INFECTED)
        assert small_region.infected_count == 1

    def test_attempt_infection_certain(self, small_region):
        ind = small_region.get_individual(0)
        assert ind.attempt_infection(Disease(transmission_rate=1.0))
        assert ind.state is HealthState.INFECTED

    def test_attempt_infection_impossible(self, small_region):
        ind = small_region.get_individual(0)
        assert not ind.attempt_infection(Disease(transmission_rate=0.0))
        assert ind.state is HealthState.HEALTHY

    def test_deceased_cannot_be_infected(self, small_region):
        ind = small_region.get_individual(0)
        ind.set_state(HealthState.DECEASED)
        assert not ind.attempt_infection(Disease(transmission_rate=1.0))
        assert ind.state is HealthState.DECEASED

    def test_update_daily(self, small_region):
        small_region.disease = Disease(mortality_rate=1.0, recovery_rate=0.0,
                                       min_days_infected=2)
        ind = small_region.get_individual(0)
        ind.set_state(HealthState.INFECTED)
        ind.update_daily()
        assert ind.state is HealthState.INFECTED
        assert ind.days_in_state == 1
        ind.update_daily()
        assert ind.state is HealthState.DECEASED

    def test_equality(self, small_region):
        assert small_region.get_individual(1) == small_region.get_individual(1)
        assert small_region.get_individual(1) != small_region.get_individual(2)
        assert len({small_region.get_individual(1), small_region.get_individual(1)}) == 1

    def test_unknown_id(self, small_region):
        with pytest.raises(KeyError):
            small_region.get_individual(5000)


# ═══════════════════════════════════════════════════════════════════════
# PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════

class TestRegionYaml:
    def test_round_trip(self, tmp_path):
        defs = [RegionDefinition("Metro City", 150000, 0.8),
                RegionDefinition("Rural Town", 15000, 0.2)]
        path = tmp_path / "regions.yaml"
        save_region_definitions_yaml(defs, path)
        assert load_region_definitions_yaml(path) == defs

    def test_missing_field(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("regions:\n  - {name: A, population: 10}\n")
        with pytest.raises(ValueError, match="must have name, population and density"):
            load_region_definitions_yaml(path)

    def test_duplicate_names(self, tmp_path):
        path = tmp_path / "dup.yaml"
        path.write_text(
            "regions:\n"
            "  - {name: Town, population: 10, density: 0.5}\n"
            "  - {name: ' town ', population: 20, density: 0.5}\n"
        )
        with pytest.raises(ValueError, match="already exists"):
            load_region_definitions_yaml(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_region_definitions_yaml(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_region_definitions_yaml(path) == []


# ═══════════════════════════════════════════════════════════════════════
# TRANSMISSION ROLLS
# ═══════════════════════════════════════════════════════════════════════

def _mixed_region(seed, recovered=190):
    """400 people: 20 Infected, the rest split Recovered / Healthy.

    Density 1.0 under Social Distancing gives 5 contacts per infectious
    person, each passing the region gate with probability 0.2.
    """
    region = Region("Mixed", 400, 1.0, rng=np.random.default_rng(seed))
    region.add_policy(SOCIAL_DISTANCING)
    region.disease = Disease(transmission_rate=0.4, min_days_infected=10)
    region.agents['state'][:20] = HealthState.INFECTED
    region.agents['state'][20:20 + recovered] = HealthState.RECOVERED
    return region


def _contact_by_contact(region):
    """One contact round made one contact at a time via Individual handles."""
    states = region.agents['state']
    ids = region.agents['id']
    infectious = ids[states == HealthState.INFECTED]
    susceptible = ids[(states == HealthState.HEALTHY)
                      | (states == HealthState.RECOVERED)]
    modifier = region.policy_modifier()
    contacts = min(region.contacts_per_day(modifier), len(susceptible))
    gate = region.disease.effective_transmission_rate(modifier)
    rng = region.rng
    new_infections = 0
    for _ in infectious:
        for _ in range(contacts):
            target = region.get_individual(int(susceptible[rng.integers(len(susceptible))]))
            if rng.random() < gate and target.attempt_infection(region.disease, rng):
                new_infections += 1
    return new_infections


class TestTransmissionRolls:
    SEEDS = range(200)
    # 190 Healthy at 0.08 per contact, 190 Recovered at 0.16, 100 contacts
    EXPECTED_MEAN = 11.79

    def test_contacts_per_day(self):
        assert _mixed_region(0).contacts_per_day() == 5

    def test_batch_matches_contact_by_contact(self):
        batch = np.mean([_mixed_region(s).simulate_day().new_infections
                         for s in self.SEEDS])
        sequential = np.mean([_contact_by_contact(_mixed_region(10_000 + s))
                              for s in self.SEEDS])
        assert batch == pytest.approx(self.EXPECTED_MEAN, abs=1.0)
        assert sequential == pytest.approx(self.EXPECTED_MEAN, abs=1.0)
        assert abs(batch - sequential) < 1.0

    def test_recovered_targets_roll_with_half_draw(self):
        """A Recovered target passes the roll at twice a Healthy one's rate
        (u × 0.5 < 0.4), so the Recovered half takes most new infections."""
        from_healthy = from_recovered = 0
        for seed in self.SEEDS:
            region = _mixed_region(seed)
            region.simulate_day()
            stats = region.statistics()
            from_healthy += 190 - stats["Healthy"]
            from_recovered += 190 - stats["Recovered"]
        assert from_recovered > 1.5 * from_healthy

    def test_all_recovered_pool_infects_more(self):
        healthy = sum(_mixed_region(s, recovered=0).simulate_day().new_infections
                      for s in self.SEEDS)
        recovered = sum(_mixed_region(s, recovered=380).simulate_day().new_infections
                        for s in self.SEEDS)
        assert recovered > 1.5 * healthy
