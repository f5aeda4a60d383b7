"""Regions: populations, active policies and the daily step.

Core classes:
  - Region: owns a population (AGENT_DTYPE array), its active policies, a
    reference to the shared Disease and its own RNG stream
  - Individual: handle onto one row of a region's population
  - RegionDayReport: what one daily step did

Daily step (Region.simulate_day):
  1. infectious = can_infect, susceptible = can_be_infected, computed once
     at the start of the step
  2. policy_modifier = product of active policy modifiers
  3. each infectious individual makes
       contacts = min(floor(density × 10 × policy_modifier), |susceptible|)
     attempts; a target is drawn uniformly (with replacement) from
     susceptible, passes the region gate if u < transmission × modifier,
     then rolls the disease's own infection roll (draw × 0.5 if Recovered)
  4. every individual advances one day (states.advance_population)

Step 3 is evaluated for all contacts at once. The result is the same in
distribution as running the contacts one by one: a target ends up infected
iff at least one of its contacts passes both gates, with both gates judged
against the target's state at the start of the day.

Region definitions persist as YAML ({regions: [{name, population, density}]}).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import numpy as np
import yaml

from outbreak_sim.config import RegionDefinition, validate_region_definition
from outbreak_sim.disease import REINFECTION_DRAW_MODIFIER, Disease
from outbreak_sim.policies import Policy, PolicyTarget, combined_modifier
from outbreak_sim.states import advance, advance_population
from outbreak_sim.types import (
    CAN_BE_INFECTED,
    CAN_INFECT,
    N_STATES,
    HealthState,
    allocate_agents,
    counts_to_statistics,
)

CONTACTS_PER_UNIT_DENSITY = 10


@dataclass
class RegionDayReport:
    """Counts produced by one Region.simulate_day call."""
    new_infections: int = 0
    deaths: int = 0
    recoveries: int = 0


# ═══════════════════════════════════════════════════════════════════════
# REGION
# ═══════════════════════════════════════════════════════════════════════

class Region:
    """A named population unit with its own density and policy set."""

    def __init__(self, name: str, population_size: int, density: float,
                 rng: Optional[np.random.Generator] = None):
        self.name = name
        self.density = float(density)
        self.agents = allocate_agents(population_size)
        self.disease: Optional[Disease] = None
        self.rng = rng if rng is not None else np.random.default_rng()
        self._next_id = population_size
        self._policies: Dict[object, Policy] = {}
        self._row_index: Optional[Dict[int, int]] = None

    @classmethod
    def from_definition(cls, definition: RegionDefinition,
                        rng: Optional[np.random.Generator] = None) -> 'Region':
        return cls(definition.name, definition.population, definition.density, rng=rng)

    def to_definition(self) -> RegionDefinition:
        return RegionDefinition(self.name, self.population_size, self.density)

    # ── Population ───────────────────────────────────────────────────

    @property
    def population_size(self) -> int:
        return int(self.agents.shape[0])

    def _row(self, individual_id: int) -> int:
        if self._row_index is None:
            self._row_index = {int(i): r for r, i in enumerate(self.agents['id'])}
        try:
            return self._row_index[individual_id]
        except KeyError:
            raise KeyError(
                f"Region '{self.name}' has no individual with id {individual_id}"
            ) from None

    def get_individual(self, individual_id: int) -> 'Individual':
        self._row(individual_id)
        return Individual(self, individual_id)

    def individuals(self) -> List['Individual']:
        return [Individual(self, int(i)) for i in self.agents['id']]

    def add_individuals(self, n: int) -> List[int]:
        """Append n Healthy individuals; returns their ids."""
        new = allocate_agents(n, first_id=self._next_id)
        self._next_id += n
        self.agents = np.concatenate([self.agents, new])
        self._row_index = None
        return [int(i) for i in new['id']]

    def remove_individuals(self, ids: Iterable[int]) -> int:
        """Remove individuals by id; unknown ids are ignored."""
        keep = ~np.isin(self.agents['id'], np.fromiter(ids, dtype=np.int64))
        removed = int(self.agents.shape[0] - keep.sum())
        if removed:
            self.agents = self.agents[keep]
            self._row_index = None
        return removed

    # ── Disease ──────────────────────────────────────────────────────

    def introduce_disease(self, disease: Disease, initial_infected: int) -> int:
        """Attach the shared disease and seed initial infections.

        Seeds min(initial_infected, #eligible) individuals drawn uniformly
        without replacement from those that can be infected.

        Returns:
            Number of individuals seeded.
        """
        self.disease = disease
        eligible = np.flatnonzero(CAN_BE_INFECTED[self.agents['state']])
        n = min(max(initial_infected, 0), eligible.size)
        if n == 0:
            return 0
        chosen = self.rng.choice(eligible, size=n, replace=False)
        self.agents['state'][chosen] = HealthState.INFECTED
        self.agents['days_in_state'][chosen] = 0
        return int(n)

    def set_initial_infected(self, initial_infected: int) -> int:
        """Re-apply seeding on the current disease (no-op without one)."""
        if self.disease is None:
            return 0
        return self.introduce_disease(self.disease, initial_infected)

    def reset_to_initial_state(self) -> None:
        """Everyone Healthy, no policies. Population size and disease kept."""
        self.agents['state'] = HealthState.HEALTHY
        self.agents['days_in_state'] = 0
        self.clear_policies()

    # ── Policies ─────────────────────────────────────────────────────

    def add_policy(self, policy: Policy) -> bool:
        """Activate a policy. Returns False if one of its kind is active."""
        if policy.key in self._policies:
            return False
        self._policies[policy.key] = policy
        return True

    def remove_policy(self, target: PolicyTarget) -> bool:
        """Deactivate every active policy matching target (kind, name or
        Policy). Unknown targets are a no-op."""
        doomed = [k for k, p in self._policies.items() if p.matches(target)]
        for key in doomed:
            del self._policies[key]
        return bool(doomed)

    def has_policy_active(self, target: PolicyTarget) -> bool:
        return any(p.matches(target) for p in self._policies.values())

    def active_policies(self) -> List[Policy]:
        """Active policies in activation order (a copy)."""
        return list(self._policies.values())

    def clear_policies(self) -> None:
        self._policies.clear()

    def policy_modifier(self) -> float:
        return combined_modifier(self._policies.values())

    def contacts_per_day(self, policy_modifier: Optional[float] = None) -> int:
        if policy_modifier is None:
            policy_modifier = self.policy_modifier()
        return int(self.density * CONTACTS_PER_UNIT_DENSITY * policy_modifier)

    # ── Daily step ───────────────────────────────────────────────────

    def _transmit(self, policy_modifier: float) -> int:
        states = self.agents['state']
        infectious = np.flatnonzero(CAN_INFECT[states])
        susceptible = np.flatnonzero(CAN_BE_INFECTED[states])
        if self.disease is None or infectious.size == 0 or susceptible.size == 0:
            return 0

        contacts = min(self.contacts_per_day(policy_modifier), susceptible.size)
        if contacts <= 0:
            return 0
        n_attempts = infectious.size * contacts

        targets = susceptible[self.rng.integers(0, susceptible.size, size=n_attempts)]
        gate = self.rng.random(n_attempts) < self.disease.effective_transmission_rate(
            policy_modifier)
        targets = targets[gate]
        if targets.size == 0:
            return 0

        draw_modifier = np.where(states[targets] == HealthState.RECOVERED,
                                 REINFECTION_DRAW_MODIFIER, 1.0)
        hit = self.disease.roll_for_infection_batch(self.rng, draw_modifier)
        newly = np.unique(targets[hit])
        self.agents['state'][newly] = HealthState.INFECTED
        self.agents['days_in_state'][newly] = 0
        return int(newly.size)

    def simulate_day(self) -> RegionDayReport:
        """One contact round followed by one daily update of everyone."""
        new_infections = self._transmit(self.policy_modifier())
        deaths, recoveries = advance_population(self.agents, self.disease, self.rng)
        return RegionDayReport(new_infections, deaths, recoveries)

    # ── Statistics ───────────────────────────────────────────────────

    def state_counts(self) -> np.ndarray:
        """(N_STATES,) counts in HealthState order."""
        return np.bincount(self.agents['state'].astype(np.intp),
                           minlength=N_STATES)[:N_STATES]

    def statistics(self) -> Dict[str, int]:
        return counts_to_statistics(self.state_counts())

    @property
    def infected_count(self) -> int:
        return int(np.count_nonzero(self.agents['state'] == HealthState.INFECTED))

    def summary(self) -> str:
        stats = self.statistics()
        policies = ", ".join(p.name for p in self.active_policies()) or "None"
        return (
            f"{self.name}: Healthy: {stats['Healthy']}, Infected: {stats['Infected']}, "
            f"Recovered: {stats['Recovered']}, Deceased: {stats['Deceased']} "
            f"[policies: {policies}]"
        )

    def __repr__(self) -> str:
        return (f"Region(name={self.name!r}, population={self.population_size}, "
                f"density={self.density})")


# ═══════════════════════════════════════════════════════════════════════
# INDIVIDUAL
# ═══════════════════════════════════════════════════════════════════════

class Individual:
    """One simulated person: a (region, id) handle onto the agent array.

    state and days_in_state change only through set_state (new state,
    counter reset) and increment_days_in_state.
    """

    __slots__ = ('_region', '_id')

    def __init__(self, region: Region, individual_id: int):
        self._region = region
        self._id = int(individual_id)

    @property
    def id(self) -> int:
        return self._id

    @property
    def region(self) -> Region:
        return self._region

    @property
    def state(self) -> HealthState:
        row = self._region._row(self._id)
        return HealthState(int(self._region.agents['state'][row]))

    @property
    def days_in_state(self) -> int:
        row = self._region._row(self._id)
        return int(self._region.agents['days_in_state'][row])

    def can_infect(self) -> bool:
        return self.state.can_infect

    def can_be_infected(self) -> bool:
        return self.state.can_be_infected

    def set_state(self, state: HealthState) -> None:
        row = self._region._row(self._id)
        self._region.agents['state'][row] = HealthState(state)
        self._region.agents['days_in_state'][row] = 0

    def increment_days_in_state(self) -> None:
        row = self._region._row(self._id)
        self._region.agents['days_in_state'][row] += 1

    def attempt_infection(self, disease: Disease,
                          rng: Optional[np.random.Generator] = None) -> bool:
        """Infect if susceptible and the disease roll succeeds.

        Recovered individuals roll with REINFECTION_DRAW_MODIFIER.
        """
        state = self.state
        if not state.can_be_infected:
            return False
        rng = rng if rng is not None else self._region.rng
        modifier = REINFECTION_DRAW_MODIFIER if state is HealthState.RECOVERED else None
        if disease.roll_for_infection(rng, modifier):
            self.set_state(HealthState.INFECTED)
            return True
        return False

    def update_daily(self, rng: Optional[np.random.Generator] = None) -> None:
        """Advance this individual one day using the region's disease."""
        rng = rng if rng is not None else self._region.rng
        state = self.state
        new_state, new_days = advance(state, self.days_in_state,
                                      self._region.disease, rng)
        if new_state is not state:
            self.set_state(new_state)
        elif new_days != self.days_in_state:
            self.increment_days_in_state()

    def __eq__(self, other) -> bool:
        return (isinstance(other, Individual)
                and other._region is self._region and other._id == self._id)

    def __hash__(self) -> int:
        return hash((id(self._region), self._id))

    def __repr__(self) -> str:
        return (f"Individual(id={self._id}, region={self._region.name!r}, "
                f"state={self.state.label}, days_in_state={self.days_in_state})")


# ═══════════════════════════════════════════════════════════════════════
# PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════

def save_region_definitions_yaml(definitions: Iterable[RegionDefinition],
                                 path: Union[str, Path]) -> None:
    """Write region definitions to YAML."""
    data = {
        "regions": [
            {"name": d.name, "population": int(d.population), "density": float(d.density)}
            for d in definitions
        ]
    }
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, 'w') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def load_region_definitions_yaml(path: Union[str, Path]) -> List[RegionDefinition]:
    """Load and validate region definitions from YAML.

    Raises:
        FileNotFoundError: If path doesn't exist.
        ValueError: If a record is malformed or names collide.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    definitions: List[RegionDefinition] = []
    for i, entry in enumerate(data.get("regions") or []):
        try:
            raw = RegionDefinition(entry["name"], entry["population"], entry["density"])
        except (KeyError, TypeError):
            raise ValueError(
                f"regions[{i}] must have name, population and density, got {entry!r}"
            ) from None
        definitions.append(
            validate_region_definition(raw, [d.name for d in definitions])
        )
    return definitions
