"""Health-state machine.

One transition function, `advance`, dispatches on the HealthState tag:

  HEALTHY    no transition
  INFECTED   days_in_state += 1; once days_in_state ≥ min_days_infected,
             one uniform draw r per day:
               r < mortality                      → DECEASED
               mortality ≤ r < mortality+recovery → RECOVERED
               otherwise                          → stays INFECTED
  RECOVERED  no transition (re-infectable through contact only)
  DECEASED   terminal

`advance_population` applies the same rules to a whole agent array in
place and is what Region.simulate_day uses; `advance` is the scalar form
used by Individual.update_daily.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from outbreak_sim.disease import Disease, infection_parameters
from outbreak_sim.types import HealthState


def resolve_infection(days_in_state: int,
                      disease: Optional[Disease],
                      rng: np.random.Generator) -> HealthState:
    """Outcome of one day's infection roll for an individual who has been
    infected for `days_in_state` days (already incremented for today)."""
    min_days, mortality, recovery = infection_parameters(disease)
    if days_in_state < min_days:
        return HealthState.INFECTED
    roll = rng.random()
    if roll < mortality:
        return HealthState.DECEASED
    if roll < mortality + recovery:
        return HealthState.RECOVERED
    return HealthState.INFECTED


def advance(state: HealthState,
            days_in_state: int,
            disease: Optional[Disease],
            rng: np.random.Generator) -> Tuple[HealthState, int]:
    """Advance one individual by one day.

    Returns:
        (new_state, new_days_in_state). The counter resets to 0 whenever
        the state changes.
    """
    state = HealthState(state)
    if state is not HealthState.INFECTED:
        return state, days_in_state
    days_in_state += 1
    outcome = resolve_infection(days_in_state, disease, rng)
    if outcome is HealthState.INFECTED:
        return outcome, days_in_state
    return outcome, 0


def advance_population(agents: np.ndarray,
                       disease: Optional[Disease],
                       rng: np.random.Generator) -> Tuple[int, int]:
    """Vectorised `advance` over an AGENT_DTYPE array (modified in place).

    Draws one uniform value per infected individual past the minimum
    infectious period, in array order.

    Returns:
        (n_deaths, n_recoveries) for the day.
    """
    infected = np.flatnonzero(agents['state'] == HealthState.INFECTED)
    if infected.size == 0:
        return 0, 0
    agents['days_in_state'][infected] += 1

    min_days, mortality, recovery = infection_parameters(disease)
    due = infected[agents['days_in_state'][infected] >= min_days]
    if due.size == 0:
        return 0, 0

    roll = rng.random(due.size)
    dies = due[roll < mortality]
    recovers = due[(roll >= mortality) & (roll < mortality + recovery)]

    agents['state'][dies] = HealthState.DECEASED
    agents['days_in_state'][dies] = 0
    agents['state'][recovers] = HealthState.RECOVERED
    agents['days_in_state'][recovers] = 0
    return int(dies.size), int(recovers.size)
