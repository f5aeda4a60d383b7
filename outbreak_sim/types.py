"""Core data types for outbreak_sim.

This module is the single source of truth for:
  - HealthState: the closed enumeration of per-individual health states
  - STATE_NAMES: reporting labels, in HealthState order
  - CAN_INFECT / CAN_BE_INFECTED: state predicates as lookup arrays
  - AGENT_DTYPE: NumPy structured array dtype for a region's population

All modules import these types from here. No other module defines agent fields.
"""

from enum import IntEnum
from typing import Dict

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# HEALTH STATES
# ═══════════════════════════════════════════════════════════════════════

class HealthState(IntEnum):
    """Per-individual health state.

    HEALTHY  → INFECTED   (contact transmission, or seeding)
    INFECTED → DECEASED   (mortality roll after the minimum infectious period)
    INFECTED → RECOVERED  (recovery roll after the minimum infectious period)
    RECOVERED → INFECTED  (reinfection, with partial immunity on the draw)
    DECEASED is terminal.
    """
    HEALTHY   = 0
    INFECTED  = 1
    RECOVERED = 2
    DECEASED  = 3

    @property
    def label(self) -> str:
        """Reporting name ("Healthy", "Infected", ...)."""
        return STATE_NAMES[self]

    @property
    def can_infect(self) -> bool:
        return bool(CAN_INFECT[self])

    @property
    def can_be_infected(self) -> bool:
        return bool(CAN_BE_INFECTED[self])


N_STATES = len(HealthState)

STATE_NAMES = ("Healthy", "Infected", "Recovered", "Deceased")

# Predicates indexed by HealthState value
CAN_INFECT = np.array([False, True, False, False])
CAN_BE_INFECTED = np.array([True, False, True, False])


def state_from_label(label: str) -> HealthState:
    """Inverse of HealthState.label.

    Raises:
        ValueError: If label is not one of STATE_NAMES.
    """
    try:
        return HealthState(STATE_NAMES.index(label))
    except ValueError:
        raise ValueError(
            f"Unknown health state '{label}', expected one of {STATE_NAMES}"
        ) from None


def empty_statistics() -> Dict[str, int]:
    """Statistics map with every state present and zero."""
    return {name: 0 for name in STATE_NAMES}


def counts_to_statistics(counts: np.ndarray) -> Dict[str, int]:
    """Convert a (N_STATES,) count vector to the reporting map."""
    return {name: int(counts[i]) for i, name in enumerate(STATE_NAMES)}


# ═══════════════════════════════════════════════════════════════════════
# AGENT_DTYPE: canonical structured array for individuals
# ═══════════════════════════════════════════════════════════════════════

AGENT_DTYPE = np.dtype([
    ('id',            np.int64),   # unique within the owning region, never reused
    ('state',         np.int8),    # HealthState value
    ('days_in_state', np.int32),   # days spent in the current state
                                   # (only advanced while INFECTED)
])


def allocate_agents(n: int, first_id: int = 0) -> np.ndarray:
    """Allocate n Healthy agents with consecutive ids.

    Args:
        n: Number of agents.
        first_id: Id of the first agent.

    Returns:
        Structured array of shape (n,) with AGENT_DTYPE, all HEALTHY,
        days_in_state = 0.
    """
    agents = np.zeros(n, dtype=AGENT_DTYPE)
    agents['id'] = np.arange(first_id, first_id + n, dtype=np.int64)
    agents['state'] = HealthState.HEALTHY
    return agents
