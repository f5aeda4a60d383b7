"""Disease parameters and the stochastic rolls that consume them.

A single Disease instance is shared by reference between every Region of
a World. Parameter edits are visible from the next daily step.

Two call sites use the transmission rate differently:
  - Region contact gate: u < transmission_rate × policy_modifier
    (effective_transmission_rate)
  - Individual infection roll: u × modifier < transmission_rate
    (roll_for_infection), where the modifier scales the DRAW. A modifier
    below 1 therefore makes infection more likely; Recovered targets use
    REINFECTION_DRAW_MODIFIER.
Both gates are applied to every contact (see region.Region.simulate_day).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

REINFECTION_DRAW_MODIFIER = 0.5   # draw multiplier for Recovered targets

# Infected-state fallbacks when a region has no disease attached
DEFAULT_MIN_DAYS_INFECTED = 7
FALLBACK_RECOVERY_RATE = 0.1
FALLBACK_MORTALITY_RATE = 0.02


# ═══════════════════════════════════════════════════════════════════════
# DISEASE
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Disease:
    """Transmission, mortality and recovery parameters.

    Rates are per-day probabilities in [0, 1]. mortality_rate + recovery_rate
    may be below 1: the remainder is the chance of staying infected for that
    day's roll.
    """
    name: str = "COVID-19"
    transmission_rate: float = 0.3
    mortality_rate: float = 0.02
    recovery_rate: float = 0.1
    min_days_infected: int = 5

    def roll_for_infection(self, rng: np.random.Generator,
                           modifier: Optional[float] = None) -> bool:
        """Single infection roll: u × modifier < transmission_rate."""
        if modifier is None:
            modifier = 1.0
        return rng.random() * modifier < self.transmission_rate

    def roll_for_infection_batch(self, rng: np.random.Generator,
                                 modifiers: np.ndarray) -> np.ndarray:
        """Vectorised roll_for_infection, one draw per modifier."""
        modifiers = np.asarray(modifiers, dtype=np.float64)
        return rng.random(modifiers.shape[0]) * modifiers < self.transmission_rate

    def effective_transmission_rate(self, policy_modifier: float) -> float:
        """Contact-gate threshold under the given policy modifier."""
        return self.transmission_rate * policy_modifier

    def update(self, **params) -> None:
        """Set any subset of parameters in place.

        Values are assumed validated (see config.validate_disease_parameters).

        Raises:
            AttributeError: If a key is not a Disease parameter.
        """
        for key, value in params.items():
            if key not in DISEASE_FIELDS:
                raise AttributeError(f"Disease has no parameter '{key}'")
            setattr(self, key, value)

    def to_dict(self) -> dict:
        return asdict(self)


DISEASE_FIELDS = (
    'name',
    'transmission_rate',
    'mortality_rate',
    'recovery_rate',
    'min_days_infected',
)


def infection_parameters(disease: Optional[Disease]):
    """(min_days_infected, mortality_rate, recovery_rate), with fallbacks
    when no disease is attached."""
    if disease is None:
        return (DEFAULT_MIN_DAYS_INFECTED,
                FALLBACK_MORTALITY_RATE,
                FALLBACK_RECOVERY_RATE)
    return (disease.min_days_infected,
            disease.mortality_rate,
            disease.recovery_rate)
