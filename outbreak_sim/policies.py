"""Containment policies.

A Policy is an immutable multiplicative transmission modifier. A region's
effective modifier is the product over its active policies (1.0 when none
are active), so composition is order-independent.

Identity:
  - built-in policies are identified by their PolicyKind
  - custom policies are identified by name
Matching for remove / has-active accepts a PolicyKind, a policy name or a
Policy instance; it never compares modifier values.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

import numpy as np


class PolicyKind(Enum):
    """Policy variants."""
    NONE = "none"
    MASK = "mask"
    SOCIAL_DISTANCING = "social_distancing"
    LOCKDOWN = "lockdown"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Policy:
    """A named transmission modifier (> 0; 1.0 = no effect)."""
    name: str
    description: str
    transmission_modifier: float
    kind: PolicyKind = PolicyKind.CUSTOM

    def __post_init__(self):
        if not self.transmission_modifier > 0:
            raise ValueError(
                f"Policy '{self.name}': transmission_modifier must be > 0, "
                f"got {self.transmission_modifier}"
            )

    @property
    def key(self):
        """Set-membership key: the kind for built-ins, the name for custom."""
        if self.kind is PolicyKind.CUSTOM:
            return (PolicyKind.CUSTOM, self.name)
        return self.kind

    def matches(self, target: PolicyTarget) -> bool:
        """Whether this policy is what `target` refers to."""
        if isinstance(target, Policy):
            return self.key == target.key
        if isinstance(target, PolicyKind):
            return self.kind is target
        return self.name == target


PolicyTarget = Union[Policy, PolicyKind, str]


# ═══════════════════════════════════════════════════════════════════════
# BUILT-IN PRESETS
# ═══════════════════════════════════════════════════════════════════════

NO_POLICY = Policy("No Policy", "No restrictions", 1.0, PolicyKind.NONE)
MASK_MANDATE = Policy("Mask Mandate", "Reduces transmission by 30%", 0.7,
                      PolicyKind.MASK)
SOCIAL_DISTANCING = Policy("Social Distancing", "Reduces transmission by 50%",
                           0.5, PolicyKind.SOCIAL_DISTANCING)
LOCKDOWN = Policy("Lockdown", "Reduces transmission by 70%", 0.3,
                  PolicyKind.LOCKDOWN)

BUILTIN_POLICIES = {
    p.name: p for p in (NO_POLICY, MASK_MANDATE, SOCIAL_DISTANCING, LOCKDOWN)
}


def custom_policy(name: str, description: str,
                  transmission_modifier: float) -> Policy:
    """Create a user-defined policy.

    Raises:
        ValueError: If the name is a built-in policy name.
    """
    if name.strip() in BUILTIN_POLICIES:
        raise ValueError(f"'{name.strip()}' is a built-in policy name")
    return Policy(name, description, float(transmission_modifier),
                  PolicyKind.CUSTOM)


def combined_modifier(policies: Iterable[Policy]) -> float:
    """Product of the transmission modifiers (1.0 for no policies)."""
    return float(np.prod([p.transmission_modifier for p in policies]))


# ═══════════════════════════════════════════════════════════════════════
# CATALOGUE
# ═══════════════════════════════════════════════════════════════════════

class PolicyCatalog:
    """Name → Policy resolution for built-in and registered custom policies.

    Used wherever policies are referred to by name only (auto-policy rules,
    configuration files).
    """

    def __init__(self, custom: Optional[Iterable[Policy]] = None):
        self._custom: Dict[str, Policy] = {}
        for policy in custom or ():
            self.register(policy)

    def register(self, policy: Policy) -> Policy:
        """Register a custom policy.

        Raises:
            ValueError: If the name is empty, shadows a built-in policy or
                is already registered.
        """
        name = policy.name.strip()
        if not name:
            raise ValueError("Policy name cannot be empty")
        if name in BUILTIN_POLICIES:
            raise ValueError(f"'{name}' is a built-in policy name")
        if name in self._custom:
            raise ValueError(f"Custom policy '{name}' is already registered")
        if policy.kind is not PolicyKind.CUSTOM:
            raise ValueError(f"Only custom policies can be registered, got {policy.kind}")
        self._custom[name] = policy
        return policy

    def unregister(self, name: str) -> bool:
        return self._custom.pop(name, None) is not None

    def get(self, name: str) -> Optional[Policy]:
        """Resolve a policy name; None if unknown."""
        if name in BUILTIN_POLICIES:
            return BUILTIN_POLICIES[name]
        return self._custom.get(name)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def names(self) -> List[str]:
        return list(BUILTIN_POLICIES) + list(self._custom)

    @property
    def custom_policies(self) -> List[Policy]:
        return list(self._custom.values())
