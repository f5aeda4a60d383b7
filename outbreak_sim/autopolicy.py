"""Threshold-based automatic policy control.

Each AutoPolicyRule names a region, a policy and two thresholds. Every tick,
before the day is simulated, each rule looks at its region's current
Infected count:

  count > add_threshold    and policy inactive → add it
  count < remove_threshold and policy active   → remove it
  otherwise                                    → no change

Separate thresholds give hysteresis. Rules run in list order and mutate the
region directly, so on conflicting rules within one tick the last one wins.
Rules naming a region that doesn't exist, or a policy the catalogue can't
resolve, are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from outbreak_sim.config import AutoPolicyRule, validate_auto_policy_rule
from outbreak_sim.policies import PolicyCatalog
from outbreak_sim.region import Region

ADDED = "added"
REMOVED = "removed"


@dataclass(frozen=True)
class PolicyAction:
    """A change made by the controller."""
    region_name: str
    policy_name: str
    action: str          # ADDED or REMOVED
    infected_count: int

    def describe(self) -> str:
        if self.action == ADDED:
            return (f"Added {self.policy_name} to {self.region_name} "
                    f"(Infected: {self.infected_count})")
        return (f"Removed {self.policy_name} from {self.region_name} "
                f"(Infected: {self.infected_count})")


class AutoPolicyController:
    """Applies and lifts policies on regions from infected-count thresholds."""

    def __init__(self, rules: Optional[Iterable[AutoPolicyRule]] = None,
                 catalog: Optional[PolicyCatalog] = None):
        self.catalog = catalog if catalog is not None else PolicyCatalog()
        self._rules: List[AutoPolicyRule] = []
        for rule in rules or ():
            self.add_rule(rule)

    @property
    def rules(self) -> List[AutoPolicyRule]:
        return list(self._rules)

    def add_rule(self, rule: AutoPolicyRule) -> AutoPolicyRule:
        """Append a rule (validated; see config.validate_auto_policy_rule)."""
        validate_auto_policy_rule(rule)
        self._rules.append(rule)
        return rule

    def remove_rule(self, rule: AutoPolicyRule) -> bool:
        """Remove the first rule equal to `rule`."""
        try:
            self._rules.remove(rule)
        except ValueError:
            return False
        return True

    def clear(self) -> None:
        self._rules.clear()

    def _apply(self, rule: AutoPolicyRule, region: Region) -> Optional[PolicyAction]:
        infected = region.infected_count
        active = region.has_policy_active(rule.policy_name)
        if infected > rule.add_threshold and not active:
            policy = self.catalog.get(rule.policy_name)
            if policy is None:
                return None
            region.add_policy(policy)
            return PolicyAction(region.name, rule.policy_name, ADDED, infected)
        if infected < rule.remove_threshold and active:
            region.remove_policy(rule.policy_name)
            return PolicyAction(region.name, rule.policy_name, REMOVED, infected)
        return None

    def evaluate(self, region: Region) -> List[PolicyAction]:
        """Run every rule that targets this region, in rule order."""
        actions = []
        for rule in self._rules:
            if rule.region_name != region.name:
                continue
            action = self._apply(rule, region)
            if action is not None:
                actions.append(action)
        return actions

    def evaluate_all(self, regions: Iterable[Region]) -> List[PolicyAction]:
        """Run every rule once against the named regions, in rule order."""
        by_name = {r.name: r for r in regions}
        actions = []
        for rule in self._rules:
            region = by_name.get(rule.region_name)
            if region is None:
                continue
            action = self._apply(rule, region)
            if action is not None:
                actions.append(action)
        return actions
