"""Configuration system for outbreak_sim.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → programmatic overrides

Everything that crosses into the engine from outside (config files, saved
region definitions, parameter edits) is checked here. Engine operations
assume validated input and never re-validate.
"""

from __future__ import annotations

import dataclasses
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from outbreak_sim.disease import Disease
from outbreak_sim.policies import BUILTIN_POLICIES


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run control."""
    seed: int = 42
    n_days: int = 100
    parallel_workers: int = 1     # >1 steps regions on a thread pool
    initial_infected: int = 10    # seeded per region when the disease is introduced
    report_interval: int = 5      # console report every N days
    start_running: bool = True


@dataclass
class DiseaseSection:
    """Disease parameters (per-day probabilities)."""
    name: str = "COVID-19"
    transmission_rate: float = 0.3
    mortality_rate: float = 0.02
    recovery_rate: float = 0.1
    min_days_infected: int = 5

    def build(self) -> Disease:
        return Disease(
            name=self.name,
            transmission_rate=self.transmission_rate,
            mortality_rate=self.mortality_rate,
            recovery_rate=self.recovery_rate,
            min_days_infected=self.min_days_infected,
        )


@dataclass
class OutputSection:
    """Output control."""
    directory: str = "results/"
    record_history: bool = True
    history_interval: int = 1


@dataclass
class RegionDefinition:
    """The persisted form of a region.

    A Region is fully reconstructible from these three fields: a fresh
    Healthy population, no policies, no disease until one is introduced.
    """
    name: str
    population: int
    density: float   # contact density in [0, 1]


@dataclass
class CustomPolicySpec:
    """A user-defined policy."""
    name: str
    description: str = ""
    transmission_modifier: float = 1.0


@dataclass
class AutoPolicyRule:
    """Hysteresis rule for automatic policy control.

    The policy is added when the region's Infected count exceeds
    add_threshold and removed when it drops below remove_threshold.
    """
    region_name: str
    policy_name: str
    add_threshold: int
    remove_threshold: int


def default_regions() -> List[RegionDefinition]:
    return [
        RegionDefinition("Metro City", 150000, 0.8),
        RegionDefinition("Suburbs", 55000, 0.4),
        RegionDefinition("Rural Town", 15000, 0.2),
    ]


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    disease: DiseaseSection = field(default_factory=DiseaseSection)
    output: OutputSection = field(default_factory=OutputSection)
    regions: List[RegionDefinition] = field(default_factory=default_regions)
    custom_policies: List[CustomPolicySpec] = field(default_factory=list)
    initial_policies: Dict[str, List[str]] = field(default_factory=dict)
    auto_policies: List[AutoPolicyRule] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values (including lists) are replaced
    - Keys in override but not base are added
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


# YAML spelling → dataclass field for auto-policy rules
_RULE_ALIASES = {'region': 'region_name', 'policy': 'policy_name'}


def _parse_list(data: Dict, key: str, cls, aliases=None) -> list:
    items = []
    if key in data and isinstance(data[key], list):
        for entry in data[key]:
            if isinstance(entry, dict):
                entry = {(aliases or {}).get(k, k): v for k, v in entry.items()}
                items.append(_dict_to_section(cls, entry))
    return items


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections = {}
    section_map = {
        'simulation': SimulationSection,
        'disease': DiseaseSection,
        'output': OutputSection,
    }
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()

    if 'regions' in data:
        sections['regions'] = _parse_list(data, 'regions', RegionDefinition)
    sections['custom_policies'] = _parse_list(data, 'custom_policies', CustomPolicySpec)
    sections['auto_policies'] = _parse_list(
        data, 'auto_policies', AutoPolicyRule, aliases=_RULE_ALIASES)

    initial = data.get('initial_policies') or {}
    sections['initial_policies'] = {
        str(region): list(names or []) for region, names in initial.items()
    }
    return SimulationConfig(**sections)


def config_to_dict(config: SimulationConfig) -> Dict:
    """Inverse of the YAML mapping (for writing a config back out)."""
    data = dataclasses.asdict(config)
    data['auto_policies'] = [
        {'region': r.region_name, 'policy': r.policy_name,
         'add_threshold': r.add_threshold, 'remove_threshold': r.remove_threshold}
        for r in config.auto_policies
    ]
    return data


# ═══════════════════════════════════════════════════════════════════════
# BOUNDARY VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_probability(label: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{label} must be a number in [0, 1], got {value!r}")
    if not (0.0 <= value <= 1.0):
        raise ValueError(f"{label} must be in [0, 1], got {value}")


def validate_region_definition(
    definition: RegionDefinition,
    existing_names: Iterable[str] = (),
) -> RegionDefinition:
    """Check a region definition against the names already in use.

    Names are compared trimmed and case-insensitively.

    Returns:
        The definition with its name trimmed.

    Raises:
        ValueError: Empty or duplicate name, non-positive population,
            density outside [0, 1].
    """
    name = definition.name.strip() if isinstance(definition.name, str) else ''
    if not name:
        raise ValueError("Region name cannot be empty")
    taken = {n.strip().lower() for n in existing_names}
    if name.lower() in taken:
        raise ValueError(f"A region named '{name}' already exists")
    if not _is_int(definition.population) or definition.population <= 0:
        raise ValueError(
            f"Region '{name}': population must be a positive integer, "
            f"got {definition.population!r}"
        )
    _check_probability(f"Region '{name}': density", definition.density)
    return RegionDefinition(name, definition.population, float(definition.density))


def validate_disease_parameters(**params) -> Dict[str, Any]:
    """Validate any subset of disease parameters.

    Returns:
        The parameters, with the name trimmed and rates as floats.

    Raises:
        ValueError: On an unknown key or an out-of-range value.
    """
    clean: Dict[str, Any] = {}
    for key, value in params.items():
        if key == 'name':
            if not isinstance(value, str) or not value.strip():
                raise ValueError("Disease name cannot be empty")
            clean[key] = value.strip()
        elif key in ('transmission_rate', 'mortality_rate', 'recovery_rate'):
            _check_probability(f"disease.{key}", value)
            clean[key] = float(value)
        elif key == 'min_days_infected':
            if not _is_int(value) or value < 0:
                raise ValueError(
                    f"disease.min_days_infected must be a non-negative integer, "
                    f"got {value!r}"
                )
            clean[key] = value
        else:
            raise ValueError(f"Unknown disease parameter '{key}'")
    return clean


def warn_rate_sum(mortality_rate: float, recovery_rate: float) -> None:
    """Warn when mortality + recovery exceeds 1 (recovery is then capped
    at 1 - mortality in practice)."""
    if mortality_rate + recovery_rate > 1.0:
        warnings.warn(
            f"disease mortality_rate + recovery_rate = "
            f"{mortality_rate + recovery_rate:.3f} > 1; the effective "
            f"recovery probability is {1.0 - mortality_rate:.3f}",
            UserWarning,
            stacklevel=3,
        )


def validate_policy_modifier(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
        raise ValueError(f"transmission_modifier must be > 0, got {value!r}")
    return float(value)


def validate_auto_policy_rule(rule: AutoPolicyRule) -> None:
    """Raises ValueError on empty names or negative/non-integer thresholds."""
    if not str(rule.region_name).strip():
        raise ValueError("auto-policy rule: region name cannot be empty")
    if not str(rule.policy_name).strip():
        raise ValueError("auto-policy rule: policy name cannot be empty")
    for label in ('add_threshold', 'remove_threshold'):
        value = getattr(rule, label)
        if not _is_int(value) or value < 0:
            raise ValueError(
                f"auto-policy rule {rule.region_name}/{rule.policy_name}: "
                f"{label} must be a non-negative integer, got {value!r}"
            )
    if rule.add_threshold < rule.remove_threshold:
        warnings.warn(
            f"auto-policy rule {rule.region_name}/{rule.policy_name}: "
            f"add_threshold ({rule.add_threshold}) < remove_threshold "
            f"({rule.remove_threshold}); the policy may flap between ticks",
            UserWarning,
            stacklevel=2,
        )


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Run-control values are in range
      - Disease parameters are probabilities / non-negative day counts
      - Region names are unique, populations positive, densities in [0, 1]
      - Custom policy names are unique and don't shadow built-ins
      - Initial and automatic policies refer to known policies
    """
    sim = config.simulation
    if not _is_int(sim.seed) or sim.seed < 0:
        raise ValueError("simulation.seed must be a non-negative integer")
    if not _is_int(sim.n_days) or sim.n_days < 0:
        raise ValueError(f"simulation.n_days must be >= 0, got {sim.n_days!r}")
    if not _is_int(sim.parallel_workers) or sim.parallel_workers < 1:
        raise ValueError(
            f"simulation.parallel_workers must be >= 1, got {sim.parallel_workers!r}"
        )
    if not _is_int(sim.initial_infected) or sim.initial_infected < 0:
        raise ValueError(
            f"simulation.initial_infected must be >= 0, got {sim.initial_infected!r}"
        )
    if not _is_int(sim.report_interval) or sim.report_interval < 1:
        raise ValueError(
            f"simulation.report_interval must be >= 1, got {sim.report_interval!r}"
        )
    if not _is_int(config.output.history_interval) or config.output.history_interval < 1:
        raise ValueError(
            f"output.history_interval must be >= 1, got {config.output.history_interval!r}"
        )

    d = config.disease
    validate_disease_parameters(**dataclasses.asdict(d))
    warn_rate_sum(d.mortality_rate, d.recovery_rate)

    names: List[str] = []
    for definition in config.regions:
        names.append(validate_region_definition(definition, names).name)

    custom_names = set()
    for spec in config.custom_policies:
        name = str(spec.name).strip()
        if not name:
            raise ValueError("custom_policies: policy name cannot be empty")
        if name in BUILTIN_POLICIES:
            raise ValueError(f"custom_policies: '{name}' is a built-in policy name")
        if name in custom_names:
            raise ValueError(f"custom_policies: duplicate policy '{name}'")
        validate_policy_modifier(spec.transmission_modifier)
        custom_names.add(name)
    known_policies = set(BUILTIN_POLICIES) | custom_names

    for region, policy_names in config.initial_policies.items():
        if region not in names:
            raise ValueError(f"initial_policies: unknown region '{region}'")
        for policy_name in policy_names:
            if policy_name not in known_policies:
                raise ValueError(
                    f"initial_policies[{region}]: unknown policy '{policy_name}'"
                )

    for rule in config.auto_policies:
        validate_auto_policy_rule(rule)
        if rule.policy_name not in known_policies:
            raise ValueError(
                f"auto_policies: unknown policy '{rule.policy_name}' "
                f"(known: {sorted(known_policies)})"
            )
        if rule.region_name not in names:
            warnings.warn(
                f"auto_policies: region '{rule.region_name}' is not defined; "
                f"the rule is skipped until a region with that name exists",
                UserWarning,
                stacklevel=2,
            )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides. Each layer overrides only the
    fields it specifies (lists such as `regions` are replaced wholesale).

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            deep_merge(config_dict, yaml.safe_load(f) or {})

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
