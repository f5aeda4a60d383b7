"""World: the set of regions, the shared disease and the run control.

Daily loop (run_simulation):
  1. auto-policy evaluation, region by region (AutoPolicyController)
  2. World.simulate_day: every region's daily step, then current_day += 1
  3. statistics snapshot (StatisticsRecorder)

Regions never read or write each other during a step, so with
simulation.parallel_workers > 1 they are stepped on a thread pool. Each
region owns its RNG stream (rng.region_stream), and the day counter only
advances once every region has finished. Disease edits (update_disease)
and daily steps hold the same lock, so an edit never lands mid-day.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from outbreak_sim.autopolicy import AutoPolicyController, PolicyAction
from outbreak_sim.config import (
    RegionDefinition,
    SimulationConfig,
    default_config,
    validate_disease_parameters,
    validate_region_definition,
    warn_rate_sum,
)
from outbreak_sim.disease import Disease
from outbreak_sim.history import StatisticsRecorder
from outbreak_sim.perf import PerfMonitor
from outbreak_sim.policies import PolicyCatalog, custom_policy
from outbreak_sim.region import Region, RegionDayReport
from outbreak_sim.rng import region_stream, restore_rng_state, rng_state_snapshot
from outbreak_sim.types import N_STATES, counts_to_statistics


class World:
    """Ordered regions sharing one Disease, plus the day counter."""

    def __init__(self, config: Optional[SimulationConfig] = None,
                 seed: Optional[int] = None,
                 perf: Optional[PerfMonitor] = None):
        self.config = config if config is not None else default_config()
        self.seed = seed if seed is not None else self.config.simulation.seed
        self.parallel_workers = self.config.simulation.parallel_workers
        self.perf = perf if perf is not None else PerfMonitor(enabled=False)
        self.catalog = PolicyCatalog(
            custom_policy(p.name, p.description, p.transmission_modifier)
            for p in self.config.custom_policies
        )
        self.last_reports: Dict[str, RegionDayReport] = {}
        self._lock = threading.RLock()
        self._clear()

    def _clear(self) -> None:
        self._regions: List[Region] = []
        self.disease: Disease = self.config.disease.build()
        self.current_day = 0
        self.running = False
        self._streams_issued = 0
        self.last_reports = {}

    @classmethod
    def from_config(cls, config: SimulationConfig,
                    perf: Optional[PerfMonitor] = None) -> 'World':
        """Build and populate a world from configuration."""
        world = cls(config, perf=perf)
        world.initialize_world()
        return world

    def initialize_world(self) -> None:
        """Create the configured regions, seed the disease in each and
        activate the configured initial policies."""
        n_seed = self.config.simulation.initial_infected
        for definition in self.config.regions:
            self.create_region(definition.name, definition.population,
                               definition.density, initial_infected=n_seed)
        for region_name, policy_names in self.config.initial_policies.items():
            region = self.get_region(region_name)
            for policy_name in policy_names:
                policy = self.catalog.get(policy_name)
                if policy is None:
                    raise ValueError(
                        f"initial_policies[{region_name}]: unknown policy '{policy_name}'"
                    )
                region.add_policy(policy)

    # ── Regions ──────────────────────────────────────────────────────

    @property
    def regions(self) -> List[Region]:
        return list(self._regions)

    def region_names(self) -> List[str]:
        return [r.name for r in self._regions]

    def find_region(self, name: str) -> Optional[Region]:
        for region in self._regions:
            if region.name == name:
                return region
        return None

    def get_region(self, name: str) -> Region:
        region = self.find_region(name)
        if region is None:
            raise KeyError(f"No region named '{name}'")
        return region

    def _next_region_rng(self) -> np.random.Generator:
        rng = region_stream(self.seed, self._streams_issued)
        self._streams_issued += 1
        return rng

    def create_region(self, name: str, population: int, density: float,
                      initial_infected: Optional[int] = None) -> Region:
        """Validate, build and append a region.

        If initial_infected is given the shared disease is introduced with
        that many seeded infections.

        Raises:
            ValueError: Invalid or duplicate definition.
        """
        definition = validate_region_definition(
            RegionDefinition(name, population, density), self.region_names())
        region = Region.from_definition(definition, rng=self._next_region_rng())
        with self._lock:
            self._regions.append(region)
        if initial_infected is not None:
            region.introduce_disease(self.disease, initial_infected)
        return region

    def add_region(self, region: Region) -> Region:
        """Append an existing region (its own RNG is kept).

        The name is stored trimmed. A region that already carries a disease
        is switched to the world's shared disease.

        Raises:
            ValueError: If the name is empty or already used.
        """
        definition = validate_region_definition(region.to_definition(),
                                                self.region_names())
        region.name = definition.name
        if region.disease is not None:
            region.disease = self.disease
        with self._lock:
            self._regions.append(region)
        return region

    def remove_region(self, name: str) -> bool:
        with self._lock:
            region = self.find_region(name)
            if region is None:
                return False
            self._regions.remove(region)
            self.last_reports.pop(name, None)
        return True

    def introduce_disease(self, region_name: str, initial_infected: int) -> int:
        """Introduce the shared disease into a region."""
        return self.get_region(region_name).introduce_disease(self.disease,
                                                              initial_infected)

    def region_definitions(self) -> List[RegionDefinition]:
        return [r.to_definition() for r in self._regions]

    def load_regions(self, definitions: List[RegionDefinition],
                     initial_infected: Optional[int] = None) -> List[Region]:
        """Create a region per definition (see create_region)."""
        return [self.create_region(d.name, d.population, d.density,
                                   initial_infected=initial_infected)
                for d in definitions]

    # ── Disease ──────────────────────────────────────────────────────

    def update_disease(self, **params) -> Disease:
        """Edit shared disease parameters; takes effect from the next day.

        Raises:
            ValueError: On an unknown parameter or out-of-range value.
        """
        clean = validate_disease_parameters(**params)
        with self._lock:
            self.disease.update(**clean)
        warn_rate_sum(self.disease.mortality_rate, self.disease.recovery_rate)
        return self.disease

    # ── Run control ──────────────────────────────────────────────────

    def start(self) -> None:
        self.running = True

    def pause(self) -> None:
        self.running = False

    def is_running(self) -> bool:
        return self.running

    def _step_region(self, region: Region) -> Tuple[str, RegionDayReport, float]:
        t0 = time.perf_counter()
        report = region.simulate_day()
        return region.name, report, time.perf_counter() - t0

    def simulate_day(self) -> bool:
        """Advance every region one day.

        Returns:
            False (and does nothing) when the world is paused.
        """
        if not self.running:
            return False
        with self._lock:
            regions = list(self._regions)
            if self.parallel_workers > 1 and len(regions) > 1:
                with ThreadPoolExecutor(max_workers=self.parallel_workers) as pool:
                    results = list(pool.map(self._step_region, regions))
            else:
                results = [self._step_region(r) for r in regions]
            for name, report, elapsed in results:
                self.last_reports[name] = report
                self.perf.record(f"region:{name}", elapsed)
            self.current_day += 1
        return True

    def reset(self) -> None:
        """Drop every region and rebuild the configured defaults
        (day 0, paused)."""
        with self._lock:
            self._clear()
        self.initialize_world()

    def reset_to_initial_state(self) -> None:
        """Every region back to all-Healthy with no policies."""
        with self._lock:
            for region in self._regions:
                region.reset_to_initial_state()
            self.last_reports = {}

    def rng_state(self) -> Dict[str, dict]:
        """Generator state of every region, keyed by region name."""
        return rng_state_snapshot({r.name: r.rng for r in self._regions})

    def restore_rng_state(self, states: Dict[str, dict]) -> None:
        """Restore region generators from rng_state().

        Raises:
            KeyError: If a saved name matches no region (nothing restored).
        """
        with self._lock:
            restore_rng_state({r.name: r.rng for r in self._regions}, states)

    # ── Statistics ───────────────────────────────────────────────────

    def global_state_counts(self) -> np.ndarray:
        total = np.zeros(N_STATES, dtype=np.int64)
        for region in self._regions:
            total += region.state_counts()
        return total

    def global_statistics(self) -> Dict[str, int]:
        """State counts summed over regions (all four keys, always)."""
        return counts_to_statistics(self.global_state_counts())

    def summary(self) -> str:
        g = self.global_statistics()
        lines = [
            f"=== Simulation Day {self.current_day} ===",
            "Global Statistics:",
            f"  Healthy: {g['Healthy']}, Infected: {g['Infected']}, "
            f"Recovered: {g['Recovered']}, Deceased: {g['Deceased']}",
            "",
            "Region Statistics:",
        ]
        for region in self._regions:
            lines.append(f"  {region.summary()}")
        return "\n".join(lines)


# ═══════════════════════════════════════════════════════════════════════
# MULTI-DAY DRIVER
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationResult:
    """Outcome of run_simulation."""
    start_day: int = 0
    end_day: int = 0
    days_simulated: int = 0
    region_names: List[str] = field(default_factory=list)
    history: Optional[StatisticsRecorder] = None
    actions: List[Tuple[int, PolicyAction]] = field(default_factory=list)
    final_statistics: Dict[str, int] = field(default_factory=dict)
    peak_infected: Dict[str, int] = field(default_factory=dict)
    peak_infected_day: Dict[str, int] = field(default_factory=dict)


def run_simulation(
    world: World,
    n_days: int,
    controller: Optional[AutoPolicyController] = None,
    recorder: Optional[StatisticsRecorder] = None,
    progress_callback: Optional[Callable[[int, int, World, List[PolicyAction]], None]] = None,
) -> SimulationResult:
    """Run n_days iterations of: auto-policies → simulate_day → snapshot.

    Auto-policy rules are evaluated every iteration, even while the world
    is paused; the day itself only advances while running.

    Args:
        world: World to advance.
        n_days: Number of iterations.
        controller: Optional AutoPolicyController.
        recorder: Optional StatisticsRecorder (a daily one is created if None).
        progress_callback: Optional callable(i, n_days, world, actions) after
            each iteration, with that iteration's policy actions.

    Returns:
        SimulationResult with the recorded history and policy actions.
    """
    if recorder is None:
        recorder = StatisticsRecorder(enabled=True, interval_days=1)
    perf = world.perf
    start_day = world.current_day
    recorder.capture(start_day, world.regions)

    result = SimulationResult(start_day=start_day, history=recorder)
    perf.start()
    for i in range(n_days):
        day_actions: List[PolicyAction] = []
        if controller is not None:
            with perf.track("auto_policy"):
                for region in world.regions:
                    day_actions.extend(controller.evaluate(region))
        result.actions.extend((world.current_day, a) for a in day_actions)

        if world.simulate_day():
            result.days_simulated += 1
            with perf.track("history"):
                recorder.capture(world.current_day, world.regions)

        if progress_callback is not None:
            progress_callback(i + 1, n_days, world, day_actions)
    perf.stop()

    result.end_day = world.current_day
    result.region_names = world.region_names()
    result.final_statistics = world.global_statistics()
    for name in recorder.region_names():
        days, infected = recorder.series(name, "Infected")
        if infected.size:
            peak = int(np.argmax(infected))
            result.peak_infected[name] = int(infected[peak])
            result.peak_infected_day[name] = int(days[peak])
    return result
