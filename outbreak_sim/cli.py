"""Console runner.

    python -m outbreak_sim --config configs/default.yaml --days 100
    outbreak-sim --scenario my_overrides.yaml --workers 3 --perf

Without --config the built-in defaults are used (three regions, COVID-19,
10 seeded infections per region, no policies).
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from outbreak_sim.autopolicy import AutoPolicyController, PolicyAction
from outbreak_sim.config import SimulationConfig, default_config, load_config, validate_config
from outbreak_sim.history import StatisticsRecorder
from outbreak_sim.perf import PerfMonitor
from outbreak_sim.region import load_region_definitions_yaml, save_region_definitions_yaml
from outbreak_sim.world import World, run_simulation


def build_config(args: argparse.Namespace) -> SimulationConfig:
    """Config from --config/--scenario plus command-line overrides."""
    overrides = {'simulation': {}}
    if args.days is not None:
        overrides['simulation']['n_days'] = args.days
    if args.seed is not None:
        overrides['simulation']['seed'] = args.seed
    if args.workers is not None:
        overrides['simulation']['parallel_workers'] = args.workers
    if args.report_every is not None:
        overrides['simulation']['report_interval'] = args.report_every

    if args.config is not None:
        return load_config(args.config, args.scenario, overrides)
    if args.scenario is not None:
        raise ValueError("--scenario requires --config")

    config = default_config()
    sim = config.simulation
    for key, value in overrides['simulation'].items():
        setattr(sim, key, value)
    validate_config(config)
    return config


def print_statistics(world: World) -> None:
    print(world.summary())
    for region in world.regions:
        names = ", ".join(p.name for p in region.active_policies()) or "None"
        print(f"  {region.name} policies: {names} "
              f"(modifier {region.policy_modifier():.2f})")
    print()


def print_config(config: SimulationConfig) -> None:
    d = config.disease
    print(f"Disease: {d.name} (transmission {d.transmission_rate}, "
          f"mortality {d.mortality_rate}, recovery {d.recovery_rate}, "
          f"min days infected {d.min_days_infected})")
    print(f"Seed: {config.simulation.seed}, days: {config.simulation.n_days}, "
          f"workers: {config.simulation.parallel_workers}")
    for rule in config.auto_policies:
        print(f"Auto policy: {rule.policy_name} on {rule.region_name} "
              f"(add > {rule.add_threshold}, remove < {rule.remove_threshold})")
    print()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run a regional outbreak simulation in the console.",
        epilog="Example: python -m outbreak_sim --config configs/default.yaml --days 50",
    )
    parser.add_argument("--config", type=str, default=None,
                        help="Base config YAML (default: built-in defaults)")
    parser.add_argument("--scenario", type=str, default=None,
                        help="Scenario YAML merged over --config")
    parser.add_argument("--days", type=int, default=None,
                        help="Days to simulate (default: simulation.n_days)")
    parser.add_argument("--seed", type=int, default=None,
                        help="Master RNG seed (default: simulation.seed)")
    parser.add_argument("--workers", type=int, default=None,
                        help="Threads for stepping regions (default: simulation.parallel_workers)")
    parser.add_argument("--report-every", type=int, default=None,
                        help="Print statistics every N days (default: simulation.report_interval)")
    parser.add_argument("--regions", type=str, default=None,
                        help="Region definitions YAML replacing the configured regions")
    parser.add_argument("--save-regions", type=str, default=None,
                        help="Write the world's region definitions to this YAML file")
    parser.add_argument("--save-history", type=str, default=None,
                        help="Write the per-day statistics history to this .npz file")
    parser.add_argument("--perf", action="store_true",
                        help="Print a timing breakdown at the end")
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
        if args.regions is not None:
            config.regions = load_region_definitions_yaml(args.regions)
            validate_config(config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    print("=" * 60)
    print("Outbreak Simulation Console Runner")
    print("=" * 60)
    print_config(config)

    perf = PerfMonitor(enabled=args.perf)
    world = World.from_config(config, perf=perf)
    controller = AutoPolicyController(config.auto_policies, catalog=world.catalog)
    recorder = StatisticsRecorder(
        enabled=config.output.record_history or args.save_history is not None,
        interval_days=config.output.history_interval,
    )

    print("Initial state:")
    print_statistics(world)

    interval = config.simulation.report_interval

    def progress(i: int, n: int, w: World, actions: List[PolicyAction]) -> None:
        for action in actions:
            print(f"Auto policy: {action.describe()}")
        if i % interval == 0 or i == n:
            print_statistics(w)

    if config.simulation.start_running:
        world.start()
    result = run_simulation(world, config.simulation.n_days,
                            controller=controller, recorder=recorder,
                            progress_callback=progress)

    print("=" * 60)
    print(f"Final results after {result.days_simulated} days:")
    for state, count in result.final_statistics.items():
        print(f"  {state}: {count}")
    for name, peak in result.peak_infected.items():
        print(f"  Peak infected in {name}: {peak} (day {result.peak_infected_day[name]})")
    print(f"  Policy changes: {len(result.actions)}")

    if args.save_regions is not None:
        save_region_definitions_yaml(world.region_definitions(), args.save_regions)
        print(f"Saved regions: {args.save_regions}")
    if args.save_history is not None:
        recorder.save(args.save_history)
        print(f"Saved history: {args.save_history}")
    if args.perf:
        print(perf.report(title="Simulation timing"))
        if config.output.directory:
            out = Path(config.output.directory)
            out.mkdir(parents=True, exist_ok=True)
            with open(out / "timing.json", "w") as f:
                json.dump(perf.summary(), f, indent=2)
    return 0


if __name__ == "__main__":
    sys.exit(main())
