"""Opt-in wall-clock timing for simulation components.

    perf = PerfMonitor(enabled=True)
    with perf.track("region:Metro City"):
        region.simulate_day()
    print(perf.report())

Components used by the engine: "auto_policy", "region:<name>" (measured in
the worker that stepped the region, then recorded) and "history".
A disabled monitor does no timing at all.
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, List, Optional


class PerfMonitor:
    """Accumulated seconds and call counts per named component."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        # component -> [total seconds, calls]
        self._totals: Dict[str, List[float]] = defaultdict(lambda: [0.0, 0])
        self._run_start: Optional[float] = None
        self._run_time = 0.0

    def start(self) -> None:
        if self.enabled:
            self._run_start = time.perf_counter()

    def stop(self) -> None:
        if self.enabled and self._run_start is not None:
            self._run_time = time.perf_counter() - self._run_start

    def record(self, component: str, elapsed: float) -> None:
        if self.enabled:
            entry = self._totals[component]
            entry[0] += elapsed
            entry[1] += 1

    @contextmanager
    def track(self, component: str):
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.record(component, time.perf_counter() - t0)

    def summary(self) -> dict:
        """JSON-ready {component: {total_s, calls, pct}} plus _total_s,
        slowest component first."""
        total = self._run_time or sum(t for t, _ in self._totals.values())
        result = {}
        for name, (seconds, calls) in sorted(self._totals.items(),
                                             key=lambda kv: -kv[1][0]):
            result[name] = {
                'total_s': round(seconds, 4),
                'calls': int(calls),
                'pct': round(100.0 * seconds / total, 1) if total > 0 else 0.0,
            }
        result['_total_s'] = round(total, 4)
        return result

    def report(self, title: str = "Timing") -> str:
        summary = self.summary()
        total = summary.pop('_total_s')
        lines = [title, '-' * len(title)]
        for name, row in summary.items():
            lines.append(f"  {name:<28} {row['total_s']:>9.4f}s "
                         f"x{row['calls']:<6} {row['pct']:>5.1f}%")
        lines.append(f"  {'total':<28} {total:>9.4f}s")
        return '\n'.join(lines)
