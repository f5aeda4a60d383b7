"""Per-day statistics history.

Records each region's state counts at configurable intervals so that
progression charts (any state, any region, or the global sum) can be drawn
after or during a run.

Usage:
    recorder = StatisticsRecorder(enabled=True, interval_days=1)
    recorder.capture(world.current_day, world.regions)
    days, infected = recorder.series("Metro City", "Infected")
    recorder.save("history.npz")
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from outbreak_sim.types import N_STATES, STATE_NAMES, counts_to_statistics, state_from_label


class StatisticsRecorder:
    """Day-by-day state counts per region.

    When enabled=False, capture() is a no-op.
    """

    def __init__(
        self,
        enabled: bool = True,
        interval_days: int = 1,
        regions: Optional[Iterable[str]] = None,
    ):
        """
        Args:
            enabled: Master switch.
            interval_days: Capture every N days (day 0 included).
            regions: Region names to capture (None = all).
        """
        if interval_days < 1:
            raise ValueError(f"interval_days must be >= 1, got {interval_days}")
        self.enabled = enabled
        self.interval_days = interval_days
        self.region_filter = set(regions) if regions is not None else None
        # region name -> {day: (N_STATES,) counts}
        self._data: Dict[str, Dict[int, np.ndarray]] = {}

    def should_capture(self, day: int) -> bool:
        return self.enabled and day % self.interval_days == 0

    def capture(self, day: int, regions: Iterable) -> bool:
        """Record state counts of every (filtered) region for this day.

        Regions need `.name` and `.state_counts()`. Capturing the same day
        twice overwrites it.

        Returns:
            True if the day was recorded.
        """
        if not self.should_capture(day):
            return False
        for region in regions:
            if self.region_filter is not None and region.name not in self.region_filter:
                continue
            counts = np.asarray(region.state_counts(), dtype=np.int64).copy()
            self._data.setdefault(region.name, {})[int(day)] = counts
        return True

    def clear(self) -> None:
        self._data.clear()

    def region_names(self) -> List[str]:
        return list(self._data)

    def get_days(self) -> List[int]:
        return sorted({d for per_day in self._data.values() for d in per_day})

    def statistics_at(self, region_name: str, day: int) -> Optional[Dict[str, int]]:
        counts = self._data.get(region_name, {}).get(day)
        return None if counts is None else counts_to_statistics(counts)

    def series(self, region_name: str, state: str) -> Tuple[np.ndarray, np.ndarray]:
        """(days, counts) for one region and state label.

        Raises:
            KeyError: If the region was never captured.
            ValueError: If state is not a known label.
        """
        idx = int(state_from_label(state))
        per_day = self._data[region_name]
        days = np.array(sorted(per_day), dtype=np.int64)
        counts = np.array([per_day[d][idx] for d in days], dtype=np.int64)
        return days, counts

    def global_series(self, state: str) -> Tuple[np.ndarray, np.ndarray]:
        """(days, counts) summed over every captured region."""
        idx = int(state_from_label(state))
        days = self.get_days()
        totals = np.zeros(len(days), dtype=np.int64)
        for per_day in self._data.values():
            for i, d in enumerate(days):
                if d in per_day:
                    totals[i] += per_day[d][idx]
        return np.array(days, dtype=np.int64), totals

    def as_array(self) -> Tuple[List[str], np.ndarray, np.ndarray]:
        """(region_names, days, counts) with counts shaped
        (n_regions, n_days, N_STATES); missing entries are -1."""
        names = self.region_names()
        days = self.get_days()
        out = np.full((len(names), len(days), N_STATES), -1, dtype=np.int64)
        day_pos = {d: i for i, d in enumerate(days)}
        for r, name in enumerate(names):
            for d, counts in self._data[name].items():
                out[r, day_pos[d]] = counts
        return names, np.array(days, dtype=np.int64), out

    def save(self, path: str) -> None:
        """Save to a compressed npz (region_names, days, counts, state_names)."""
        names, days, counts = self.as_array()
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(
            path,
            region_names=np.array(names, dtype=str),
            days=days,
            counts=counts,
            state_names=np.array(STATE_NAMES, dtype=str),
        )

    @classmethod
    def load(cls, path: str) -> 'StatisticsRecorder':
        """Load a history saved by save(); the result does not capture."""
        data = np.load(path)
        recorder = cls(enabled=False)
        days = data['days']
        counts = data['counts']
        for r, name in enumerate(data['region_names']):
            per_day = {}
            for i, d in enumerate(days):
                if counts[r, i, 0] >= 0:
                    per_day[int(d)] = counts[r, i].copy()
            recorder._data[str(name)] = per_day
        return recorder
