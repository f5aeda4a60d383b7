"""Seeded RNG streams for reproducible simulations.

Every region owns one NumPy Generator: child k of the master SeedSequence
(spawn_key (1+k,)) drives a PCG64 for the k-th region a World creates.
spawn_key (0,) is left for world-level draws. Because streams are addressed
by spawn key:
  - a region's stream does not depend on how many regions exist
  - serial and thread-pool stepping draw identical numbers
  - the same master seed replays a run bit-exactly

Generator states can be captured and put back (checkpointing).
"""

from __future__ import annotations

from typing import Dict, Mapping

import numpy as np


def region_stream(master_seed: int, index: int) -> np.random.Generator:
    """Stream for the index-th region (0-based) created under master_seed."""
    if index < 0:
        raise ValueError(f"region stream index must be >= 0, got {index}")
    seq = np.random.SeedSequence(master_seed, spawn_key=(1 + index,))
    return np.random.Generator(np.random.PCG64(seq))


def rng_state_snapshot(streams: Mapping[str, np.random.Generator]) -> Dict[str, dict]:
    """{name: bit-generator state} for every stream."""
    return {name: gen.bit_generator.state for name, gen in streams.items()}


def restore_rng_state(streams: Mapping[str, np.random.Generator],
                      states: Mapping[str, dict]) -> None:
    """Put saved states back. Nothing is changed unless every name in
    `states` names a stream.

    Raises:
        KeyError: Listing the saved names that have no stream.
    """
    missing = sorted(set(states) - set(streams))
    if missing:
        raise KeyError(f"No RNG stream for saved state(s): {', '.join(missing)}")
    for name, state in states.items():
        streams[name].bit_generator.state = state
