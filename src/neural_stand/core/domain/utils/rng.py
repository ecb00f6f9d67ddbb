from __future__ import annotations

import numpy as np


def make_rng(seed: int | None) -> np.random.Generator:
    """Build the generator an engine owns (None draws fresh OS entropy)."""

    return np.random.default_rng(seed)


def child_rngs(rng: np.random.Generator, count: int) -> list[np.random.Generator]:
    """Derive independent generators for worker threads, deterministically from `rng`."""

    seeds = rng.integers(0, 2**32, size=count, dtype=np.uint64)
    return [np.random.default_rng(int(s)) for s in seeds]
