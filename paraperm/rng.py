from __future__ import annotations

import numpy as np


def make_rng(seed: int | None, rank: int) -> np.random.Generator:
    """Mersenne-Twister generator whose stream is distinct for every rank.

    The rank is folded in as a spawn key, so a shared ``seed`` still gives
    independent per-rank streams and a fixed ``(seed, rank)`` pair is
    reproducible. ``seed=None`` draws fresh OS entropy.
    """
    seq = np.random.SeedSequence(entropy=seed, spawn_key=(rank,))
    return np.random.Generator(np.random.MT19937(seq))
