"""Phase 2: shuffle the elements a rank received in phase 1."""

from __future__ import annotations

import numpy as np
from mpi4py import MPI

from .errors import transport


def fisher_yates(values: np.ndarray, rng: np.random.Generator) -> None:
    """In-place Knuth shuffle, walking from the back."""
    total = values.size
    if total <= 1:
        return
    bounds = np.arange(total, 1, -1, dtype=np.int64)
    picks = rng.integers(0, bounds)
    for k, l in zip(range(total - 1, 0, -1), picks.tolist()):
        values[k], values[l] = values[l], values[k]


def run_phase2(comm: MPI.Comm, temp: np.ndarray, rng: np.random.Generator) -> None:
    fisher_yates(temp, rng)
    with transport("MPI_Barrier", "Error synchronizing processes in phase 2"):
        comm.Barrier()
