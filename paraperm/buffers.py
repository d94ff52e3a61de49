from __future__ import annotations

import numpy as np
from mpi4py import MPI

# Element type on the wire, wide enough for n and every offset into [0, n).
ELEMENT_DTYPE = np.uint64
ELEMENT_MPI = MPI.UINT64_T

# Per-destination counts and displacements.
COUNT_DTYPE = np.int32
COUNT_MPI = MPI.INT


def displacements(counts: np.ndarray) -> np.ndarray:
    displs = np.zeros_like(counts)
    displs[1:] = np.cumsum(counts[:-1])
    return displs


def sort_indices(keys: np.ndarray) -> np.ndarray:
    """Index permutation ``idx`` such that ``keys[idx]`` is non-decreasing."""
    return np.argsort(keys, kind="stable")


def bucket_counts(keys: np.ndarray, nbuckets: int) -> np.ndarray:
    if keys.size == 0:
        return np.zeros(nbuckets, dtype=COUNT_DTYPE)
    return np.bincount(keys, minlength=nbuckets).astype(COUNT_DTYPE)
