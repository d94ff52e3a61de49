"""Parallel generation of uniform random permutations with MPI."""

from .errors import ParapermError, PreconditionError, TransportError
from .geometry import BlockGeometry, block_counts, block_geometry
from .api import gather_permutation, permute, verify

__version__ = "0.1.0"

__all__ = [
    "BlockGeometry",
    "ParapermError",
    "PreconditionError",
    "TransportError",
    "block_counts",
    "block_geometry",
    "gather_permutation",
    "permute",
    "verify",
]
