"""Distributed uniform random permutation of ``[0, n)``.

Sanders' algorithm in the three-phase formulation of Langr et al.
("Algorithm 947: Paraperm"). Every rank of the communicator calls
:func:`permute` with the same ``n`` and gets back its contiguous block of the
result.
"""

from __future__ import annotations

import logging

import numpy as np
from mpi4py import MPI

from .buffers import COUNT_DTYPE, COUNT_MPI, ELEMENT_DTYPE, ELEMENT_MPI, displacements
from .errors import PreconditionError, transport
from .geometry import block_counts, block_geometry
from .placement import run_phase3
from .redistribute import run_phase1
from .rng import make_rng
from .shuffle import run_phase2

logger = logging.getLogger(__name__)


def check_consistent(comm: MPI.Comm, n: int) -> None:
    """Collectively fail on every rank unless all ranks passed the same ``n``."""
    local = np.array([n], dtype=np.int64)
    everyone = np.empty(comm.Get_size(), dtype=np.int64)
    with transport("MPI_Allgather", "Error exchanging problem sizes"):
        comm.Allgather([local, MPI.INT64_T], [everyone, MPI.INT64_T])
    if np.any(everyone != n):
        raise PreconditionError(f"ranks disagree on n: {everyone.tolist()}")


def permute(
    n: int,
    comm: MPI.Comm | None = None,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
    check_consistent_n: bool = False,
) -> np.ndarray:
    """Return this rank's block of a uniform random permutation of ``[0, n)``.

    Collective over ``comm`` (``MPI.COMM_WORLD`` by default). ``rng`` is the
    per-rank random source; when omitted one is built from ``seed`` and the
    rank. The returned array has ``count(rank)`` elements of dtype uint64.
    """
    if comm is None:
        comm = MPI.COMM_WORLD
    rank = comm.Get_rank()
    geometry = block_geometry(n, comm.Get_size(), rank)
    if check_consistent_n:
        check_consistent(comm, n)
    if rng is None:
        rng = make_rng(seed, rank)
    logger.debug("rank %d: m %d, pos %d, count %d", rank, geometry.m, geometry.pos, geometry.count)

    temp = run_phase1(comm, geometry.count, geometry.pos, rng)
    run_phase2(comm, temp, rng)

    perm = np.empty(geometry.count, dtype=ELEMENT_DTYPE)
    run_phase3(comm, temp, geometry, perm)
    del temp
    return perm


def _gather_blocks(
    perm: np.ndarray, comm: MPI.Comm, root: int
) -> tuple[np.ndarray | None, np.ndarray | None]:
    rank = comm.Get_rank()
    nprocs = comm.Get_size()

    local_n = np.array([perm.size], dtype=COUNT_DTYPE)
    counts = np.empty(nprocs, dtype=COUNT_DTYPE) if rank == root else None
    with transport("MPI_Gather", "Error gathering block sizes"):
        comm.Gather([local_n, COUNT_MPI], [counts, COUNT_MPI] if rank == root else None, root=root)

    if rank == root:
        displs = displacements(counts)
        gathered = np.empty(int(np.sum(counts, dtype=np.int64)), dtype=ELEMENT_DTYPE)
    else:
        displs = None
        gathered = None

    with transport("MPI_Gatherv", "Error gathering permutation blocks"):
        comm.Gatherv(
            [np.ascontiguousarray(perm, dtype=ELEMENT_DTYPE), ELEMENT_MPI],
            [gathered, counts, displs, ELEMENT_MPI] if rank == root else None,
            root=root,
        )
    return counts, gathered


def gather_permutation(perm: np.ndarray, comm: MPI.Comm, root: int = 0) -> np.ndarray | None:
    """Concatenate every rank's block on ``root``; other ranks get ``None``."""
    return _gather_blocks(perm, comm, root)[1]


def verify(n: int, perm: np.ndarray, comm: MPI.Comm | None = None, root: int = 0) -> bool:
    """Collectively check that the blocks form a permutation of ``[0, n)``.

    Block lengths must match the block geometry and the sorted concatenation
    must equal ``arange(n)``. Every rank returns the same verdict.
    """
    if comm is None:
        comm = MPI.COMM_WORLD
    rank = comm.Get_rank()
    counts, gathered = _gather_blocks(perm, comm, root)

    verdict = np.zeros(1, dtype=np.int8)
    if rank == root:
        ok = counts.tolist() == block_counts(n, comm.Get_size()) and np.array_equal(
            np.sort(gathered), np.arange(n, dtype=ELEMENT_DTYPE)
        )
        verdict[0] = int(ok)

    with transport("MPI_Bcast", "Error broadcasting verification result"):
        comm.Bcast([verdict, MPI.INT8_T], root=root)
    if not verdict[0]:
        logger.warning("rank %d: blocks do not form a permutation of [0, %d)", rank, n)
    return bool(verdict[0])
