"""Phase 1: send every element of the local input block to a random rank."""

from __future__ import annotations

import logging

import numpy as np
from mpi4py import MPI

from .buffers import (
    COUNT_DTYPE,
    COUNT_MPI,
    ELEMENT_DTYPE,
    ELEMENT_MPI,
    bucket_counts,
    displacements,
    sort_indices,
)
from .errors import transport

logger = logging.getLogger(__name__)


def draw_destinations(count: int, nprocs: int, rng: np.random.Generator) -> np.ndarray:
    return rng.integers(0, nprocs, size=count, dtype=np.int64)


def run_phase1(
    comm: MPI.Comm,
    count: int,
    pos: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Scatter ``[pos, pos + count)`` to uniformly random ranks.

    Returns the concatenation of everything this rank received, ordered by
    source rank. Its length may be anything from 0 to n.
    """
    nprocs = comm.Get_size()

    sendbuf = np.arange(pos, pos + count, dtype=ELEMENT_DTYPE)
    dest = draw_destinations(count, nprocs, rng)

    order = sort_indices(dest)
    sorted_sendbuf = np.ascontiguousarray(sendbuf[order])
    del sendbuf

    send_counts = bucket_counts(dest, nprocs)
    send_displs = displacements(send_counts)
    del dest, order

    recv_counts = np.empty(nprocs, dtype=COUNT_DTYPE)
    with transport("MPI_Alltoall", "Error exchanging send counts and receive counts in phase 1"):
        comm.Alltoall([send_counts, COUNT_MPI], [recv_counts, COUNT_MPI])

    recv_displs = displacements(recv_counts)
    total = int(np.sum(recv_counts, dtype=np.int64))
    logger.debug(
        "phase 1 rank %d: sent %s, receiving %s (total %d)",
        comm.Get_rank(),
        send_counts.tolist(),
        recv_counts.tolist(),
        total,
    )

    temp = np.empty(total, dtype=ELEMENT_DTYPE)
    with transport("MPI_Alltoallv", "Error exchanging permuted values in phase 1"):
        comm.Alltoallv(
            [sorted_sendbuf, send_counts, send_displs, ELEMENT_MPI],
            [temp, recv_counts, recv_displs, ELEMENT_MPI],
        )

    with transport("MPI_Barrier", "Error synchronizing processes in phase 1"):
        comm.Barrier()
    return temp
