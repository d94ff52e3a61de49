"""Phase 3: move the shuffled elements into their final output blocks.

An inclusive scan of the per-rank sizes fixes the global positions
``[first, last]`` of the local shuffled run. Each fragment of that run that
falls into another rank's block is sent as a ``(firstp, countp)`` header
(``HEADER_TAG``) followed by the payload (``PAYLOAD_TAG``). Fragments for
our own block are copied directly. The receive side takes headers from any
source and then the payload from that same source, until the local block is
full.
"""

from __future__ import annotations

import logging

import numpy as np
from mpi4py import MPI

from .buffers import ELEMENT_DTYPE, ELEMENT_MPI
from .errors import ParapermError, transport
from .geometry import BlockGeometry

logger = logging.getLogger(__name__)

HEADER_TAG = 1
PAYLOAD_TAG = 2


def exclusive_offset(comm: MPI.Comm, size: int) -> int:
    local = np.array([size], dtype=ELEMENT_DTYPE)
    inclusive = np.empty(1, dtype=ELEMENT_DTYPE)
    with transport("MPI_Scan", "Error getting prefix sums in phase 3"):
        comm.Scan([local, ELEMENT_MPI], [inclusive, ELEMENT_MPI], op=MPI.SUM)
    return int(inclusive[0]) - size


def fragments(first: int, size: int, m: int) -> list[tuple[int, int, int]]:
    """Split ``[first, first + size)`` along block boundaries of width ``m``.

    Returns ``(rank, firstp, countp)`` triples covering every position once.
    """
    out = []
    if size == 0:
        return out
    last = first + size - 1
    rp = first // m
    firstp = first
    while firstp <= last:
        lastp = min((rp + 1) * m - 1, last)
        countp = lastp - firstp + 1
        out.append((rp, firstp, countp))
        rp += 1
        firstp += countp
    return out


def run_phase3(
    comm: MPI.Comm,
    temp: np.ndarray,
    geometry: BlockGeometry,
    perm: np.ndarray,
) -> None:
    rank = comm.Get_rank()
    size = temp.size
    pos = geometry.pos
    first = exclusive_offset(comm, size)
    remains = geometry.count
    logger.debug("phase 3 rank %d: first %d, size %d, remains %d", rank, first, size, remains)

    requests = []
    headers = []
    for rp, firstp, countp in fragments(first, size, geometry.m):
        src = temp[firstp - first : firstp - first + countp]
        if rp == rank:
            perm[firstp - pos : firstp - pos + countp] = src
            remains -= countp
            continue

        header = np.array([firstp, countp], dtype=ELEMENT_DTYPE)
        headers.append(header)
        with transport("MPI_Isend", "Error exchanging first and last values in phase 3"):
            requests.append(comm.Isend([header, ELEMENT_MPI], dest=rp, tag=HEADER_TAG))
        with transport("MPI_Isend", "Error sending surplus elements to others in phase 3"):
            requests.append(comm.Isend([src, ELEMENT_MPI], dest=rp, tag=PAYLOAD_TAG))
        logger.debug("phase 3 rank %d: %d elements at %d -> rank %d", rank, countp, firstp, rp)

    header = np.empty(2, dtype=ELEMENT_DTYPE)
    status = MPI.Status()
    while remains > 0:
        with transport("MPI_Recv", "Error while receiving first and last values in phase 3"):
            comm.Recv([header, ELEMENT_MPI], source=MPI.ANY_SOURCE, tag=HEADER_TAG, status=status)
        source = status.Get_source()
        firstp, countp = int(header[0]), int(header[1])
        if firstp < pos or firstp + countp > geometry.stop or countp > remains:
            raise ParapermError(
                f"rank {rank} got fragment [{firstp}, {firstp + countp}) from rank {source} "
                f"outside its block [{pos}, {geometry.stop}) with {remains} slots left"
            )
        with transport("MPI_Recv", "Error while receiving additional values in phase 3"):
            comm.Recv(
                [perm[firstp - pos : firstp - pos + countp], ELEMENT_MPI],
                source=source,
                tag=PAYLOAD_TAG,
            )
        remains -= countp
        logger.debug("phase 3 rank %d: %d elements at %d <- rank %d", rank, countp, firstp, source)

    with transport("MPI_Wait", "Error waiting for requests in phase 3"):
        for request in requests:
            request.Wait()
    requests.clear()
    del headers

    with transport("MPI_Barrier", "Error invoking barrier in phase 3"):
        comm.Barrier()
