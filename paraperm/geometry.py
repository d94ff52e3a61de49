from __future__ import annotations

from dataclasses import dataclass

from .errors import PreconditionError


@dataclass(frozen=True)
class BlockGeometry:
    """Contiguous output block owned by one rank.

    ``m`` is the nominal block size ``ceil(n / nprocs)``; the block covers the
    global positions ``[pos, pos + count)``. Only the highest non-empty rank
    may have ``count < m``, and ranks past it are empty.
    """

    n: int
    nprocs: int
    rank: int
    m: int
    pos: int
    count: int

    @property
    def stop(self) -> int:
        return self.pos + self.count

    def owner(self, position: int) -> int:
        return position // self.m


def block_geometry(n: int, nprocs: int, rank: int) -> BlockGeometry:
    if n < 0:
        raise PreconditionError(f"n must be non-negative, got {n}")
    if nprocs < 1:
        raise PreconditionError(f"process count must be >= 1, got {nprocs}")
    if not 0 <= rank < nprocs:
        raise PreconditionError(f"rank {rank} outside [0, {nprocs})")

    m = -(-n // nprocs)
    pos = rank * m
    if (rank + 1) * m <= n:
        count = m
    elif pos < n:
        count = n - pos
    else:
        count = 0
    return BlockGeometry(n=n, nprocs=nprocs, rank=rank, m=m, pos=pos, count=count)


def block_counts(n: int, nprocs: int) -> list[int]:
    return [block_geometry(n, nprocs, r).count for r in range(nprocs)]
