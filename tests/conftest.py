"""In-process communicator for running several ranks on threads.

``ThreadComm`` implements the subset of the mpi4py buffer interface that
paraperm uses, with one thread per rank sharing a ``ThreadWorld``. Point to
point messages are delivered in send order per (source, tag) pair, and
``Recv`` fills a real ``MPI.Status``.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

import numpy as np
import pytest
from mpi4py import MPI

TIMEOUT = 30.0


def _buf(spec):
    if spec is None:
        return None
    if isinstance(spec, (list, tuple)):
        return spec[0]
    return spec


class ThreadWorld:
    def __init__(self, size: int, timeout: float = TIMEOUT) -> None:
        self.size = size
        self.timeout = timeout
        self._barrier = threading.Barrier(size, timeout=timeout)
        self._slots: list[Any] = [None] * size
        self._cond = threading.Condition()
        self._mail: list[list[tuple[int, int, np.ndarray]]] = [[] for _ in range(size)]

    def exchange(self, rank: int, value: Any) -> list[Any]:
        self._slots[rank] = value
        self._barrier.wait()
        snapshot = list(self._slots)
        self._barrier.wait()
        return snapshot

    def post(self, source: int, dest: int, tag: int, data: np.ndarray) -> None:
        with self._cond:
            self._mail[dest].append((source, tag, data))
            self._cond.notify_all()

    def take(self, dest: int, source: int, tag: int) -> tuple[int, int, np.ndarray]:
        def match(msg):
            return (source == MPI.ANY_SOURCE or msg[0] == source) and (
                tag == MPI.ANY_TAG or msg[1] == tag
            )

        with self._cond:
            found = self._cond.wait_for(
                lambda: any(match(msg) for msg in self._mail[dest]), timeout=self.timeout
            )
            if not found:
                raise TimeoutError(f"rank {dest}: no message from {source} with tag {tag}")
            for i, msg in enumerate(self._mail[dest]):
                if match(msg):
                    return self._mail[dest].pop(i)
        raise AssertionError("unreachable")

    def abort(self) -> None:
        self._barrier.abort()

    def pending(self) -> int:
        with self._cond:
            return sum(len(box) for box in self._mail)


class _Completed:
    def Wait(self, status=None):
        return True


class ThreadComm:
    def __init__(self, world: ThreadWorld, rank: int) -> None:
        self.world = world
        self.rank = rank

    def Get_rank(self) -> int:
        return self.rank

    def Get_size(self) -> int:
        return self.world.size

    def Barrier(self) -> None:
        self.world.exchange(self.rank, None)

    def Alltoall(self, sendbuf, recvbuf) -> None:
        send, recv = _buf(sendbuf), _buf(recvbuf)
        everyone = self.world.exchange(self.rank, np.array(send, copy=True))
        for src in range(self.world.size):
            recv[src] = everyone[src][self.rank]

    def Alltoallv(self, sendbuf, recvbuf) -> None:
        sbuf, scounts, sdispls = sendbuf[0], sendbuf[1], sendbuf[2]
        rbuf, rcounts, rdispls = recvbuf[0], recvbuf[1], recvbuf[2]
        everyone = self.world.exchange(
            self.rank, (np.array(sbuf, copy=True), np.array(scounts), np.array(sdispls))
        )
        for src, (data, counts, displs) in enumerate(everyone):
            n = int(counts[self.rank])
            assert n == int(rcounts[src]), "count mismatch in Alltoallv"
            start = int(displs[self.rank])
            at = int(rdispls[src])
            rbuf[at : at + n] = data[start : start + n]

    def Allgather(self, sendbuf, recvbuf) -> None:
        everyone = self.world.exchange(self.rank, np.array(_buf(sendbuf), copy=True))
        _buf(recvbuf)[...] = np.concatenate(everyone)

    def Scan(self, sendbuf, recvbuf, op=MPI.SUM) -> None:
        assert op == MPI.SUM
        everyone = self.world.exchange(self.rank, np.array(_buf(sendbuf), copy=True))
        _buf(recvbuf)[...] = np.sum(np.stack(everyone[: self.rank + 1]), axis=0)

    def Gather(self, sendbuf, recvbuf, root: int = 0) -> None:
        everyone = self.world.exchange(self.rank, np.array(_buf(sendbuf), copy=True))
        if self.rank == root:
            _buf(recvbuf)[...] = np.concatenate(everyone)

    def Gatherv(self, sendbuf, recvbuf, root: int = 0) -> None:
        everyone = self.world.exchange(self.rank, np.array(_buf(sendbuf), copy=True))
        if self.rank == root:
            rbuf, counts, displs = recvbuf[0], recvbuf[1], recvbuf[2]
            for src, data in enumerate(everyone):
                assert data.size == int(counts[src])
                at = int(displs[src])
                rbuf[at : at + data.size] = data

    def Bcast(self, buf, root: int = 0) -> None:
        target = _buf(buf)
        everyone = self.world.exchange(
            self.rank, np.array(target, copy=True) if self.rank == root else None
        )
        target[...] = everyone[root]

    def Isend(self, buf, dest: int, tag: int = 0):
        self.world.post(self.rank, dest, tag, np.array(_buf(buf), copy=True))
        return _Completed()

    def Recv(self, buf, source: int = MPI.ANY_SOURCE, tag: int = MPI.ANY_TAG, status=None) -> None:
        src, msg_tag, data = self.world.take(self.rank, source, tag)
        target = _buf(buf)
        assert target.size == data.size, f"receive buffer {target.size} != message {data.size}"
        target[...] = data
        if status is not None:
            status.Set_source(src)
            status.Set_tag(msg_tag)


def run_ranks(
    nprocs: int,
    fn: Callable[[ThreadComm], Any],
    comm_cls: type = ThreadComm,
) -> list[Any]:
    """Run ``fn(comm)`` once per rank, each on its own thread."""
    world = ThreadWorld(nprocs)

    def body(rank):
        try:
            return fn(comm_cls(world, rank))
        except BaseException:
            world.abort()
            raise

    with ThreadPoolExecutor(max_workers=nprocs) as pool:
        futures = [pool.submit(body, rank) for rank in range(nprocs)]
        results = [f.result(timeout=TIMEOUT * 4) for f in futures]
    assert world.pending() == 0, "undelivered point-to-point messages"
    return results


@pytest.fixture
def ranks():
    return run_ranks


@pytest.fixture
def thread_comm():
    return ThreadComm
