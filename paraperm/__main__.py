"""Generate a distributed random permutation.

Examples:
  mpiexec -n 4 python -m paraperm --size 32 --verify
  mpiexec -n 4 python -m paraperm --size 10 --seed 7 --print-array
"""

from __future__ import annotations

import argparse
import logging
import sys

from mpi4py import MPI

from .api import gather_permutation, permute, verify


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Distributed random permutation of [0, n) (Sanders / Paraperm)."
    )
    parser.add_argument(
        "-n",
        "--size",
        type=int,
        default=32,
        help="Number of integers to permute.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Base seed; every rank derives its own stream from it.",
    )
    parser.add_argument(
        "--print-array",
        action="store_true",
        help="Gather and print the permutation on rank 0.",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Check that the blocks form a permutation of [0, n).",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)
    if args.size < 0:
        parser.error("--size must be non-negative")
    return args


def main(argv: list[str] | None = None, comm: MPI.Comm | None = None) -> int:
    args = parse_args(argv)
    if comm is None:
        comm = MPI.COMM_WORLD
    rank = comm.Get_rank()
    nprocs = comm.Get_size()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format=f"[rank {rank}] %(levelname)s %(name)s: %(message)s",
        )

    if rank == 0:
        print(f"Number of participating processes : {nprocs}")

    comm.Barrier()
    t0 = MPI.Wtime()
    perm = permute(args.size, comm, seed=args.seed, check_consistent_n=True)
    comm.Barrier()
    elapsed = MPI.Wtime() - t0

    if rank == 0:
        print(f"n={args.size} time={elapsed:.6f} s")

    ok = True
    if args.verify:
        ok = verify(args.size, perm, comm)
        if rank == 0:
            print(f"Permutation valid: {ok}")

    if args.print_array:
        gathered = gather_permutation(perm, comm)
        if rank == 0:
            print(f"Permutation ({gathered.size} elements): {gathered.tolist()}")

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
