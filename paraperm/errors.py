from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from mpi4py import MPI

logger = logging.getLogger(__name__)


class ParapermError(Exception):
    """Base class for failures of a distributed permutation."""


class PreconditionError(ParapermError, ValueError):
    pass


class TransportError(ParapermError):
    """A message-passing call failed. Always fatal for the current run."""

    def __init__(self, operation: str, description: str) -> None:
        super().__init__(f"{operation}: {description}")
        self.operation = operation
        self.description = description


@contextmanager
def transport(operation: str, description: str) -> Iterator[None]:
    try:
        yield
    except MPI.Exception as exc:
        logger.error(
            "Permuting numbers -- MPI function : %s, description : %s (%s)",
            operation,
            description,
            exc,
        )
        raise TransportError(operation, description) from exc
