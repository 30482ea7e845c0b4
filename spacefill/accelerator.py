"""Compute backends for the grid solver.

An accelerator runs the two data-parallel kernels of :class:`~spacefill.Argmax2D`:

* **insertion** — ``cell = min(cell, primitive(cell_center))`` over a batch
  of cells, every cell independent;
* **block reduction** — per consecutive group of ``block`` cells, the
  maximum and the index of the cell holding it (lowest index on ties).

:meth:`Accelerator.argmax` is the host-side loop of a two-phase reduction:
one pass of per-workgroup partial maxima, then second-phase passes over the
partial winners until a single winner remains.  Every backend returns
bit-identical results; choosing one never changes the field.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Tuple

import numpy as np
import numpy.typing as npt

from .errors import ConfigurationError
from .geometry import Primitive

log = logging.getLogger(__name__)

_Array = npt.NDArray[np.floating]
_Index = npt.NDArray[np.int64]


class Accelerator(ABC):
    """Insert/reduce contract shared by every backend."""

    #: cells reduced per group in the first phase of :meth:`argmax`
    workgroup_size: int = 512

    @abstractmethod
    def insert(self, values: _Array, points: _Array, primitive: Primitive) -> None:
        """Lower *values* in place to ``min(values, primitive(points))``."""

    @abstractmethod
    def block_reduce(
        self, values: _Array, indices: _Index, block: int
    ) -> Tuple[_Array, _Index]:
        """Per group of *block* consecutive entries, the max value and its index.

        ``len(values)`` must be a multiple of *block*.
        """

    def argmax(self, values: _Array, indices: Optional[_Index] = None) -> Tuple[float, int]:
        """Global ``(max, index)`` of *values* by repeated block reduction."""
        vals = np.asarray(values, dtype=np.float64)
        idx = np.arange(len(vals), dtype=np.int64) if indices is None else np.asarray(indices)
        if len(vals) == 0:
            raise ValueError("argmax of an empty array")
        passes = 0
        while len(vals) > 1:
            block = min(self.workgroup_size, len(vals))
            vals, idx = _pad(vals, idx, block)
            vals, idx = self.block_reduce(vals, idx, block)
            passes += 1
        log.debug("argmax reduced in %d passes", passes)
        return float(vals[0]), int(idx[0])


def _pad(values: _Array, indices: _Index, block: int) -> Tuple[_Array, _Index]:
    """Pad to a multiple of *block* with entries that never win."""
    rem = (-len(values)) % block
    if rem == 0:
        return values, indices
    pad_idx = np.full(rem, np.iinfo(np.int64).max, dtype=np.int64)
    return (
        np.concatenate([values, np.full(rem, -np.inf)]),
        np.concatenate([indices, pad_idx]),
    )


def _reduce_groups(values: _Array, indices: _Index, block: int) -> Tuple[_Array, _Index]:
    v = values.reshape(-1, block)
    am = np.argmax(v, axis=1)
    rows = np.arange(v.shape[0])
    return v[rows, am], indices.reshape(-1, block)[rows, am]


class NumpyAccelerator(Accelerator):
    """Single-threaded vectorised backend."""

    def __init__(self, workgroup_size: int = 512) -> None:
        if workgroup_size < 2:
            raise ConfigurationError(f"workgroup_size must be >= 2, got {workgroup_size}")
        self.workgroup_size = workgroup_size

    def insert(self, values: _Array, points: _Array, primitive: Primitive) -> None:
        np.minimum(values, primitive.sdf(points), out=values)

    def block_reduce(
        self, values: _Array, indices: _Index, block: int
    ) -> Tuple[_Array, _Index]:
        return _reduce_groups(values, indices, block)


class ThreadPoolAccelerator(Accelerator):
    """Backend splitting each kernel across a thread pool.

    numpy releases the GIL inside its loops, so large batches scale with
    *max_workers*.  Each kernel returns only after every worker finished,
    which is the barrier between reduction phases.

    The pool is started on the first kernel call and belongs to the
    accelerator, not to the field using it: call :meth:`close` (or use the
    accelerator as a context manager) when done.  A closed accelerator
    starts a fresh pool if it is used again.
    """

    def __init__(self, max_workers: int = 4, workgroup_size: int = 512) -> None:
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {max_workers}")
        if workgroup_size < 2:
            raise ConfigurationError(f"workgroup_size must be >= 2, got {workgroup_size}")
        self.max_workers = max_workers
        self.workgroup_size = workgroup_size
        self._pool: Optional[ThreadPoolExecutor] = None

    def _executor(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="spacefill"
            )
            log.debug("started thread pool with %d workers", self.max_workers)
        return self._pool

    @property
    def started(self) -> bool:
        return self._pool is not None

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def __enter__(self) -> "ThreadPoolAccelerator":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _bounds(self, n_groups: int) -> list[tuple[int, int]]:
        parts = min(self.max_workers, n_groups)
        edges = np.linspace(0, n_groups, parts + 1).astype(int)
        return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]

    def insert(self, values: _Array, points: _Array, primitive: Primitive) -> None:
        def work(lo: int, hi: int) -> None:
            view = values[lo:hi]
            np.minimum(view, primitive.sdf(points[lo:hi]), out=view)

        pool = self._executor()
        futures = [pool.submit(work, lo, hi) for lo, hi in self._bounds(len(values))]
        for f in futures:
            f.result()

    def block_reduce(
        self, values: _Array, indices: _Index, block: int
    ) -> Tuple[_Array, _Index]:
        n_groups = len(values) // block
        pool = self._executor()
        futures = [
            pool.submit(
                _reduce_groups,
                values[lo * block:hi * block],
                indices[lo * block:hi * block],
                block,
            )
            for lo, hi in self._bounds(n_groups)
        ]
        parts = [f.result() for f in futures]
        return (
            np.concatenate([v for v, _ in parts]),
            np.concatenate([i for _, i in parts]),
        )
