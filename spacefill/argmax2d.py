"""Grid-Argmax solver: a discretised distance field with a max-reduction pyramid.

The unit square is sampled on an ``N × N`` cell-centred grid stored in
Morton order (:class:`~spacefill.zorder.ZOrderStorage`).  Cells are updated
chunk by chunk; each chunk's winner feeds a pyramid whose level ``k`` holds
the winner of every group of ``4**k`` chunks, so the root is the global
maximum and reading it is O(1).

Only chunks inside the primitive's influence region are touched on insert,
and only their pyramid ancestors are recomputed.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .accelerator import Accelerator, NumpyAccelerator
from .field import Field, MaximaResult, influence_domain
from .geometry import Primitive, Rect
from .sdf_lib import FAR
from .zorder import ZOrderStorage, morton_decode, morton_encode

log = logging.getLogger(__name__)

_Array = npt.NDArray[np.floating]
_Index = npt.NDArray[np.int64]


class Argmax2D(Field):
    """Dense distance field over ``[0, 1)²`` answering global argmax queries.

    Parameters
    ----------
    resolution:
        Cells per side ``N``; a power of two.
    chunk_size:
        Side of the update chunks (power of two, ``<= resolution``).  The
        pyramid starts at chunk granularity.
    accelerator:
        Backend running the insertion and reduction kernels; defaults to
        :class:`~spacefill.accelerator.NumpyAccelerator`.

    Raises
    ------
    ConfigurationError
        If *resolution* or *chunk_size* is not a power of two.
    """

    def __init__(
        self,
        resolution: int = 1024,
        chunk_size: int = 16,
        accelerator: Optional[Accelerator] = None,
    ) -> None:
        self.storage = ZOrderStorage(resolution, chunk_size, FAR)
        self.accelerator = accelerator or NumpyAccelerator()
        self._levels: List[Tuple[_Array, _Index]] = []
        self._rebuild()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def resolution(self) -> int:
        return self.storage.resolution

    @property
    def cell_size(self) -> float:
        return 1.0 / self.storage.resolution

    @property
    def levels(self) -> int:
        """Number of pyramid levels, chunk level and root included."""
        return len(self._levels)

    def cell_center(self, x: int, y: int) -> _Array:
        return (np.array([x, y], dtype=float) + 0.5) / self.resolution

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def argmax(self) -> MaximaResult:
        """Global maximum of the grid, read from the pyramid root."""
        values, indices = self._levels[-1]
        x, y = morton_decode(indices[0])
        return MaximaResult(self.cell_center(int(x), int(y)), float(values[0]))

    def scan_argmax(self) -> MaximaResult:
        """Global maximum by a full two-phase reduction, bypassing the pyramid."""
        value, index = self.accelerator.argmax(self.storage.data)
        x, y = morton_decode(index)
        return MaximaResult(self.cell_center(int(x), int(y)), value)

    def cell(self, x: int, y: int) -> float:
        """Stored value of cell column *x*, row *y*."""
        return float(self.storage.data[self.storage.index(x, y)])

    def sample(self, point: Sequence[float]) -> float:
        """Bilinear interpolation between the four nearest cell centres.

        Continuous in *point*, so finite-difference gradients are meaningful.
        Points beyond the outer cell centres take the edge values.
        """
        n = self.resolution
        u = np.asarray(point, dtype=float)[:2] * n - 0.5
        i0 = np.clip(np.floor(u), 0, n - 1).astype(np.int64)
        i1 = np.minimum(i0 + 1, n - 1)
        t = np.clip(u - i0, 0.0, 1.0)
        data = self.storage.data
        v00 = data[morton_encode(i0[0], i0[1])]
        v10 = data[morton_encode(i1[0], i0[1])]
        v01 = data[morton_encode(i0[0], i1[1])]
        v11 = data[morton_encode(i1[0], i1[1])]
        bottom = v00 * (1.0 - t[0]) + v10 * t[0]
        top = v01 * (1.0 - t[0]) + v11 * t[0]
        return float(bottom * (1.0 - t[1]) + top * t[1])

    def to_array(self) -> _Array:
        """Row-major copy of the field, shape ``(N, N)`` (y first)."""
        return self.storage.to_array()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, primitive: Primitive, domain: Optional[Rect] = None) -> None:
        """Union *primitive* into the grid.

        Parameters
        ----------
        primitive:
            Shape to insert.
        domain:
            Region whose cells are updated.  Defaults to the primitive's
            bounding box grown by the current global maximum, outside of
            which no cell can decrease; the whole grid when the primitive
            is unbounded.
        """
        if domain is None:
            domain = influence_domain(primitive, self.argmax().magnitude)
        chunks = self.storage.chunks_in(domain)
        if len(chunks) == 0:
            return
        self._update_chunks(chunks, primitive)
        log.debug("inserted %r into %d/%d chunks", primitive, len(chunks), self.storage.chunk_count)

    def invert(self) -> None:
        """Negate every cell (swap inside and outside) and rebuild the pyramid."""
        np.negative(self.storage.data, out=self.storage.data)
        self._rebuild()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _update_chunks(self, chunks: _Index, primitive: Optional[Primitive]) -> None:
        storage = self.storage
        idx = storage.chunk_indices(chunks)
        values = storage.data[idx]
        if primitive is not None:
            self.accelerator.insert(values, storage.centers[idx], primitive)
            storage.data[idx] = values

        # phase 1: chunk winners
        chunk_vals, chunk_idx = self.accelerator.block_reduce(values, idx, storage.chunk_area)
        level_vals, level_idx = self._levels[0]
        level_vals[chunks] = chunk_vals
        level_idx[chunks] = chunk_idx

        # phase 2: ancestors of the touched chunks only
        touched = chunks
        for k in range(1, len(self._levels)):
            child_vals, child_idx = self._levels[k - 1]
            touched = np.unique(touched // 4)
            children = (touched[:, None] * 4 + np.arange(4)).ravel()
            vals, winners = self.accelerator.block_reduce(
                child_vals[children], child_idx[children], 4
            )
            self._levels[k][0][touched] = vals
            self._levels[k][1][touched] = winners

    def _rebuild(self) -> None:
        count = self.storage.chunk_count
        self._levels = []
        while True:
            self._levels.append((np.empty(count, dtype=np.float64), np.empty(count, dtype=np.int64)))
            if count == 1:
                break
            count //= 4
        self._update_chunks(np.arange(self.storage.chunk_count, dtype=np.int64), None)
