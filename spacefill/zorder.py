"""Morton (z-order) addressing for square power-of-two grids.

Cell ``(x, y)`` of an ``N × N`` grid is stored at ``morton_encode(x, y)``:
the bits of *x* and *y* interleaved, *x* in the even positions.  Every
aligned ``c × c`` block (``c`` a power of two) then occupies the contiguous
range ``[k·c², (k+1)·c²)`` where ``k`` is the Morton code of the block, so a
block is a plain slice and four sibling blocks are adjacent.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
import numpy.typing as npt

from .errors import ConfigurationError
from .geometry import Rect, UNIT

_Array = npt.NDArray[np.floating]
_Index = npt.NDArray[np.int64]

# 16 bits per axis: resolutions up to 65536
MAX_RESOLUTION = 1 << 16


def _part1by1(n: npt.ArrayLike) -> npt.NDArray[np.uint64]:
    n = np.asarray(n, dtype=np.uint64) & np.uint64(0x0000FFFF)
    n = (n | (n << np.uint64(8))) & np.uint64(0x00FF00FF)
    n = (n | (n << np.uint64(4))) & np.uint64(0x0F0F0F0F)
    n = (n | (n << np.uint64(2))) & np.uint64(0x33333333)
    n = (n | (n << np.uint64(1))) & np.uint64(0x55555555)
    return n


def _compact1by1(n: npt.ArrayLike) -> npt.NDArray[np.uint64]:
    n = np.asarray(n, dtype=np.uint64) & np.uint64(0x55555555)
    n = (n ^ (n >> np.uint64(1))) & np.uint64(0x33333333)
    n = (n ^ (n >> np.uint64(2))) & np.uint64(0x0F0F0F0F)
    n = (n ^ (n >> np.uint64(4))) & np.uint64(0x00FF00FF)
    n = (n ^ (n >> np.uint64(8))) & np.uint64(0x0000FFFF)
    return n


def morton_encode(x: npt.ArrayLike, y: npt.ArrayLike) -> _Index:
    """Interleave the bits of *x* and *y* (element-wise)."""
    code = _part1by1(x) | (_part1by1(y) << np.uint64(1))
    return code.astype(np.int64)


def morton_decode(code: npt.ArrayLike) -> tuple[_Index, _Index]:
    """Inverse of :func:`morton_encode`: returns ``(x, y)``."""
    c = np.asarray(code, dtype=np.uint64)
    return _compact1by1(c).astype(np.int64), _compact1by1(c >> np.uint64(1)).astype(np.int64)


def is_power_of_two(n: int) -> bool:
    return isinstance(n, (int, np.integer)) and n > 0 and (n & (n - 1)) == 0


class ZOrderStorage:
    """``resolution × resolution`` scalar grid over the unit square, in Morton order.

    Parameters
    ----------
    resolution:
        Cells per side, a power of two.
    chunk_size:
        Side of the square chunks the grid is processed in, a power of two
        not larger than *resolution*.
    fill:
        Initial cell value.
    """

    def __init__(self, resolution: int, chunk_size: int, fill: float) -> None:
        if not is_power_of_two(resolution) or resolution > MAX_RESOLUTION:
            raise ConfigurationError(
                f"resolution must be a power of two <= {MAX_RESOLUTION}, got {resolution}"
            )
        if not is_power_of_two(chunk_size) or chunk_size > resolution:
            raise ConfigurationError(
                f"chunk_size must be a power of two <= resolution, got {chunk_size}"
            )
        self.resolution = int(resolution)
        self.chunk_size = int(chunk_size)
        self.data = np.full(self.resolution ** 2, fill, dtype=np.float64)

        codes = np.arange(self.resolution ** 2, dtype=np.int64)
        x, y = morton_decode(codes)
        self.centers = (np.stack([x, y], axis=-1) + 0.5) / self.resolution

    @property
    def chunk_area(self) -> int:
        return self.chunk_size ** 2

    @property
    def chunks_per_side(self) -> int:
        return self.resolution // self.chunk_size

    @property
    def chunk_count(self) -> int:
        return self.chunks_per_side ** 2

    def chunk_indices(self, chunk_ids: _Index) -> _Index:
        """Flat cell indices of the given chunks, shape ``(len(chunk_ids) * chunk_area,)``."""
        ids = np.asarray(chunk_ids, dtype=np.int64)
        return (ids[:, None] * self.chunk_area + np.arange(self.chunk_area)).ravel()

    def chunks_in(self, domain: Optional[Rect] = None) -> _Index:
        """Morton ids of the chunks overlapping *domain* (all chunks when ``None``)."""
        if domain is None:
            return np.arange(self.chunk_count, dtype=np.int64)
        clipped = domain.intersection(UNIT)
        if clipped is None:
            return np.empty(0, dtype=np.int64)
        n = self.chunks_per_side
        lo_x = int(np.clip(np.floor(clipped.x0 * n), 0, n - 1))
        lo_y = int(np.clip(np.floor(clipped.y0 * n), 0, n - 1))
        hi_x = int(np.clip(np.ceil(clipped.x1 * n), lo_x + 1, n))
        hi_y = int(np.clip(np.ceil(clipped.y1 * n), lo_y + 1, n))
        Y, X = np.meshgrid(np.arange(lo_y, hi_y), np.arange(lo_x, hi_x), indexing="ij")
        return np.sort(morton_encode(X.ravel(), Y.ravel()))

    def index(self, x: npt.ArrayLike, y: npt.ArrayLike) -> _Index:
        """Flat index of cell column *x*, row *y*."""
        return morton_encode(x, y)

    def to_array(self) -> _Array:
        """Row-major copy of the grid, shape ``(resolution, resolution)`` (y first)."""
        n = self.resolution
        Y, X = np.meshgrid(np.arange(n), np.arange(n), indexing="ij")
        return self.data[morton_encode(X, Y)]
