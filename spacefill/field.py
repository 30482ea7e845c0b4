"""Field aggregation and the sampling contract shared by every solver.

A field is the pointwise minimum of all inserted primitives (the union of
the shapes), optionally negated (inversion).  :class:`Field` is the contract
the gradient-ascent optimizer and the distribution drivers rely on;
:class:`DistanceField` is the brute-force realisation, used directly for
small scenes and as ground truth for the indexed solvers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, NamedTuple, Optional, Sequence

import numpy as np
import numpy.typing as npt

from .geometry import Primitive, Rect
from .sdf_lib import FAR

_Array = npt.NDArray[np.floating]


class MaximaResult(NamedTuple):
    """A candidate placement: *magnitude* is the clearance at *point*."""

    point: _Array
    magnitude: float


class Field(ABC):
    """Sampling contract: ``sample(point) -> magnitude`` and ``insert(primitive)``."""

    @abstractmethod
    def sample(self, point: Sequence[float]) -> float:
        """Field value at a single point."""

    @abstractmethod
    def insert(self, primitive: Primitive) -> None:
        """Union *primitive* into the field."""

    def sample_many(self, points: _Array) -> _Array:
        """Field values at ``(N, 2)`` *points*."""
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        return np.array([self.sample(p) for p in pts])


class DistanceField(Field):
    """Brute-force field over a list of primitives.

    ``sample(p) = min(primitive.distance(p))`` over every inserted primitive,
    negated when *inverted*.  An empty field samples as :data:`FAR`.
    """

    def __init__(self, primitives: Iterable[Primitive] = (), inverted: bool = False) -> None:
        self.primitives: List[Primitive] = list(primitives)
        self.inverted = inverted

    def __len__(self) -> int:
        return len(self.primitives)

    def insert(self, primitive: Primitive) -> None:
        self.primitives.append(primitive)

    def invert(self) -> None:
        """Flip inside and outside."""
        self.inverted = not self.inverted

    def sdf(self, p: _Array) -> _Array:
        """Vectorised field evaluation at ``(..., 2)`` points."""
        p = np.asarray(p, dtype=float)
        d = np.full(p.shape[:-1], FAR)
        for prim in self.primitives:
            d = np.minimum(d, prim.sdf(p))
        return -d if self.inverted else d

    def sample(self, point: Sequence[float]) -> float:
        return float(self.sdf(np.asarray(point, dtype=float).reshape(1, 2))[0])

    def sample_many(self, points: _Array) -> _Array:
        return self.sdf(np.asarray(points, dtype=float).reshape(-1, 2))


# ---------------------------------------------------------------------------
# Influence regions
# ---------------------------------------------------------------------------

def domain_empirical(center: Sequence[float], max_dist: float) -> Rect:
    """Square of side ``4·√2·max_dist`` centred on *center*.

    The region a shape placed at a maximum of clearance *max_dist* is
    expected to affect; callers pass it as ``domain`` to ``insert``.
    """
    half = 2.0 * np.sqrt(2.0) * max_dist
    cx, cy = float(center[0]), float(center[1])
    return Rect(cx - half, cy - half, cx + half, cy + half)


def influence_domain(primitive: Primitive, margin: float) -> Optional[Rect]:
    """Bounding box of *primitive* grown by *margin*; ``None`` when unbounded.

    Outside this rectangle a 1-Lipschitz primitive is farther than *margin*
    from every point, so cells whose value is at most *margin* cannot change.
    """
    bbox = primitive.bounding_box()
    if bbox is None or not np.isfinite(margin):
        return None
    return bbox.expand(max(margin, 0.0))
