"""Adaptive distance field: a quadtree of primitive buckets.

Instead of sampling the field on a grid, every leaf of a
:class:`~spacefill.quadtree.Quadtree` keeps the primitives that can be the
minimum somewhere inside it.  Sampling descends to the leaf and takes the
minimum over its bucket, so values are exact, never interpolated.

Primitives are assumed 1-Lipschitz (true signed distances).  With ``c`` the
centre and ``h`` the half-diagonal of a leaf, a primitive whose value at
``c`` exceeds the bucket field by ``2h`` can never be the minimum in that
leaf and is not added; one that undercuts the bucket field by ``2h``
replaces the whole bucket.  Buckets that still overflow are pruned with
:func:`~spacefill.elimination.eliminate` and then split.
"""

from __future__ import annotations

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

import numpy as np
import numpy.typing as npt

from .elimination import EliminationConfig, eliminate
from .errors import CapacityExceeded, ConfigurationError
from .field import Field
from .geometry import Primitive, Rect, UNIT
from .quadtree import Quadtree
from .sdf_lib import FAR

log = logging.getLogger(__name__)

_Array = npt.NDArray[np.floating]


class Bucket:
    """Primitives referenced by one leaf, with a per-member eliminated flag.

    Elimination only clears the flag; members are dropped physically when
    the leaf is split and its bucket rebuilt.  The indices of live members
    are kept alongside, so sampling never touches eliminated ones.
    """

    __slots__ = ("members", "_active", "_live")

    def __init__(self, members: Sequence[Primitive] = ()) -> None:
        self.members: List[Primitive] = list(members)
        self.active = [True] * len(self.members)

    def __len__(self) -> int:
        return len(self.members)

    @property
    def active(self) -> List[bool]:
        """Copy of the active mask; assign a new mask to change it."""
        return list(self._active)

    @active.setter
    def active(self, mask: Sequence[bool]) -> None:
        if len(mask) != len(self.members):
            raise ValueError(f"mask has {len(mask)} entries for {len(self.members)} members")
        self._active: List[bool] = [bool(a) for a in mask]
        self._live: List[int] = [i for i, a in enumerate(self._active) if a]

    @property
    def active_count(self) -> int:
        return len(self._live)

    def active_members(self) -> List[Primitive]:
        return [self.members[i] for i in self._live]

    def append(self, primitive: Primitive) -> None:
        self._live.append(len(self.members))
        self.members.append(primitive)
        self._active.append(True)

    def eliminate_all(self) -> None:
        self.active = [False] * len(self.members)

    def field(self, points: _Array) -> _Array:
        """Minimum over active members at ``(..., 2)`` *points*."""
        d = np.full(points.shape[:-1], FAR)
        for i in self._live:
            d = np.minimum(d, self.members[i].sdf(points))
        return d


class ADF(Field):
    """Adaptive distance field over *rect* (the unit square by default).

    Parameters
    ----------
    max_depth:
        Maximum quadtree depth.  Leaves at this depth accept any number of
        primitives (with a :class:`~spacefill.errors.CapacityExceeded`
        warning) instead of splitting.
    bucket_capacity:
        Active primitives a leaf may hold before it is pruned and split.
    elimination:
        Settings of the redundancy test run before splitting.
    max_workers:
        Threads used to prune sibling buckets after a split; ``1`` runs
        everything in the calling thread.
    """

    def __init__(
        self,
        max_depth: int = 10,
        bucket_capacity: int = 4,
        elimination: Optional[EliminationConfig] = None,
        max_workers: int = 1,
        rect: Rect = UNIT,
    ) -> None:
        if bucket_capacity < 1:
            raise ConfigurationError(f"bucket_capacity must be >= 1, got {bucket_capacity}")
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {max_workers}")
        self.tree = Quadtree(rect, max_depth)
        self.bucket_capacity = bucket_capacity
        self.elimination = elimination or EliminationConfig()
        self.max_workers = max_workers
        self.buckets: List[Bucket] = [Bucket()]
        self._warned: set = set()
        self._pending: List[str] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def sample(self, point: Sequence[float]) -> float:
        leaf = self.tree.leaf_at(point)
        p = np.asarray(point, dtype=float)[:2].reshape(1, 2)
        return float(self.buckets[leaf].field(p)[0])

    def sample_many(self, points: _Array) -> _Array:
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        groups: Dict[int, List[int]] = {}
        for i, p in enumerate(pts):
            groups.setdefault(self.tree.leaf_at(p), []).append(i)
        out = np.empty(len(pts))
        for leaf, rows in groups.items():
            out[rows] = self.buckets[leaf].field(pts[rows])
        return out

    def bucket(self, point: Sequence[float]) -> List[Primitive]:
        """Active primitives of the leaf containing *point*."""
        return self.buckets[self.tree.leaf_at(point)].active_members()

    def stats(self) -> Dict[str, float]:
        """Node count, leaf count, depth and bucket occupancy of the tree."""
        leaves = list(self.tree.leaves())
        sizes = [self.buckets[n].active_count for n in leaves]
        return {
            "nodes": len(self.tree),
            "leaves": len(leaves),
            "max_depth": max(self.tree.depths[n] for n in leaves),
            "max_bucket": max(sizes),
            "mean_bucket": float(np.mean(sizes)),
            "eliminated": sum(len(self.buckets[n]) - s for n, s in zip(leaves, sizes)),
            "primitives": len({id(m) for n in leaves for m in self.buckets[n].members}),
        }

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, primitive: Primitive, domain: Optional[Rect] = None) -> None:
        """Union *primitive* into the field.

        Parameters
        ----------
        primitive:
            Shape to insert; must be 1-Lipschitz.
        domain:
            Restrict the update to leaves intersecting this rectangle.  The
            caller guarantees the primitive is not the minimum outside it.
        """
        updated = 0
        for leaf in list(self.tree.leaves(domain)):
            if self._insert_leaf(leaf, primitive):
                updated += 1
        log.debug("inserted %r into %d leaves (%d nodes)", primitive, updated, len(self.tree))
        # stacklevel 2 is the caller of insert
        pending, self._pending = self._pending, []
        for msg in pending:
            log.warning(msg)
            warnings.warn(msg, CapacityExceeded, stacklevel=2)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert_leaf(self, leaf: int, primitive: Primitive) -> bool:
        bucket = self.buckets[leaf]
        if bucket.active_count:
            rect = self.tree.rects[leaf]
            c = rect.center.reshape(1, 2)
            bound = 2.0 * rect.half_diagonal
            gap = float(primitive.sdf(c)[0] - bucket.field(c)[0])
            if gap >= bound:
                return False
            if -gap >= bound:
                bucket.eliminate_all()
        bucket.append(primitive)
        if bucket.active_count > self.bucket_capacity:
            self._overflow(leaf)
        return True

    def _prune(self, leaf: int) -> None:
        bucket = self.buckets[leaf]
        if self.elimination.enabled:
            bucket.active = eliminate(
                bucket.members, bucket.active, self.tree.rects[leaf], self.elimination
            )

    def _overflow(self, leaf: int) -> None:
        self._prune(leaf)
        self._resolve(leaf)

    def _resolve(self, leaf: int) -> None:
        bucket = self.buckets[leaf]
        if bucket.active_count <= self.bucket_capacity:
            return
        if self.tree.depths[leaf] >= self.tree.max_depth:
            if leaf not in self._warned:
                self._warned.add(leaf)
                msg = (
                    f"leaf {leaf} at maximum depth {self.tree.max_depth} holds "
                    f"{bucket.active_count} primitives (capacity {self.bucket_capacity})"
                )
                self._pending.append(msg)
            return
        self._split(leaf)

    def _split(self, leaf: int) -> None:
        members = self.buckets[leaf].active_members()
        children = self.tree.subdivide(leaf)
        for child in children:
            self.buckets.append(Bucket(_relevant(members, self.tree.rects[child])))
        self.buckets[leaf] = Bucket()

        crowded = [c for c in children if self.buckets[c].active_count > self.bucket_capacity]
        if self.max_workers > 1 and len(crowded) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                list(pool.map(self._prune, crowded))
        else:
            for c in crowded:
                self._prune(c)
        for c in crowded:
            self._resolve(c)
        log.debug("split leaf %d at depth %d", leaf, self.tree.depths[leaf])


def _relevant(members: Sequence[Primitive], rect: Rect) -> List[Primitive]:
    """Members that may be the minimum somewhere in *rect*."""
    if not members:
        return []
    c = rect.center.reshape(1, 2)
    d = np.array([m.sdf(c)[0] for m in members])
    keep = d - d.min() < 2.0 * rect.half_diagonal
    return [m for m, k in zip(members, keep) if k]
