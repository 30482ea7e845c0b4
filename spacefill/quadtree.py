"""Region quadtree stored as an arena of nodes addressed by integer handles.

Nodes are never removed.  Node ``0`` is the root; a node is a leaf while
its ``children`` entry is ``-1``, otherwise the entry is the handle of the
first of its four consecutive children, ordered as in
:meth:`~spacefill.geometry.Rect.quadrants`.
"""

from __future__ import annotations

from typing import Callable, Iterator, List, Optional, Sequence

import numpy as np

from .errors import ConfigurationError
from .geometry import Rect, UNIT

LEAF = -1


class Quadtree:
    """Arena quadtree over *rect*, at most *max_depth* subdivisions deep."""

    def __init__(self, rect: Rect = UNIT, max_depth: int = 10) -> None:
        if max_depth < 0:
            raise ConfigurationError(f"max_depth must be >= 0, got {max_depth}")
        self.max_depth = max_depth
        self.rects: List[Rect] = [rect]
        self.depths: List[int] = [0]
        self.children: List[int] = [LEAF]
        self.parents: List[int] = [LEAF]

    @property
    def root(self) -> int:
        return 0

    @property
    def rect(self) -> Rect:
        return self.rects[0]

    def __len__(self) -> int:
        return len(self.rects)

    def is_leaf(self, node: int) -> bool:
        return self.children[node] == LEAF

    def child_handles(self, node: int) -> range:
        first = self.children[node]
        return range(first, first + 4) if first != LEAF else range(0)

    def subdivide(self, node: int) -> range:
        """Split leaf *node* into four children and return their handles.

        Raises ``ValueError`` if *node* is not a leaf or is at maximum depth.
        """
        if not self.is_leaf(node):
            raise ValueError(f"node {node} is already subdivided")
        if self.depths[node] >= self.max_depth:
            raise ValueError(f"node {node} is at maximum depth")
        first = len(self.rects)
        for quad in self.rects[node].quadrants():
            self.rects.append(quad)
            self.depths.append(self.depths[node] + 1)
            self.children.append(LEAF)
            self.parents.append(node)
        self.children[node] = first
        return range(first, first + 4)

    def _quadrant_of(self, node: int, point: Sequence[float]) -> int:
        rect = self.rects[node]
        cx, cy = (rect.x0 + rect.x1) / 2.0, (rect.y0 + rect.y1) / 2.0
        return int(point[0] >= cx) + 2 * int(point[1] >= cy)

    def _clamp(self, point: Sequence[float]) -> np.ndarray:
        r = self.rect
        # nudge inside the half-open root rectangle
        hi = np.nextafter(np.array([r.x1, r.y1]), -np.inf)
        return np.clip(np.asarray(point, dtype=float)[:2], [r.x0, r.y0], hi)

    def leaf_at(self, point: Sequence[float]) -> int:
        """Leaf containing *point*; points outside the root are clamped onto it."""
        p = self._clamp(point)
        node = self.root
        while not self.is_leaf(node):
            node = self.children[node] + self._quadrant_of(node, p)
        return node

    def path_to(self, point: Sequence[float]) -> List[int]:
        """Handles of every node containing *point*, root first."""
        p = self._clamp(point)
        path = [self.root]
        while not self.is_leaf(path[-1]):
            node = path[-1]
            path.append(self.children[node] + self._quadrant_of(node, p))
        return path

    def traverse(self, visit: Callable[[int], bool], node: int = 0) -> None:
        """Depth-first walk; children of a node are skipped when *visit* returns False."""
        stack = [node]
        while stack:
            n = stack.pop()
            if visit(n) and not self.is_leaf(n):
                stack.extend(reversed(self.child_handles(n)))

    def leaves(self, rect: Optional[Rect] = None) -> Iterator[int]:
        """Leaves intersecting *rect* (every leaf when ``None``), in depth-first order."""
        stack = [self.root]
        while stack:
            n = stack.pop()
            if rect is not None and not self.rects[n].intersects(rect):
                continue
            if self.is_leaf(n):
                yield n
            else:
                stack.extend(reversed(self.child_handles(n)))
