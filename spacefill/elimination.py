"""Redundancy elimination for ADF buckets.

Inside a rectangle ``R`` a bucket member ``p`` is redundant when some other
member is everywhere at least as close, i.e. when the gap
``f(x) = p(x) - min_{q != p} q(x)`` is non-negative on all of ``R``.
Whether ``p`` can be removed is the feasibility question
``∃ x ∈ R : f(x) < 0``, answered in three stages:

1. **control points** — ``f`` on a regular grid over ``R``; a negative
   value is a witness and ``p`` is kept;
2. **certification** — ``f`` is 2-Lipschitz for 1-Lipschitz primitives, so
   ``f(c) > 2·h`` at the centre ``c`` of a cell of half-diagonal ``h``
   proves ``f > 0`` on the whole cell.  Cells that are neither proven nor
   refuted (``f(c) < 0``) are split, up to ``certify_depth`` times;
3. **interior-point search** — once certification is still undecided at
   ``search_depth``, ``scipy.optimize.minimize`` with the ``trust-constr``
   method (a barrier interior-point solver once bounds are present)
   minimises ``f`` over the open cells with the lowest centre gap.  A
   negative minimum is a witness and stops the subdivision early.

``p`` is eliminated only when every cell is proven.  Anything inconclusive
keeps ``p``: a missed elimination costs memory, a wrong one would corrupt
the field.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import numpy.typing as npt
from scipy.optimize import Bounds, minimize

from .errors import ConfigurationError
from .geometry import Primitive, Rect
from .sdf_lib import FAR

log = logging.getLogger(__name__)

_Array = npt.NDArray[np.floating]


@dataclass(frozen=True)
class EliminationConfig:
    """Tunables of the redundancy test.

    Attributes
    ----------
    enabled:
        Run elimination before splitting an overflowing leaf.
    control_points:
        Control points per side in stage 1.
    seeds:
        Interior-point runs per test, one per open cell, lowest gap first.
    max_iterations:
        Iteration cap of each interior-point run.
    certify_depth:
        Maximum subdivision depth of the certification stage.
    search_depth:
        Certification depth after which open cells are handed to the
        interior-point search.  Greater than ``certify_depth`` disables it.
    """

    enabled: bool = True
    control_points: int = 5
    seeds: int = 1
    max_iterations: int = 15
    certify_depth: int = 5
    search_depth: int = 3

    def __post_init__(self) -> None:
        if self.control_points < 2:
            raise ConfigurationError("control_points must be >= 2")
        if self.seeds < 0:
            raise ConfigurationError("seeds must be >= 0")
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be >= 1")
        if self.certify_depth < 0:
            raise ConfigurationError("certify_depth must be >= 0")
        if self.search_depth < 0:
            raise ConfigurationError("search_depth must be >= 0")


def _gap(p: Primitive, others: Sequence[Primitive], points: _Array) -> _Array:
    g = np.full(points.shape[:-1], FAR)
    for q in others:
        g = np.minimum(g, q.sdf(points))
    return p.sdf(points) - g


def _interior_point_search(
    p: Primitive,
    others: Sequence[Primitive],
    cells: Sequence[Rect],
    max_iterations: int,
) -> Optional[_Array]:
    """Minimise the gap inside each of *cells*; return the first witness."""

    def objective(x: _Array) -> float:
        return float(_gap(p, others, x.reshape(1, 2))[0])

    for cell in cells:
        lo = np.array([cell.x0, cell.y0])
        hi = np.array([cell.x1, cell.y1])
        # barrier methods start strictly inside the box
        inset = 1e-9 * max(cell.width, cell.height)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            res = minimize(
                objective,
                np.clip(cell.center, lo + inset, hi - inset),
                method="trust-constr",
                bounds=Bounds(lo, hi),
                options={"maxiter": max_iterations},
            )
        x = np.clip(res.x, lo, hi)
        if objective(x) < 0.0:
            return x
    return None


def _certify(
    p: Primitive,
    others: Sequence[Primitive],
    rect: Rect,
    config: EliminationConfig,
) -> bool:
    cells = [rect]
    for depth in range(config.certify_depth + 1):
        centers = np.array([c.center for c in cells])
        halves = np.array([c.half_diagonal for c in cells])
        f = _gap(p, others, centers)
        if np.any(f < 0.0):
            return False
        undecided = ~(f > 2.0 * halves)
        if not undecided.any():
            return True
        if depth == config.certify_depth:
            return False
        if depth == config.search_depth and config.seeds:
            order = np.argsort(np.where(undecided, f, np.inf))[: config.seeds]
            candidates = [cells[i] for i in order if undecided[i]]
            if _interior_point_search(p, others, candidates, config.max_iterations) is not None:
                log.debug("interior-point witness for %r at depth %d", p, depth)
                return False
        cells = [q for c, u in zip(cells, undecided) if u for q in c.quadrants()]
    return False


def is_redundant(
    p: Primitive,
    others: Sequence[Primitive],
    rect: Rect,
    config: EliminationConfig = EliminationConfig(),
) -> bool:
    """True only if *p* is provably never strictly closer than all of *others* in *rect*."""
    if not others:
        return False

    pts = rect.sample_points(config.control_points)
    if np.any(_gap(p, others, pts) < 0.0):
        return False

    return _certify(p, others, rect, config)


def eliminate(
    members: Sequence[Primitive],
    active: Sequence[bool],
    rect: Rect,
    config: EliminationConfig = EliminationConfig(),
) -> List[bool]:
    """Return the updated *active* mask after removing redundant members.

    Members are tested one at a time against the members still active, so
    the minimum over the active set never changes.
    """
    mask = list(active)
    for i, p in enumerate(members):
        if not mask[i]:
            continue
        others = [q for j, q in enumerate(members) if j != i and mask[j]]
        if is_redundant(p, others, rect, config):
            mask[i] = False
    removed = sum(active) - sum(mask)
    if removed:
        log.debug("eliminated %d of %d primitives in %s", removed, sum(active), rect)
    return mask
