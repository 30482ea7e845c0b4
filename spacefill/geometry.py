"""Distance primitives, their bounding boxes and transforms."""

from __future__ import annotations

from typing import Callable, NamedTuple, Optional, Sequence

import numpy as np
import numpy.typing as npt

from . import sdf_lib as sdf
from .errors import ConfigurationError

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------
_Array = npt.NDArray[np.floating]
_SDFFunc = Callable[[_Array], _Array]


# ===========================================================================
# Rectangles
# ===========================================================================

class Rect(NamedTuple):
    """Axis-aligned rectangle ``[x0, x1) × [y0, y1)``."""

    x0: float
    y0: float
    x1: float
    y1: float

    @classmethod
    def from_points(cls, points: Sequence[Sequence[float]]) -> "Rect":
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        return cls(float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    @property
    def center(self) -> _Array:
        return np.array([(self.x0 + self.x1) / 2.0, (self.y0 + self.y1) / 2.0])

    @property
    def half_diagonal(self) -> float:
        return 0.5 * float(np.hypot(self.width, self.height))

    def contains(self, point: Sequence[float]) -> bool:
        x, y = point[0], point[1]
        return self.x0 <= x < self.x1 and self.y0 <= y < self.y1

    def intersects(self, other: "Rect") -> bool:
        return (
            self.x0 < other.x1 and other.x0 < self.x1
            and self.y0 < other.y1 and other.y0 < self.y1
        )

    def intersection(self, other: "Rect") -> Optional["Rect"]:
        """Overlap of both rectangles, ``None`` when they are disjoint."""
        if not self.intersects(other):
            return None
        return Rect(
            max(self.x0, other.x0), max(self.y0, other.y0),
            min(self.x1, other.x1), min(self.y1, other.y1),
        )

    def union(self, other: "Rect") -> "Rect":
        return Rect(
            min(self.x0, other.x0), min(self.y0, other.y0),
            max(self.x1, other.x1), max(self.y1, other.y1),
        )

    def expand(self, margin: float) -> "Rect":
        return Rect(self.x0 - margin, self.y0 - margin, self.x1 + margin, self.y1 + margin)

    def translate(self, tx: float, ty: float) -> "Rect":
        return Rect(self.x0 + tx, self.y0 + ty, self.x1 + tx, self.y1 + ty)

    def corners(self) -> _Array:
        return np.array([
            [self.x0, self.y0], [self.x1, self.y0],
            [self.x1, self.y1], [self.x0, self.y1],
        ])

    def quadrants(self) -> tuple["Rect", "Rect", "Rect", "Rect"]:
        """Split into four equal children: ``(x0y0, x1y0, x0y1, x1y1)`` corners."""
        cx, cy = self.center
        return (
            Rect(self.x0, self.y0, cx, cy),
            Rect(cx, self.y0, self.x1, cy),
            Rect(self.x0, cy, cx, self.y1),
            Rect(cx, cy, self.x1, self.y1),
        )

    def sample_points(self, n: int) -> _Array:
        """``n × n`` control points spanning the closed rectangle, shape ``(n*n, 2)``."""
        xs = np.linspace(self.x0, self.x1, n)
        ys = np.linspace(self.y0, self.y1, n)
        Y, X = np.meshgrid(ys, xs, indexing="ij")
        return np.stack([X.ravel(), Y.ravel()], axis=-1)


UNIT = Rect(0.0, 0.0, 1.0, 1.0)


# ===========================================================================
# Base class
# ===========================================================================

class Primitive:
    """Base class for signed-distance primitives.

    A ``Primitive`` wraps a callable ``func(p) -> distances`` where *p* is a
    ``(..., 2)`` array of points, together with the bounding box of the
    shape (``None`` when the shape has no bounded influence, e.g. a
    :class:`BoundaryRect`).

    Primitives are immutable: transforms and boolean operations return new
    primitives.  A primitive may be referenced by several ADF buckets at
    once.

    Implements:
    - Evaluation:         :meth:`sdf`, :meth:`distance`, :meth:`bounding_box`
    - Boolean operations: :meth:`union`, :meth:`subtract`, :meth:`intersect`
    - Transforms:         :meth:`translate`, :meth:`scale`, :meth:`rotate`
    """

    def __init__(self, func: _SDFFunc, bbox: Optional[Rect] = None) -> None:
        self._func = func
        self._bbox = bbox

    def sdf(self, p: _Array) -> _Array:
        """Evaluate signed distance at *p* (shape ``(..., 2)``)."""
        return self._func(p)

    def __call__(self, p: _Array) -> _Array:
        return self._func(p)

    def distance(self, point: Sequence[float]) -> float:
        """Signed distance at a single point."""
        p = np.asarray(point, dtype=float).reshape(1, 2)
        return float(self._func(p)[0])

    def bounding_box(self) -> Optional[Rect]:
        """Rectangle containing the shape, ``None`` if unbounded."""
        return self._bbox

    def __repr__(self) -> str:
        return f"{type(self).__name__}(bbox={self._bbox})"

    # ------------------------------------------------------------------
    # Boolean operations
    # ------------------------------------------------------------------

    def union(self, other: Primitive) -> Primitive:
        """Return the union (min) of this shape and *other*."""
        a, b = self._bbox, other.bounding_box()
        bbox = a.union(b) if a is not None and b is not None else None
        return Primitive(lambda p: sdf.opUnion(self.sdf(p), other.sdf(p)), bbox)

    def subtract(self, other: Primitive) -> Primitive:
        """Subtract *other* from this shape."""
        return Primitive(lambda p: sdf.opSubtraction(other.sdf(p), self.sdf(p)), self._bbox)

    def intersect(self, other: Primitive) -> Primitive:
        """Return the intersection (max) of this shape and *other*."""
        a, b = self._bbox, other.bounding_box()
        if a is None or b is None:
            bbox = a if b is None else b
        else:
            # disjoint boxes give an empty shape; keep a degenerate box
            bbox = a.intersection(b) or Rect(a.x0, a.y0, a.x0, a.y0)
        return Primitive(lambda p: sdf.opIntersection(self.sdf(p), other.sdf(p)), bbox)

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def translate(self, tx: float, ty: float) -> Primitive:
        """Translate by ``(tx, ty)``."""
        t = np.array([tx, ty], dtype=float)
        bbox = self._bbox.translate(tx, ty) if self._bbox is not None else None
        return Primitive(lambda p: self.sdf(p - t), bbox)

    def scale(self, s: float) -> Primitive:
        """Uniformly scale about the origin by factor *s* > 0."""
        if s <= 0.0:
            raise ConfigurationError(f"scale factor must be positive, got {s}")
        bbox = Rect(*(np.array(self._bbox) * s)) if self._bbox is not None else None
        return Primitive(lambda p: self.sdf(p / s) * s, bbox)

    def rotate(self, angle_rad: float) -> Primitive:
        """Rotate about the origin by *angle_rad* radians (counter-clockwise)."""
        c = np.cos(angle_rad)
        s = np.sin(angle_rad)
        rot = np.array([[c, -s], [s, c]])
        bbox = None
        if self._bbox is not None:
            bbox = Rect.from_points(self._bbox.corners() @ rot.T)
        return Primitive(lambda p: sdf.opTx2D(p, rot, np.zeros(2), self.sdf), bbox)


# ===========================================================================
# Shapes
# ===========================================================================

def _positive(name: str, value: float) -> float:
    if not value > 0.0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return float(value)


class Circle(Primitive):
    """Circle centred at origin with given *radius*."""

    def __init__(self, radius: float) -> None:
        r = _positive("radius", radius)
        super().__init__(lambda p: sdf.sdCircle(p, r), Rect(-r, -r, r, r))
        self.radius = r


class Box(Primitive):
    """Axis-aligned rectangle with *half_size* ``(hx, hy)`` centred at origin."""

    def __init__(self, half_size: Sequence[float]) -> None:
        b = np.array(half_size, dtype=float)
        _positive("half_size", float(b.min()))
        super().__init__(lambda p: sdf.sdBox2D(p, b), Rect(-b[0], -b[1], b[0], b[1]))


class Segment(Primitive):
    """Line segment from *point_a* to *point_b*, thickened by *radius*."""

    def __init__(
        self,
        point_a: Sequence[float],
        point_b: Sequence[float],
        radius: float = 0.0,
    ) -> None:
        a = np.array(point_a, dtype=float)
        b = np.array(point_b, dtype=float)
        if np.allclose(a, b):
            raise ConfigurationError("segment end points must differ")
        super().__init__(
            lambda p: sdf.sdCapsule2D(p, a, b, radius),
            Rect.from_points([a, b]).expand(radius),
        )


class Bezier(Primitive):
    """Quadratic Bézier curve from *p0* through control *p1* to *p2*, thickened by *radius*."""

    def __init__(
        self,
        p0: Sequence[float],
        p1: Sequence[float],
        p2: Sequence[float],
        radius: float = 0.0,
    ) -> None:
        A = np.array(p0, dtype=float)
        B = np.array(p1, dtype=float)
        C = np.array(p2, dtype=float)
        bbox = Rect.from_points([A, B, C]).expand(radius)
        if np.allclose(A - 2.0 * B + C, 0.0):
            # evenly spaced collinear control points: a straight segment
            func: _SDFFunc = lambda p: sdf.sdCapsule2D(p, A, C, radius)
        else:
            func = lambda p: sdf.sdBezier2D(p, A, B, C) - radius
        super().__init__(func, bbox)


class Polygon(Primitive):
    """Arbitrary convex or concave polygon from N 2-D *vertices*."""

    def __init__(self, vertices: Sequence[Sequence[float]]) -> None:
        v = np.array(vertices, dtype=float)
        if v.ndim != 2 or v.shape[0] < 3 or v.shape[1] != 2:
            raise ConfigurationError("polygon needs at least 3 vertices of shape (N, 2)")
        super().__init__(lambda p: sdf.sdPolygon2D(p, v), Rect.from_points(v))


class NGon(Primitive):
    """Regular polygon with *n_sides* and circumradius *radius*."""

    def __init__(self, radius: float, n_sides: int) -> None:
        r = _positive("radius", radius)
        if n_sides < 3:
            raise ConfigurationError(f"n_sides must be >= 3, got {n_sides}")
        super().__init__(lambda p: sdf.sdNGon2D(p, r, n_sides), Rect(-r, -r, r, r))


class Star(Primitive):
    """N-pointed star with outer *radius* and density *m* in ``[2, n_points]``."""

    def __init__(self, radius: float, n_points: int, m: float) -> None:
        r = _positive("radius", radius)
        if n_points < 3 or not 2.0 <= m <= n_points:
            raise ConfigurationError(
                f"star needs n_points >= 3 and 2 <= m <= n_points, got {n_points}, {m}"
            )
        super().__init__(lambda p: sdf.sdStar(p, r, n_points, m), Rect(-r, -r, r, r))


class Ring(Primitive):
    """Annulus between *inner_radius* and *outer_radius*."""

    def __init__(self, inner_radius: float, outer_radius: float) -> None:
        r2 = _positive("outer_radius", outer_radius)
        if not 0.0 <= inner_radius < r2:
            raise ConfigurationError("inner_radius must be in [0, outer_radius)")
        super().__init__(lambda p: sdf.sdRing2D(p, inner_radius, r2), Rect(-r2, -r2, r2, r2))


class Cross(Primitive):
    """Plus-sign cross with *half_arm_length* and *half_arm_width*."""

    def __init__(self, half_arm_length: float, half_arm_width: float) -> None:
        b = np.array([
            _positive("half_arm_length", half_arm_length),
            _positive("half_arm_width", half_arm_width),
        ])
        L = b[0]
        super().__init__(lambda p: sdf.sdCross2D(p, b, 0.0), Rect(-L, -L, L, L))


class Moon(Primitive):
    """Crescent moon: disc of *radius_a* minus a disc of *radius_b* offset by *distance*."""

    def __init__(self, distance: float, radius_a: float, radius_b: float) -> None:
        d = _positive("distance", distance)
        ra = _positive("radius_a", radius_a)
        rb = _positive("radius_b", radius_b)
        super().__init__(lambda p: sdf.sdMoon2D(p, d, ra, rb), Rect(-ra, -ra, ra, ra))


class FunctionPrimitive(Primitive):
    """User-supplied distance function.

    Parameters
    ----------
    func:
        Callable returning signed distances.  With ``vectorized=True`` it
        receives ``(..., 2)`` arrays, otherwise one ``(2,)`` point at a time.
    bounding_box:
        Optional rectangle containing the shape.  ``None`` means the
        function may influence the whole plane.
    """

    def __init__(
        self,
        func: Callable,
        bounding_box: Optional[Rect] = None,
        vectorized: bool = True,
    ) -> None:
        if vectorized:
            wrapped: _SDFFunc = lambda p: np.asarray(func(p), dtype=float)
        else:
            def wrapped(p: _Array) -> _Array:
                flat = np.asarray(p, dtype=float).reshape(-1, 2)
                out = np.fromiter((func(q) for q in flat), dtype=float, count=len(flat))
                return out.reshape(np.shape(p)[:-1])
        super().__init__(wrapped, bounding_box)


class BoundaryRect(Primitive):
    """Inverted rectangle: positive inside *rect*, the distance to its walls.

    Inserted first, it confines a packing to *rect*.
    """

    def __init__(self, rect: Rect = UNIT) -> None:
        c = rect.center
        h = np.array([rect.width / 2.0, rect.height / 2.0])
        super().__init__(lambda p: -sdf.sdBox2D(p - c, h), None)
        self.rect = rect
