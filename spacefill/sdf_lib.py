"""2-D SDF math for the spacefill package.

Vector helpers and every primitive SDF used by :mod:`spacefill.geometry`.

All functions accept and return ``numpy.ndarray`` objects and support
broadcasting over arbitrary leading batch dimensions.  A "point array" *p*
has shape ``(..., 2)``; scalar SDF results have shape ``(...,)``.

Formulas are adapted from Inigo Quilez's distance function reference:
https://iquilezles.org/articles/distfunctions2d/
"""

from __future__ import annotations

from typing import Callable

import numpy as np
import numpy.typing as npt

# ---------------------------------------------------------------------------
# Type alias
# ---------------------------------------------------------------------------
_F = npt.NDArray[np.floating]

# Distance reported by an empty field.  Finite so that differences stay finite.
FAR: float = float(np.finfo(np.float64).max / 2.0)


# ===========================================================================
# Vector helpers
# ===========================================================================

def vec2(x: _F, y: _F) -> _F:
    """Stack *x* and *y* into a ``(..., 2)`` array."""
    x, y = np.broadcast_arrays(x, y)
    return np.stack([x, y], axis=-1)


def length(v: _F) -> _F:
    """Euclidean length along the last axis."""
    return np.linalg.norm(v, axis=-1)


def dot(a: _F, b: _F) -> _F:
    """Dot product along the last axis."""
    return np.sum(a * b, axis=-1)


def dot2(a: _F) -> _F:
    """Squared length: ``dot(a, a)``."""
    return dot(a, a)


def clamp(x: _F, lo: float | _F, hi: float | _F) -> _F:
    """Clamp *x* element-wise to ``[lo, hi]``."""
    return np.minimum(np.maximum(x, lo), hi)


# ===========================================================================
# Boolean operators
# ===========================================================================

def opUnion(d1: _F, d2: _F) -> _F:
    """Union of two SDFs: ``min(d1, d2)``."""
    return np.minimum(d1, d2)


def opSubtraction(d1: _F, d2: _F) -> _F:
    """Subtract *d1* from *d2*: ``max(-d1, d2)``."""
    return np.maximum(-d1, d2)


def opIntersection(d1: _F, d2: _F) -> _F:
    """Intersection of two SDFs: ``max(d1, d2)``."""
    return np.maximum(d1, d2)


# ===========================================================================
# Primitive SDFs
# ===========================================================================

def sdCircle(p: _F, r: float) -> _F:
    """Circle of radius *r* centred at origin."""
    return length(p) - r


def sdBox2D(p: _F, b: _F) -> _F:
    """Axis-aligned box with half-extents *b* ``(bx, by)``."""
    d = np.abs(p) - b
    return length(np.maximum(d, 0.0)) + np.minimum(np.maximum(d[..., 0], d[..., 1]), 0.0)


def sdCapsule2D(p: _F, a: _F, b: _F, r: float) -> _F:
    """Segment from *a* to *b* thickened by radius *r*."""
    pa = p - a
    ba = b - a
    h  = clamp(dot(pa, ba) / dot2(ba), 0.0, 1.0)
    return length(pa - ba * h[..., None]) - r


def sdBezier2D(p: _F, A: _F, B: _F, C: _F) -> _F:
    """Unsigned distance to the quadratic Bézier curve *A*, *B* (ctrl), *C*.

    *A*, *B*, *C* must not be collinear and evenly spaced (``A - 2B + C != 0``).
    """
    a   = B - A;  b = A - 2.0 * B + C;  c = a * 2.0;  d = A - p
    kk  = 1.0 / dot2(b)
    kx  = kk * dot(a, b)
    ky  = kk * (2.0 * dot2(a) + dot(d, b)) / 3.0
    kz  = kk * dot(d, a)
    p1  = ky - kx * kx
    p3  = p1 * p1 * p1
    q2  = kx * (2.0 * kx * kx - 3.0 * ky) + kz
    h   = q2 * q2 + 4.0 * p3
    one_root = h >= 0.0

    # h >= 0: a single real root (Cardano)
    z   = np.sqrt(np.where(one_root, h, 0.0))
    t1  = clamp(np.cbrt((z - q2) / 2.0) + np.cbrt((-z - q2) / 2.0) - kx, 0.0, 1.0)
    res1 = dot2(d + (c + b * t1[..., None]) * t1[..., None])

    # h < 0 implies p1 < 0: three real roots, the middle one is never closest
    pn  = np.where(one_root, -1.0, p1)
    sq  = np.sqrt(-pn)
    v   = np.arccos(clamp(q2 / (pn * sq * 2.0), -1.0, 1.0)) / 3.0
    m   = np.cos(v)
    n   = np.sin(v) * np.sqrt(3.0)
    ta  = clamp((m + m) * sq - kx, 0.0, 1.0)
    tb  = clamp((-n - m) * sq - kx, 0.0, 1.0)
    res3 = np.minimum(dot2(d + (c + b * ta[..., None]) * ta[..., None]),
                      dot2(d + (c + b * tb[..., None]) * tb[..., None]))

    return np.sqrt(np.where(one_root, res1, res3))


def sdPolygon2D(p: _F, v: _F) -> _F:
    """Polygon from *N* vertices *v* (shape ``(N, 2)``)."""
    N = v.shape[0]
    d = dot2(p - v[0])
    s = np.ones(p.shape[:-1])
    for i in range(N):
        j = (i - 1) % N
        e = v[j] - v[i]
        w = p - v[i]
        b = w - e * clamp(dot(w, e) / dot2(e), 0.0, 1.0)[..., None]
        d = np.minimum(d, dot2(b))
        c1 = p[..., 1] >= v[i][1]
        c2 = p[..., 1] < v[j][1]
        c3 = e[0] * w[..., 1] > e[1] * w[..., 0]
        flip = (c1 & c2 & c3) | (~c1 & ~c2 & ~c3)
        s = np.where(flip, -s, s)
    return s * np.sqrt(d)


def sdNGon2D(p: _F, r: float, n: int) -> _F:
    """Regular N-gon with circumradius *r*, one vertex on +y."""
    an  = np.pi / n
    acs = vec2(np.cos(an), np.sin(an))
    bn  = np.arctan2(p[..., 0], p[..., 1]) % (2.0 * an) - an
    l   = length(p)
    px  = l * np.cos(bn);  py = l * np.abs(np.sin(bn))
    # project onto the edge through (r*cos(an), ±r*sin(an))
    px  = px - r * acs[0]
    py  = py - clamp(py, 0.0, r * acs[1])
    return length(vec2(px, py)) * np.sign(px)


def sdStar(p: _F, r: float, n: int, m: float) -> _F:
    """N-pointed star; *r* radius, *n* points, *m* density in ``[2, n]``."""
    an  = np.pi / n
    en  = np.pi / m
    acs = np.array([np.cos(an), np.sin(an)])
    ecs = np.array([np.cos(en), np.sin(en)])
    bn  = np.arctan2(p[..., 0], p[..., 1]) % (2.0 * an) - an
    l   = length(p)
    q   = vec2(l * np.cos(bn), l * np.abs(np.sin(bn))) - r * acs
    q   = q + ecs * clamp(-dot(q, ecs), 0.0, r * acs[1] / ecs[1])[..., None]
    return length(q) * np.sign(q[..., 0])


def sdRing2D(p: _F, r1: float, r2: float) -> _F:
    """Ring (annulus) with inner radius *r1* and outer radius *r2*."""
    l = length(p)
    return np.maximum(r1 - l, l - r2)


def sdMoon2D(p: _F, d: float, ra: float, rb: float) -> _F:
    """Crescent moon; *d* offset, *ra* outer radius, *rb* inner radius."""
    py = np.abs(p[..., 1])
    a  = (ra * ra - rb * rb + d * d) / (2.0 * d)
    b  = np.sqrt(np.maximum(ra * ra - a * a, 0.0))
    c  = d * (p[..., 0] * b - py * a) > d * d * np.maximum(b - py, 0.0)
    return np.where(c,
                    length(vec2(p[..., 0], py) - vec2(a, b)),
                    np.maximum(length(p) - ra, -(length(vec2(p[..., 0] - d, py)) - rb)))


def sdCross2D(p: _F, b: _F, r: float) -> _F:
    """Plus-sign cross; *b* = ``(half_arm_len, half_arm_width)``, *r* rounding."""
    px = np.abs(p[..., 0]);  py = np.abs(p[..., 1])
    c  = px > py
    px_n = np.where(c, px, py);  py_n = np.where(c, py, px)
    q  = vec2(px_n - b[0], py_n - b[1])
    k  = np.maximum(q[..., 1], q[..., 0])
    w  = np.where((k > 0.0)[..., np.newaxis], q, vec2(b[1] - px_n, -k))
    return np.sign(k) * length(np.maximum(w, 0.0)) + r


# ===========================================================================
# Transform operator
# ===========================================================================

def opTx2D(p: _F, mat: _F, trans: _F, sdf_func: Callable[[_F], _F]) -> _F:
    """Evaluate *sdf_func* in the frame rotated by *mat* and shifted by *trans*."""
    return sdf_func(np.dot(p - trans, mat))
