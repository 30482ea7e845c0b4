"""Tests for spacefill.sdf_lib — 2-D SDF math primitives and operators.

Tests verify:
- Correct sign (negative inside, positive outside, zero on surface)
- Exact or near-exact distance at analytically known points
- Array shape / broadcasting consistency
"""

import numpy as np
import numpy.testing as npt
import pytest

from spacefill import sdf_lib as sdf


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _p(*xy) -> np.ndarray:
    """Single 2-D point as shape ``(1, 2)``."""
    return np.array([list(xy)], dtype=float)


def _grid(n: int = 8) -> np.ndarray:
    """Uniform ``n²`` grid of 2-D points in ``[-1, 1]²`` (shape ``(n, n, 2)``)."""
    lin = np.linspace(-1.0, 1.0, n)
    Y, X = np.meshgrid(lin, lin, indexing="ij")
    return np.stack([X, Y], axis=-1)


# ===========================================================================
# Vector helpers
# ===========================================================================

class TestHelpers:
    def test_vec2_broadcasts(self):
        v = sdf.vec2(np.zeros(3), 1.0)
        assert v.shape == (3, 2)
        npt.assert_array_equal(v[:, 1], 1.0)

    def test_length(self):
        npt.assert_allclose(sdf.length(_p(3.0, 4.0)), [5.0])

    def test_dot_and_dot2(self):
        a = _p(1.0, 2.0)
        b = _p(3.0, -1.0)
        npt.assert_allclose(sdf.dot(a, b), [1.0])
        npt.assert_allclose(sdf.dot2(a), [5.0])

    def test_clamp(self):
        npt.assert_array_equal(sdf.clamp(np.array([-1.0, 0.5, 2.0]), 0.0, 1.0), [0.0, 0.5, 1.0])

    def test_far_is_finite(self):
        assert np.isfinite(sdf.FAR)
        assert np.isfinite(sdf.FAR - (-sdf.FAR))


# ===========================================================================
# Boolean operators
# ===========================================================================

class TestBooleanOps:
    def test_union_is_min(self):
        npt.assert_array_equal(sdf.opUnion(np.array([1.0, -2.0]), np.array([0.5, 3.0])), [0.5, -2.0])

    def test_intersection_is_max(self):
        npt.assert_array_equal(sdf.opIntersection(np.array([1.0, -2.0]), np.array([0.5, 3.0])), [1.0, 3.0])

    def test_subtraction(self):
        # max(-d1, d2)
        npt.assert_array_equal(sdf.opSubtraction(np.array([-1.0]), np.array([-0.5])), [1.0])


# ===========================================================================
# Primitive SDFs
# ===========================================================================

class TestCircle:
    def test_centre(self):
        npt.assert_allclose(sdf.sdCircle(_p(0, 0), 0.5), [-0.5])

    def test_surface(self):
        npt.assert_allclose(sdf.sdCircle(_p(0.5, 0), 0.5), [0.0], atol=1e-12)

    def test_outside(self):
        npt.assert_allclose(sdf.sdCircle(_p(0, 2), 0.5), [1.5])

    def test_batch_shape(self):
        assert sdf.sdCircle(_grid(), 0.5).shape == (8, 8)


class TestBox2D:
    def test_inside(self):
        npt.assert_allclose(sdf.sdBox2D(_p(0, 0), np.array([0.3, 0.2])), [-0.2])

    def test_outside_face(self):
        npt.assert_allclose(sdf.sdBox2D(_p(0.5, 0), np.array([0.3, 0.2])), [0.2])

    def test_outside_corner(self):
        npt.assert_allclose(sdf.sdBox2D(_p(0.6, 0.6), np.array([0.3, 0.2])), [0.5])


class TestCapsule2D:
    def test_on_axis(self):
        a, b = np.array([0.0, 0.0]), np.array([1.0, 0.0])
        npt.assert_allclose(sdf.sdCapsule2D(_p(0.5, 0.3), a, b, 0.1), [0.2])

    def test_beyond_end(self):
        a, b = np.array([0.0, 0.0]), np.array([1.0, 0.0])
        npt.assert_allclose(sdf.sdCapsule2D(_p(2.0, 0.0), a, b, 0.0), [1.0])


class TestBezier2D:
    A = np.array([-1.0, 0.0])
    B = np.array([0.0, 1.0])
    C = np.array([1.0, 0.0])

    def test_endpoints_on_curve(self):
        npt.assert_allclose(sdf.sdBezier2D(_p(-1.0, 0.0), self.A, self.B, self.C), [0.0], atol=1e-6)
        npt.assert_allclose(sdf.sdBezier2D(_p(1.0, 0.0), self.A, self.B, self.C), [0.0], atol=1e-6)

    def test_apex(self):
        # B(0.5) = (0, 0.5)
        npt.assert_allclose(sdf.sdBezier2D(_p(0.0, 0.5), self.A, self.B, self.C), [0.0], atol=1e-6)
        npt.assert_allclose(sdf.sdBezier2D(_p(0.0, 1.0), self.A, self.B, self.C), [0.5], atol=1e-6)

    def test_matches_dense_sampling(self):
        rng = np.random.default_rng(3)
        pts = rng.uniform(-1.5, 1.5, size=(200, 2))
        t = np.linspace(0.0, 1.0, 20001)[:, None]
        curve = (1 - t) ** 2 * self.A + 2 * (1 - t) * t * self.B + t ** 2 * self.C
        brute = np.min(np.linalg.norm(pts[:, None, :] - curve[None], axis=-1), axis=1)
        npt.assert_allclose(sdf.sdBezier2D(pts, self.A, self.B, self.C), brute, atol=1e-4)


class TestPolygon2D:
    square = np.array([[-0.5, -0.5], [0.5, -0.5], [0.5, 0.5], [-0.5, 0.5]])

    def test_inside_negative(self):
        npt.assert_allclose(sdf.sdPolygon2D(_p(0, 0), self.square), [-0.5])

    def test_outside_positive(self):
        npt.assert_allclose(sdf.sdPolygon2D(_p(1.0, 0), self.square), [0.5])

    def test_matches_box(self):
        pts = _grid(12)
        npt.assert_allclose(
            sdf.sdPolygon2D(pts, self.square),
            sdf.sdBox2D(pts, np.array([0.5, 0.5])),
            atol=1e-12,
        )


class TestNGon2D:
    def test_square_ngon_matches_rotated_box(self):
        # 4-gon with circumradius r is a square of half-side r/sqrt(2), rotated 45 degrees
        r = 0.5
        npt.assert_allclose(sdf.sdNGon2D(_p(0, 0), r, 4), [-r / np.sqrt(2.0)], atol=1e-12)

    def test_vertex_on_surface(self):
        npt.assert_allclose(sdf.sdNGon2D(_p(0.0, 0.4), 0.4, 6), [0.0], atol=1e-12)


class TestStar:
    def test_tip_on_surface(self):
        npt.assert_allclose(sdf.sdStar(_p(0.0, 0.5), 0.5, 5, 3.0), [0.0], atol=1e-12)

    def test_centre_inside(self):
        assert sdf.sdStar(_p(0, 0), 0.5, 5, 3.0)[0] < 0


class TestRing2D:
    def test_hole_is_outside(self):
        npt.assert_allclose(sdf.sdRing2D(_p(0, 0), 0.2, 0.4), [0.2])

    def test_band_is_inside(self):
        npt.assert_allclose(sdf.sdRing2D(_p(0.3, 0), 0.2, 0.4), [-0.1])


class TestMoon2D:
    def test_bite_is_outside(self):
        # inside the subtracted disc
        assert sdf.sdMoon2D(_p(0.3, 0.0), 0.3, 0.5, 0.4)[0] > 0

    def test_crescent_is_inside(self):
        assert sdf.sdMoon2D(_p(-0.4, 0.0), 0.3, 0.5, 0.4)[0] < 0


class TestCross2D:
    def test_centre_inside(self):
        # nearest boundary is the re-entrant corner (0.1, 0.1)
        npt.assert_allclose(sdf.sdCross2D(_p(0, 0), np.array([0.5, 0.1]), 0.0), [-np.sqrt(0.02)])

    def test_arm_tip(self):
        npt.assert_allclose(sdf.sdCross2D(_p(0.6, 0.0), np.array([0.5, 0.1]), 0.0), [0.1], atol=1e-12)

    def test_notch_outside(self):
        assert sdf.sdCross2D(_p(0.3, 0.3), np.array([0.5, 0.1]), 0.0)[0] > 0


class TestTransform:
    def test_opTx2D_shifts(self):
        f = lambda q: sdf.sdCircle(q, 0.1)
        out = sdf.opTx2D(_p(1.0, 1.0), np.eye(2), np.array([1.0, 1.0]), f)
        npt.assert_allclose(out, [-0.1])


@pytest.mark.parametrize("func,args", [
    (sdf.sdCircle, (0.3,)),
    (sdf.sdBox2D, (np.array([0.3, 0.2]),)),
    (sdf.sdRing2D, (0.1, 0.3)),
    (sdf.sdNGon2D, (0.4, 5)),
    (sdf.sdCross2D, (np.array([0.4, 0.1]), 0.0)),
])
def test_lipschitz(func, args):
    """Neighbouring samples never differ by more than their distance."""
    rng = np.random.default_rng(11)
    a = rng.uniform(-1.0, 1.0, size=(500, 2))
    b = a + rng.normal(scale=0.05, size=a.shape)
    diff = np.abs(func(a, *args) - func(b, *args))
    assert np.all(diff <= np.linalg.norm(a - b, axis=-1) + 1e-9)
