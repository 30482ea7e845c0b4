"""Tests for spacefill.adf — adaptive distance field."""

import warnings

import numpy as np
import numpy.testing as npt
import pytest

from spacefill import (
    ADF, BoundaryRect, Bucket, CapacityExceeded, Circle, ConfigurationError,
    DistanceField, EliminationConfig, FAR, FunctionPrimitive, domain_empirical,
)


def _random_circles(rng, n=50, r_max=0.05):
    return [
        Circle(r).translate(x, y)
        for x, y, r in zip(rng.random(n), rng.random(n), rng.uniform(0.005, r_max, n))
    ]


@pytest.fixture(scope="module")
def packed():
    rng = np.random.default_rng(0)
    circles = _random_circles(rng)
    field = ADF(max_depth=8, bucket_capacity=4)
    for c in circles:
        field.insert(c)
    return field, circles


class TestBucket:
    def test_empty_field_is_far(self):
        npt.assert_array_equal(Bucket().field(np.zeros((3, 2))), FAR)

    def test_eliminated_members_are_ignored(self):
        a = Circle(0.1)
        b = Circle(0.1).translate(1.0, 0.0)
        bucket = Bucket([a, b])
        bucket.active = [False, True]
        assert bucket.active_count == 1
        assert bucket.active_members() == [b]
        npt.assert_allclose(bucket.field(np.array([[0.0, 0.0]])), [0.9])

    def test_active_mask_is_a_copy(self):
        bucket = Bucket([Circle(0.1)])
        bucket.active[0] = False
        assert bucket.active_count == 1

    def test_mask_length_checked(self):
        with pytest.raises(ValueError):
            Bucket([Circle(0.1)]).active = [True, False]

    def test_sampling_skips_eliminated_members(self):
        calls = []

        def counted(p):
            calls.append(1)
            return np.linalg.norm(p, axis=-1) - 0.1

        bucket = Bucket([FunctionPrimitive(counted) for _ in range(50)])
        bucket.eliminate_all()
        bucket.append(Circle(0.1))
        npt.assert_allclose(bucket.field(np.array([[0.5, 0.0]])), [0.4])
        assert calls == []
        assert len(bucket) == 51
        assert bucket.active_count == 1

    def test_eliminate_all(self):
        bucket = Bucket([Circle(0.1)])
        bucket.append(Circle(0.2))
        bucket.eliminate_all()
        assert len(bucket) == 2
        assert bucket.active_count == 0


class TestConstruction:
    def test_empty_samples_far(self):
        assert ADF().sample((0.5, 0.5)) == FAR

    @pytest.mark.parametrize("kwargs", [
        {"bucket_capacity": 0},
        {"max_workers": 0},
        {"max_depth": -1},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            ADF(**kwargs)


class TestFieldInvariant:
    def test_matches_brute_force(self, packed):
        field, circles = packed
        rng = np.random.default_rng(1)
        pts = rng.random((10_000, 2))
        ref = DistanceField(circles).sample_many(pts)
        npt.assert_allclose(field.sample_many(pts), ref, atol=1e-3)
        # sampling is exact, not interpolated
        npt.assert_allclose(field.sample_many(pts), ref, atol=1e-12)

    def test_sample_matches_sample_many(self, packed):
        field, _ = packed
        pts = np.random.default_rng(2).random((100, 2))
        npt.assert_array_equal(field.sample_many(pts), [field.sample(p) for p in pts])

    def test_tree_was_refined(self, packed):
        field, _ = packed
        stats = field.stats()
        assert stats["nodes"] > 1
        assert stats["leaves"] == 1 + 3 * (stats["nodes"] - 1) // 4
        assert stats["max_bucket"] <= 4 or stats["max_depth"] == 8
        assert stats["primitives"] <= 50

    def test_buckets_respect_capacity_below_max_depth(self, packed):
        field, _ = packed
        for leaf in field.tree.leaves():
            if field.tree.depths[leaf] < field.tree.max_depth:
                assert field.buckets[leaf].active_count <= field.bucket_capacity

    def test_internal_nodes_have_empty_buckets(self, packed):
        field, _ = packed
        for node in range(len(field.tree)):
            if not field.tree.is_leaf(node):
                assert len(field.buckets[node]) == 0

    def test_query_is_idempotent(self, packed):
        field, _ = packed
        pts = np.random.default_rng(3).random((200, 2))
        first = field.sample_many(pts)
        for _ in range(3):
            npt.assert_array_equal(field.sample_many(pts), first)

    def test_bucket_lookup(self, packed):
        field, circles = packed
        p = (0.42, 0.58)
        members = field.bucket(p)
        assert members
        assert all(any(m is c for c in circles) for m in members)
        assert min(m.distance(p) for m in members) == field.sample(p)


class TestInsertion:
    def test_boundary_then_circles(self):
        rng = np.random.default_rng(4)
        field = ADF(max_depth=7)
        ref = DistanceField()
        for prim in [BoundaryRect()] + _random_circles(rng, n=30, r_max=0.08):
            field.insert(prim)
            ref.insert(prim)
        pts = rng.random((2000, 2))
        npt.assert_allclose(field.sample_many(pts), ref.sample_many(pts), atol=1e-12)

    def test_dominating_primitive_replaces_bucket(self):
        field = ADF()
        field.insert(Circle(0.01).translate(5.0, 5.0))
        big = Circle(0.4).translate(0.5, 0.5)
        field.insert(big)
        assert field.bucket((0.5, 0.5)) == [big]

    def test_far_primitive_is_skipped(self):
        field = ADF()
        near = Circle(0.2).translate(0.5, 0.5)
        field.insert(near)
        field.insert(Circle(0.01).translate(9.0, 9.0))
        assert field.bucket((0.5, 0.5)) == [near]
        assert len(field.buckets[0]) == 1

    @pytest.mark.filterwarnings("ignore::spacefill.errors.CapacityExceeded")
    def test_domain_restricts_update(self):
        field = ADF(max_depth=4, bucket_capacity=1,
                    elimination=EliminationConfig(enabled=False))
        field.insert(BoundaryRect())
        field.insert(Circle(0.05).translate(0.25, 0.25))
        c = Circle(0.05).translate(0.75, 0.75)
        field.insert(c, domain=domain_empirical((0.75, 0.75), 0.1))
        assert c in field.bucket((0.75, 0.75))
        assert c not in field.bucket((0.05, 0.05))

    def test_parallel_pruning_matches_serial(self):
        rng = np.random.default_rng(5)
        circles = _random_circles(rng, n=30)
        serial = ADF(max_depth=6, max_workers=1)
        threaded = ADF(max_depth=6, max_workers=4)
        for c in circles:
            serial.insert(c)
            threaded.insert(c)
        pts = rng.random((1000, 2))
        npt.assert_array_equal(serial.sample_many(pts), threaded.sample_many(pts))
        assert serial.stats() == threaded.stats()

    def test_elimination_disabled_is_still_exact(self):
        rng = np.random.default_rng(6)
        circles = _random_circles(rng, n=25)
        field = ADF(max_depth=6, elimination=EliminationConfig(enabled=False))
        for c in circles:
            field.insert(c)
        pts = rng.random((1000, 2))
        npt.assert_allclose(field.sample_many(pts), DistanceField(circles).sample_many(pts), atol=1e-12)


class TestCapacity:
    def _crowd(self, field):
        for x, y in [(0.1, 0.1), (0.2, 0.2), (0.15, 0.3)]:
            field.insert(Circle(0.02).translate(x, y))

    def test_warns_at_max_depth(self):
        field = ADF(max_depth=1, bucket_capacity=1,
                    elimination=EliminationConfig(enabled=False))
        with pytest.warns(CapacityExceeded):
            self._crowd(field)
        # still exact
        p = (0.12, 0.12)
        assert field.sample(p) == pytest.approx(np.hypot(0.02, 0.02) - 0.02)

    def test_warns_once_per_leaf(self):
        field = ADF(max_depth=1, bucket_capacity=1,
                    elimination=EliminationConfig(enabled=False))
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            self._crowd(field)
            field.insert(Circle(0.02).translate(0.3, 0.1))
        leaves = {str(w.message).split()[1] for w in caught if issubclass(w.category, CapacityExceeded)}
        assert leaves
        assert len(leaves) == len([w for w in caught if issubclass(w.category, CapacityExceeded)])

    def test_logs_warning(self, caplog):
        field = ADF(max_depth=0, bucket_capacity=1,
                    elimination=EliminationConfig(enabled=False))
        with pytest.warns(CapacityExceeded):
            self._crowd(field)
        assert any(r.levelname == "WARNING" for r in caplog.records)

    def test_warning_points_at_insert_caller(self):
        field = ADF(max_depth=2, bucket_capacity=1,
                    elimination=EliminationConfig(enabled=False))
        with pytest.warns(CapacityExceeded) as record:
            for x, y in [(0.1, 0.1), (0.11, 0.12), (0.12, 0.1), (0.1, 0.13)]:
                field.insert(Circle(0.005).translate(x, y))
        assert len(record) > 0
        assert all(w.filename.endswith("test_adf.py") for w in record)
