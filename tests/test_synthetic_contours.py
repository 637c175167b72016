import itertools
import math

import pytest

from roomgraph.matching.synthetic import (
    SyntheticParams,
    generate_synthetic_contours,
    resolve_overlaps,
    synthetic_scale,
)
from roomgraph.schemas import GeometrySource
from tests.utils_rooms import semantic


def _centroid_distance(a, b) -> float:
    return math.hypot(a.centroid.x - b.centroid.x, a.centroid.y - b.centroid.y)


def test_coincident_labels_are_pushed_apart():
    rooms = [
        semantic("a", width=4, depth=3, label=(100, 100)),
        semantic("b", width=2, depth=2, label=(100, 100)),
    ]
    a, b = generate_synthetic_contours(rooms, params=SyntheticParams())
    assert a.geometry_source is GeometrySource.SYNTHETIC_LABEL
    assert _centroid_distance(a, b) >= (a.bbox.width + b.bbox.width) / 2 - 1e-6
    assert a.centroid.y == pytest.approx(b.centroid.y)


def test_clustered_labels_end_up_separated():
    labels = [(300, 300), (310, 305), (295, 320), (320, 290), (305, 310)]
    rooms = [semantic(f"r{i}", width=3 + i * 0.5, depth=3, label=label) for i, label in enumerate(labels)]
    result = generate_synthetic_contours(rooms, params=SyntheticParams())
    for a, b in itertools.combinations(result, 2):
        assert _centroid_distance(a, b) >= (a.bbox.width + b.bbox.width) / 2 - 1e-6


def test_resolve_overlaps_leaves_separated_points_alone():
    centers = [(0.0, 0.0), (100.0, 0.0)]
    assert resolve_overlaps(centers, [10.0, 10.0], gap=5.0) == centers


def test_scale_targets_share_of_canvas():
    rooms = [semantic("a", width=2, depth=2), semantic("b", width=4, depth=4)]
    scale = synthetic_scale(rooms, 1000, 1000, 3.0)
    mean_area_px = (4 + 16) / 2 * scale**2
    assert mean_area_px == pytest.approx(1000 * 1000 / (2 * 3.0))


def test_grid_fallback_without_labels():
    rooms = [semantic("a"), semantic("b", width=6, depth=3), semantic("c")]
    result = generate_synthetic_contours(rooms, params=SyntheticParams())
    assert [room.id for room in result] == ["a", "b", "c"]
    assert all(room.geometry_source is GeometrySource.SYNTHETIC_GRID for room in result)
    first, second, third = result
    assert (first.bbox.x, first.bbox.y, first.bbox.width, first.bbox.height) == (50, 50, 400, 400)
    assert (second.bbox.width, second.bbox.height) == (400, 200)
    assert second.bbox.x == 550
    assert (third.bbox.x, third.bbox.y) == (50, 550)


def test_unlabeled_rooms_flow_below_labeled_ones():
    rooms = [
        semantic("labeled", label=(500, 100)),
        semantic("u1"),
        semantic("u2"),
    ]
    labeled, u1, u2 = generate_synthetic_contours(rooms, params=SyntheticParams())
    assert labeled.geometry_source is GeometrySource.SYNTHETIC_LABEL
    assert u1.geometry_source is GeometrySource.SYNTHETIC_FLOW
    assert u1.bbox.y >= labeled.bbox.bottom
    assert u2.bbox.x > u1.bbox.right
    assert u2.bbox.y == pytest.approx(u1.bbox.y + 15)


def test_empty_input():
    assert generate_synthetic_contours([]) == []
