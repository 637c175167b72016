import itertools

import pytest

from roomgraph.exceptions import EmptyFloorplanError
from roomgraph.layout.engine import (
    LayoutParams,
    adjacent_room_position,
    categorize_rooms,
    compute_layout,
    room_pixel_scale,
    rooms_overlap_3d,
)
from roomgraph.schemas import AdjacencyRelation, EdgeDirection, GeometrySource
from roomgraph.settings import Settings
from roomgraph.validate.layout_validation import validate_layout
from tests.utils_rooms import placed, semantic, unified

PARAMS = LayoutParams()


def _relation(a, b, edge):
    return AdjacencyRelation(room1_id=a, room2_id=b, edge=edge)


def _positions(result):
    return {room.id: room.position for room in result.rooms}


def test_adjacent_room_position_east_of_entry():
    position = adjacent_room_position((0.0, 0.0, 0.0), (2.0, 2.4, 2.0), (3.0, 2.4, 2.0), "east", 0.1)
    assert position == pytest.approx((2.6, 0.0, 0.0))


@pytest.mark.parametrize(
    "edge,expected",
    [
        (EdgeDirection.WEST, (-2.6, 0.0, 0.0)),
        (EdgeDirection.NORTH, (0.0, 0.0, -2.1)),
        (EdgeDirection.SOUTH, (0.0, 0.0, 2.1)),
    ],
)
def test_adjacent_room_position_directions(edge, expected):
    position = adjacent_room_position((0.0, 0.0, 0.0), (2.0, 2.4, 2.0), (3.0, 2.4, 2.0), edge, 0.1)
    assert position == pytest.approx(expected)


def test_rooms_overlap_3d():
    assert rooms_overlap_3d(placed("a", 0, 0, 2, 2), placed("b", 1, 1, 2, 2))
    assert not rooms_overlap_3d(placed("a", 0, 0, 2, 2), placed("b", 2.1, 0, 2, 2))
    assert not rooms_overlap_3d(placed("a", 0, 0, 2, 2), placed("b", 2.0, 0, 2, 2))


def test_bfs_places_kitchen_east_of_entry():
    rooms = [semantic("kitchen", width=3, depth=2), semantic("entry", width=2, depth=2)]
    result = compute_layout(
        rooms,
        [_relation("entry", "kitchen", EdgeDirection.EAST)],
        ceiling_height=2.4,
        entry_room_id="entry",
        params=PARAMS,
    )
    assert result.strategy == "adjacency-bfs"
    positions = _positions(result)
    assert positions["entry"] == (0.0, 0.0, 0.0)
    assert positions["kitchen"] == pytest.approx((2.6, 0.0, 0.0))
    assert [room.id for room in result.rooms] == ["kitchen", "entry"]
    kitchen = result.rooms[0]
    assert kitchen.dimensions == (3.0, 2.4, 2.0)


def test_bfs_uses_reverse_edges_and_places_disconnected_rooms_in_overflow():
    rooms = [
        semantic("hall", width=2, depth=4),
        semantic("bed", width=3, depth=3),
        semantic("bath", width=2, depth=2),
        semantic("garage", width=5, depth=5),
    ]
    relations = [
        _relation("bed", "hall", EdgeDirection.EAST),
        _relation("hall", "bath", EdgeDirection.NORTH),
    ]
    result = compute_layout(rooms, relations, entry_room_id="hall", params=PARAMS)
    positions = _positions(result)
    assert positions["bed"] == pytest.approx((-2.6, 0.0, 0.0))
    assert positions["bath"] == pytest.approx((0.0, 0.0, -3.1))
    garage_z = positions["garage"][2]
    assert garage_z - 2.5 >= 2.0 + 2.0 - 1e-9
    assert validate_layout(result.rooms, Settings()).overlaps == []


def test_bfs_skips_colliding_placement():
    rooms = [semantic(name, width=2, depth=2) for name in ("a", "b", "c")]
    relations = [_relation("a", "b", EdgeDirection.EAST), _relation("a", "c", EdgeDirection.EAST)]
    result = compute_layout(rooms, relations, params=PARAMS)
    assert result.strategy == "adjacency-bfs"
    assert validate_layout(result.rooms, Settings()).overlaps == []
    assert _positions(result)["c"][2] > 0


def test_pixel_positions_from_detected_geometry():
    rooms = [
        unified("a", 0, 0, 300, 200, width=3, depth=2),
        unified("b", 310, 0, 300, 200, width=3, depth=2),
    ]
    result = compute_layout(rooms, [], params=PARAMS)
    assert result.strategy == "pixel-positions"
    positions = _positions(result)
    assert positions["a"] == pytest.approx((-1.55, 0.0, 0.0))
    assert positions["b"] == pytest.approx((1.55, 0.0, 0.0))


def test_colliding_pixel_layout_falls_through_to_bfs():
    # b is stated wider than its drawn box implies
    rooms = [
        unified("a", 0, 0, 300, 200, width=3, depth=2),
        unified("b", 310, 0, 300, 200, width=4, depth=2),
        unified("c", 0, 300, 300, 200, width=3, depth=2),
    ]
    result = compute_layout(rooms, [_relation("a", "b", EdgeDirection.EAST)], params=PARAMS)

    assert result.strategy == "adjacency-bfs"
    rejected = result.attempts[0]
    assert rejected.strategy == "pixel-positions"
    assert not rejected.succeeded
    assert "collides" in rejected.reason
    assert validate_layout(result.rooms, Settings()).overlaps == []
    assert _positions(result)["b"][0] == pytest.approx(3.6)


def test_pixel_layout_tolerates_sub_tolerance_contact():
    rooms = [
        unified("a", 0, 0, 300, 200, width=3, depth=2),
        unified("b", 298, 0, 300, 200, width=3, depth=2),
    ]
    assert compute_layout(rooms, [], params=PARAMS).strategy == "pixel-positions"


def test_room_pixel_scale_round_trip():
    room = unified("a", 0, 0, 300, 200, width=3, depth=2)
    assert room_pixel_scale(room) == (100.0, 100.0)


def test_pixel_scale_is_median_and_ignores_outliers():
    rooms = [
        unified("a", 0, 0, 300, 200, width=3, depth=2),
        unified("b", 400, 0, 300, 200, width=3, depth=2),
        unified("c", 0, 300, 300, 200, width=3.3, depth=2.2),
        unified("noise", 800, 800, 4000, 4000, width=1, depth=1),
    ]
    result = compute_layout(rooms, [], params=PARAMS)
    positions = _positions(result)
    assert positions["b"][0] - positions["a"][0] == pytest.approx(4.0)


def test_pixel_strategy_skipped_for_synthetic_geometry():
    rooms = [
        unified("a", 0, 0, 300, 200, width=3, depth=2, source=GeometrySource.SYNTHETIC_LABEL),
        unified("b", 310, 0, 300, 200, width=3, depth=2, source=GeometrySource.SYNTHETIC_LABEL),
    ]
    result = compute_layout(rooms, [], synthetic=True, params=PARAMS)
    assert result.strategy == "categorical-grid"
    assert [attempt.strategy for attempt in result.attempts] == [
        "pixel-positions",
        "adjacency-bfs",
        "categorical-grid",
    ]


def test_pixel_strategy_needs_half_the_rooms():
    rooms = [unified("a", 0, 0, 300, 200, width=3, depth=2), semantic("b"), semantic("c")]
    result = compute_layout(rooms, [], params=PARAMS)
    assert result.strategy == "categorical-grid"
    rooms = [unified("a", 0, 0, 300, 200, width=3, depth=2), semantic("b")]
    result = compute_layout(rooms, [], params=PARAMS)
    assert result.strategy == "pixel-positions"
    assert _positions(result)["b"][2] >= 1.0 + 2.0


def test_categorize_rooms_orders_by_dwelling_convention():
    rooms = [
        semantic("1", "Bathroom"),
        semantic("2", "Study"),
        semantic("3", "Master Bedroom"),
        semantic("4", "Kitchen"),
        semantic("5", "Living Room"),
        semantic("6", "Hallway"),
        semantic("7", "Front Porch"),
        semantic("8", "Bedroom En-suite Bath"),
    ]
    ordered = [room.id for room in categorize_rooms(rooms, entry_room_id="6")]
    assert ordered == ["6", "7", "5", "4", "3", "8", "1", "2"]


def test_grid_layout_is_collision_free():
    sizes = [(4.5, 3.2), (2.0, 1.5), (3.3, 3.3), (6.0, 2.0), (1.2, 2.8), (3.0, 4.0), (2.5, 2.5)]
    names = ["Living", "WC", "Bedroom 1", "Kitchen", "Store", "Bedroom 2", "Hall"]
    rooms = [semantic(f"r{i}", name, width=w, depth=d) for i, (name, (w, d)) in enumerate(zip(names, sizes))]
    result = compute_layout(rooms, None, params=PARAMS)
    assert result.strategy == "categorical-grid"
    assert len({room.id for room in result.rooms}) == len(rooms)
    assert validate_layout(result.rooms, Settings()).overlaps == []
    for a, b in itertools.combinations(result.rooms, 2):
        assert not rooms_overlap_3d(a, b)


def test_empty_room_list_raises():
    with pytest.raises(EmptyFloorplanError):
        compute_layout([], params=PARAMS)
