import json
import math

import pytest

from roomgraph.schemas import EdgeDirection
from roomgraph.spatial.tools import (
    TOOL_DEFINITIONS,
    SpatialTools,
    edge_distance,
    nearby_rooms,
    overlap_percentage,
    room_box,
)
from tests.utils_rooms import placed, unified


@pytest.fixture
def rooms():
    return [
        unified("a", 0, 0, 100, 100),
        unified("b", 105.04, 20, 100, 100),
        unified("c", 0, -110, 60, 100),
        unified("d", 500, 500, 50, 50),
    ]


def test_edge_distance_directions(rooms):
    assert edge_distance(rooms, "a", "b", EdgeDirection.EAST) == pytest.approx(5.04)
    assert edge_distance(rooms, "b", "a", "west") == pytest.approx(5.04)
    assert edge_distance(rooms, "a", "c", "north") == pytest.approx(10)
    assert edge_distance(rooms, "c", "a", "south") == pytest.approx(10)
    assert edge_distance(rooms, "a", "b", "west") < 0


def test_missing_room_gives_infinite_distance(rooms):
    assert math.isinf(edge_distance(rooms, "a", "ghost", "east"))
    assert overlap_percentage(rooms, "a", "ghost", "x") == 0.0


def test_overlap_percentage_uses_smaller_extent(rooms):
    assert overlap_percentage(rooms, "a", "b", "y") == pytest.approx(80.0)
    assert overlap_percentage(rooms, "a", "c", "x") == pytest.approx(100.0)
    assert overlap_percentage(rooms, "a", "d", "x") == 0.0
    with pytest.raises(ValueError):
        overlap_percentage(rooms, "a", "b", "z")


def test_nearby_rooms_sorted_and_tagged(rooms):
    nearby = nearby_rooms(rooms, "a", 50)
    assert [(n.id, n.direction, n.distance) for n in nearby] == [
        ("b", EdgeDirection.EAST, 5.0),
        ("c", EdgeDirection.NORTH, 10.0),
    ]
    assert nearby_rooms(rooms, "ghost") == []


def test_placed_rooms_use_meter_footprint():
    rooms = [placed("a", 0.0, 0.0, 2.0, 2.0), placed("b", 2.1, 0.0, 2.0, 2.0)]
    box = room_box(rooms[0])
    assert (box.x, box.y, box.width, box.height) == (-1.0, -1.0, 2.0, 2.0)
    assert edge_distance(rooms, "a", "b", "east") == pytest.approx(0.1)


def test_execute_dispatches_tools(rooms):
    tools = SpatialTools(rooms)
    assert tools.execute("check_edge_distance", {"room1_id": "a", "room2_id": "b", "edge": "east"}) == pytest.approx(
        5.04
    )
    assert tools.execute("check_edge_distance", {"room1_id": "a", "room2_id": "zz", "edge": "east"}) is None
    assert tools.execute("get_overlap_percentage", {"room1_id": "a", "room2_id": "b", "axis": "y"}) == pytest.approx(80)
    listed = tools.execute("list_nearby_rooms", {"room_id": "a"})
    assert listed[0] == {"id": "b", "name": "b", "direction": "east", "distance": 5.0}
    json.dumps(listed)
    with pytest.raises(KeyError):
        tools.execute("teleport", {})
    with pytest.raises(ValueError):
        tools.execute("check_edge_distance", {"room1_id": "a", "room2_id": "b", "edge": "up"})


def test_tool_definitions_cover_all_tools():
    names = {tool["name"] for tool in TOOL_DEFINITIONS}
    assert names == {"check_edge_distance", "get_overlap_percentage", "list_nearby_rooms"}
    for tool in TOOL_DEFINITIONS:
        assert tool["input_schema"]["type"] == "object"
        assert set(tool["input_schema"]["required"]) <= set(tool["input_schema"]["properties"])
