import pytest

from roomgraph.exceptions import SchemaError
from roomgraph.schemas import (
    AdjacencyRelation,
    BBox,
    EdgeDirection,
    FloorplanResult,
    Point,
    deduplicate_rooms,
    parse_floorplan_payload,
)
from tests.utils_rooms import placed, semantic


def _payload(**overrides):
    data = {
        "id": "plan",
        "address": "1 Test Street",
        "rooms": [
            {"id": "r1", "name": "Living Room", "width": 4.0, "depth": 5.0, "labelPosition": {"x": 10, "y": 20}},
            {"id": "r2", "name": "Kitchen", "width": 3.0, "depth": 3.0},
        ],
    }
    data.update(overrides)
    return data


def test_parse_payload_derives_totals_and_defaults():
    payload = parse_floorplan_payload(_payload())
    assert payload.total_area_sq_m == pytest.approx(29.0)
    assert payload.total_area_sq_ft == pytest.approx(312.2, abs=0.1)
    assert payload.ceiling_height == pytest.approx(2.4)
    assert payload.rooms[0].label_position == Point(x=10, y=20)
    assert payload.rooms[1].label_position is None
    assert payload.rooms[1].color == "#e5e7eb"


def test_total_sq_m_derived_from_sq_ft():
    payload = parse_floorplan_payload(_payload(totalAreaSqFt=1076.39))
    assert payload.total_area_sq_m == pytest.approx(100.0)


def test_missing_dimensions_from_measurements_or_default():
    data = _payload(
        rooms=[
            {"id": "a", "name": "Bedroom", "originalMeasurements": {"width": "12'", "depth": "3.2m"}},
            {"id": "b", "name": "Store"},
        ]
    )
    payload = parse_floorplan_payload(data, default_room_size=2.5)
    bedroom, store = payload.rooms
    assert bedroom.width == pytest.approx(3.6576)
    assert bedroom.depth == pytest.approx(3.2)
    assert bedroom.dimensions_estimated is False
    assert store.width == store.depth == pytest.approx(2.5)
    assert store.dimensions_estimated is True


def test_numeric_ids_are_stringified():
    payload = parse_floorplan_payload(_payload(rooms=[{"id": 7, "name": "Hall", "width": 2, "depth": 1}]))
    assert payload.rooms[0].id == "7"


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"id": "x"},
        {"rooms": "not-a-list"},
        _payload(rooms=[{"id": "a", "name": "A", "width": -1, "depth": 2}]),
        _payload(rooms=[{"id": "a", "name": "A", "width": "wide", "depth": 2}]),
        _payload(rooms=[{"name": "No id", "width": 1, "depth": 1}]),
        _payload(
            rooms=[
                {"id": "a", "name": "A", "width": 1, "depth": 1},
                {"id": "a", "name": "B", "width": 1, "depth": 1},
            ]
        ),
    ],
)
def test_invalid_payloads_raise_schema_error(data):
    with pytest.raises(SchemaError):
        parse_floorplan_payload(data)


def test_unknown_entry_room_is_dropped():
    payload = parse_floorplan_payload(_payload(entryRoomId="ghost"))
    assert payload.entry_room_id is None
    assert parse_floorplan_payload(_payload(entryRoomId="r2")).entry_room_id == "r2"


def test_deduplication_is_opt_in():
    data = _payload(
        rooms=[
            {"id": "a", "name": "Bedroom 1", "width": 3, "depth": 3},
            {"id": "b", "name": "bedroom-1", "width": 3, "depth": 3},
        ]
    )
    assert len(parse_floorplan_payload(data).rooms) == 2
    rooms = parse_floorplan_payload(data, deduplicate=True).rooms
    assert [room.id for room in rooms] == ["a"]


def test_deduplicate_rooms_keeps_first():
    rooms = [semantic("a", "Kitchen"), semantic("b", "Living"), semantic("c", "KITCHEN")]
    assert [room.id for room in deduplicate_rooms(rooms)] == ["a", "b"]


def test_bbox_containment_with_margin():
    bbox = BBox(x=0, y=0, width=100, height=50)
    assert bbox.contains(Point(x=100, y=50))
    assert not bbox.contains(Point(x=110, y=25))
    assert bbox.contains(Point(x=110, y=25), margin=20)
    assert bbox.right == 100 and bbox.bottom == 50


def test_edge_direction_opposites():
    assert EdgeDirection.NORTH.opposite is EdgeDirection.SOUTH
    assert EdgeDirection.EAST.opposite is EdgeDirection.WEST
    assert EdgeDirection.NORTH.overlap_axis == "x"
    assert EdgeDirection.WEST.overlap_axis == "y"


def test_adjacency_relation_aliases_and_reverse():
    relation = AdjacencyRelation.model_validate({"room1": "a", "room2": "b", "edge": "north"})
    assert relation.room1_id == "a"
    reverse = relation.reversed()
    assert (reverse.room1_id, reverse.room2_id, reverse.edge) == ("b", "a", EdgeDirection.SOUTH)
    assert relation.pair == reverse.pair
    assert relation.model_dump(mode="json", by_alias=True) == {"room1Id": "a", "room2Id": "b", "edge": "north"}


def test_floorplan_result_serializes_camel_case():
    result = FloorplanResult(
        id="plan",
        address="addr",
        total_area_sq_ft=100.0,
        total_area_sq_m=9.29,
        ceiling_height=2.4,
        rooms=[placed("a", 0.0, 0.0, 3.0, 3.0)],
    )
    data = result.to_json_dict()
    assert data["totalAreaSqM"] == pytest.approx(9.29)
    assert data["ceilingHeight"] == pytest.approx(2.4)
    assert data["rooms"][0]["position"] == [0.0, 0.0, 0.0]
    assert data["rooms"][0]["dimensions"] == [3.0, 2.4, 3.0]
    assert "entryRoomId" not in data
