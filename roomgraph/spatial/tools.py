"""
Spatial Verification Tools

The complete geometric vocabulary for adjacency reasoning. The oracle-driven
resolver exposes these as callable tools and the deterministic fallback calls
them directly, so both share one set of semantics.

Rooms are looked up by id. Unified rooms contribute their pixel bbox; placed
rooms contribute their footprint in meters (x, z), so the same tools work
before and after layout.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Union

from roomgraph.schemas import BBox, EdgeDirection, PlacedRoom, UnifiedRoom

SpatialRoom = Union[UnifiedRoom, PlacedRoom]

DIRECTIONS = (EdgeDirection.NORTH, EdgeDirection.SOUTH, EdgeDirection.EAST, EdgeDirection.WEST)


@dataclass(frozen=True)
class NearbyRoom:
    id: str
    name: str
    direction: EdgeDirection
    distance: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "direction": self.direction.value, "distance": self.distance}


def room_box(room: SpatialRoom) -> BBox:
    if isinstance(room, PlacedRoom):
        x, _, z = room.position
        width, _, depth = room.dimensions
        return BBox(x=x - width / 2.0, y=z - depth / 2.0, width=width, height=depth)
    return room.bbox


def box_edge_distance(a: BBox, b: BBox, edge: EdgeDirection | str) -> float:
    """Gap between ``a``'s ``edge`` side and ``b``'s facing side.

    Positive means separated, negative overlapping, near zero a shared wall.
    North is toward smaller y.
    """
    edge = EdgeDirection(edge)
    if edge is EdgeDirection.NORTH:
        return a.y - b.bottom
    if edge is EdgeDirection.SOUTH:
        return b.y - a.bottom
    if edge is EdgeDirection.EAST:
        return b.x - a.right
    return a.x - b.right


def box_overlap_percentage(a: BBox, b: BBox, axis: str) -> float:
    """Share of the smaller extent on ``axis`` covered by both boxes, in percent."""
    if axis == "x":
        overlap = max(0.0, min(a.right, b.right) - max(a.x, b.x))
        smaller = min(a.width, b.width)
    elif axis == "y":
        overlap = max(0.0, min(a.bottom, b.bottom) - max(a.y, b.y))
        smaller = min(a.height, b.height)
    else:
        raise ValueError(f"axis must be 'x' or 'y', got {axis!r}")
    return (overlap / smaller) * 100.0 if smaller > 0 else 0.0


class SpatialTools:
    """Id-addressed spatial queries over one room set."""

    def __init__(self, rooms: Sequence[SpatialRoom]):
        self.rooms = list(rooms)
        self._by_id: Dict[str, SpatialRoom] = {room.id: room for room in self.rooms}

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._by_id

    def box(self, room_id: str) -> BBox:
        return room_box(self._by_id[room_id])

    def edge_distance(self, room1_id: str, room2_id: str, edge: EdgeDirection | str) -> float:
        if room1_id not in self._by_id or room2_id not in self._by_id:
            return math.inf
        return box_edge_distance(self.box(room1_id), self.box(room2_id), edge)

    def overlap_percentage(self, room1_id: str, room2_id: str, axis: str) -> float:
        if room1_id not in self._by_id or room2_id not in self._by_id:
            return 0.0
        return box_overlap_percentage(self.box(room1_id), self.box(room2_id), axis)

    def nearby_rooms(self, room_id: str, max_distance: float = 50.0) -> List[NearbyRoom]:
        """Other rooms whose separating edge gap is below ``max_distance``, nearest first.

        The separating direction of two boxes is the one with the largest
        signed gap; every other direction reads as an overlap.
        """
        if room_id not in self._by_id:
            return []
        nearby: List[NearbyRoom] = []
        for other in self.rooms:
            if other.id == room_id:
                continue
            direction, distance = max(
                ((edge, self.edge_distance(room_id, other.id, edge)) for edge in DIRECTIONS),
                key=lambda item: item[1],
            )
            if distance < max_distance:
                nearby.append(
                    NearbyRoom(id=other.id, name=other.name, direction=direction, distance=round(distance, 1))
                )
        nearby.sort(key=lambda item: item.distance)
        return nearby

    def execute(self, name: str, arguments: Mapping[str, Any], default_radius: float = 50.0) -> Any:
        """Dispatch a tool call by its published name."""
        if name == "check_edge_distance":
            distance = self.edge_distance(
                str(arguments["room1_id"]), str(arguments["room2_id"]), EdgeDirection(arguments["edge"])
            )
            return None if math.isinf(distance) else distance
        if name == "get_overlap_percentage":
            axis = str(arguments["axis"])
            if axis not in ("x", "y"):
                raise ValueError(f"axis must be 'x' or 'y', got {axis!r}")
            return self.overlap_percentage(str(arguments["room1_id"]), str(arguments["room2_id"]), axis)
        if name == "list_nearby_rooms":
            radius = float(arguments.get("max_distance_px") or default_radius)
            return [item.to_dict() for item in self.nearby_rooms(str(arguments["room_id"]), radius)]
        raise KeyError(f"Unknown tool: {name}")


def edge_distance(rooms: Sequence[SpatialRoom], room1_id: str, room2_id: str, edge: EdgeDirection | str) -> float:
    return SpatialTools(rooms).edge_distance(room1_id, room2_id, edge)


def overlap_percentage(rooms: Sequence[SpatialRoom], room1_id: str, room2_id: str, axis: str) -> float:
    return SpatialTools(rooms).overlap_percentage(room1_id, room2_id, axis)


def nearby_rooms(rooms: Sequence[SpatialRoom], room_id: str, max_distance: float = 50.0) -> List[NearbyRoom]:
    return SpatialTools(rooms).nearby_rooms(room_id, max_distance)


TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "check_edge_distance",
        "description": (
            "Distance in pixels between two rooms along one edge direction. Positive if separated, "
            "negative if overlapping, near zero (about 0-15px) if they share a wall."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "room1_id": {"type": "string", "description": "ID of the first room"},
                "room2_id": {"type": "string", "description": "ID of the second room"},
                "edge": {
                    "type": "string",
                    "enum": [d.value for d in DIRECTIONS],
                    "description": "Edge of room1 to check (north=above, south=below, east=right, west=left)",
                },
            },
            "required": ["room1_id", "room2_id", "edge"],
        },
    },
    {
        "name": "get_overlap_percentage",
        "description": (
            "Percentage of the smaller room extent shared by both rooms on an axis. "
            "High overlap (above 60%) means the rooms are aligned."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "room1_id": {"type": "string", "description": "ID of the first room"},
                "room2_id": {"type": "string", "description": "ID of the second room"},
                "axis": {
                    "type": "string",
                    "enum": ["x", "y"],
                    "description": "x = horizontal overlap (north/south neighbours), y = vertical overlap (east/west)",
                },
            },
            "required": ["room1_id", "room2_id", "axis"],
        },
    },
    {
        "name": "list_nearby_rooms",
        "description": "Rooms within a distance threshold of a room, closest first. Use to find adjacency candidates.",
        "input_schema": {
            "type": "object",
            "properties": {
                "room_id": {"type": "string", "description": "ID of the room to find neighbours for"},
                "max_distance_px": {
                    "type": "number",
                    "description": "Maximum distance in pixels (default 50)",
                    "default": 50,
                },
            },
            "required": ["room_id"],
        },
    },
]
