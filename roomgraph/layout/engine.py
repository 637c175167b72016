"""
3D Layout Engine

Turns rooms (with or without pixel geometry) into positioned boxes in meters.
Three strategies run in fidelity order, each a complete fallback for the one
before:

1. pixel positions   - real detected centroids scaled to meters
2. adjacency BFS     - rooms attached wall-to-wall along adjacency relations
3. categorical grid  - rows of rooms grouped by name keyword

Coordinates: x grows east, z grows south (image y becomes world z), y is up.
The BFS and grid strategies leave ``wall_thickness`` between rooms on their
shared axis. Pixel positions keep the walls as drawn and are rejected when any
two rooms collide, so the chain falls through to BFS.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from roomgraph.exceptions import EmptyFloorplanError
from roomgraph.schemas import AdjacencyRelation, EdgeDirection, PlacedRoom, SemanticRoom, UnifiedRoom
from roomgraph.settings import Settings, get_settings

Vec3 = Tuple[float, float, float]

_PRECISION = 4


@dataclass
class LayoutParams:
    wall_thickness: float = 0.10
    min_px_per_m: float = 5.0
    max_px_per_m: float = 500.0
    min_pixel_coverage: float = 0.5
    overflow_gap: float = 2.0
    target_aspect_ratio: float = 1.5
    overlap_tolerance: float = 0.05


def resolve_params(settings: Optional[Settings] = None) -> LayoutParams:
    settings = settings or get_settings()
    cfg = settings.layout
    return LayoutParams(
        wall_thickness=cfg.wall_thickness,
        min_px_per_m=cfg.min_px_per_m,
        max_px_per_m=cfg.max_px_per_m,
        min_pixel_coverage=cfg.min_pixel_coverage,
        overflow_gap=cfg.overflow_gap,
        target_aspect_ratio=cfg.target_aspect_ratio,
        overlap_tolerance=settings.validation.overlap_tolerance,
    )


@dataclass
class LayoutAttempt:
    strategy: str
    rooms: Optional[List[PlacedRoom]] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.rooms is not None


@dataclass
class LayoutResult:
    rooms: List[PlacedRoom]
    strategy: str
    attempts: List[LayoutAttempt] = field(default_factory=list)


@dataclass
class LayoutRequest:
    rooms: Sequence[SemanticRoom]
    relations: Sequence[AdjacencyRelation]
    ceiling_height: float
    entry_room_id: Optional[str]
    synthetic: bool
    params: LayoutParams


def _place(room: SemanticRoom, x: float, z: float, ceiling_height: float) -> PlacedRoom:
    return PlacedRoom(
        id=room.id,
        name=room.name,
        position=(round(x, _PRECISION), 0.0, round(z, _PRECISION)),
        dimensions=(room.width, ceiling_height, room.depth),
        color=room.color,
        original_measurements=room.original_measurements,
    )


def adjacent_room_position(
    base_position: Vec3,
    base_dimensions: Vec3,
    new_dimensions: Vec3,
    direction: EdgeDirection | str,
    wall_thickness: float = 0.10,
) -> Vec3:
    """Center of a room attached to ``direction`` of the base room.

    The perpendicular coordinate is copied from the base room so the two
    faces line up.
    """
    direction = EdgeDirection(direction)
    bx, by, bz = base_position
    if direction in (EdgeDirection.EAST, EdgeDirection.WEST):
        offset = base_dimensions[0] / 2.0 + new_dimensions[0] / 2.0 + wall_thickness
        return (bx + offset if direction is EdgeDirection.EAST else bx - offset, by, bz)
    offset = base_dimensions[2] / 2.0 + new_dimensions[2] / 2.0 + wall_thickness
    return (bx, by, bz + offset if direction is EdgeDirection.SOUTH else bz - offset)


def rooms_overlap_3d(a: PlacedRoom, b: PlacedRoom, tolerance: float = 0.0) -> bool:
    """Axis-aligned box intersection deeper than ``tolerance`` on all three axes."""
    for axis in range(3):
        a_min = a.position[axis] - a.dimensions[axis] / 2.0
        a_max = a.position[axis] + a.dimensions[axis] / 2.0
        b_min = b.position[axis] - b.dimensions[axis] / 2.0
        b_max = b.position[axis] + b.dimensions[axis] / 2.0
        if min(a_max, b_max) - max(a_min, b_min) <= tolerance:
            return False
    return True


def place_overflow_row(
    rooms: Iterable[SemanticRoom],
    placed: Sequence[PlacedRoom],
    ceiling_height: float,
    params: LayoutParams,
) -> List[PlacedRoom]:
    """Line rooms up left to right in a row clear of everything already placed."""
    if placed:
        top = max(room.position[2] + room.depth / 2.0 for room in placed) + params.overflow_gap
        x = min(room.position[0] - room.width / 2.0 for room in placed)
    else:
        top, x = 0.0, 0.0
    row: List[PlacedRoom] = []
    for room in rooms:
        row.append(_place(room, x + room.width / 2.0, top + room.depth / 2.0, ceiling_height))
        x += room.width + params.wall_thickness
    return row


def room_pixel_scale(room: UnifiedRoom) -> Tuple[float, float]:
    """Pixels per meter implied by one room, as (horizontal, vertical)."""
    return room.bbox.width / room.width, room.bbox.height / room.depth


def _first_collision(placed: Sequence[PlacedRoom], tolerance: float) -> Optional[Tuple[str, str]]:
    for i, a in enumerate(placed):
        for b in placed[i + 1 :]:
            if rooms_overlap_3d(a, b, tolerance):
                return a.id, b.id
    return None


def pixel_position_layout(request: LayoutRequest) -> LayoutAttempt:
    attempt = LayoutAttempt(strategy="pixel-positions")
    if request.synthetic:
        attempt.reason = "pixel geometry is synthetic"
        return attempt

    params = request.params
    pixel_rooms = [room for room in request.rooms if isinstance(room, UnifiedRoom) and not room.synthetic]
    if not pixel_rooms or len(pixel_rooms) < params.min_pixel_coverage * len(request.rooms):
        attempt.reason = f"pixel data for {len(pixel_rooms)} of {len(request.rooms)} rooms"
        return attempt

    ratios = [
        ratio
        for room in pixel_rooms
        for ratio in room_pixel_scale(room)
        if params.min_px_per_m <= ratio <= params.max_px_per_m
    ]
    if not ratios:
        attempt.reason = "no room implies a plausible pixel scale"
        return attempt
    scale = float(np.median(ratios))
    origin_x = float(np.mean([room.centroid.x for room in pixel_rooms]))
    origin_y = float(np.mean([room.centroid.y for room in pixel_rooms]))
    logger.info(
        "Pixel layout: {:.1f} px/m from {} ratios, origin ({:.0f}, {:.0f})", scale, len(ratios), origin_x, origin_y
    )

    placed = [
        _place(
            room,
            (room.centroid.x - origin_x) / scale,
            (room.centroid.y - origin_y) / scale,
            request.ceiling_height,
        )
        for room in pixel_rooms
    ]
    clash = _first_collision(placed, params.overlap_tolerance)
    if clash is not None:
        attempt.reason = f"pixel layout collides: '{clash[0]}' overlaps '{clash[1]}'"
        logger.warning("Pixel layout rejected, {}", attempt.reason)
        return attempt
    pixel_ids = {room.id for room in pixel_rooms}
    leftovers = [room for room in request.rooms if room.id not in pixel_ids]
    if leftovers:
        logger.warning("{} room(s) without pixel data placed in an overflow row", len(leftovers))
        placed.extend(place_overflow_row(leftovers, placed, request.ceiling_height, params))
    attempt.rooms = _in_input_order(request.rooms, placed)
    return attempt


def _adjacency_graph(
    relations: Sequence[AdjacencyRelation],
    known: set[str],
) -> Dict[str, List[Tuple[str, EdgeDirection]]]:
    graph: Dict[str, List[Tuple[str, EdgeDirection]]] = {room_id: [] for room_id in known}
    for relation in relations:
        if relation.room1_id not in known or relation.room2_id not in known:
            continue
        if relation.room1_id == relation.room2_id:
            continue
        graph[relation.room1_id].append((relation.room2_id, relation.edge))
        graph[relation.room2_id].append((relation.room1_id, relation.edge.opposite))
    return graph


def adjacency_bfs_layout(request: LayoutRequest) -> LayoutAttempt:
    attempt = LayoutAttempt(strategy="adjacency-bfs")
    if not request.relations:
        attempt.reason = "no adjacency relations"
        return attempt

    params = request.params
    by_id = {room.id: room for room in request.rooms}
    graph = _adjacency_graph(request.relations, set(by_id))
    origin_id = request.entry_room_id if request.entry_room_id in by_id else request.rooms[0].id
    if not graph[origin_id]:
        attempt.reason = f"origin room '{origin_id}' has no adjacency"
        return attempt

    placed: Dict[str, PlacedRoom] = {origin_id: _place(by_id[origin_id], 0.0, 0.0, request.ceiling_height)}
    queue = deque([origin_id])
    while queue:
        current = placed[queue.popleft()]
        for neighbour_id, edge in graph[current.id]:
            if neighbour_id in placed:
                continue
            room = by_id[neighbour_id]
            x, _, z = adjacent_room_position(
                current.position,
                current.dimensions,
                (room.width, request.ceiling_height, room.depth),
                edge,
                params.wall_thickness,
            )
            candidate = _place(room, x, z, request.ceiling_height)
            clash = next((other for other in placed.values() if rooms_overlap_3d(candidate, other)), None)
            if clash is not None:
                # may still be reached through another neighbour
                logger.debug(
                    "Skipping '{}' {} of '{}': collides with '{}'", room.name, edge.value, current.name, clash.name
                )
                continue
            placed[neighbour_id] = candidate
            queue.append(neighbour_id)

    leftovers = [room for room in request.rooms if room.id not in placed]
    logger.info("Adjacency layout reached {} of {} rooms from '{}'", len(placed), len(request.rooms), origin_id)
    rooms = list(placed.values())
    if leftovers:
        logger.warning("{} unreachable room(s) placed in an overflow row", len(leftovers))
        rooms.extend(place_overflow_row(leftovers, rooms, request.ceiling_height, params))
    attempt.rooms = _in_input_order(request.rooms, rooms)
    return attempt


ROOM_CATEGORIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("entry", ("entrance", "entry", "foyer", "vestibule", "porch")),
    ("reception", ("reception", "living", "lounge", "sitting", "family", "dining")),
    ("kitchen", ("kitchen", "pantry", "breakfast")),
    ("bedrooms", ("bedroom", "master", "nursery", "guest")),
    ("bathrooms", ("bathroom", "bath", "wc", "toilet", "shower", "ensuite", "en-suite", "cloakroom")),
    ("hallways", ("hall", "corridor", "landing", "passage", "stair")),
)


def categorize_rooms(rooms: Sequence[SemanticRoom], entry_room_id: Optional[str] = None) -> List[SemanticRoom]:
    """Order rooms entry, reception, kitchen, bedrooms, bathrooms, hallways, other."""
    ordered: List[SemanticRoom] = []
    used: set[str] = set()

    def take(room: SemanticRoom) -> None:
        if room.id not in used:
            used.add(room.id)
            ordered.append(room)

    for room in rooms:
        if room.id == entry_room_id:
            take(room)
    for _, keywords in ROOM_CATEGORIES:
        for room in rooms:
            name = room.name.lower()
            if any(keyword in name for keyword in keywords):
                take(room)
    for room in rooms:
        take(room)
    return ordered


def categorical_grid_layout(request: LayoutRequest) -> LayoutAttempt:
    params = request.params
    ordered = categorize_rooms(request.rooms, request.entry_room_id)
    total_area = sum(room.area_m2 for room in ordered)
    target_width = math.sqrt(total_area * params.target_aspect_ratio)
    logger.info("Grid layout: {} rooms, target row width {:.1f}m", len(ordered), target_width)

    placed: List[PlacedRoom] = []
    x, row_z, row_depth = 0.0, 0.0, 0.0
    for room in ordered:
        if x > 0 and x + room.width > target_width:
            row_z += row_depth + params.wall_thickness
            x, row_depth = 0.0, 0.0
        placed.append(_place(room, x + room.width / 2.0, row_z + room.depth / 2.0, request.ceiling_height))
        x += room.width + params.wall_thickness
        row_depth = max(row_depth, room.depth)
    return LayoutAttempt(strategy="categorical-grid", rooms=_in_input_order(request.rooms, placed))


def _in_input_order(rooms: Sequence[SemanticRoom], placed: Sequence[PlacedRoom]) -> List[PlacedRoom]:
    by_id = {room.id: room for room in placed}
    return [by_id[room.id] for room in rooms if room.id in by_id]


STRATEGIES: Tuple[Callable[[LayoutRequest], LayoutAttempt], ...] = (
    pixel_position_layout,
    adjacency_bfs_layout,
    categorical_grid_layout,
)


def compute_layout(
    rooms: Sequence[SemanticRoom],
    relations: Optional[Sequence[AdjacencyRelation]] = None,
    *,
    ceiling_height: float = 2.4,
    entry_room_id: Optional[str] = None,
    synthetic: bool = False,
    params: Optional[LayoutParams] = None,
) -> LayoutResult:
    """Run the strategy chain and return the first layout that succeeds.

    Raises:
        EmptyFloorplanError: If ``rooms`` is empty.
    """
    if not rooms:
        raise EmptyFloorplanError("No rooms to lay out")
    request = LayoutRequest(
        rooms=list(rooms),
        relations=list(relations or []),
        ceiling_height=ceiling_height,
        entry_room_id=entry_room_id,
        synthetic=synthetic,
        params=params or resolve_params(),
    )

    attempts: List[LayoutAttempt] = []
    for strategy in STRATEGIES:
        attempt = strategy(request)
        attempts.append(attempt)
        if attempt.succeeded:
            break
        logger.info("Layout strategy '{}' skipped: {}", attempt.strategy, attempt.reason)

    placed = attempt.rooms or []
    logger.info("Layout strategy '{}' placed {} rooms", attempt.strategy, len(placed))
    return LayoutResult(rooms=placed, strategy=attempt.strategy, attempts=attempts)
