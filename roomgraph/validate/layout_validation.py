"""
Layout Validation

Checks placed rooms for overlaps (errors) and near-miss gaps (warnings), and
checks a finished floorplan for structural and area consistency.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from loguru import logger
from shapely.geometry import box

from roomgraph.schemas import FloorplanResult, PlacedRoom
from roomgraph.settings import Settings, get_settings


@dataclass(frozen=True)
class RoomPairIssue:
    room1_id: str
    room2_id: str
    amount: float

    def to_dict(self) -> dict[str, Any]:
        return {"room1Id": self.room1_id, "room2Id": self.room2_id, "amount": round(self.amount, 4)}


@dataclass
class LayoutValidationResult:
    """Result of layout validation."""

    is_valid: bool
    overlaps: list[RoomPairIssue] = field(default_factory=list)
    gaps: list[RoomPairIssue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "overlaps": [issue.to_dict() for issue in self.overlaps],
            "gaps": [issue.to_dict() for issue in self.gaps],
        }


@dataclass
class FloorplanValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    layout: Optional[LayoutValidationResult] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "layout": self.layout.to_dict() if self.layout else None,
        }


def _footprint(room: PlacedRoom):
    x, _, z = room.position
    half_w, half_d = room.width / 2.0, room.depth / 2.0
    return box(x - half_w, z - half_d, x + half_w, z + half_d)


def validate_layout(
    rooms: Sequence[PlacedRoom],
    settings: Optional[Settings] = None,
) -> LayoutValidationResult:
    """
    Compare every pair of placed footprints.

    A pair overlapping on both axes deeper than ``overlap_tolerance`` is an
    overlap. A separated pair whose minimum distance lies between
    ``wall_thickness + overlap_tolerance`` and ``max_gap`` is a gap. The layout
    is valid iff there are no overlaps; gaps are warnings.

    Args:
        rooms: Placed rooms
        settings: Settings (uses the cached global settings if None)

    Returns:
        LayoutValidationResult with overlaps and gaps in pair order
    """
    settings = settings or get_settings()
    tolerance = settings.validation.overlap_tolerance
    wall = settings.layout.wall_thickness
    max_gap = settings.validation.max_gap

    footprints = [_footprint(room) for room in rooms]
    overlaps: list[RoomPairIssue] = []
    gaps: list[RoomPairIssue] = []
    for i in range(len(rooms)):
        a_min_x, a_min_z, a_max_x, a_max_z = footprints[i].bounds
        for j in range(i + 1, len(rooms)):
            b_min_x, b_min_z, b_max_x, b_max_z = footprints[j].bounds
            overlap_x = min(a_max_x, b_max_x) - max(a_min_x, b_min_x)
            overlap_z = min(a_max_z, b_max_z) - max(a_min_z, b_min_z)
            if overlap_x > 0 and overlap_z > 0:
                depth = min(overlap_x, overlap_z)
                if depth > tolerance:
                    overlaps.append(RoomPairIssue(rooms[i].id, rooms[j].id, depth))
                continue
            distance = footprints[i].distance(footprints[j])
            if wall + tolerance < distance < max_gap:
                gaps.append(RoomPairIssue(rooms[i].id, rooms[j].id, distance))

    if overlaps:
        logger.warning("Layout has {} overlapping room pair(s)", len(overlaps))
    if gaps:
        logger.info("Layout has {} near-miss gap(s)", len(gaps))
    return LayoutValidationResult(is_valid=not overlaps, overlaps=overlaps, gaps=gaps)


def validate_floorplan(
    result: FloorplanResult,
    settings: Optional[Settings] = None,
) -> FloorplanValidationResult:
    """Structural checks, area consistency and the layout report for a finished floorplan."""
    settings = settings or get_settings()
    errors: list[str] = []
    warnings: list[str] = []

    if not result.id:
        errors.append("Floorplan id is missing")
    if not result.address:
        warnings.append("Floorplan address is missing")
    if not result.rooms:
        errors.append("Floorplan has no rooms")
    for room in result.rooms:
        if min(room.dimensions) <= 0:
            errors.append(f"Room '{room.name}' ({room.id}) has non-positive dimensions {room.dimensions}")

    room_area = sum(room.width * room.depth for room in result.rooms)
    if result.total_area_sq_m > 0:
        deviation = abs(result.total_area_sq_m - room_area) / result.total_area_sq_m
        if deviation > settings.validation.area_tolerance:
            warnings.append(
                f"Room areas sum to {room_area:.1f} m2 but the floorplan states "
                f"{result.total_area_sq_m:.1f} m2 ({deviation:.0%} apart)"
            )

    layout = validate_layout(result.rooms, settings)
    for issue in layout.overlaps:
        errors.append(f"Rooms {issue.room1_id} and {issue.room2_id} overlap by {issue.amount:.2f} m")
    for issue in layout.gaps:
        warnings.append(f"Rooms {issue.room1_id} and {issue.room2_id} are {issue.amount:.2f} m apart")

    return FloorplanValidationResult(is_valid=not errors, errors=errors, warnings=warnings, layout=layout)
