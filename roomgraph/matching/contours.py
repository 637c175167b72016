"""
Room-to-Contour Matching

Connects semantic room labels from the extraction oracle to contours found by
the boundary detector. A label drawn inside a room is strong evidence, so
containment wins first; nearest centroid is the weaker fallback and is capped
by distance. Each contour is used at most once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from loguru import logger

from roomgraph.geometry import contract
from roomgraph.schemas import Contour, GeometrySource, MatchType, SemanticRoom, UnifiedRoom
from roomgraph.settings import Settings, get_settings


@dataclass
class MatchParams:
    label_margin_px: float = 20.0
    near_match_max_distance_px: float = 200.0
    prefilter: bool = True
    min_contour_area_px: float = 1000.0
    min_aspect_ratio: float = contract.MIN_ASPECT_RATIO
    max_aspect_ratio: float = contract.MAX_ASPECT_RATIO
    min_match_rate: float = 0.5


@dataclass
class ContourAssignment:
    room_id: str
    contour_index: int
    match_type: MatchType
    distance: float


@dataclass
class MatchOutcome:
    rooms: List[UnifiedRoom] = field(default_factory=list)
    assignments: List[ContourAssignment] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)
    contours_considered: int = 0
    total_rooms: int = 0

    @property
    def exact_matches(self) -> int:
        return sum(1 for a in self.assignments if a.match_type is MatchType.EXACT)

    @property
    def near_matches(self) -> int:
        return sum(1 for a in self.assignments if a.match_type is MatchType.NEAR)

    @property
    def match_rate(self) -> float:
        return len(self.rooms) / self.total_rooms if self.total_rooms else 0.0


def resolve_params(settings: Optional[Settings] = None) -> MatchParams:
    cfg = (settings or get_settings()).matching
    return MatchParams(
        label_margin_px=cfg.label_margin_px,
        near_match_max_distance_px=cfg.near_match_max_distance_px,
        prefilter=cfg.prefilter,
        min_contour_area_px=cfg.min_contour_area_px,
        min_aspect_ratio=cfg.min_aspect_ratio,
        max_aspect_ratio=cfg.max_aspect_ratio,
        min_match_rate=cfg.min_match_rate,
    )


def prefilter_contours(
    contours: Sequence[Contour],
    params: MatchParams,
    image_area: Optional[float] = None,
) -> List[int]:
    """Indices of contours plausible as single rooms.

    Drops tiny regions, regions larger than ``min(25% of the image,
    10x the mean contour area)`` and elongated boxes.
    """
    if not contours:
        return []
    mean_area = sum(c.area for c in contours) / len(contours)
    max_area = 10.0 * mean_area
    if image_area:
        max_area = min(max_area, 0.25 * image_area)

    kept: List[int] = []
    for index, contour in enumerate(contours):
        if contour.area < params.min_contour_area_px or contour.area > max_area:
            continue
        if contour.bbox.height <= 0:
            continue
        aspect = contour.bbox.width / contour.bbox.height
        if not params.min_aspect_ratio <= aspect <= params.max_aspect_ratio:
            continue
        kept.append(index)
    dropped = len(contours) - len(kept)
    if dropped:
        logger.debug("Pre-filter dropped {} of {} contours", dropped, len(contours))
    return kept


def _find_exact(
    room: SemanticRoom,
    contours: Sequence[Contour],
    candidates: Sequence[int],
    used: set[int],
    margin: float,
) -> tuple[int, float] | None:
    best: tuple[int, float] | None = None
    for index in candidates:
        if index in used:
            continue
        contour = contours[index]
        if not contour.bbox.contains(room.label_position, margin):
            continue
        distance = room.label_position.distance_to(contour.centroid)
        if best is None or distance < best[1]:
            best = (index, distance)
    return best


def _find_nearest(
    room: SemanticRoom,
    contours: Sequence[Contour],
    candidates: Sequence[int],
    used: set[int],
) -> tuple[int, float] | None:
    best: tuple[int, float] | None = None
    for index in candidates:
        if index in used:
            continue
        distance = room.label_position.distance_to(contours[index].centroid)
        if best is None or distance < best[1]:
            best = (index, distance)
    return best


def match_rooms_to_contours(
    rooms: Sequence[SemanticRoom],
    contours: Sequence[Contour],
    *,
    params: Optional[MatchParams] = None,
    image_area: Optional[float] = None,
) -> MatchOutcome:
    """Assign each labeled room at most one unused contour, in input order."""
    params = params or resolve_params()
    logger.info("Matching {} rooms to {} contours", len(rooms), len(contours))

    candidates = (
        prefilter_contours(contours, params, image_area)
        if params.prefilter
        else list(range(len(contours)))
    )
    outcome = MatchOutcome(contours_considered=len(candidates), total_rooms=len(rooms))
    used: set[int] = set()

    for room in rooms:
        if room.label_position is None:
            logger.warning("Room '{}' ({}) has no label position, skipping contour match", room.name, room.id)
            outcome.unmatched.append(room.id)
            continue

        match_type = MatchType.EXACT
        # strict containment outranks containment that relies on the edge margin
        best = _find_exact(room, contours, candidates, used, 0.0)
        if best is None and params.label_margin_px > 0:
            best = _find_exact(room, contours, candidates, used, params.label_margin_px)
        if best is None:
            match_type = MatchType.NEAR
            best = _find_nearest(room, contours, candidates, used)
            if best is not None and best[1] >= params.near_match_max_distance_px:
                logger.warning(
                    "Could not match room '{}': nearest contour {:.0f}px away (limit {:.0f}px)",
                    room.name,
                    best[1],
                    params.near_match_max_distance_px,
                )
                best = None

        if best is None:
            outcome.unmatched.append(room.id)
            continue

        index, distance = best
        used.add(index)
        contour = contours[index]
        outcome.rooms.append(
            UnifiedRoom(
                **room.model_dump(),
                bbox=contour.bbox,
                centroid=contour.centroid,
                area_pixels=contour.area,
                geometry_source=GeometrySource.DETECTED,
                match_type=match_type,
                match_distance=distance,
            )
        )
        outcome.assignments.append(
            ContourAssignment(room_id=room.id, contour_index=index, match_type=match_type, distance=distance)
        )
        logger.debug(
            "Matched '{}' to contour at ({:.0f}, {:.0f}) [{} match, {:.0f}px]",
            room.name,
            contour.centroid.x,
            contour.centroid.y,
            match_type.value,
            distance,
        )

    logger.info(
        "Matching complete: {} exact, {} near, {} unmatched, {} contours unused",
        outcome.exact_matches,
        outcome.near_matches,
        len(outcome.unmatched),
        len(contours) - len(used),
    )
    return outcome


def should_use_synthetic(outcome: MatchOutcome, contour_count: int, min_match_rate: float) -> bool:
    """Partial real geometry is worse than uniformly synthetic geometry."""
    if contour_count == 0:
        return True
    return len(outcome.rooms) < outcome.total_rooms * min_match_rate
