"""
Geometric Adjacency Detection

Deterministic fallback used when the reasoning oracle is disabled or fails.
Pure arithmetic over finite boxes: it cannot fail, the worst case is an empty
list.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from loguru import logger

from roomgraph.schemas import AdjacencyRelation, UnifiedRoom
from roomgraph.settings import Settings, get_settings
from roomgraph.spatial.tools import DIRECTIONS, SpatialTools


@dataclass(frozen=True)
class AdjacencyThresholds:
    distance_px: float
    overlap_pct: float
    close_contact_fraction: float = 0.2

    @property
    def close_contact_px(self) -> float:
        return self.distance_px * self.close_contact_fraction


def resolve_thresholds(synthetic: bool, settings: Optional[Settings] = None) -> AdjacencyThresholds:
    """Tight thresholds for detected geometry, loose ones for synthetic geometry."""
    cfg = (settings or get_settings()).adjacency
    if synthetic:
        return AdjacencyThresholds(cfg.synthetic_distance_px, cfg.synthetic_overlap_pct, cfg.close_contact_fraction)
    return AdjacencyThresholds(cfg.real_distance_px, cfg.real_overlap_pct, cfg.close_contact_fraction)


def detect_adjacency_geometric(
    rooms: Sequence[UnifiedRoom],
    thresholds: Optional[AdjacencyThresholds] = None,
) -> List[AdjacencyRelation]:
    """Report at most one shared wall per unordered pair.

    A direction qualifies when the facing edges are within ``distance_px`` and
    the rooms overlap by ``overlap_pct`` on the perpendicular axis. Rooms in
    close contact (under ``close_contact_fraction`` of the distance threshold)
    only need a non-zero overlap.
    """
    if thresholds is None:
        thresholds = resolve_thresholds(any(room.synthetic for room in rooms))
    logger.info(
        "Geometric adjacency over {} rooms (distance <= {}px, overlap >= {}%)",
        len(rooms),
        thresholds.distance_px,
        thresholds.overlap_pct,
    )

    tools = SpatialTools(rooms)
    relations: List[AdjacencyRelation] = []
    for i, room1 in enumerate(rooms):
        for room2 in rooms[i + 1:]:
            for edge in DIRECTIONS:
                distance = tools.edge_distance(room1.id, room2.id, edge)
                if not math.isfinite(distance) or abs(distance) > thresholds.distance_px:
                    continue
                overlap = tools.overlap_percentage(room1.id, room2.id, edge.overlap_axis)
                close_contact = abs(distance) < thresholds.close_contact_px
                if overlap >= thresholds.overlap_pct or (close_contact and overlap > 0):
                    relations.append(AdjacencyRelation(room1_id=room1.id, room2_id=room2.id, edge=edge))
                    logger.debug(
                        "{} -> {} ({}): {:.1f}px apart, {:.0f}% overlap",
                        room1.name,
                        room2.name,
                        edge.value,
                        distance,
                        overlap,
                    )
                    break

    logger.info("Geometric adjacency found {} relations", len(relations))
    return relations
