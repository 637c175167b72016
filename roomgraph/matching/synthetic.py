"""
Synthetic Contour Generation

Fabricates self-consistent pixel geometry when detection is absent or too
unreliable to trust. Three modes, by decreasing spatial truth:

* label   - rooms centered on their oracle label positions, scaled from real
            dimensions, then pushed apart until no two boxes start overlapping
* flow    - rooms without a label position laid left-to-right below the
            labeled ones, wrapping at the canvas edge
* grid    - no labels anywhere; uniform ceil(sqrt(n)) grid
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from roomgraph.schemas import BBox, GeometrySource, Point, SemanticRoom, UnifiedRoom
from roomgraph.settings import Settings, get_settings
from roomgraph.geometry.contract import GRID_CELL_FILL

_EPS = 1e-9


@dataclass
class SyntheticParams:
    canvas_width_px: int = 1000
    canvas_height_px: int = 1000
    room_density: float = 3.0
    gap_px: float = 10.0
    flow_spacing_px: float = 20.0
    flow_jitter_px: float = 15.0
    max_resolution_passes: int = 100


def resolve_params(settings: Optional[Settings] = None) -> SyntheticParams:
    cfg = (settings or get_settings()).synthetic
    return SyntheticParams(
        canvas_width_px=cfg.canvas_width_px,
        canvas_height_px=cfg.canvas_height_px,
        room_density=cfg.room_density,
        gap_px=cfg.gap_px,
        flow_spacing_px=cfg.flow_spacing_px,
        flow_jitter_px=cfg.flow_jitter_px,
        max_resolution_passes=cfg.max_resolution_passes,
    )


def synthetic_scale(rooms: Sequence[SemanticRoom], canvas_width: float, canvas_height: float, density: float) -> float:
    """Pixels per meter giving each room roughly canvas / (n * density) pixels."""
    target_px_per_room = (canvas_width * canvas_height) / (len(rooms) * density)
    mean_area_m2 = sum(room.area_m2 for room in rooms) / len(rooms)
    return math.sqrt(target_px_per_room / mean_area_m2)


def resolve_overlaps(
    centers: Sequence[Tuple[float, float]],
    half_widths: Sequence[float],
    gap: float,
    max_passes: int = 100,
) -> List[Tuple[float, float]]:
    """Push pairs closer than the sum of their half-widths apart symmetrically.

    Each offending pair moves along the line joining its centers by
    ``(overlap + gap) / 2`` per side. Passes repeat until one completes
    without moves or ``max_passes`` is reached.
    """
    positions = [[float(x), float(y)] for x, y in centers]
    count = len(positions)
    for pass_index in range(max_passes):
        moved = False
        for i in range(count):
            for j in range(i + 1, count):
                required = half_widths[i] + half_widths[j]
                dx = positions[j][0] - positions[i][0]
                dy = positions[j][1] - positions[i][1]
                distance = math.hypot(dx, dy)
                if distance >= required - _EPS:
                    continue
                if distance < _EPS:
                    # coincident labels: separate horizontally
                    ux, uy = 1.0, 0.0
                else:
                    ux, uy = dx / distance, dy / distance
                shift = (required - distance + gap) / 2.0
                positions[i][0] -= ux * shift
                positions[i][1] -= uy * shift
                positions[j][0] += ux * shift
                positions[j][1] += uy * shift
                moved = True
        if not moved:
            logger.debug("Synthetic overlap resolution settled after {} pass(es)", pass_index + 1)
            break
    else:
        logger.warning("Synthetic overlap resolution hit the {} pass limit", max_passes)
    return [(x, y) for x, y in positions]


def _unified(
    room: SemanticRoom,
    center: Tuple[float, float],
    size: Tuple[float, float],
    source: GeometrySource,
) -> UnifiedRoom:
    cx, cy = center
    width, height = size
    return UnifiedRoom(
        **room.model_dump(),
        bbox=BBox(x=cx - width / 2.0, y=cy - height / 2.0, width=width, height=height),
        centroid=Point(x=cx, y=cy),
        area_pixels=width * height,
        geometry_source=source,
    )


def _grid_layout(rooms: Sequence[SemanticRoom], canvas_width: float, canvas_height: float) -> List[UnifiedRoom]:
    logger.warning("No label positions available; arranging {} rooms on a uniform grid", len(rooms))
    cols = math.ceil(math.sqrt(len(rooms)))
    rows = math.ceil(len(rooms) / cols)
    cell_width = canvas_width / cols
    cell_height = canvas_height / rows

    result: List[UnifiedRoom] = []
    for index, room in enumerate(rooms):
        row, col = divmod(index, cols)
        aspect = room.width / room.depth
        box_width = cell_width * GRID_CELL_FILL
        box_height = box_width / aspect
        if box_height > cell_height * GRID_CELL_FILL:
            box_height = cell_height * GRID_CELL_FILL
            box_width = box_height * aspect

        x = col * cell_width + (cell_width - box_width) / 2.0
        y = row * cell_height + (cell_height - box_height) / 2.0
        result.append(
            UnifiedRoom(
                **room.model_dump(),
                bbox=BBox(x=round(x), y=round(y), width=round(box_width), height=round(box_height)),
                centroid=Point(x=round(x + box_width / 2.0), y=round(y + box_height / 2.0)),
                area_pixels=round(box_width * box_height),
                geometry_source=GeometrySource.SYNTHETIC_GRID,
            )
        )
    return result


def generate_synthetic_contours(
    rooms: Sequence[SemanticRoom],
    *,
    image_width: Optional[int] = None,
    image_height: Optional[int] = None,
    params: Optional[SyntheticParams] = None,
) -> List[UnifiedRoom]:
    """Fabricate pixel geometry for every room, preserving input order."""
    if not rooms:
        return []
    params = params or resolve_params()
    canvas_width = float(image_width or params.canvas_width_px)
    canvas_height = float(image_height or params.canvas_height_px)

    labeled = [room for room in rooms if room.label_position is not None]
    if not labeled:
        return _grid_layout(rooms, canvas_width, canvas_height)

    logger.warning("Generating synthetic contours for {} rooms (detection fallback)", len(rooms))
    scale = synthetic_scale(rooms, canvas_width, canvas_height, params.room_density)
    sizes: Dict[str, Tuple[float, float]] = {room.id: (room.width * scale, room.depth * scale) for room in rooms}

    resolved = resolve_overlaps(
        [(room.label_position.x, room.label_position.y) for room in labeled],
        [sizes[room.id][0] / 2.0 for room in labeled],
        params.gap_px,
        params.max_resolution_passes,
    )
    centers: Dict[str, Tuple[float, float]] = {room.id: center for room, center in zip(labeled, resolved)}
    sources: Dict[str, GeometrySource] = {room.id: GeometrySource.SYNTHETIC_LABEL for room in labeled}

    unlabeled = [room for room in rooms if room.label_position is None]
    if unlabeled:
        logger.warning(
            "{} room(s) lack label positions; their synthetic geometry is unrelated to the plan",
            len(unlabeled),
        )
        spacing = params.flow_spacing_px
        top = max(centers[room.id][1] + sizes[room.id][1] / 2.0 for room in labeled) + spacing
        x, y, row_height = spacing, top, 0.0
        for index, room in enumerate(unlabeled):
            width, height = sizes[room.id]
            if x > spacing and x + width > canvas_width:
                x = spacing
                y += row_height + spacing
                row_height = 0.0
            offset = params.flow_jitter_px if index % 2 else 0.0
            centers[room.id] = (x + width / 2.0, y + offset + height / 2.0)
            sources[room.id] = GeometrySource.SYNTHETIC_FLOW
            x += width + spacing
            row_height = max(row_height, height + offset)

    return [_unified(room, centers[room.id], sizes[room.id], sources[room.id]) for room in rooms]
