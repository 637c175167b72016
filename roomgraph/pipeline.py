"""
Floorplan Analysis Pipeline

Detector -> Matcher (or synthetic geometry) -> Adjacency -> Layout -> Validator.

Every stage below the payload parser recovers locally and reports what it
did; only an unusable payload or an empty room list reaches the caller.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Union

from loguru import logger

from roomgraph.adjacency.oracle import ReasoningOracle
from roomgraph.adjacency.resolver import resolve_adjacency
from roomgraph.exceptions import EmptyFloorplanError
from roomgraph.layout.engine import compute_layout, resolve_params as resolve_layout_params
from roomgraph.matching.contours import (
    match_rooms_to_contours,
    resolve_params as resolve_match_params,
    should_use_synthetic,
)
from roomgraph.matching.synthetic import generate_synthetic_contours, resolve_params as resolve_synthetic_params
from roomgraph.metrics.pipeline_metrics import PipelineMetrics
from roomgraph.schemas import (
    FloorplanPayload,
    FloorplanResult,
    PipelineMetadata,
    SemanticRoom,
    UnifiedRoom,
    parse_floorplan_payload,
)
from roomgraph.settings import Settings, get_settings
from roomgraph.validate.layout_validation import FloorplanValidationResult, validate_floorplan
from roomgraph.vision.boundary_detection import (
    BoundaryDetection,
    detect_boundaries,
    resolve_params as resolve_detection_params,
)
from roomgraph.vision.image_io import ImageSource, RasterImage


@dataclass
class PipelineResult:
    floorplan: FloorplanResult
    validation: FloorplanValidationResult
    metrics: PipelineMetrics
    unified_rooms: List[UnifiedRoom]

    def to_dict(self) -> dict[str, Any]:
        return {
            "floorplan": self.floorplan.to_json_dict(),
            "validation": self.validation.to_dict(),
            "metrics": self.metrics.to_dict(),
        }


def _parse(payload: Union[Mapping[str, Any], FloorplanPayload], settings: Settings) -> FloorplanPayload:
    if isinstance(payload, FloorplanPayload):
        return payload
    cfg = settings.schema_
    return parse_floorplan_payload(
        dict(payload),
        default_room_size=cfg.default_room_size,
        default_ceiling_height=cfg.default_ceiling_height,
        deduplicate=cfg.deduplicate_names,
    )


async def analyze_floorplan(
    payload: Union[Mapping[str, Any], FloorplanPayload],
    image: Optional[Union[ImageSource, RasterImage]] = None,
    *,
    oracle: Optional[ReasoningOracle] = None,
    settings: Optional[Settings] = None,
) -> PipelineResult:
    """
    Turn semantic rooms (and optionally the floorplan raster) into a 3D layout.

    Args:
        payload: Semantic extraction record (camelCase JSON) or a parsed payload
        image: Floorplan raster; without it geometry is synthetic
        oracle: Reasoning oracle for adjacency; geometric detection if None
        settings: Settings (uses the cached global settings if None)

    Returns:
        PipelineResult with the floorplan, validation report and metrics

    Raises:
        SchemaError: If the payload does not fit the room schema
        EmptyFloorplanError: If there are no rooms to lay out
    """
    settings = settings or get_settings()
    metrics = PipelineMetrics()
    started = time.perf_counter()

    with metrics.timed("parsing"):
        parsed = _parse(payload, settings)
    rooms: List[SemanticRoom] = list(parsed.rooms)
    if not rooms:
        raise EmptyFloorplanError("Floorplan payload contains no rooms", {"id": parsed.id})
    metrics.rooms_input = len(rooms)
    metrics.rooms_with_labels = sum(1 for room in rooms if room.label_position is not None)
    metrics.rooms_estimated_dimensions = sum(1 for room in rooms if room.dimensions_estimated)
    logger.info("Analyzing floorplan '{}' with {} rooms", parsed.id, len(rooms))

    with metrics.timed("detection"):
        if image is not None:
            detection = detect_boundaries(image, resolve_detection_params(settings))
        else:
            logger.info("No floorplan image supplied, skipping boundary detection")
            detection = BoundaryDetection()
    metrics.contours_detected = len(detection.contours)

    with metrics.timed("matching"):
        outcome = match_rooms_to_contours(
            rooms,
            detection.contours,
            params=resolve_match_params(settings),
            image_area=detection.image_area or None,
        )
        metrics.contours_considered = outcome.contours_considered
        synthetic = should_use_synthetic(outcome, len(detection.contours), settings.matching.min_match_rate)
        if synthetic:
            logger.warning(
                "Matched {} of {} rooms against {} contours, switching to synthetic geometry",
                len(outcome.rooms),
                len(rooms),
                len(detection.contours),
            )
            unified = generate_synthetic_contours(
                rooms,
                image_width=detection.image_width or None,
                image_height=detection.image_height or None,
                params=resolve_synthetic_params(settings),
            )
            metrics.add_warning("Room geometry is synthetic; positions are approximate")
        else:
            unified = outcome.rooms
            metrics.exact_matches = outcome.exact_matches
            metrics.near_matches = outcome.near_matches
            metrics.unmatched_rooms = len(outcome.unmatched)
            if outcome.unmatched:
                metrics.add_warning(f"{len(outcome.unmatched)} room(s) have no detected geometry")
    metrics.used_synthetic_contours = synthetic

    with metrics.timed("adjacency"):
        resolution = await resolve_adjacency(unified, oracle, synthetic=synthetic, settings=settings)
    metrics.adjacencies_found = len(resolution.relations)
    metrics.adjacency_method = resolution.method
    if resolution.agent is not None:
        metrics.oracle_iterations = resolution.agent.iterations
        metrics.oracle_tool_calls = resolution.agent.tool_calls
    if resolution.failure is not None:
        metrics.oracle_failure = resolution.failure.value
        metrics.add_warning(f"Adjacency oracle failed ({resolution.failure.value}); used geometric fallback")

    by_id = {room.id: room for room in unified}
    layout_rooms: List[SemanticRoom] = [by_id.get(room.id, room) for room in rooms]
    with metrics.timed("layout"):
        layout = compute_layout(
            layout_rooms,
            resolution.relations,
            ceiling_height=parsed.ceiling_height,
            entry_room_id=parsed.entry_room_id,
            synthetic=synthetic,
            params=resolve_layout_params(settings),
        )
    metrics.layout_strategy = layout.strategy

    stages = [
        "cv-detection" if detection.contours else "no-detection",
        "synthetic-contours" if synthetic else "contour-matching",
        f"{resolution.method}-adjacency",
        layout.strategy,
    ]
    floorplan = FloorplanResult(
        id=parsed.id,
        address=parsed.address,
        total_area_sq_ft=parsed.total_area_sq_ft or 0.0,
        total_area_sq_m=parsed.total_area_sq_m or 0.0,
        ceiling_height=parsed.ceiling_height,
        rooms=layout.rooms,
        entry_room_id=parsed.entry_room_id,
        adjacency=resolution.relations,
        metadata=PipelineMetadata(
            contours_detected=len(detection.contours),
            rooms_matched=0 if synthetic else len(outcome.rooms),
            adjacencies_found=len(resolution.relations),
            used_synthetic_contours=synthetic,
            pipeline=" -> ".join(stages),
            layout_strategy=layout.strategy,
            adjacency_method=resolution.method,
        ),
    )

    with metrics.timed("validation"):
        validation = validate_floorplan(floorplan, settings)
    if validation.layout is not None:
        metrics.overlaps = len(validation.layout.overlaps)
        metrics.gaps = len(validation.layout.gaps)
    metrics.errors.extend(validation.errors)
    metrics.warnings.extend(validation.warnings)
    metrics.time_total = time.perf_counter() - started

    logger.info(
        "Floorplan '{}' done in {:.2f}s: {} rooms, {} adjacencies, layout '{}', {} overlap(s)",
        parsed.id,
        metrics.time_total,
        len(layout.rooms),
        len(resolution.relations),
        layout.strategy,
        metrics.overlaps,
    )
    return PipelineResult(floorplan=floorplan, validation=validation, metrics=metrics, unified_rooms=unified)


def run_pipeline(
    payload: Union[Mapping[str, Any], FloorplanPayload],
    image: Optional[Union[ImageSource, RasterImage]] = None,
    *,
    oracle: Optional[ReasoningOracle] = None,
    settings: Optional[Settings] = None,
) -> PipelineResult:
    """Synchronous wrapper around :func:`analyze_floorplan`."""
    return asyncio.run(analyze_floorplan(payload, image, oracle=oracle, settings=settings))
