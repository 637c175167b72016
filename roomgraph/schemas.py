"""Typed records flowing through the floorplan pipeline.

Payloads coming from the vision-language oracle are untyped JSON; everything
is parsed into these models at the boundary so numeric code never sees a
missing value. Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Iterable, Optional

from loguru import logger
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from roomgraph.exceptions import SchemaError
from roomgraph.geometry.contract import (
    DEFAULT_CEILING_HEIGHT,
    DEFAULT_ROOM_COLOR,
    DEFAULT_ROOM_SIZE,
    sq_ft_to_sq_m,
    sq_m_to_sq_ft,
)
from roomgraph.semantics.measurements import parse_dimension

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Point(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return ((other.x - self.x) ** 2 + (other.y - self.y) ** 2) ** 0.5


class BBox(BaseModel):
    """Axis-aligned box; ``y`` grows downward in image space."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height > 0 else float("inf")

    def contains(self, point: Point, margin: float = 0.0) -> bool:
        return (
            self.x - margin <= point.x <= self.right + margin
            and self.y - margin <= point.y <= self.bottom + margin
        )


class Contour(BaseModel):
    """Candidate room region found by the boundary detector."""

    model_config = ConfigDict(frozen=True)

    bbox: BBox
    centroid: Point
    area: float
    points: Optional[tuple[Point, ...]] = None


class OriginalMeasurements(BaseModel):
    width: Optional[str] = None
    depth: Optional[str] = None


class EdgeDirection(str, Enum):
    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"

    @property
    def opposite(self) -> "EdgeDirection":
        return _OPPOSITES[self]

    @property
    def overlap_axis(self) -> str:
        """Axis along which two rooms sharing this wall must overlap."""
        return "x" if self in (EdgeDirection.NORTH, EdgeDirection.SOUTH) else "y"


_OPPOSITES = {
    EdgeDirection.NORTH: EdgeDirection.SOUTH,
    EdgeDirection.SOUTH: EdgeDirection.NORTH,
    EdgeDirection.EAST: EdgeDirection.WEST,
    EdgeDirection.WEST: EdgeDirection.EAST,
}


class GeometrySource(str, Enum):
    DETECTED = "detected"
    SYNTHETIC_LABEL = "synthetic-label"
    SYNTHETIC_FLOW = "synthetic-flow"
    SYNTHETIC_GRID = "synthetic-grid"


class MatchType(str, Enum):
    EXACT = "exact"
    NEAR = "near"


class SemanticRoom(BaseModel):
    model_config = _CAMEL

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    width: float = Field(gt=0.0)
    depth: float = Field(gt=0.0)
    color: str = DEFAULT_ROOM_COLOR
    label_position: Optional[Point] = None
    original_measurements: Optional[OriginalMeasurements] = None
    dimensions_estimated: bool = False

    @field_validator("id", "name", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("color", mode="before")
    @classmethod
    def _default_color(cls, value: Any) -> Any:
        return DEFAULT_ROOM_COLOR if value in (None, "") else value

    @model_validator(mode="before")
    @classmethod
    def _fill_dimensions(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        context = info.context or {}
        default_size = float(context.get("default_room_size", DEFAULT_ROOM_SIZE))
        data = dict(data)
        measurements = data.get("originalMeasurements") or data.get("original_measurements") or {}
        for key in ("width", "depth"):
            if data.get(key) is not None:
                continue
            parsed = None
            if isinstance(measurements, dict):
                parsed = parse_dimension(measurements.get(key))
            elif isinstance(measurements, OriginalMeasurements):
                parsed = parse_dimension(getattr(measurements, key))
            if parsed is not None and parsed > 0:
                data[key] = parsed
            else:
                data[key] = default_size
                data["dimensionsEstimated"] = True
        return data

    @property
    def area_m2(self) -> float:
        return self.width * self.depth


class UnifiedRoom(SemanticRoom):
    """Semantic room merged with detected or synthetic pixel geometry."""

    bbox: BBox
    centroid: Point
    area_pixels: float = Field(ge=0.0)
    geometry_source: GeometrySource = GeometrySource.DETECTED
    match_type: Optional[MatchType] = None
    match_distance: Optional[float] = None

    @property
    def synthetic(self) -> bool:
        return self.geometry_source is not GeometrySource.DETECTED


class AdjacencyRelation(BaseModel):
    """``room2`` lies in direction ``edge`` from ``room1`` and shares a wall with it."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    room1_id: str = Field(
        validation_alias=AliasChoices("room1Id", "room1", "room1_id"),
        serialization_alias="room1Id",
    )
    room2_id: str = Field(
        validation_alias=AliasChoices("room2Id", "room2", "room2_id"),
        serialization_alias="room2Id",
    )
    edge: EdgeDirection

    def reversed(self) -> "AdjacencyRelation":
        return AdjacencyRelation(room1_id=self.room2_id, room2_id=self.room1_id, edge=self.edge.opposite)

    @property
    def pair(self) -> frozenset[str]:
        return frozenset((self.room1_id, self.room2_id))


class PlacedRoom(BaseModel):
    model_config = _CAMEL

    id: str
    name: str
    position: tuple[float, float, float]
    dimensions: tuple[float, float, float]
    color: str = DEFAULT_ROOM_COLOR
    original_measurements: Optional[OriginalMeasurements] = None

    @property
    def width(self) -> float:
        return self.dimensions[0]

    @property
    def depth(self) -> float:
        return self.dimensions[2]


class PipelineMetadata(BaseModel):
    model_config = _CAMEL

    method: str = "hybrid-cv-agent"
    contours_detected: int = 0
    rooms_matched: int = 0
    adjacencies_found: int = 0
    used_synthetic_contours: bool = False
    pipeline: str = ""
    layout_strategy: Optional[str] = None
    adjacency_method: Optional[str] = None


class FloorplanPayload(BaseModel):
    """Top-level record returned by the semantic extraction oracle."""

    model_config = _CAMEL

    id: str = "floorplan"
    address: str = ""
    total_area_sq_ft: Optional[float] = Field(default=None, ge=0.0)
    total_area_sq_m: Optional[float] = Field(default=None, ge=0.0)
    ceiling_height: float = Field(default=DEFAULT_CEILING_HEIGHT, gt=0.0)
    entry_room_id: Optional[str] = None
    rooms: list[SemanticRoom]

    @field_validator("ceiling_height", mode="before")
    @classmethod
    def _default_ceiling(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            context = info.context or {}
            return context.get("default_ceiling_height", DEFAULT_CEILING_HEIGHT)
        return value

    @field_validator("id", "address", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @model_validator(mode="after")
    def _derive_totals(self) -> "FloorplanPayload":
        ids = [room.id for room in self.rooms]
        duplicates = sorted({room_id for room_id in ids if ids.count(room_id) > 1})
        if duplicates:
            raise ValueError(f"room ids must be unique, duplicated: {', '.join(duplicates)}")
        if self.total_area_sq_m is None:
            if self.total_area_sq_ft is not None:
                self.total_area_sq_m = round(sq_ft_to_sq_m(self.total_area_sq_ft), 2)
            else:
                self.total_area_sq_m = round(sum(room.area_m2 for room in self.rooms), 2)
        if self.total_area_sq_ft is None:
            self.total_area_sq_ft = round(sq_m_to_sq_ft(self.total_area_sq_m), 1)
        if self.entry_room_id is not None and self.entry_room_id not in ids:
            logger.warning("Entry room '{}' is not among the parsed rooms, ignoring it", self.entry_room_id)
            self.entry_room_id = None
        return self


class FloorplanResult(BaseModel):
    model_config = _CAMEL

    id: str
    address: str
    total_area_sq_ft: float
    total_area_sq_m: float
    ceiling_height: float
    rooms: list[PlacedRoom]
    entry_room_id: Optional[str] = None
    adjacency: list[AdjacencyRelation] = Field(default_factory=list)
    metadata: Optional[PipelineMetadata] = None

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


_NAME_KEY_RE = re.compile(r"[^a-z0-9]")


def _normalized_name(name: str) -> str:
    return _NAME_KEY_RE.sub("", name.lower())


def deduplicate_rooms(rooms: Iterable[SemanticRoom]) -> list[SemanticRoom]:
    """Drop rooms whose normalized name repeats an earlier room's name."""
    seen: set[str] = set()
    kept: list[SemanticRoom] = []
    for room in rooms:
        key = _normalized_name(room.name)
        if key in seen:
            logger.warning("Duplicate room '{}' ({}) removed", room.name, room.id)
            continue
        seen.add(key)
        kept.append(room)
    return kept


def parse_floorplan_payload(
    data: Any,
    *,
    default_room_size: float = DEFAULT_ROOM_SIZE,
    default_ceiling_height: float = DEFAULT_CEILING_HEIGHT,
    deduplicate: bool = False,
) -> FloorplanPayload:
    """Validate an oracle payload, raising SchemaError on anything unusable."""
    if not isinstance(data, dict):
        raise SchemaError("Floorplan payload must be a JSON object", {"type": type(data).__name__})
    if not isinstance(data.get("rooms"), list):
        raise SchemaError("Floorplan payload must contain a 'rooms' list")

    raw = dict(data)
    if deduplicate:
        try:
            rooms = [
                SemanticRoom.model_validate(room, context={"default_room_size": default_room_size})
                for room in raw["rooms"]
            ]
        except PydanticValidationError as exc:
            raise SchemaError(f"Invalid room record: {exc}", {"errors": str(exc.error_count())}) from exc
        raw["rooms"] = [
            room.model_dump(by_alias=True, exclude_none=True) for room in deduplicate_rooms(rooms)
        ]

    try:
        payload = FloorplanPayload.model_validate(
            raw,
            context={
                "default_room_size": default_room_size,
                "default_ceiling_height": default_ceiling_height,
            },
        )
    except PydanticValidationError as exc:
        raise SchemaError(f"Invalid floorplan payload: {exc}", {"errors": str(exc.error_count())}) from exc

    estimated = [room.id for room in payload.rooms if room.dimensions_estimated]
    if estimated:
        logger.warning("Dimensions estimated for {} room(s): {}", len(estimated), ", ".join(estimated))
    return payload
