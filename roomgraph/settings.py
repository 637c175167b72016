from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from roomgraph.exceptions import ConfigurationError
from roomgraph.geometry import contract

# Load .env file from project root
_env_path = Path(__file__).parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "default.yaml"


class DetectionSettings(BaseModel):
    edge_source: Literal["grayscale", "binary"] = "grayscale"
    magnitude_threshold: float = Field(contract.SOBEL_MAGNITUDE_THRESHOLD, gt=0.0)
    dilate_iterations: int = Field(contract.DILATE_ITERATIONS, ge=0, le=10)
    erode_iterations: int = Field(0, ge=0, le=10)
    min_component_fraction: float = Field(contract.MIN_COMPONENT_FRACTION, ge=0.0, le=1.0)
    min_bbox_fraction: float = Field(contract.MIN_BBOX_FRACTION, ge=0.0, le=1.0)
    max_bbox_fraction: float = Field(contract.MAX_BBOX_FRACTION, ge=0.0, le=1.0)
    min_aspect_ratio: float = Field(contract.MIN_ASPECT_RATIO, gt=0.0)
    max_aspect_ratio: float = Field(contract.MAX_ASPECT_RATIO, gt=0.0)
    points_kept: int = Field(contract.CONTOUR_POINTS_KEPT, ge=0)

    @model_validator(mode="after")
    def _check_ranges(self) -> "DetectionSettings":
        if self.min_bbox_fraction > self.max_bbox_fraction:
            raise ValueError("min_bbox_fraction must not exceed max_bbox_fraction")
        if self.min_aspect_ratio > self.max_aspect_ratio:
            raise ValueError("min_aspect_ratio must not exceed max_aspect_ratio")
        return self


class MatchingSettings(BaseModel):
    label_margin_px: float = Field(contract.LABEL_MARGIN_PX, ge=0.0)
    near_match_max_distance_px: float = Field(contract.NEAR_MATCH_MAX_DISTANCE_PX, gt=0.0)
    prefilter: bool = True
    min_contour_area_px: float = Field(contract.MIN_CONTOUR_AREA_PX, ge=0.0)
    min_aspect_ratio: float = Field(contract.MIN_ASPECT_RATIO, gt=0.0)
    max_aspect_ratio: float = Field(contract.MAX_ASPECT_RATIO, gt=0.0)
    min_match_rate: float = Field(contract.MIN_MATCH_RATE, ge=0.0, le=1.0)


class SyntheticSettings(BaseModel):
    canvas_width_px: int = Field(contract.DEFAULT_CANVAS_PX, gt=0)
    canvas_height_px: int = Field(contract.DEFAULT_CANVAS_PX, gt=0)
    room_density: float = Field(contract.SYNTHETIC_ROOM_DENSITY, gt=0.0)
    gap_px: float = Field(contract.SYNTHETIC_GAP_PX, ge=0.0)
    flow_spacing_px: float = Field(contract.SYNTHETIC_FLOW_SPACING_PX, ge=0.0)
    flow_jitter_px: float = Field(contract.SYNTHETIC_FLOW_JITTER_PX, ge=0.0)
    max_resolution_passes: int = Field(100, ge=1)


class AdjacencySettings(BaseModel):
    real_distance_px: float = Field(contract.REAL_DISTANCE_THRESHOLD_PX, ge=0.0)
    real_overlap_pct: float = Field(contract.REAL_OVERLAP_THRESHOLD_PCT, ge=0.0, le=100.0)
    synthetic_distance_px: float = Field(contract.SYNTHETIC_DISTANCE_THRESHOLD_PX, ge=0.0)
    synthetic_overlap_pct: float = Field(contract.SYNTHETIC_OVERLAP_THRESHOLD_PCT, ge=0.0, le=100.0)
    close_contact_fraction: float = Field(contract.CLOSE_CONTACT_FRACTION, ge=0.0, le=1.0)
    nearby_radius_px: float = Field(contract.NEARBY_RADIUS_PX, gt=0.0)
    use_oracle: bool = True
    oracle_timeout_seconds: float = Field(45.0, gt=0.0)


class OracleSettings(BaseModel):
    api_url: str = "https://api.anthropic.com/v1/messages"
    api_key_env: str = "ANTHROPIC_API_KEY"
    api_version: str = "2023-06-01"
    model: str = "claude-sonnet-4-5"
    max_tokens: int = Field(4096, gt=0)
    max_iterations: int = Field(15, ge=1)
    max_retries: int = Field(3, ge=0, le=10)
    backoff_base_seconds: float = Field(1.0, ge=0.0)
    history_window: int = Field(8, ge=2)
    request_timeout_seconds: float = Field(30.0, gt=0.0)

    @property
    def api_key(self) -> str:
        return os.getenv(self.api_key_env, "")


class LayoutSettings(BaseModel):
    wall_thickness: float = Field(contract.WALL_THICKNESS, ge=0.0)
    min_px_per_m: float = Field(contract.MIN_PX_PER_M, gt=0.0)
    max_px_per_m: float = Field(contract.MAX_PX_PER_M, gt=0.0)
    min_pixel_coverage: float = Field(contract.MIN_PIXEL_COVERAGE, ge=0.0, le=1.0)
    overflow_gap: float = Field(contract.OVERFLOW_GAP, ge=0.0)
    target_aspect_ratio: float = Field(contract.TARGET_ASPECT_RATIO, gt=0.0)


class ValidationSettings(BaseModel):
    overlap_tolerance: float = Field(contract.OVERLAP_TOLERANCE, ge=0.0)
    max_gap: float = Field(contract.MAX_GAP, gt=0.0)
    area_tolerance: float = Field(contract.AREA_TOLERANCE, ge=0.0)


class SchemaSettings(BaseModel):
    deduplicate_names: bool = False
    default_room_size: float = Field(contract.DEFAULT_ROOM_SIZE, gt=0.0)
    default_ceiling_height: float = Field(contract.DEFAULT_CEILING_HEIGHT, gt=0.0)


class Settings(BaseModel):
    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    synthetic: SyntheticSettings = Field(default_factory=SyntheticSettings)
    adjacency: AdjacencySettings = Field(default_factory=AdjacencySettings)
    oracle: OracleSettings = Field(default_factory=OracleSettings)
    layout: LayoutSettings = Field(default_factory=LayoutSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    schema_: SchemaSettings = Field(default_factory=SchemaSettings, alias="schema")

    model_config = {"populate_by_name": True}

    @field_validator("*", mode="before")
    @classmethod
    def _none_as_default(cls, value):  # noqa: D401
        # an empty YAML section parses to None
        return {} if value is None else value

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Load settings from a YAML configuration file.

        Args:
            path: Optional path to configuration file. If not provided, uses
                the ROOMGRAPH_CONFIG environment variable or the bundled
                config/default.yaml.

        Returns:
            Settings instance with loaded configuration.

        Raises:
            FileNotFoundError: If an explicitly requested file does not exist.
            ConfigurationError: If the configuration is invalid.
        """
        env_path = os.getenv("ROOMGRAPH_CONFIG")
        config_path = path or (Path(env_path) if env_path else None)
        if config_path is None:
            if not DEFAULT_CONFIG_PATH.exists():
                return cls()
            config_path = DEFAULT_CONFIG_PATH
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        with config_path.open("r", encoding="utf-8") as fp:
            payload = yaml.safe_load(fp) or {}
        if not isinstance(payload, dict):
            raise ConfigurationError("Configuration root must be a mapping", {"path": str(config_path)})
        try:
            return cls(**payload)
        except Exception as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}", {"path": str(config_path)}) from exc


@lru_cache(maxsize=1)
def get_settings(path: str | None = None) -> Settings:
    return Settings.load(Path(path) if path else None)


__all__ = [
    "Settings",
    "DetectionSettings",
    "MatchingSettings",
    "SyntheticSettings",
    "AdjacencySettings",
    "OracleSettings",
    "LayoutSettings",
    "ValidationSettings",
    "SchemaSettings",
    "get_settings",
]
