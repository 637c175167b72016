"""
Pipeline Metrics Collection

Collects metrics during floorplan analysis for monitoring and analysis.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass
class PipelineMetrics:
    """
    Metrics collected during pipeline execution.

    Tracks stage timings, fallback decisions and validation findings.
    """

    # Input statistics
    rooms_input: int = 0
    rooms_with_labels: int = 0
    rooms_estimated_dimensions: int = 0

    # Detection and matching
    contours_detected: int = 0
    contours_considered: int = 0
    exact_matches: int = 0
    near_matches: int = 0
    unmatched_rooms: int = 0
    used_synthetic_contours: bool = False

    # Adjacency and layout
    adjacencies_found: int = 0
    adjacency_method: str = ""
    oracle_iterations: int = 0
    oracle_tool_calls: int = 0
    oracle_failure: str | None = None
    layout_strategy: str = ""
    overlaps: int = 0
    gaps: int = 0

    # Performance metrics (in seconds)
    time_parsing: float = 0.0
    time_detection: float = 0.0
    time_matching: float = 0.0
    time_adjacency: float = 0.0
    time_layout: float = 0.0
    time_validation: float = 0.0
    time_total: float = 0.0

    # Warnings and errors
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @contextmanager
    def timed(self, stage: str) -> Iterator[None]:
        """Add the wall-clock time of the block to ``time_<stage>``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            attr = f"time_{stage}"
            setattr(self, attr, getattr(self, attr) + time.perf_counter() - start)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary for serialization."""
        return {
            "input": {
                "rooms": self.rooms_input,
                "with_labels": self.rooms_with_labels,
                "estimated_dimensions": self.rooms_estimated_dimensions,
            },
            "matching": {
                "contours_detected": self.contours_detected,
                "contours_considered": self.contours_considered,
                "exact": self.exact_matches,
                "near": self.near_matches,
                "unmatched": self.unmatched_rooms,
                "used_synthetic_contours": self.used_synthetic_contours,
            },
            "adjacency": {
                "found": self.adjacencies_found,
                "method": self.adjacency_method,
                "oracle_iterations": self.oracle_iterations,
                "oracle_tool_calls": self.oracle_tool_calls,
                "oracle_failure": self.oracle_failure,
            },
            "layout": {
                "strategy": self.layout_strategy,
                "overlaps": self.overlaps,
                "gaps": self.gaps,
            },
            "performance": {
                "parsing": round(self.time_parsing, 3),
                "detection": round(self.time_detection, 3),
                "matching": round(self.time_matching, 3),
                "adjacency": round(self.time_adjacency, 3),
                "layout": round(self.time_layout, 3),
                "validation": round(self.time_validation, 3),
                "total": round(self.time_total, 3),
            },
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }
