from __future__ import annotations

"""
Geometry Contract

Single source of truth for thresholds, tolerances and defaults used throughout
the pipeline. Modules import from here instead of hardcoding.
"""

# Lengths in meters unless noted; pixel constants end with _PX

# Walls
WALL_THICKNESS = 0.10  # m

# Rooms
DEFAULT_ROOM_SIZE = 3.0  # m, used when the oracle omits a dimension
DEFAULT_CEILING_HEIGHT = 2.4  # m
DEFAULT_ROOM_COLOR = "#e5e7eb"
SQ_FT_PER_SQ_M = 10.7639

# Detection
SOBEL_MAGNITUDE_THRESHOLD = 30.0
DILATE_ITERATIONS = 3
MIN_COMPONENT_FRACTION = 0.01  # of image pixels
MIN_BBOX_FRACTION = 0.02
MAX_BBOX_FRACTION = 0.50
MIN_ASPECT_RATIO = 0.2
MAX_ASPECT_RATIO = 5.0
CONTOUR_POINTS_KEPT = 100

# Matching
LABEL_MARGIN_PX = 20.0
NEAR_MATCH_MAX_DISTANCE_PX = 200.0
MIN_CONTOUR_AREA_PX = 1000.0
MIN_MATCH_RATE = 0.5

# Synthetic geometry
DEFAULT_CANVAS_PX = 1000
SYNTHETIC_ROOM_DENSITY = 3.0  # canvas share divisor per room
SYNTHETIC_GAP_PX = 10.0
SYNTHETIC_FLOW_SPACING_PX = 20.0
SYNTHETIC_FLOW_JITTER_PX = 15.0
GRID_CELL_FILL = 0.8

# Adjacency (pixels)
NEARBY_RADIUS_PX = 50.0
REAL_DISTANCE_THRESHOLD_PX = 15.0
REAL_OVERLAP_THRESHOLD_PCT = 50.0
SYNTHETIC_DISTANCE_THRESHOLD_PX = 60.0
SYNTHETIC_OVERLAP_THRESHOLD_PCT = 30.0
CLOSE_CONTACT_FRACTION = 0.2

# Layout
MIN_PX_PER_M = 5.0
MAX_PX_PER_M = 500.0
MIN_PIXEL_COVERAGE = 0.5
OVERFLOW_GAP = 2.0  # m between the main cluster and disconnected rooms
TARGET_ASPECT_RATIO = 1.5

# Validation
OVERLAP_TOLERANCE = 0.05  # m
MAX_GAP = 0.5  # m
AREA_TOLERANCE = 0.15  # fraction of declared total area


def sq_m_to_sq_ft(value_sq_m: float) -> float:
    """Convert square meters to square feet."""
    return float(value_sq_m * SQ_FT_PER_SQ_M)


def sq_ft_to_sq_m(value_sq_ft: float) -> float:
    """Convert square feet to square meters."""
    return float(value_sq_ft / SQ_FT_PER_SQ_M)
