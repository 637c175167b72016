"""
Room Boundary Detection

Unsupervised room candidates from floorplan pixels: grayscale, Sobel wall
emphasis, morphological gap closing, inversion and 4-connected flood fill.
Floorplan walls are usually mid-gray lines, so edges are taken on the
grayscale image and thresholded afterwards; binarizing first drops interior
partitions (available as ``edge_source="binary"``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import cv2
import numpy as np
from loguru import logger

from roomgraph.exceptions import ImageDecodeError
from roomgraph.schemas import BBox, Contour, Point
from roomgraph.settings import Settings, get_settings
from roomgraph.vision.image_io import ImageSource, RasterImage, decode_image

_CROSS = cv2.getStructuringElement(cv2.MORPH_CROSS, (3, 3))


@dataclass
class DetectionParams:
    edge_source: str = "grayscale"
    magnitude_threshold: float = 30.0
    dilate_iterations: int = 3
    erode_iterations: int = 0
    min_component_fraction: float = 0.01
    min_bbox_fraction: float = 0.02
    max_bbox_fraction: float = 0.5
    min_aspect_ratio: float = 0.2
    max_aspect_ratio: float = 5.0
    points_kept: int = 100


@dataclass
class BoundaryDetection:
    """Detector output plus the canvas it was computed on."""

    contours: List[Contour] = field(default_factory=list)
    image_width: int = 0
    image_height: int = 0
    raw_components: int = 0

    @property
    def image_area(self) -> int:
        return self.image_width * self.image_height


def resolve_params(settings: Optional[Settings] = None) -> DetectionParams:
    cfg = (settings or get_settings()).detection
    return DetectionParams(
        edge_source=cfg.edge_source,
        magnitude_threshold=cfg.magnitude_threshold,
        dilate_iterations=cfg.dilate_iterations,
        erode_iterations=cfg.erode_iterations,
        min_component_fraction=cfg.min_component_fraction,
        min_bbox_fraction=cfg.min_bbox_fraction,
        max_bbox_fraction=cfg.max_bbox_fraction,
        min_aspect_ratio=cfg.min_aspect_ratio,
        max_aspect_ratio=cfg.max_aspect_ratio,
        points_kept=cfg.points_kept,
    )


def _clear_border(mask: np.ndarray) -> np.ndarray:
    mask[0, :] = 0
    mask[-1, :] = 0
    mask[:, 0] = 0
    mask[:, -1] = 0
    return mask


def to_grayscale(pixels: np.ndarray) -> np.ndarray:
    """Luma (0.299 R + 0.587 G + 0.114 B), rounded to uint8."""
    rgb = pixels[..., :3].astype(np.float64)
    gray = 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]
    return np.clip(np.rint(gray), 0, 255).astype(np.uint8)


def otsu_binarize(gray: np.ndarray) -> np.ndarray:
    threshold, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    logger.debug("Otsu threshold: {}", threshold)
    return binary


def detect_wall_edges(gray: np.ndarray, magnitude_threshold: float) -> np.ndarray:
    """3x3 Sobel gradient magnitude, thresholded into a 0/255 wall mask."""
    src = gray.astype(np.float32)
    gx = cv2.Sobel(src, cv2.CV_32F, 1, 0, ksize=3, borderType=cv2.BORDER_REPLICATE)
    gy = cv2.Sobel(src, cv2.CV_32F, 0, 1, ksize=3, borderType=cv2.BORDER_REPLICATE)
    magnitude = cv2.magnitude(gx, gy)
    edges = np.where(magnitude > magnitude_threshold, 255, 0).astype(np.uint8)
    return _clear_border(edges)


def dilate_walls(mask: np.ndarray, iterations: int) -> np.ndarray:
    current = mask.copy()
    for _ in range(iterations):
        current = _clear_border(cv2.dilate(current, _CROSS, iterations=1))
    return current


def erode_walls(mask: np.ndarray, iterations: int) -> np.ndarray:
    if iterations <= 0:
        return mask
    return cv2.erode(mask, _CROSS, iterations=iterations)


def invert(mask: np.ndarray) -> np.ndarray:
    return cv2.bitwise_not(mask)


def _flood_fill(start: int, foreground: list, visited: bytearray, width: int, total: int) -> List[int]:
    # explicit work-list; recursion would overflow on room-sized regions
    visited[start] = 1
    stack = [start]
    members: List[int] = []
    while stack:
        idx = stack.pop()
        members.append(idx)
        x = idx % width
        if x + 1 < width:
            nxt = idx + 1
            if foreground[nxt] and not visited[nxt]:
                visited[nxt] = 1
                stack.append(nxt)
        if x > 0:
            nxt = idx - 1
            if foreground[nxt] and not visited[nxt]:
                visited[nxt] = 1
                stack.append(nxt)
        nxt = idx + width
        if nxt < total and foreground[nxt] and not visited[nxt]:
            visited[nxt] = 1
            stack.append(nxt)
        nxt = idx - width
        if nxt >= 0 and foreground[nxt] and not visited[nxt]:
            visited[nxt] = 1
            stack.append(nxt)
    return members


def find_connected_components(
    binary: np.ndarray,
    *,
    min_area: int,
    points_kept: int = 100,
) -> List[Contour]:
    """Label 4-connected foreground (255) regions in row-major scan order."""
    height, width = binary.shape[:2]
    total = width * height
    flat = binary.reshape(-1) == 255
    foreground = flat.tolist()
    visited = bytearray(total)
    components: List[Contour] = []

    for start in np.flatnonzero(flat).tolist():
        if visited[start]:
            continue
        members = _flood_fill(start, foreground, visited, width, total)
        if len(members) < min_area:
            continue
        indices = np.asarray(members, dtype=np.int64)
        xs = indices % width
        ys = indices // width
        min_x, max_x = int(xs.min()), int(xs.max())
        min_y, max_y = int(ys.min()), int(ys.max())
        points = tuple(Point(x=float(i % width), y=float(i // width)) for i in members[:points_kept])
        components.append(
            Contour(
                bbox=BBox(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y),
                centroid=Point(x=float(xs.mean()), y=float(ys.mean())),
                area=float(len(members)),
                points=points or None,
            )
        )
    return components


def filter_components(
    components: List[Contour],
    image_width: int,
    image_height: int,
    params: DetectionParams,
) -> List[Contour]:
    """Drop noise, the whole-plan outline, and thin line artifacts."""
    image_area = float(image_width * image_height)
    kept: List[Contour] = []
    for component in components:
        ratio = component.bbox.area / image_area if image_area > 0 else 0.0
        if not params.min_bbox_fraction <= ratio <= params.max_bbox_fraction:
            continue
        if component.bbox.height <= 0:
            continue
        aspect = component.bbox.width / component.bbox.height
        if not params.min_aspect_ratio <= aspect <= params.max_aspect_ratio:
            continue
        kept.append(component)
    return kept


def detect_boundaries(
    source: ImageSource | RasterImage,
    params: Optional[DetectionParams] = None,
) -> BoundaryDetection:
    """Detect room candidates; any failure yields an empty detection."""
    params = params or resolve_params()
    try:
        image = source if isinstance(source, RasterImage) else decode_image(source)
    except ImageDecodeError as exc:
        logger.warning("Image decoding failed, no geometry available: {}", exc.message)
        return BoundaryDetection()

    try:
        logger.info("Detecting room boundaries on {}x{}px image", image.width, image.height)
        gray = to_grayscale(image.pixels)
        edge_input = otsu_binarize(gray) if params.edge_source == "binary" else gray
        walls = detect_wall_edges(edge_input, params.magnitude_threshold)
        walls = dilate_walls(walls, params.dilate_iterations)
        walls = erode_walls(walls, params.erode_iterations)
        rooms_mask = invert(walls)

        min_area = int(image.area * params.min_component_fraction)
        components = find_connected_components(rooms_mask, min_area=min_area, points_kept=params.points_kept)
        filtered = filter_components(components, image.width, image.height, params)
    except (cv2.error, ValueError, MemoryError) as exc:
        logger.error("Boundary detection failed: {}", exc)
        return BoundaryDetection(image_width=image.width, image_height=image.height)

    filtered.sort(key=lambda contour: contour.area, reverse=True)
    logger.info(
        "Retained {} of {} components after size/aspect filtering",
        len(filtered),
        len(components),
    )
    if not filtered:
        logger.warning("No valid room boundaries detected; image may be too dark, light or noisy")
    return BoundaryDetection(
        contours=filtered,
        image_width=image.width,
        image_height=image.height,
        raw_components=len(components),
    )


def detect_room_boundaries(
    source: ImageSource | RasterImage,
    params: Optional[DetectionParams] = None,
) -> List[Contour]:
    """Contours ordered largest first, or an empty list when nothing usable is found."""
    return detect_boundaries(source, params).contours
