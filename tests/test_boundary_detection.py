import numpy as np

from roomgraph.vision.boundary_detection import (
    DetectionParams,
    detect_boundaries,
    detect_room_boundaries,
    detect_wall_edges,
    dilate_walls,
    find_connected_components,
)
from tests.utils_rooms import encode_png, four_room_plan


def test_four_rooms_detected_largest_first():
    contours = detect_room_boundaries(four_room_plan(), DetectionParams())
    assert len(contours) == 4
    areas = [contour.area for contour in contours]
    assert areas == sorted(areas, reverse=True)
    for contour in contours:
        assert 255 <= contour.bbox.width <= 275
        assert 255 <= contour.bbox.height <= 275
        assert contour.points is not None and len(contour.points) == 100

    centroids = sorted((round(c.centroid.x), round(c.centroid.y)) for c in contours)
    assert centroids[0][0] < 300 < centroids[-1][0]


def test_detection_is_deterministic():
    first = detect_room_boundaries(four_room_plan(), DetectionParams())
    second = detect_room_boundaries(four_room_plan(), DetectionParams())
    assert first == second


def test_png_bytes_match_array_input():
    from_png = detect_room_boundaries(encode_png(four_room_plan()), DetectionParams())
    from_array = detect_room_boundaries(four_room_plan(), DetectionParams())
    assert [c.bbox for c in from_png] == [c.bbox for c in from_array]


def test_binary_edge_source_finds_same_rooms():
    contours = detect_room_boundaries(four_room_plan(), DetectionParams(edge_source="binary"))
    assert len(contours) == 4


def test_undecodable_image_yields_empty_result():
    detection = detect_boundaries(b"not a png", DetectionParams())
    assert detection.contours == []
    assert detection.image_area == 0


def test_blank_image_has_no_rooms():
    blank = np.full((200, 200, 3), 255, dtype=np.uint8)
    assert detect_room_boundaries(blank, DetectionParams()) == []


def test_image_border_is_never_a_wall():
    gray = np.zeros((50, 50), dtype=np.uint8)
    gray[:, 25:] = 255
    edges = dilate_walls(detect_wall_edges(gray, 30.0), 3)
    assert not edges[0, :].any()
    assert not edges[-1, :].any()
    assert not edges[:, 0].any()
    assert not edges[:, -1].any()
    assert edges[25, 25] == 255


def test_connected_components_bbox_uses_max_minus_min():
    mask = np.zeros((20, 20), dtype=np.uint8)
    mask[2:6, 3:11] = 255
    mask[10:12, 10:12] = 255
    components = find_connected_components(mask, min_area=5, points_kept=3)
    assert len(components) == 1
    component = components[0]
    assert (component.bbox.x, component.bbox.y) == (3, 2)
    assert (component.bbox.width, component.bbox.height) == (7, 3)
    assert component.area == 32
    assert component.centroid.x == 6.5 and component.centroid.y == 3.5
    assert len(component.points) == 3
