import base64

import numpy as np
import pytest

from roomgraph.exceptions import ImageDecodeError
from roomgraph.vision.image_io import decode_image
from tests.utils_rooms import encode_png


def _sample() -> np.ndarray:
    pixels = np.full((20, 30, 3), 255, dtype=np.uint8)
    pixels[5:10, 5:10] = (255, 0, 0)
    return pixels


def test_decode_png_bytes_to_rgba():
    image = decode_image(encode_png(_sample()))
    assert (image.width, image.height) == (30, 20)
    assert image.pixels.shape == (20, 30, 4)
    assert tuple(image.pixels[7, 7]) == (255, 0, 0, 255)
    assert image.area == 600


def test_decode_data_url():
    url = "data:image/png;base64," + base64.b64encode(encode_png(_sample())).decode("ascii")
    image = decode_image(url)
    assert (image.width, image.height) == (30, 20)


def test_decode_path(tmp_path):
    path = tmp_path / "plan.png"
    path.write_bytes(encode_png(_sample()))
    assert decode_image(path).width == 30
    assert decode_image(str(path)).pixels.shape == (20, 30, 4)


def test_decode_grayscale_array():
    image = decode_image(np.zeros((8, 12), dtype=np.uint8))
    assert image.pixels.shape == (8, 12, 4)


@pytest.mark.parametrize(
    "source",
    [
        b"",
        b"definitely not an image",
        "data:image/gif;base64,R0lGODlh",
        np.zeros((4, 4, 2), dtype=np.uint8),
    ],
)
def test_decode_failures(source):
    with pytest.raises(ImageDecodeError):
        decode_image(source)


def test_missing_file(tmp_path):
    with pytest.raises(ImageDecodeError):
        decode_image(tmp_path / "nope.png")
    with pytest.raises(ImageDecodeError):
        decode_image(str(tmp_path / "nope.png"))
