from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from roomgraph.exceptions import ImageDecodeError

_DATA_URL_RE = re.compile(r"^data:image/(png|jpeg|jpg);base64,(.+)$", re.DOTALL)

ImageSource = Union[bytes, bytearray, str, Path, np.ndarray]


@dataclass(frozen=True)
class RasterImage:
    """Decoded RGBA pixel buffer, shape (height, width, 4), dtype uint8."""

    pixels: np.ndarray
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height


def _to_rgba(decoded: np.ndarray) -> np.ndarray:
    if decoded.ndim == 2:
        return cv2.cvtColor(decoded, cv2.COLOR_GRAY2RGBA)
    channels = decoded.shape[2]
    if channels == 4:
        return cv2.cvtColor(decoded, cv2.COLOR_BGRA2RGBA)
    if channels == 3:
        return cv2.cvtColor(decoded, cv2.COLOR_BGR2RGBA)
    raise ImageDecodeError("Unsupported channel count", {"channels": str(channels)})


def _decode_bytes(data: bytes) -> np.ndarray:
    buffer = np.frombuffer(data, dtype=np.uint8)
    if buffer.size == 0:
        raise ImageDecodeError("Image data is empty")
    decoded = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if decoded is None:
        raise ImageDecodeError("Image bytes could not be decoded", {"size": str(buffer.size)})
    if decoded.dtype != np.uint8:
        # 16-bit PNGs
        decoded = (decoded / 257).astype(np.uint8)
    return decoded


def decode_image(source: ImageSource) -> RasterImage:
    """Decode a floorplan raster into RGBA pixels.

    Accepts raw encoded bytes, a ``data:image/...;base64,`` URL, a file path,
    or an already decoded RGBA/RGB/grayscale array (RGB order assumed).
    """
    if isinstance(source, np.ndarray):
        pixels = source
        if pixels.ndim == 2:
            pixels = cv2.cvtColor(pixels.astype(np.uint8), cv2.COLOR_GRAY2RGBA)
        elif pixels.ndim == 3 and pixels.shape[2] == 3:
            pixels = cv2.cvtColor(pixels.astype(np.uint8), cv2.COLOR_RGB2RGBA)
        elif not (pixels.ndim == 3 and pixels.shape[2] == 4):
            raise ImageDecodeError("Unsupported array shape", {"shape": str(pixels.shape)})
        pixels = np.ascontiguousarray(pixels, dtype=np.uint8)
    else:
        if isinstance(source, Path):
            if not source.exists():
                raise ImageDecodeError("Image file not found", {"path": str(source)})
            data = source.read_bytes()
        elif isinstance(source, str) and not source.strip().startswith("data:"):
            return decode_image(Path(source))
        elif isinstance(source, str):
            match = _DATA_URL_RE.match(source.strip())
            if not match:
                raise ImageDecodeError("Invalid image data URL")
            try:
                data = base64.b64decode(match.group(2), validate=False)
            except (binascii.Error, ValueError) as exc:
                raise ImageDecodeError(f"Invalid base64 payload: {exc}") from exc
        else:
            data = bytes(source)
        pixels = _to_rgba(_decode_bytes(data))

    height, width = pixels.shape[:2]
    if width == 0 or height == 0:
        raise ImageDecodeError("Image has no pixels")
    return RasterImage(pixels=pixels, width=int(width), height=int(height))
