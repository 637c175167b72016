from __future__ import annotations

import re
from typing import Optional

_METRIC_RE = re.compile(r"(\d+(?:\.\d+)?)\s*m(?![a-z])", re.IGNORECASE)
_IMPERIAL_RE = re.compile(r"(\d+)\s*['’′]\s*(?:(\d+(?:\.\d+)?)\s*(?:\"|''|”|″)?)?")
_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*$")


def imperial_to_metric(feet: float, inches: float = 0.0) -> float:
    """Convert feet and inches to meters."""
    return float(feet) * 0.3048 + float(inches) * 0.0254


def parse_dimension(text: str | None) -> Optional[float]:
    """Parse a display dimension into meters.

    Handles ``"7.16m"``, ``23'6"``, ``10'``, combined strings such as
    ``23'6" (7.16m)`` (the metric figure wins) and bare numbers, which are
    taken as meters. Returns None when nothing usable is found.
    """
    if text is None:
        return None
    value = str(text).strip()
    if not value:
        return None

    metric = _METRIC_RE.search(value)
    if metric:
        return float(metric.group(1))

    imperial = _IMPERIAL_RE.search(value)
    if imperial:
        feet = float(imperial.group(1))
        inches = float(imperial.group(2)) if imperial.group(2) else 0.0
        return imperial_to_metric(feet, inches)

    number = _NUMBER_RE.match(value)
    if number:
        return float(number.group(1))
    return None
