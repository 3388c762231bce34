from __future__ import annotations

import math
from typing import Iterable, Tuple


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def bbox_from_points(points: Iterable[Tuple[float, float]]) -> Tuple[float, float, float, float]:
    xs = []
    ys = []
    for x, y in points:
        xs.append(x)
        ys.append(y)
    if not xs:
        return (0.0, 0.0, 0.0, 0.0)
    return (min(xs), min(ys), max(xs), max(ys))


def bbox_center(points: Iterable[Tuple[float, float]]) -> Tuple[float, float]:
    x0, y0, x1, y1 = bbox_from_points(points)
    return ((x0 + x1) / 2.0, (y0 + y1) / 2.0)


def distance(a, b) -> float:
    """Euclidean distance in the image plane between two landmarks."""
    return math.hypot(a.x - b.x, a.y - b.y)
