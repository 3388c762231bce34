from __future__ import annotations

from .types import Landmark, LandmarkSet
from .utils import bbox_from_points, clamp


def normalize(raw: LandmarkSet, canvas_size: int = 400) -> LandmarkSet:
    """
    Center a pixel-space hand on a square canvas.

    Translation only: distances between landmarks are kept so the hand's apparent size
    survives. Points that would fall outside the canvas are clamped to its edge.
    """

    if canvas_size <= 0:
        raise ValueError(f"canvas_size must be positive, got {canvas_size}")

    x_min, y_min, x_max, y_max = bbox_from_points(p.xy for p in raw)
    offset_x = (canvas_size - (x_max - x_min)) / 2.0 - x_min
    offset_y = (canvas_size - (y_max - y_min)) / 2.0 - y_min

    hi = float(canvas_size - 1)
    return LandmarkSet(
        tuple(
            Landmark(
                x=clamp(p.x + offset_x, 0.0, hi),
                y=clamp(p.y + offset_y, 0.0, hi),
                z=p.z,
            )
            for p in raw
        )
    )
