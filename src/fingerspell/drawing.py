from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

from .config import RenderConfig
from .types import BONE_CONNECTIONS, HAND_CONNECTIONS, WRIST, LandmarkSet, PredictionResult


def _px(lm) -> Tuple[int, int]:
    return (int(round(lm.x)), int(round(lm.y)))


def render(normalized: LandmarkSet, canvas_size: Optional[int] = None, config: RenderConfig = RenderConfig()) -> np.ndarray:
    """
    Draw the hand skeleton on a white RGB canvas, the representation the classifier was trained on.

    Bones go first, joints on top so lines never cover a joint.
    """

    size = canvas_size if canvas_size is not None else config.canvas_size
    canvas = np.full((size, size, 3), 255, dtype=np.uint8)

    for a, b in BONE_CONNECTIONS:
        cv2.line(canvas, _px(normalized[a]), _px(normalized[b]), config.bone_color, config.bone_thickness)

    for idx, lm in enumerate(normalized):
        radius = config.wrist_radius if idx == WRIST else config.joint_radius
        cv2.circle(canvas, _px(lm), radius, config.joint_color, -1)

    return canvas


def draw_hand_overlay(frame, landmarks: LandmarkSet, color=(0, 255, 255), point_color=(40, 255, 120)):
    for a, b in HAND_CONNECTIONS:
        cv2.line(frame, _px(landmarks[a]), _px(landmarks[b]), color, 2, cv2.LINE_AA)
    for lm in landmarks:
        cv2.circle(frame, _px(lm), 3, point_color, -1, lineType=cv2.LINE_AA)
    return frame


def draw_text(frame, text: str, org: Tuple[int, int], color=(255, 255, 255), scale=0.6, thickness=2):
    cv2.putText(frame, text, org, cv2.FONT_HERSHEY_SIMPLEX, scale, (0, 0, 0), thickness + 2, cv2.LINE_AA)
    cv2.putText(frame, text, org, cv2.FONT_HERSHEY_SIMPLEX, scale, color, thickness, cv2.LINE_AA)
    return frame


def draw_prediction(frame, result: PredictionResult, org: Tuple[int, int] = (12, 64)):
    label = result.character if not result.is_empty else "-"
    return draw_text(frame, f"{label}  {result.confidence * 100:.1f}%", org, scale=1.2, thickness=3)


def embed_canvas(frame, canvas: np.ndarray, size: int = 160, margin: int = 12):
    """Paste a shrunken RGB canvas into the top-right corner of a BGR frame."""
    h, w = frame.shape[:2]
    size = min(size, h - margin, w - margin)
    if size <= 0:
        return frame
    thumb = cv2.cvtColor(cv2.resize(canvas, (size, size)), cv2.COLOR_RGB2BGR)
    frame[margin:margin + size, w - margin - size:w - margin] = thumb
    return frame
