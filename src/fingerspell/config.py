from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


Color = Tuple[int, int, int]


@dataclass(frozen=True)
class RenderConfig:
    """Synthetic canvas appearance. Colors are RGB, matching the classifier input."""

    canvas_size: int = 400
    bone_color: Color = (0, 255, 0)
    joint_color: Color = (0, 0, 255)
    bone_thickness: int = 3
    wrist_radius: int = 3
    joint_radius: int = 2


@dataclass(frozen=True)
class RuleThresholds:
    """
    Pixel thresholds used by the geometric disambiguation rules.

    Calibrated for 640x480 frames with a hand at arm's length; re-tune against labelled
    data for other resolutions.
    """

    c_vs_o: float = 42.0  # thumb tip <-> middle tip
    g_vs_h: float = 72.0  # index tip <-> middle tip
    j_vs_y: float = 42.0  # thumb tip <-> index tip
    index_ring_close: float = 52.0
    index_ring_apart: float = 50.0
    thumb_middle_dip_far: float = 55.0
    thumb_middle_dip_near: float = 50.0
    thumb_middle_dip_x: float = 60.0
    thumb_index_base_margin: float = 15.0
    wrist_fudge: float = 13.0
    thumb_above_margin: float = 17.0
    thumb_base_margin: float = 15.0
    uv_spread: float = 8.0


@dataclass(frozen=True)
class StabilizerConfig:
    settle_delay_s: float = 0.1
    throttle_interval_s: float = 0.4
    confidence_floor: float = 0.3


@dataclass(frozen=True)
class ClassifierConfig:
    model_path: str = "models/model.keras"
    input_size: int = 400
    num_groups: int = 8


@dataclass(frozen=True)
class DetectorConfig:
    max_num_hands: int = 1
    min_detection_confidence: float = 0.7
    min_tracking_confidence: float = 0.5
    frame_width: int = 640
    frame_height: int = 480
    tasks_model_path: str = "models/hand_landmarker.task"
