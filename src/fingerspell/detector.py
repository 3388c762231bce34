from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import cv2

from .config import DetectorConfig
from .drawing import draw_hand_overlay
from .model_assets import ensure_hand_landmarker_task
from .types import LandmarkSet


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _SolutionsBackend:
    hands: object


@dataclass(frozen=True)
class _TasksBackend:
    mp: object
    landmarker: object


def _try_create_solutions_backend(config: DetectorConfig, static_image_mode: bool) -> Optional[_SolutionsBackend]:
    import mediapipe as mp  # type: ignore

    if not hasattr(mp, "solutions"):
        return None
    hands = mp.solutions.hands.Hands(
        static_image_mode=static_image_mode,
        max_num_hands=config.max_num_hands,
        model_complexity=1,
        min_detection_confidence=config.min_detection_confidence,
        min_tracking_confidence=config.min_tracking_confidence,
    )
    return _SolutionsBackend(hands=hands)


def _create_tasks_backend(config: DetectorConfig) -> _TasksBackend:
    """Fallback for MediaPipe builds without `mp.solutions`; needs a `.task` asset on disk."""

    import mediapipe as mp  # type: ignore
    from mediapipe.tasks.python import BaseOptions  # type: ignore
    from mediapipe.tasks.python.vision import HandLandmarker, HandLandmarkerOptions, RunningMode  # type: ignore

    model_path = ensure_hand_landmarker_task(config.tasks_model_path)
    options = HandLandmarkerOptions(
        base_options=BaseOptions(model_asset_path=model_path),
        running_mode=RunningMode.VIDEO,
        num_hands=config.max_num_hands,
        min_hand_detection_confidence=config.min_detection_confidence,
        min_tracking_confidence=config.min_tracking_confidence,
    )
    return _TasksBackend(mp=mp, landmarker=HandLandmarker.create_from_options(options))


class HandLandmarkSource:
    """
    Single-hand landmark source backed by MediaPipe Hands.

    Input frames are **BGR** (OpenCV default). Output landmarks are in pixels of the
    frame that was passed in.
    """

    def __init__(self, config: DetectorConfig = DetectorConfig(), static_image_mode: bool = False) -> None:
        self.config = config
        self._solutions = _try_create_solutions_backend(config, static_image_mode)
        self._tasks: Optional[_TasksBackend] = None
        self._tasks_timestamp_ms = 0

        if self._solutions is None:
            try:
                self._tasks = _create_tasks_backend(config)
            except FileNotFoundError as e:
                raise RuntimeError(
                    "MediaPipe does not provide `mp.solutions` here and the Tasks model file is missing:\n"
                    f"  {config.tasks_model_path}"
                ) from e
            logger.info("Using MediaPipe Tasks HandLandmarker backend")

    def close(self) -> None:
        if self._solutions is not None:
            self._solutions.hands.close()
        if self._tasks is not None:
            self._tasks.landmarker.close()

    def __enter__(self) -> "HandLandmarkSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def detect(self, frame_bgr) -> Optional[LandmarkSet]:
        h, w = frame_bgr.shape[:2]
        frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)

        if self._solutions is not None:
            results = self._solutions.hands.process(frame_rgb)
            if not results.multi_hand_landmarks:
                return None
            landmarks = results.multi_hand_landmarks[0].landmark
        else:
            mp = self._tasks.mp
            mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=frame_rgb)
            # VIDEO mode needs monotonically increasing timestamps.
            self._tasks_timestamp_ms += 33
            result = self._tasks.landmarker.detect_for_video(mp_image, self._tasks_timestamp_ms)
            hand_list = getattr(result, "hand_landmarks", None) or []
            if not hand_list:
                return None
            landmarks = hand_list[0]

        return LandmarkSet.from_normalized(
            ((float(lm.x), float(lm.y), float(getattr(lm, "z", 0.0))) for lm in landmarks), w, h
        )

    def draw(self, frame_bgr, landmarks: Optional[LandmarkSet]):
        if landmarks is not None:
            draw_hand_overlay(frame_bgr, landmarks)
        return frame_bgr
