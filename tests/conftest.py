from __future__ import annotations

import threading
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from fingerspell.classifier import GroupClassifier
from fingerspell.types import FINGER_JOINTS, LandmarkSet, PredictionResult


# Open right hand, palm to camera, in 640x480 pixel space (y grows downwards).
BASE_HAND: Tuple[Tuple[float, float], ...] = (
    (300, 400),  # wrist
    (260, 380), (230, 350), (210, 320), (195, 295),  # thumb
    (270, 300), (265, 260), (262, 235), (260, 210),  # index
    (300, 295), (300, 250), (300, 222), (300, 195),  # middle
    (330, 300), (335, 260), (337, 235), (340, 212),  # ring
    (355, 310), (365, 280), (370, 262), (374, 245),  # pinky
)


def make_hand(fingers: str = "UUUU", overrides: Optional[Dict[int, Tuple[float, float]]] = None) -> LandmarkSet:
    """
    Build a hand from BASE_HAND.

    `fingers` gives index/middle/ring/pinky as U (extended) or D (folded: tip drops below
    its middle joint). `overrides` replaces individual points afterwards.
    """

    pts = [list(p) for p in BASE_HAND]
    for finger, state in zip(("index", "middle", "ring", "pinky"), fingers):
        if state == "D":
            pip, tip = FINGER_JOINTS[finger]
            pts[tip][1] = pts[pip][1] + 25
    for idx, xy in (overrides or {}).items():
        pts[idx] = list(xy)
    return LandmarkSet.from_points(pts)


def degenerate_hand(x: float = 120.0, y: float = 80.0) -> LandmarkSet:
    return LandmarkSet.from_points([(x, y)] * 21)


def probs_for(g1: int, g2: int, top: float = 0.6, second: float = 0.25) -> List[float]:
    rest = (1.0 - top - second) / 6.0
    probs = [rest] * 8
    probs[g1] = top
    probs[g2] = second
    return probs


class FakeModel:
    """Stands in for a Keras model; records what it was given."""

    def __init__(self, probs: Sequence[float]) -> None:
        self.probs = np.asarray(probs, dtype=np.float32)
        self.inputs: List[np.ndarray] = []

    def predict(self, x, verbose=0):
        self.inputs.append(x)
        return self.probs.reshape(1, -1)


class CountingLoader:
    def __init__(self, model=None, error: Optional[Exception] = None, delay_s: float = 0.0) -> None:
        self.model = model
        self.error = error
        self.delay_s = delay_s
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, path: str):
        with self._lock:
            self.calls.append(path)
        if self.delay_s:
            threading.Event().wait(self.delay_s)
        if self.error is not None:
            raise self.error
        return self.model


class FakeRecognizer:
    """Duck-typed Recognizer for stabilizer tests."""

    def __init__(self, result: PredictionResult = PredictionResult("L", 0.9), ready: bool = True) -> None:
        self.result = result
        self.ready = ready
        self.error: Optional[Exception] = None
        self.gate: Optional[threading.Event] = None
        self.calls: List[LandmarkSet] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self.ready

    def recognize(self, raw: LandmarkSet) -> PredictionResult:
        with self._lock:
            self.calls.append(raw)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                self.gate.wait(2.0)
            if self.error is not None:
                raise self.error
            return self.result
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def open_hand() -> LandmarkSet:
    return make_hand()


@pytest.fixture
def fist() -> LandmarkSet:
    return make_hand("DDDD")


@pytest.fixture
def ready_classifier():
    import asyncio

    def _make(probs: Sequence[float]) -> GroupClassifier:
        model = FakeModel(probs)
        clf = GroupClassifier("unused.keras", loader=CountingLoader(model))
        asyncio.run(clf.load())
        return clf

    return _make
