from __future__ import annotations

from typing import Optional

import numpy as np

from .classifier import GroupClassifier
from .config import RenderConfig, RuleThresholds
from .disambiguation import disambiguate
from .drawing import render
from .normalize import normalize
from .types import LandmarkSet, PredictionResult


class Recognizer:
    """
    One classification pass for a single frame's hand.

    The classifier sees the centered synthetic canvas; the geometric rules see the raw
    pixel-space landmarks.
    """

    def __init__(
        self,
        classifier: GroupClassifier,
        render_config: RenderConfig = RenderConfig(),
        thresholds: Optional[RuleThresholds] = None,
    ) -> None:
        self.classifier = classifier
        self.render_config = render_config
        self.thresholds = thresholds if thresholds is not None else RuleThresholds()

    @property
    def is_ready(self) -> bool:
        return self.classifier.is_ready

    def canvas_for(self, raw: LandmarkSet) -> np.ndarray:
        size = self.render_config.canvas_size
        return render(normalize(raw, size), size, self.render_config)

    def recognize(self, raw: LandmarkSet) -> PredictionResult:
        probs = self.classifier.predict(self.canvas_for(raw))
        character = disambiguate(probs, raw, self.thresholds)
        # Confidence is the classifier's own score for its top group.
        confidence = float(np.clip(np.max(probs), 0.0, 1.0))
        return PredictionResult(character=character, confidence=confidence)
