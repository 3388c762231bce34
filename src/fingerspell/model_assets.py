from __future__ import annotations

import logging
import os
import ssl
import urllib.request
from dataclasses import dataclass
from typing import Optional

from .errors import AssetLoadError


logger = logging.getLogger(__name__)

HAND_LANDMARKER_TASK_URL = (
    "https://storage.googleapis.com/mediapipe-models/hand_landmarker/hand_landmarker/float16/latest/hand_landmarker.task"
)

KERAS_SUFFIXES = (".keras", ".h5", ".hdf5")


@dataclass(frozen=True)
class ClassifierAssets:
    """Resolved classifier files: either a single Keras archive, or a JSON description plus weights."""

    model_path: str
    weights_path: Optional[str] = None

    @property
    def is_split(self) -> bool:
        return self.weights_path is not None


def _weights_candidates(description_path: str):
    stem, _ = os.path.splitext(description_path)
    return (stem + ".weights.h5", stem + ".h5")


def resolve_classifier_assets(path: str) -> ClassifierAssets:
    if not os.path.isfile(path):
        raise AssetLoadError(f"Classifier model not found: {path}", path=path)

    lower = path.lower()
    if lower.endswith(KERAS_SUFFIXES):
        return ClassifierAssets(model_path=path)

    if lower.endswith(".json"):
        for candidate in _weights_candidates(path):
            if os.path.isfile(candidate):
                return ClassifierAssets(model_path=path, weights_path=candidate)
        raise AssetLoadError(
            f"Model description {path} has no weights file next to it "
            f"(looked for {', '.join(_weights_candidates(path))})",
            path=path,
        )

    raise AssetLoadError(f"Unsupported classifier file type: {path}", path=path)


def load_keras_model(path: str):
    """Default classifier loader. TensorFlow is imported on first use only."""

    assets = resolve_classifier_assets(path)
    try:
        import tensorflow as tf  # type: ignore

        if assets.is_split:
            with open(assets.model_path, "r", encoding="utf-8") as f:
                model = tf.keras.models.model_from_json(f.read())
            model.load_weights(assets.weights_path)
        else:
            model = tf.keras.models.load_model(assets.model_path, compile=False)
    except AssetLoadError:
        raise
    except Exception as e:
        raise AssetLoadError(f"Could not load classifier from {path}: {e}", path=path) from e
    return model


def ensure_hand_landmarker_task(model_path: str, *, url: str = HAND_LANDMARKER_TASK_URL, timeout_s: int = 30) -> str:
    """
    Ensure the MediaPipe `hand_landmarker.task` exists at `model_path`, downloading it if missing.
    """

    if os.path.exists(model_path):
        return model_path

    os.makedirs(os.path.dirname(model_path) or ".", exist_ok=True)
    tmp_path = model_path + ".download"

    try:
        try:
            import certifi  # type: ignore

            ctx = ssl.create_default_context(cafile=certifi.where())
        except ImportError:
            ctx = ssl.create_default_context()

        logger.info("Downloading hand landmarker model to %s", model_path)
        with urllib.request.urlopen(url, context=ctx, timeout=timeout_s) as r, open(tmp_path, "wb") as f:
            f.write(r.read())
        os.replace(tmp_path, model_path)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise RuntimeError(
            "Missing MediaPipe Tasks model file and auto-download failed.\n\n"
            f"Expected model at: {model_path}\n"
            f"URL: {url}\n\n"
            "Download it manually:\n"
            f'  mkdir -p "{os.path.dirname(model_path) or "."}"\n'
            f'  curl -L -o "{model_path}" "{url}"\n'
        ) from e

    return model_path
