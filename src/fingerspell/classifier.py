from __future__ import annotations

import asyncio
import enum
import logging
from typing import Callable, Optional

import cv2
import numpy as np

from .errors import AssetLoadError, NotReadyError
from .model_assets import load_keras_model


logger = logging.getLogger(__name__)


class LoadState(enum.Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class GroupClassifier:
    """
    The 8-group hand-shape classifier.

    Loading happens once, off the event loop. Every concurrent `load()` awaits the same
    owned task, so they all see one outcome. A failed load stays failed until `reload()`.
    """

    def __init__(
        self,
        model_path: str,
        loader: Optional[Callable[[str], object]] = None,
        input_size: int = 400,
        num_groups: int = 8,
    ) -> None:
        self.model_path = model_path
        self.input_size = input_size
        self.num_groups = num_groups
        self._loader = loader if loader is not None else load_keras_model
        self._model = None
        self._task: Optional[asyncio.Future] = None
        self._state = LoadState.UNLOADED
        self._error: Optional[AssetLoadError] = None

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is LoadState.READY

    @property
    def error(self) -> Optional[AssetLoadError]:
        return self._error

    async def load(self) -> None:
        if self._task is None:
            self._start()
        await asyncio.shield(self._task)

    async def reload(self) -> None:
        """Start a fresh load attempt, e.g. after fixing a missing model file."""
        if self._task is None or self._task.done():
            self._start()
        await asyncio.shield(self._task)

    def _start(self) -> None:
        # State flips before the task first runs so same-tick callers join it.
        self._model = None
        self._error = None
        self._state = LoadState.LOADING
        self._task = asyncio.ensure_future(self._load_once())

    async def _load_once(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            model = await loop.run_in_executor(None, self._loader, self.model_path)
        except AssetLoadError as e:
            self._fail(e)
            raise
        except Exception as e:
            err = AssetLoadError(f"Could not load classifier from {self.model_path}: {e}", path=self.model_path)
            self._fail(err)
            raise err from e

        self._model = model
        self._state = LoadState.READY
        logger.info("Classifier loaded from %s", self.model_path)

    def _fail(self, err: AssetLoadError) -> None:
        self._model = None
        self._error = err
        self._state = LoadState.FAILED
        logger.error("Classifier load failed: %s", err)

    def preprocess(self, canvas: np.ndarray) -> np.ndarray:
        img = np.asarray(canvas)
        if img.shape[:2] != (self.input_size, self.input_size):
            img = cv2.resize(img, (self.input_size, self.input_size), interpolation=cv2.INTER_LINEAR)
        x = img.astype(np.float32) / 255.0
        return np.expand_dims(x, axis=0)

    def predict(self, canvas: np.ndarray) -> np.ndarray:
        if self._state is not LoadState.READY or self._model is None:
            raise NotReadyError(f"Classifier is not ready (state: {self._state.value})")

        out = self._model.predict(self.preprocess(canvas), verbose=0)
        probs = np.asarray(out, dtype=np.float32).reshape(-1)
        if probs.shape[0] != self.num_groups:
            raise ValueError(f"Classifier returned {probs.shape[0]} scores, expected {self.num_groups}")
        return probs
