from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Callable, Optional

from .config import StabilizerConfig
from .recognizer import Recognizer
from .types import EMPTY, LandmarkSet, PredictionResult, coerce_landmarks


logger = logging.getLogger(__name__)


class StabilizerState(enum.Enum):
    IDLE = "idle"  # no hand
    TRACKING = "tracking"  # hand present, settle timer armed
    EMITTING = "emitting"  # a result was just published


def apply_confidence_floor(result: PredictionResult, floor: float) -> PredictionResult:
    if result.is_empty or result.confidence < floor:
        return EMPTY
    return result


class Stabilizer:
    """
    Turns per-frame landmarks into a calm stream of letter events.

    Call `on_frame` from the event loop once per video frame; it never blocks. A hand
    frame arms a short settle timer; frames arriving while it runs replace the pending
    pose without restarting it, so the latest pose in each window is classified even
    under a steady stream. After a classification starts, further frames are ignored
    until the throttle interval has passed. At most one inference runs at a time, even
    across a reset.
    """

    def __init__(
        self,
        recognizer: Recognizer,
        on_event: Callable[[PredictionResult], None],
        config: StabilizerConfig = StabilizerConfig(),
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._recognizer = recognizer
        self._on_event = on_event
        self.config = config
        self._clock = clock if clock is not None else time.monotonic

        self._state = StabilizerState.IDLE
        self._current = EMPTY
        self._task: Optional[asyncio.Task] = None
        self._settling = False
        self._latest: Optional[LandmarkSet] = None
        self._in_flight = False
        self._inference: Optional[asyncio.Future] = None
        self._last_classified: Optional[float] = None
        # Bumped on every reset; results from an older generation are discarded.
        self._generation = 0

    @property
    def state(self) -> StabilizerState:
        return self._state

    @property
    def current(self) -> PredictionResult:
        return self._current

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_frame(self, points) -> None:
        landmarks = coerce_landmarks(points)
        if landmarks is None:
            was_active = self._state is not StabilizerState.IDLE
            self._reset()
            if was_active:
                self._emit(EMPTY)
            return

        if not self._recognizer.is_ready:
            logger.debug("Classifier not ready; frame ignored")
            return
        if self._in_flight:
            logger.debug("Inference in flight; frame dropped")
            return
        if self._settling:
            self._latest = landmarks
            return

        if self._state is StabilizerState.IDLE or self._throttle_elapsed():
            self._arm(landmarks)
        else:
            logger.debug("Within throttle window; frame dropped")

    def stop(self) -> None:
        """Deactivate the session. Nothing scheduled before this call will publish."""
        self._reset()

    async def wait_idle(self) -> None:
        """Wait until no settle timer or inference is pending."""
        while self.pending:
            task = self._task
            await asyncio.gather(task, return_exceptions=True)
        if self._inference is not None and not self._inference.done():
            await asyncio.wait([self._inference])

    def _throttle_elapsed(self) -> bool:
        if self._last_classified is None:
            return True
        return self._clock() - self._last_classified >= self.config.throttle_interval_s

    def _arm(self, landmarks: LandmarkSet) -> None:
        self._state = StabilizerState.TRACKING
        self._settling = True
        self._latest = landmarks
        self._task = asyncio.get_running_loop().create_task(self._settle_then_classify(self._generation))

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._settling = False
        self._latest = None

    def _reset(self) -> None:
        self._generation += 1
        self._cancel_task()
        self._state = StabilizerState.IDLE
        self._current = EMPTY
        self._last_classified = None

    async def _settle_then_classify(self, generation: int) -> None:
        await asyncio.sleep(self.config.settle_delay_s)

        landmarks = self._latest
        self._settling = False
        self._latest = None
        self._in_flight = True
        self._last_classified = self._clock()
        loop = asyncio.get_running_loop()
        inference = loop.run_in_executor(None, self._recognizer.recognize, landmarks)
        inference.add_done_callback(self._inference_done)
        self._inference = inference
        try:
            # Shielded: a reset cancels this task but the worker thread keeps running.
            result = await asyncio.shield(inference)
        except Exception:
            logger.warning("Classification failed; publishing empty result", exc_info=True)
            result = EMPTY

        if generation != self._generation:
            return

        result = apply_confidence_floor(result, self.config.confidence_floor)
        self._current = result
        self._state = StabilizerState.EMITTING
        self._emit(result)

    def _inference_done(self, fut: asyncio.Future) -> None:
        self._in_flight = False
        if not fut.cancelled():
            fut.exception()

    def _emit(self, result: PredictionResult) -> None:
        logger.debug("Emit %r (%.2f)", result.character, result.confidence)
        try:
            self._on_event(result)
        except Exception:
            logger.exception("Event consumer raised")
