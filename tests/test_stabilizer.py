import asyncio
import threading

import pytest

from fingerspell.config import StabilizerConfig
from fingerspell.errors import DegenerateInputWarning
from fingerspell.recognizer import Recognizer
from fingerspell.stabilizer import Stabilizer, StabilizerState, apply_confidence_floor
from fingerspell.types import EMPTY, PredictionResult

from conftest import BASE_HAND, FakeRecognizer, make_hand, probs_for


FAST = StabilizerConfig(settle_delay_s=0.02, throttle_interval_s=0.3, confidence_floor=0.3)


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _stabilizer(recognizer, clock=None):
    events = []
    stab = Stabilizer(recognizer, events.append, FAST, clock=clock or FakeClock())
    return stab, events


def _burst(n):
    return [make_hand(overrides={8: (260 + i, 210)}) for i in range(n)]


def test_burst_is_classified_once_with_the_last_frame():
    rec = FakeRecognizer(PredictionResult("L", 0.9))
    stab, events = _stabilizer(rec)
    frames = _burst(6)

    async def main():
        for frame in frames:
            stab.on_frame(frame)
        assert stab.state is StabilizerState.TRACKING
        await stab.wait_idle()

    asyncio.run(main())
    assert rec.calls == [frames[-1]]
    assert events == [PredictionResult("L", 0.9)]
    assert stab.state is StabilizerState.EMITTING
    assert stab.current == PredictionResult("L", 0.9)


def test_low_confidence_is_published_as_empty():
    rec = FakeRecognizer(PredictionResult("A", 0.29))
    stab, events = _stabilizer(rec)

    async def main():
        stab.on_frame(make_hand())
        await stab.wait_idle()

    asyncio.run(main())
    assert events == [EMPTY]
    assert events[0].character == "" and events[0].confidence == 0.0


def test_confidence_above_floor_passes_unchanged():
    rec = FakeRecognizer(PredictionResult("A", 0.31))
    stab, events = _stabilizer(rec)

    async def main():
        stab.on_frame(make_hand())
        await stab.wait_idle()

    asyncio.run(main())
    assert events == [PredictionResult("A", 0.31)]


def test_confidence_floor_function():
    assert apply_confidence_floor(PredictionResult("B", 0.29), 0.3) is EMPTY
    assert apply_confidence_floor(PredictionResult("B", 0.3), 0.3) == PredictionResult("B", 0.3)
    assert apply_confidence_floor(PredictionResult("", 0.95), 0.3) is EMPTY


def test_frames_inside_throttle_window_are_dropped():
    clock = FakeClock()
    rec = FakeRecognizer()
    stab, events = _stabilizer(rec, clock)

    async def main():
        stab.on_frame(make_hand())
        await stab.wait_idle()
        clock.now += 0.1
        stab.on_frame(make_hand())
        assert not stab.pending
        clock.now += 0.3
        stab.on_frame(make_hand())
        assert stab.pending
        await stab.wait_idle()

    asyncio.run(main())
    assert len(rec.calls) == 2
    assert len(events) == 2


def test_no_hand_resets_and_cancels_pending_timer():
    rec = FakeRecognizer()
    stab, events = _stabilizer(rec)

    async def main():
        stab.on_frame(make_hand())
        stab.on_frame(None)
        assert not stab.pending
        await asyncio.sleep(FAST.settle_delay_s * 3)

    asyncio.run(main())
    assert rec.calls == []
    assert events == [EMPTY]
    assert stab.state is StabilizerState.IDLE


def test_no_hand_after_emission_clears_current():
    rec = FakeRecognizer(PredictionResult("W", 0.8))
    stab, events = _stabilizer(rec)

    async def main():
        stab.on_frame(make_hand())
        await stab.wait_idle()
        stab.on_frame(None)
        stab.on_frame([])

    asyncio.run(main())
    assert events == [PredictionResult("W", 0.8), EMPTY]
    assert stab.current == EMPTY
    assert stab.state is StabilizerState.IDLE


def test_hand_returning_after_idle_is_classified_immediately():
    clock = FakeClock()
    rec = FakeRecognizer()
    stab, events = _stabilizer(rec, clock)

    async def main():
        stab.on_frame(make_hand())
        await stab.wait_idle()
        stab.on_frame(None)
        stab.on_frame(make_hand())  # same clock reading: throttle does not apply after idle
        await stab.wait_idle()

    asyncio.run(main())
    assert len(rec.calls) == 2


def test_partial_hand_counts_as_no_hand():
    rec = FakeRecognizer()
    stab, events = _stabilizer(rec)

    async def main():
        stab.on_frame(make_hand())
        with pytest.warns(DegenerateInputWarning):
            stab.on_frame(BASE_HAND[:9])
        await asyncio.sleep(FAST.settle_delay_s * 3)

    asyncio.run(main())
    assert rec.calls == []
    assert stab.state is StabilizerState.IDLE


def test_stop_cancels_pending_work():
    rec = FakeRecognizer()
    stab, events = _stabilizer(rec)

    async def main():
        stab.on_frame(make_hand())
        stab.stop()
        await asyncio.sleep(FAST.settle_delay_s * 3)

    asyncio.run(main())
    assert rec.calls == []
    assert events == []
    assert stab.state is StabilizerState.IDLE


def test_stop_during_inference_discards_the_result():
    rec = FakeRecognizer()
    rec.gate = threading.Event()
    stab, events = _stabilizer(rec)

    async def main():
        stab.on_frame(make_hand())
        await asyncio.sleep(FAST.settle_delay_s * 3)
        assert len(rec.calls) == 1
        stab.stop()
        rec.gate.set()
        await asyncio.sleep(0.05)

    asyncio.run(main())
    assert events == []
    assert stab.current == EMPTY


def test_frames_during_inference_are_dropped():
    rec = FakeRecognizer()
    rec.gate = threading.Event()
    stab, events = _stabilizer(rec)
    first, second = _burst(2)

    async def main():
        stab.on_frame(first)
        await asyncio.sleep(FAST.settle_delay_s * 3)
        stab.on_frame(second)
        stab.on_frame(second)
        rec.gate.set()
        await stab.wait_idle()

    asyncio.run(main())
    assert rec.calls == [first]
    assert len(events) == 1


def test_steady_stream_is_classified_once_per_throttle_window():
    rec = FakeRecognizer()
    events = []
    stab = Stabilizer(rec, events.append, StabilizerConfig())
    frames = _burst(40)

    async def main():
        for frame in frames:
            stab.on_frame(frame)
            await asyncio.sleep(0.03)
        await stab.wait_idle()

    asyncio.run(main())
    assert len(rec.calls) >= 2
    assert len(events) == len(rec.calls)
    # The settle window keeps collecting frames, so the first pose classified is a later one.
    assert rec.calls[0] != frames[0]
    assert len(set(rec.calls)) == len(rec.calls)


def test_hand_flicker_during_inference_never_runs_two_inferences():
    rec = FakeRecognizer()
    rec.gate = threading.Event()
    stab, events = _stabilizer(rec)
    first, second, third = _burst(3)

    async def main():
        stab.on_frame(first)
        await asyncio.sleep(FAST.settle_delay_s * 3)
        assert len(rec.calls) == 1
        stab.on_frame(None)
        stab.on_frame(second)
        assert not stab.pending
        rec.gate.set()
        await stab.wait_idle()
        stab.on_frame(third)
        await stab.wait_idle()

    asyncio.run(main())
    assert rec.max_active == 1
    assert rec.calls == [first, third]
    # The result of the first inference belongs to the old session and is dropped.
    assert events == [EMPTY, PredictionResult("L", 0.9)]


def test_classification_failure_publishes_empty_and_releases_guard():
    clock = FakeClock()
    rec = FakeRecognizer()
    rec.error = RuntimeError("resource exhausted")
    stab, events = _stabilizer(rec, clock)

    async def main():
        stab.on_frame(make_hand())
        await stab.wait_idle()
        rec.error = None
        clock.now += 1.0
        stab.on_frame(make_hand())
        await stab.wait_idle()

    asyncio.run(main())
    assert events == [EMPTY, PredictionResult("L", 0.9)]


def test_not_ready_recognizer_is_never_called():
    rec = FakeRecognizer(ready=False)
    stab, events = _stabilizer(rec)

    async def main():
        stab.on_frame(make_hand())
        assert not stab.pending
        await asyncio.sleep(FAST.settle_delay_s * 2)

    asyncio.run(main())
    assert rec.calls == []
    assert events == []
    assert stab.state is StabilizerState.IDLE


def test_end_to_end_with_real_recognizer(ready_classifier):
    clf = ready_classifier(probs_for(5, 2, top=0.55, second=0.3))
    events = []
    stab = Stabilizer(Recognizer(clf), events.append, FAST)
    hand = make_hand("UUUU", {4: (195, 300), 18: (365, 330), 20: (374, 310)})

    async def main():
        stab.on_frame(hand)
        await stab.wait_idle()

    asyncio.run(main())
    assert len(events) == 1
    assert events[0].character == "A"
    assert events[0].confidence == pytest.approx(0.55)
