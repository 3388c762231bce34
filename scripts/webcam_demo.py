from __future__ import annotations

import argparse
import asyncio
import logging
import os
import platform
import sys

import cv2

# Allow running without installing the package (repo-local usage).
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_ROOT = os.path.join(REPO_ROOT, "src")
if SRC_ROOT not in sys.path:
    sys.path.insert(0, SRC_ROOT)

from fingerspell.classifier import GroupClassifier  # noqa: E402
from fingerspell.config import ClassifierConfig, DetectorConfig  # noqa: E402
from fingerspell.detector import HandLandmarkSource  # noqa: E402
from fingerspell.drawing import draw_prediction, draw_text, embed_canvas  # noqa: E402
from fingerspell.errors import AssetLoadError  # noqa: E402
from fingerspell.recognizer import Recognizer  # noqa: E402
from fingerspell.stabilizer import Stabilizer  # noqa: E402


log = logging.getLogger("webcam_demo")


async def run(args) -> int:
    clf_config = ClassifierConfig()
    classifier = GroupClassifier(args.model, input_size=clf_config.input_size, num_groups=clf_config.num_groups)
    try:
        await classifier.load()
    except AssetLoadError as e:
        log.error("%s", e)
        return 1

    recognizer = Recognizer(classifier)
    sentence = []

    def on_event(result) -> None:
        if not result.is_empty and (not sentence or sentence[-1] != result.character):
            sentence.append(result.character)

    stabilizer = Stabilizer(recognizer, on_event)

    if platform.system() == "Darwin":
        cap = cv2.VideoCapture(args.camera, cv2.CAP_AVFOUNDATION)
    else:
        cap = cv2.VideoCapture(args.camera)
    if not cap.isOpened():
        raise RuntimeError(
            f"Could not open camera index {args.camera}. "
            "On macOS: System Settings -> Privacy & Security -> Camera -> allow your terminal."
        )

    config = DetectorConfig()
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, config.frame_width)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, config.frame_height)

    loop = asyncio.get_running_loop()
    try:
        with HandLandmarkSource(config) as source:
            while True:
                ok, frame = await loop.run_in_executor(None, cap.read)
                if not ok:
                    break
                frame = cv2.flip(frame, 1)

                landmarks = source.detect(frame)
                stabilizer.on_frame(landmarks)

                frame = source.draw(frame, landmarks)
                if landmarks is not None:
                    embed_canvas(frame, recognizer.canvas_for(landmarks))
                draw_text(frame, "press q to quit", (12, 28))
                draw_prediction(frame, stabilizer.current)
                draw_text(frame, "".join(sentence[-30:]), (12, frame.shape[0] - 20), scale=0.9)

                cv2.imshow("fingerspell", frame)
                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):
                    break
                await asyncio.sleep(0)
    finally:
        stabilizer.stop()
        cap.release()
        cv2.destroyAllWindows()
    return 0


def main() -> int:
    ap = argparse.ArgumentParser(description="Live fingerspelling recognition from a webcam.")
    ap.add_argument("--model", default=ClassifierConfig().model_path, help="Classifier model (.keras/.h5 or model.json)")
    ap.add_argument("--camera", type=int, default=0, help="Camera index (default: 0)")
    ap.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = ap.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
