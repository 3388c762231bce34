from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

import cv2

# Allow running without installing the package (repo-local usage).
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_ROOT = os.path.join(REPO_ROOT, "src")
if SRC_ROOT not in sys.path:
    sys.path.insert(0, SRC_ROOT)

from fingerspell.classifier import GroupClassifier  # noqa: E402
from fingerspell.config import ClassifierConfig  # noqa: E402
from fingerspell.detector import HandLandmarkSource  # noqa: E402
from fingerspell.drawing import draw_prediction  # noqa: E402
from fingerspell.errors import AssetLoadError  # noqa: E402
from fingerspell.recognizer import Recognizer  # noqa: E402


def main() -> int:
    ap = argparse.ArgumentParser(description="Recognise a single fingerspelled letter in an image.")
    ap.add_argument("--image", required=True, help="Path to input image")
    ap.add_argument("--model", default=ClassifierConfig().model_path, help="Classifier model (.keras/.h5 or model.json)")
    ap.add_argument("--out", help="Path to annotated output image")
    ap.add_argument("--canvas-out", help="Path to write the synthetic skeleton canvas")
    ap.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = ap.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    frame = cv2.imread(args.image)
    if frame is None:
        raise RuntimeError(f"Could not read image: {args.image}")

    with HandLandmarkSource(static_image_mode=True) as source:
        landmarks = source.detect(frame)
    if landmarks is None:
        print("no hand detected")
        return 1

    classifier = GroupClassifier(args.model)
    try:
        asyncio.run(classifier.load())
    except AssetLoadError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    recognizer = Recognizer(classifier)
    result = recognizer.recognize(landmarks)
    print(f"letter={result.character} confidence={result.confidence:.3f}")

    if args.canvas_out:
        canvas = recognizer.canvas_for(landmarks)
        if not cv2.imwrite(args.canvas_out, cv2.cvtColor(canvas, cv2.COLOR_RGB2BGR)):
            raise RuntimeError(f"Could not write canvas image: {args.canvas_out}")
    if args.out:
        out = draw_prediction(source.draw(frame, landmarks), result)
        if not cv2.imwrite(args.out, out):
            raise RuntimeError(f"Could not write output image: {args.out}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
