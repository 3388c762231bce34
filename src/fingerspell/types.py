from __future__ import annotations

import enum
import logging
import warnings
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .errors import DegenerateInputWarning


logger = logging.getLogger(__name__)

NUM_LANDMARKS = 21

# Landmark indices (MediaPipe hand topology).
WRIST = 0
THUMB_CMC = 1
THUMB_MCP = 2
THUMB_IP = 3
THUMB_TIP = 4
INDEX_MCP = 5
INDEX_PIP = 6
INDEX_DIP = 7
INDEX_TIP = 8
MIDDLE_MCP = 9
MIDDLE_PIP = 10
MIDDLE_DIP = 11
MIDDLE_TIP = 12
RING_MCP = 13
RING_PIP = 14
RING_DIP = 15
RING_TIP = 16
PINKY_MCP = 17
PINKY_PIP = 18
PINKY_DIP = 19
PINKY_TIP = 20

# (pip, tip) per non-thumb finger.
FINGER_JOINTS: Dict[str, Tuple[int, int]] = {
    "index": (INDEX_PIP, INDEX_TIP),
    "middle": (MIDDLE_PIP, MIDDLE_TIP),
    "ring": (RING_PIP, RING_TIP),
    "pinky": (PINKY_PIP, PINKY_TIP),
}


# Skeleton used for the classifier canvas.
BONE_CONNECTIONS: Tuple[Tuple[int, int], ...] = (
    # thumb
    (0, 1),
    (1, 2),
    (2, 3),
    (3, 4),
    # index
    (5, 6),
    (6, 7),
    (7, 8),
    # middle
    (9, 10),
    (10, 11),
    (11, 12),
    # ring
    (13, 14),
    (14, 15),
    (15, 16),
    # pinky
    (17, 18),
    (18, 19),
    (19, 20),
    # palm
    (5, 9),
    (9, 13),
    (13, 17),
    # wrist
    (0, 5),
    (0, 17),
)

# Overlay skeleton for camera frames.
HAND_CONNECTIONS: Tuple[Tuple[int, int], ...] = (
    (0, 1), (1, 2), (2, 3), (3, 4),
    (0, 5), (5, 6), (6, 7), (7, 8),
    (0, 9), (9, 10), (10, 11), (11, 12),
    (0, 13), (13, 14), (14, 15), (15, 16),
    (0, 17), (17, 18), (18, 19), (19, 20),
    (5, 9), (9, 13), (13, 17),
)


class Group(enum.IntEnum):
    """Coarse classifier outputs; each value is also the model's output index."""

    AEMNST = 0
    BDFIKRUVW = 1
    CO = 2
    GH = 3
    L = 4
    PQZ = 5
    X = 6
    JY = 7


GROUP_LETTERS: Tuple[FrozenSet[str], ...] = (
    frozenset("AEMNST"),
    frozenset("BDFIKRUVW"),
    frozenset("CO"),
    frozenset("GH"),
    frozenset("L"),
    frozenset("PQZ"),
    frozenset("X"),
    frozenset("JY"),
)
NUM_GROUPS = len(GROUP_LETTERS)


def group_of(letter: str) -> int:
    """Return the classification group holding `letter`."""
    ch = letter.upper()
    for idx, letters in enumerate(GROUP_LETTERS):
        if ch in letters:
            return idx
    raise ValueError(f"Not a fingerspelling letter: {letter!r}")


@dataclass(frozen=True)
class Landmark:
    """A single hand landmark in pixel space; z is opaque detector depth."""

    x: float
    y: float
    z: float = 0.0

    @property
    def xy(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class LandmarkSet:
    """Exactly 21 ordered landmarks for one hand in one frame."""

    points: Tuple[Landmark, ...]

    def __post_init__(self) -> None:
        if len(self.points) != NUM_LANDMARKS:
            raise ValueError(f"LandmarkSet needs {NUM_LANDMARKS} points, got {len(self.points)}")

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> "LandmarkSet":
        lms: List[Landmark] = []
        for p in points:
            if isinstance(p, Landmark):
                lms.append(p)
                continue
            z = float(p[2]) if len(p) > 2 else 0.0
            lms.append(Landmark(float(p[0]), float(p[1]), z))
        return cls(tuple(lms))

    @classmethod
    def from_normalized(cls, points: Iterable[Sequence[float]], width: int, height: int) -> "LandmarkSet":
        """Build from detector output in [0, 1] image coordinates."""
        lms = []
        for p in points:
            z = float(p[2]) if len(p) > 2 else 0.0
            lms.append(Landmark(float(p[0]) * width, float(p[1]) * height, z))
        return cls(tuple(lms))

    def __len__(self) -> int:
        return len(self.points)

    def __getitem__(self, idx: int) -> Landmark:
        return self.points[idx]

    def __iter__(self) -> Iterator[Landmark]:
        return iter(self.points)

    def as_array(self) -> np.ndarray:
        return np.array([(p.x, p.y, p.z) for p in self.points], dtype=np.float64)


def coerce_landmarks(points) -> Optional[LandmarkSet]:
    """
    Turn a detector payload into a LandmarkSet, or None when no usable hand is present.

    Partial payloads (1-20 points) raise a DegenerateInputWarning and count as "no hand".
    More than 21 points is a malformed payload and raises ValueError.
    """

    if points is None:
        return None
    if isinstance(points, LandmarkSet):
        return points
    points = list(points)
    if not points:
        return None
    if len(points) < NUM_LANDMARKS:
        logger.warning("Degenerate frame: %d of %d landmarks", len(points), NUM_LANDMARKS)
        warnings.warn(
            f"expected {NUM_LANDMARKS} landmarks, got {len(points)}; treating frame as no hand",
            DegenerateInputWarning,
            stacklevel=2,
        )
        return None
    if len(points) > NUM_LANDMARKS:
        raise ValueError(f"expected {NUM_LANDMARKS} landmarks, got {len(points)}")
    return LandmarkSet.from_points(points)


@dataclass(frozen=True)
class PredictionResult:
    """One recognised letter; an empty character means no reliable sign."""

    character: str
    confidence: float

    @property
    def is_empty(self) -> bool:
        return self.character == ""


EMPTY = PredictionResult(character="", confidence=0.0)
