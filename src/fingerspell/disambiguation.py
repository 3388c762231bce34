"""
Geometric disambiguation of the classifier's coarse groups.

The classifier only separates eight groups of look-alike hand shapes. Two passes turn
its output into a letter:

1. `apply_rules` looks at the top-2 groups and, when a known confusion pair comes with
   a telltale finger configuration, replaces the winning group. The first matching rule
   wins.
2. `resolve_character` runs the winning group's decision tree over fingertip and joint
   positions.

Coordinates are raw pixels with y growing downwards, so a finger is extended when its
tip has a smaller y than its middle joint.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

import numpy as np

from .config import RuleThresholds
from .types import (
    FINGER_JOINTS,
    INDEX_MCP,
    INDEX_PIP,
    INDEX_TIP,
    MIDDLE_DIP,
    MIDDLE_MCP,
    MIDDLE_PIP,
    MIDDLE_TIP,
    NUM_GROUPS,
    PINKY_PIP,
    PINKY_TIP,
    RING_PIP,
    RING_TIP,
    THUMB_CMC,
    THUMB_IP,
    THUMB_MCP,
    THUMB_TIP,
    WRIST,
    Group,
    LandmarkSet,
)
from .utils import distance


Pair = Tuple[int, int]
Predicate = Callable[[LandmarkSet, RuleThresholds], bool]

DEFAULT_THRESHOLDS = RuleThresholds()

FINGER_TIPS = (INDEX_TIP, MIDDLE_TIP, RING_TIP, PINKY_TIP)
FINGER_PIPS = (INDEX_PIP, MIDDLE_PIP, RING_PIP, PINKY_PIP)
_FINGER_ORDER = ("index", "middle", "ring", "pinky")


def top_two(probabilities: Sequence[float]) -> Pair:
    """First-occurrence argmax, then argmax again with the winner zeroed."""

    probs = np.array(probabilities, dtype=np.float64).reshape(-1)
    if probs.shape[0] != NUM_GROUPS:
        raise ValueError(f"Expected {NUM_GROUPS} group scores, got {probs.shape[0]}")
    g1 = int(np.argmax(probs))
    probs[g1] = 0.0
    g2 = int(np.argmax(probs))
    return (g1, g2)


# ---------------------------------------------------------------------------
# Finger geometry
# ---------------------------------------------------------------------------


def finger_extended(pts: LandmarkSet, finger: str) -> bool:
    pip, tip = FINGER_JOINTS[finger]
    return pts[tip].y < pts[pip].y


def finger_folded(pts: LandmarkSet, finger: str) -> bool:
    pip, tip = FINGER_JOINTS[finger]
    return pts[pip].y < pts[tip].y


def fingers_match(pts: LandmarkSet, pattern: str) -> bool:
    """
    Check index/middle/ring/pinky against a 4-char pattern.

    `U` = extended, `D` = folded, `-` = either. Both tests are strict, so a finger whose
    tip and middle joint share a y value is neither.
    """

    for finger, want in zip(_FINGER_ORDER, pattern):
        if want == "U" and not finger_extended(pts, finger):
            return False
        if want == "D" and not finger_folded(pts, finger):
            return False
    return True


def _x_greater_than_all(pts: LandmarkSet, idx: int, others: Iterable[int], margin: float = 0.0) -> bool:
    return all(pts[idx].x > pts[o].x + margin for o in others)


def _x_less_than_all(pts: LandmarkSet, idx: int, others: Iterable[int], margin: float = 0.0) -> bool:
    return all(pts[idx].x + margin < pts[o].x for o in others)


# ---------------------------------------------------------------------------
# Correction rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Rule:
    """Replace the winning group with `override` when the top-2 pair is listed and `predicate` holds."""

    name: str
    pairs: FrozenSet[Pair]
    predicate: Predicate
    override: int

    def matches(self, pair: Pair, pts: LandmarkSet, thresholds: RuleThresholds) -> bool:
        return pair in self.pairs and self.predicate(pts, thresholds)


def _pairs(*items: Pair) -> FrozenSet[Pair]:
    return frozenset(items)


def _all_extended(p, t):
    return fingers_match(p, "UUUU")


def _thumb_right_of_index_base(p, t):
    return p[INDEX_MCP].x < p[THUMB_TIP].x


def _open_curve_left(p, t):
    return _x_greater_than_all(p, WRIST, (INDEX_TIP, THUMB_TIP, MIDDLE_TIP, RING_TIP, PINKY_TIP)) and (
        p[INDEX_MCP].x > p[THUMB_TIP].x
    )


def _index_ring_close(p, t):
    return distance(p[INDEX_TIP], p[RING_TIP]) < t.index_ring_close


def _index_pointing_sideways(p, t):
    return (
        finger_extended(p, "index")
        and finger_folded(p, "ring")
        and finger_folded(p, "pinky")
        and _x_less_than_all(p, WRIST, FINGER_TIPS)
    )


def _thumb_right_of_wrist(p, t):
    return p[THUMB_TIP].x > p[WRIST].x


def _thumb_base_above_ring_tip(p, t):
    return p[THUMB_MCP].y + t.thumb_base_margin < p[RING_TIP].y


def _thumb_far_from_middle(p, t):
    return distance(p[THUMB_TIP], p[MIDDLE_DIP]) > t.thumb_middle_dip_far


def _index_only_thumb_out(p, t):
    return distance(p[THUMB_TIP], p[MIDDLE_DIP]) > t.thumb_middle_dip_near and fingers_match(p, "UDDD")


def _thumb_left_of_wrist(p, t):
    return p[THUMB_TIP].x < p[WRIST].x


def _thumb_base_left_of_middle_tip(p, t):
    return p[THUMB_CMC].x < p[MIDDLE_TIP].x


def _index_only_thumb_low(p, t):
    return fingers_match(p, "UDDD") and p[THUMB_TIP].y > p[MIDDLE_PIP].y


def _thumb_level_with_tips(p, t):
    return all(p[THUMB_TIP].y + t.thumb_above_margin > p[tip].y for tip in FINGER_TIPS)


def _fingers_right_of_wrist(p, t):
    return _x_less_than_all(p, WRIST, FINGER_TIPS)


def _thumb_ip_left_of_wrist(p, t):
    return p[THUMB_IP].x < p[WRIST].x


def _index_folded(p, t):
    return finger_folded(p, "index")


def _pinky_extended(p, t):
    return finger_extended(p, "pinky")


def _index_base_right_of_ring_tip(p, t):
    return p[INDEX_MCP].x > p[RING_TIP].x


def _pinky_folded_index_high(p, t):
    return finger_folded(p, "pinky") and p[INDEX_TIP].y < p[MIDDLE_PIP].y


def _index_ring_apart(p, t):
    return distance(p[INDEX_TIP], p[RING_TIP]) > t.index_ring_apart


def _thumb_near_middle(p, t):
    return distance(p[THUMB_TIP], p[MIDDLE_DIP]) < t.thumb_middle_dip_x


def _thumb_left_of_index_base(p, t):
    return p[INDEX_MCP].x - p[THUMB_TIP].x - t.thumb_index_base_margin > 0


def _three_down_index_up(p, t):
    return fingers_match(p, "DUUU")


def _middle_ring_pinky_up(p, t):
    return fingers_match(p, "-UUU")


def _index_up_thumb_tucked(p, t):
    return fingers_match(p, "UDDD") and p[THUMB_MCP].x < p[WRIST].x and p[THUMB_TIP].y > p[RING_PIP].y


def _index_up_thumb_close(p, t):
    return distance(p[THUMB_TIP], p[MIDDLE_DIP]) < t.thumb_middle_dip_near and fingers_match(p, "UDDD")


def _thumb_not_left_of_index_base(p, t):
    return p[INDEX_MCP].x - p[THUMB_TIP].x - t.thumb_index_base_margin < 0


def _pinky_only(p, t):
    return fingers_match(p, "DDDU")


def _pinky_only_thumb_in(p, t):
    return p[THUMB_TIP].x < p[INDEX_MCP].x + t.thumb_index_base_margin and fingers_match(p, "DDDU")


def _two_up_thumb_low(p, t):
    return fingers_match(p, "UUDD") and p[THUMB_TIP].y > p[RING_PIP].y


def _tips_straddle_wrist(p, t):
    tips_right = _x_less_than_all(p, WRIST, FINGER_TIPS, margin=t.wrist_fudge)
    tips_left = _x_greater_than_all(p, WRIST, FINGER_TIPS)
    return not tips_right and not tips_left and distance(p[THUMB_TIP], p[MIDDLE_DIP]) < t.thumb_middle_dip_near


def _three_up(p, t):
    return fingers_match(p, "UUU-")


RULES: Tuple[Rule, ...] = (
    Rule(
        "fingers-up-to-fist",
        _pairs(
            (5, 2), (5, 3), (3, 5), (3, 6), (3, 0), (3, 2), (6, 4), (6, 1), (6, 2), (6, 6), (6, 7), (6, 0),
            (6, 5), (4, 1), (1, 0), (1, 1), (6, 3), (1, 6), (5, 6), (5, 1), (4, 5), (1, 4), (1, 5), (2, 0),
            (2, 6), (4, 6), (5, 7), (7, 6), (2, 5), (7, 1), (5, 4), (7, 0), (7, 5), (7, 2),
        ),
        _all_extended,
        Group.AEMNST,
    ),
    Rule("o-to-s", _pairs((2, 2), (2, 1)), _thumb_right_of_index_base, Group.AEMNST),
    Rule(
        "fist-to-c",
        _pairs((0, 0), (0, 6), (0, 2), (0, 5), (0, 1), (0, 7), (5, 2), (7, 6), (7, 1)),
        _open_curve_left,
        Group.CO,
    ),
    Rule("x-to-o", _pairs((6, 0), (6, 6), (6, 2)), _index_ring_close, Group.CO),
    Rule("b-to-g", _pairs((1, 4), (1, 5), (1, 6), (1, 3), (1, 0)), _index_pointing_sideways, Group.GH),
    Rule("l-to-g", _pairs((4, 6), (4, 1), (4, 5), (4, 3), (4, 7)), _thumb_right_of_wrist, Group.GH),
    Rule(
        "p-to-h",
        _pairs((5, 3), (5, 0), (5, 7), (5, 4), (5, 2), (5, 1), (5, 5)),
        _thumb_base_above_ring_tip,
        Group.GH,
    ),
    Rule("x-to-l", _pairs((6, 4), (6, 1), (6, 2)), _thumb_far_from_middle, Group.L),
    Rule("d-to-l", _pairs((1, 4), (1, 6), (1, 1)), _index_only_thumb_out, Group.L),
    Rule("g-to-l", _pairs((3, 6), (3, 4)), _thumb_left_of_wrist, Group.L),
    Rule("c-to-l", _pairs((2, 2), (2, 5), (2, 4)), _thumb_base_left_of_middle_tip, Group.L),
    Rule("g-to-p", _pairs((3, 6), (3, 5), (3, 4)), _index_only_thumb_low, Group.PQZ),
    Rule("h-to-p", _pairs((3, 2), (3, 1), (3, 6)), _thumb_level_with_tips, Group.PQZ),
    Rule("l-to-p", _pairs((4, 4), (4, 5), (4, 2), (7, 5), (7, 6), (7, 0)), _thumb_right_of_wrist, Group.PQZ),
    Rule(
        "fist-to-q",
        _pairs((0, 2), (0, 6), (0, 1), (0, 5), (0, 0), (0, 7), (0, 4), (0, 3), (2, 7)),
        _fingers_right_of_wrist,
        Group.PQZ,
    ),
    Rule("p-to-j", _pairs((5, 7), (5, 2), (5, 6)), _thumb_ip_left_of_wrist, Group.JY),
    Rule("l-to-y", _pairs((4, 6), (4, 2), (4, 4), (4, 1), (4, 5), (4, 7)), _index_folded, Group.JY),
    Rule(
        "pinky-up-to-y",
        _pairs((6, 7), (0, 7), (0, 1), (0, 0), (6, 4), (6, 6), (6, 5), (6, 1)),
        _pinky_extended,
        Group.JY,
    ),
    Rule("fist-to-x", _pairs((0, 4), (0, 2), (0, 3), (0, 1), (0, 6)), _index_base_right_of_ring_tip, Group.X),
    Rule("y-to-x", _pairs((7, 2),), _pinky_folded_index_high, Group.X),
    Rule("o-to-x", _pairs((2, 1), (2, 2), (2, 6), (2, 7), (2, 0)), _index_ring_apart, Group.X),
    Rule("l-to-x", _pairs((4, 6), (4, 2), (4, 1), (4, 4)), _thumb_near_middle, Group.X),
    Rule("d-to-x", _pairs((1, 4), (1, 6), (1, 0), (1, 2)), _thumb_left_of_index_base, Group.X),
    Rule(
        "open-palm-to-b",
        # Other open-palm pairs are taken by fingers-up-to-fist, which has the same test.
        _pairs((5, 0), (5, 5), (0, 2), (7, 4)),
        _all_extended,
        Group.BDFIKRUVW,
    ),
    Rule(
        "three-up-to-f",
        _pairs(
            (6, 1), (6, 0), (0, 3), (6, 4), (2, 2), (0, 6), (6, 2), (7, 6), (4, 6), (4, 1), (4, 2), (0, 2),
            (7, 1), (7, 4), (6, 6), (7, 2), (7, 5),
        ),
        _three_down_index_up,
        Group.BDFIKRUVW,
    ),
    Rule("three-up-any-index", _pairs((6, 1), (6, 0), (4, 2), (4, 1), (4, 6), (4, 4)), _middle_ring_pinky_up, Group.BDFIKRUVW),
    Rule(
        "index-up-to-d",
        _pairs((5, 0), (3, 4), (3, 0), (3, 1), (3, 5), (5, 5), (5, 4), (5, 1), (7, 6)),
        _index_up_thumb_tucked,
        Group.BDFIKRUVW,
    ),
    Rule("l-to-d", _pairs((4, 1), (4, 2), (4, 4)), _index_up_thumb_close, Group.BDFIKRUVW),
    Rule("g-to-d", _pairs((3, 4), (3, 0), (3, 1), (3, 5), (3, 6)), _index_up_thumb_tucked, Group.BDFIKRUVW),
    Rule("x-to-b", _pairs((6, 6), (6, 4), (6, 1), (6, 2)), _thumb_not_left_of_index_base, Group.BDFIKRUVW),
    Rule(
        "pinky-up-to-i",
        _pairs((5, 4), (5, 5), (5, 1), (0, 3), (0, 7), (5, 0), (0, 2), (6, 2), (7, 5), (7, 1), (7, 6), (7, 7)),
        _pinky_only,
        Group.BDFIKRUVW,
    ),
    Rule("i-to-j", _pairs((1, 5), (1, 7), (1, 1), (1, 6), (1, 3), (1, 0)), _pinky_only_thumb_in, Group.JY),
    Rule(
        "two-up-to-u",
        _pairs((5, 5), (5, 0), (5, 4), (5, 1), (4, 6), (4, 1), (7, 6), (3, 0), (3, 5)),
        _two_up_thumb_low,
        Group.BDFIKRUVW,
    ),
    Rule(
        "straddle-to-b",
        _pairs((3, 5), (3, 0), (3, 6), (5, 1), (4, 1), (2, 0), (5, 0), (5, 5)),
        _tips_straddle_wrist,
        Group.BDFIKRUVW,
    ),
    Rule("three-up-to-w", _pairs((5, 0), (5, 5), (0, 1)), _three_up, Group.BDFIKRUVW),
)


def apply_rules(
    g1: int,
    g2: int,
    landmarks: LandmarkSet,
    thresholds: RuleThresholds = DEFAULT_THRESHOLDS,
    rules: Sequence[Rule] = RULES,
) -> int:
    pair = (g1, g2)
    for rule in rules:
        if rule.matches(pair, landmarks, thresholds):
            return int(rule.override)
    return g1


def matching_rule(
    g1: int,
    g2: int,
    landmarks: LandmarkSet,
    thresholds: RuleThresholds = DEFAULT_THRESHOLDS,
    rules: Sequence[Rule] = RULES,
) -> Optional[Rule]:
    """The rule `apply_rules` would apply, or None."""
    pair = (g1, g2)
    for rule in rules:
        if rule.matches(pair, landmarks, thresholds):
            return rule
    return None


# ---------------------------------------------------------------------------
# Per-group letter trees
# ---------------------------------------------------------------------------


def resolve_group_0(p: LandmarkSet, t: RuleThresholds) -> str:
    # Later matches take precedence.
    thumb = p[THUMB_TIP]
    ch = "S"
    if all(thumb.x < p[j].x for j in FINGER_PIPS):
        ch = "A"
    if (
        thumb.x > p[INDEX_PIP].x
        and all(thumb.x < p[j].x for j in (MIDDLE_PIP, RING_PIP, PINKY_PIP))
        and thumb.y < p[RING_PIP].y
        and thumb.y < p[PINKY_PIP].y
    ):
        ch = "T"
    if all(thumb.y > p[tip].y for tip in FINGER_TIPS):
        ch = "E"
    if all(thumb.x > p[j].x for j in (INDEX_PIP, MIDDLE_PIP, RING_PIP)) and thumb.y < p[PINKY_PIP].y:
        ch = "M"
    if (
        thumb.x > p[INDEX_PIP].x
        and thumb.x > p[MIDDLE_PIP].x
        and thumb.y < p[PINKY_PIP].y
        and thumb.y < p[RING_PIP].y
    ):
        ch = "N"
    return ch


def _index_middle_spread(p: LandmarkSet) -> float:
    return distance(p[INDEX_TIP], p[MIDDLE_TIP]) - distance(p[INDEX_PIP], p[MIDDLE_PIP])


def resolve_group_1(p: LandmarkSet, t: RuleThresholds) -> str:
    # Later matches take precedence; K/U/V/R all refine the two-finger shape.
    ch = "B"
    if fingers_match(p, "UUUU"):
        ch = "B"
    if fingers_match(p, "UDDD"):
        ch = "D"
    if fingers_match(p, "DUUU"):
        ch = "F"
    if fingers_match(p, "DDDU"):
        ch = "I"
    if fingers_match(p, "UUUD"):
        ch = "W"
    two_up = fingers_match(p, "UUDD")
    if two_up and p[THUMB_TIP].y < p[MIDDLE_MCP].y:
        ch = "K"
    if two_up and _index_middle_spread(p) < t.uv_spread:
        ch = "U"
    if two_up and _index_middle_spread(p) >= t.uv_spread and p[THUMB_TIP].y > p[MIDDLE_MCP].y:
        ch = "V"
    if two_up and p[INDEX_TIP].x > p[MIDDLE_TIP].x:
        ch = "R"
    return ch


def resolve_group_2(p: LandmarkSet, t: RuleThresholds) -> str:
    return "C" if distance(p[MIDDLE_TIP], p[THUMB_TIP]) > t.c_vs_o else "O"


def resolve_group_3(p: LandmarkSet, t: RuleThresholds) -> str:
    return "G" if distance(p[INDEX_TIP], p[MIDDLE_TIP]) > t.g_vs_h else "H"


def resolve_group_4(p: LandmarkSet, t: RuleThresholds) -> str:
    return "L"


def resolve_group_5(p: LandmarkSet, t: RuleThresholds) -> str:
    if _x_greater_than_all(p, THUMB_TIP, (MIDDLE_TIP, RING_TIP, PINKY_TIP)):
        return "Z" if p[INDEX_TIP].y < p[INDEX_MCP].y else "Q"
    return "P"


def resolve_group_6(p: LandmarkSet, t: RuleThresholds) -> str:
    return "X"


def resolve_group_7(p: LandmarkSet, t: RuleThresholds) -> str:
    return "Y" if distance(p[INDEX_TIP], p[THUMB_TIP]) > t.j_vs_y else "J"


RESOLVERS: Dict[Group, Callable[[LandmarkSet, RuleThresholds], str]] = {
    Group.AEMNST: resolve_group_0,
    Group.BDFIKRUVW: resolve_group_1,
    Group.CO: resolve_group_2,
    Group.GH: resolve_group_3,
    Group.L: resolve_group_4,
    Group.PQZ: resolve_group_5,
    Group.X: resolve_group_6,
    Group.JY: resolve_group_7,
}

# Fallback letter per group when nothing more specific matches.
GROUP_DEFAULTS: Dict[Group, str] = {
    Group.AEMNST: "S",
    Group.BDFIKRUVW: "B",
    Group.CO: "O",
    Group.GH: "H",
    Group.L: "L",
    Group.PQZ: "P",
    Group.X: "X",
    Group.JY: "J",
}


def resolve_character(group: int, landmarks: LandmarkSet, thresholds: RuleThresholds = DEFAULT_THRESHOLDS) -> str:
    try:
        key = Group(group)
    except ValueError:
        raise ValueError(f"Unknown classification group: {group}") from None
    return RESOLVERS[key](landmarks, thresholds)


def disambiguate(
    probabilities: Sequence[float],
    raw_landmarks: LandmarkSet,
    thresholds: Optional[RuleThresholds] = None,
) -> str:
    """Pure function: (group scores, pixel-space landmarks) -> letter."""

    t = thresholds if thresholds is not None else DEFAULT_THRESHOLDS
    g1, g2 = top_two(probabilities)
    group = apply_rules(g1, g2, raw_landmarks, t)
    return resolve_character(group, raw_landmarks, t)
