from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Literal, Optional, Tuple

from pushup_tracker.counter.landmarks import ANKLES, ARM, BODY, KNEES, UPPER_BODY, Frame

Side = Literal["left", "right"]

# Utility math

def angle_3pt(a: Tuple[float, float], b: Tuple[float, float], c: Tuple[float, float]) -> float:
    """Return angle ABC in degrees with B as vertex."""
    ang = math.degrees(
        math.atan2(c[1] - b[1], c[0] - b[0]) - math.atan2(a[1] - b[1], a[0] - b[0])
    )
    ang = abs(ang)
    if ang > 180:
        ang = 360 - ang
    return ang


@dataclass(frozen=True)
class GateResult:
    trackable: bool
    visibility_pct: int


@dataclass(frozen=True)
class AngleSample:
    angle_deg: float
    side: Side


def visibility_gate(frame: Optional[Frame], threshold: float = 0.6, min_upper: int = 4) -> GateResult:
    """Decide whether a frame can be trusted for counting.

    Needs ``min_upper`` of the six arm landmarks plus at least one knee and one
    ankle above ``threshold``. The percentage is feedback only.
    """
    if frame is None:
        return GateResult(False, 0)

    def seen(idx: int) -> bool:
        return frame.visibility(idx) > threshold

    upper = sum(1 for idx in UPPER_BODY if seen(idx))
    knee = any(seen(idx) for idx in KNEES)
    ankle = any(seen(idx) for idx in ANKLES)
    mean_vis = sum(frame.visibility(idx) for idx in BODY) / len(BODY)
    pct = int(round(mean_vis * 100))
    return GateResult(trackable=upper >= min_upper and knee and ankle, visibility_pct=max(0, min(100, pct)))


def side_score(frame: Frame, side: Side) -> float:
    return sum(frame.visibility(idx) for idx in ARM[side])


class SideSelector:
    """Chooses which arm to measure.

    With the defaults this is the plain per-frame rule (higher visibility sum
    wins, ties go right). ``margin`` makes switching sticky and ``latch`` keeps
    the first choice for the rest of the session.
    """

    def __init__(self, margin: float = 0.0, latch: bool = False):
        self.margin = margin
        self.latch = latch
        self.current: Optional[Side] = None

    def pick(self, frame: Frame) -> Side:
        left = side_score(frame, "left")
        right = side_score(frame, "right")
        if self.current is None:
            chosen: Side = "left" if left > right else "right"
        elif self.latch:
            chosen = self.current
        else:
            other: Side = "right" if self.current == "left" else "left"
            mine = left if self.current == "left" else right
            theirs = right if self.current == "left" else left
            if self.margin > 0:
                chosen = other if theirs - mine >= self.margin else self.current
            else:
                chosen = "left" if left > right else "right"
        self.current = chosen
        return chosen

    def reset(self):
        self.current = None


def extract_angle(frame: Frame, side: Side) -> Optional[AngleSample]:
    """Elbow angle for one side, or None when a required landmark is missing."""
    shoulder, elbow, wrist = (frame.get(idx) for idx in ARM[side])
    if shoulder is None or elbow is None or wrist is None:
        return None
    return AngleSample(angle_deg=angle_3pt(shoulder.xy, elbow.xy, wrist.xy), side=side)
