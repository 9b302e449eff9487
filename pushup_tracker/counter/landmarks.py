from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

FRAME_SIZE = 33


class LandmarkIdx(IntEnum):
    """MediaPipe Pose landmark indices used by the counter."""
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28


UPPER_BODY = (
    LandmarkIdx.LEFT_SHOULDER, LandmarkIdx.RIGHT_SHOULDER,
    LandmarkIdx.LEFT_ELBOW, LandmarkIdx.RIGHT_ELBOW,
    LandmarkIdx.LEFT_WRIST, LandmarkIdx.RIGHT_WRIST,
)
HIPS = (LandmarkIdx.LEFT_HIP, LandmarkIdx.RIGHT_HIP)
KNEES = (LandmarkIdx.LEFT_KNEE, LandmarkIdx.RIGHT_KNEE)
ANKLES = (LandmarkIdx.LEFT_ANKLE, LandmarkIdx.RIGHT_ANKLE)
BODY = UPPER_BODY + HIPS + KNEES + ANKLES

# shoulder, elbow, wrist per side
ARM = {
    "left": (LandmarkIdx.LEFT_SHOULDER, LandmarkIdx.LEFT_ELBOW, LandmarkIdx.LEFT_WRIST),
    "right": (LandmarkIdx.RIGHT_SHOULDER, LandmarkIdx.RIGHT_ELBOW, LandmarkIdx.RIGHT_WRIST),
}


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: float = 0.0
    visibility: float = 0.0

    @property
    def xy(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Frame:
    """One pose estimate: 33 landmark slots, None where the source gave nothing usable."""
    landmarks: Tuple[Optional[Landmark], ...]

    def get(self, idx: int) -> Optional[Landmark]:
        if 0 <= idx < len(self.landmarks):
            return self.landmarks[idx]
        return None

    def visibility(self, idx: int) -> float:
        lm = self.get(idx)
        return lm.visibility if lm is not None else 0.0


def _num(value: Any) -> Optional[float]:
    try:
        f = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return f


def coerce_landmark(raw: Any) -> Optional[Landmark]:
    """Accept a dict, a (x, y, z, visibility) sequence or any object with those attributes."""
    if raw is None:
        return None
    if isinstance(raw, Landmark):
        return raw
    if isinstance(raw, dict):
        fields = (raw.get("x"), raw.get("y"), raw.get("z", 0.0), raw.get("visibility", 0.0))
    elif isinstance(raw, (list, tuple)):
        if len(raw) < 2:
            return None
        padded = list(raw) + [0.0] * (4 - len(raw))
        fields = tuple(padded[:4])
    else:
        fields = (
            getattr(raw, "x", None),
            getattr(raw, "y", None),
            getattr(raw, "z", 0.0),
            getattr(raw, "visibility", 0.0),
        )
    x, y, z, vis = (_num(v) for v in fields)
    if x is None or y is None:
        return None
    vis = 0.0 if vis is None else min(1.0, max(0.0, vis))
    return Landmark(x=x, y=y, z=z if z is not None else 0.0, visibility=vis)


def coerce_frame(raw: Any) -> Optional[Frame]:
    """Build a Frame from raw pose output.

    Returns None when the input is not a 33-element landmark sequence; single
    unreadable landmarks become empty slots (visibility 0) instead.
    """
    if isinstance(raw, Frame):
        return raw
    # mediapipe results carry the list under .landmark
    if raw is not None and hasattr(raw, "landmark"):
        raw = raw.landmark
    if raw is None or isinstance(raw, (str, bytes, dict)):
        return None
    try:
        items: Sequence[Any] = list(raw)
    except TypeError:
        logger.debug("frame is not iterable: %r", type(raw).__name__)
        return None
    if len(items) != FRAME_SIZE:
        logger.debug("frame has %d landmarks, expected %d", len(items), FRAME_SIZE)
        return None
    return Frame(landmarks=tuple(coerce_landmark(item) for item in items))
