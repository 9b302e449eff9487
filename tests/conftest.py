import math
from typing import Optional

import pytest

from pushup_tracker.counter.landmarks import ARM, FRAME_SIZE, KNEES, ANKLES, Landmark
from pushup_tracker.data import db


def _arm(elbow_x: float, angle_deg: float):
    """Shoulder straight above the elbow, wrist rotated so the elbow angle is ``angle_deg``."""
    ex, ey = elbow_x, 0.5
    shoulder = (ex, ey - 0.2)
    phi = math.radians(angle_deg - 90.0)
    wrist = (ex + 0.2 * math.cos(phi), ey + 0.2 * math.sin(phi))
    return shoulder, (ex, ey), wrist


def build_landmarks(
    angle: float,
    vis: float = 0.9,
    other_vis: float = 0.7,
    side: str = "left",
    leg_vis: Optional[float] = None,
):
    """33 landmark dicts with the given elbow angle on both arms.

    ``side`` gets ``vis`` on its arm, the other arm ``other_vis``.
    """
    lms = [{"x": 0.5, "y": 0.5, "z": 0.0, "visibility": vis} for _ in range(FRAME_SIZE)]
    for name, elbow_x in (("left", 0.45), ("right", 0.55)):
        points = _arm(elbow_x, angle)
        arm_vis = vis if name == side else other_vis
        for idx, (x, y) in zip(ARM[name], points):
            lms[idx] = {"x": x, "y": y, "z": 0.0, "visibility": arm_vis}
    if leg_vis is not None:
        for idx in KNEES + ANKLES:
            lms[idx] = dict(lms[idx], visibility=leg_vis)
    return lms


@pytest.fixture
def make_landmarks():
    return build_landmarks


@pytest.fixture
def uniform_frame():
    def _make(vis: float):
        return [Landmark(x=0.5, y=0.5, z=0.0, visibility=vis) for _ in range(FRAME_SIZE)]
    return _make


@pytest.fixture
def temp_db(tmp_path):
    path = tmp_path / "pushups.db"
    db.configure(path)
    yield path
    db.configure(tmp_path / "unused.db")
