from __future__ import annotations
from dataclasses import asdict, dataclass
from typing import Optional

from pushup_tracker.counter.pipeline import Phase

LOW_VISIBILITY_PCT = 30

_PHASE_TEXT = {
    Phase.WAITING: "Ready - lower your chest",
    Phase.DOWN: "Down position - hold it",
    Phase.HOLDING: "Down position ✓ - push up",
    Phase.UP: "Up position ✓",
}


def guidance_text(phase: Phase, trackable: bool, visibility_pct: int) -> str:
    if phase is Phase.SETUP:
        if not trackable:
            return "Getting ready... step back so your whole body is in view"
        return "Getting ready... hold your starting position"
    if not trackable:
        if visibility_pct < LOW_VISIBILITY_PCT:
            return "Can't see you clearly"
        return "Move into better view - keep arms, knees and ankles visible"
    return _PHASE_TEXT[phase]


@dataclass(frozen=True)
class FrameResult:
    """Per-frame payload for the UI."""
    phase: Phase
    angle_deg: float
    count: int
    visibility_pct: int
    guidance_text: str
    trackable: bool = False
    side: Optional[str] = None
    rep_completed: bool = False
    setup_remaining: int = 0
    duration_sec: int = 0

    def to_dict(self) -> dict:
        out = asdict(self)
        out["phase"] = self.phase.value
        out["angle_deg"] = round(self.angle_deg, 1)
        return out
