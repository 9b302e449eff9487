from __future__ import annotations
from dataclasses import asdict, dataclass
from enum import Enum


class EventType(str, Enum):
    SESSION_STARTED = "session_started"
    CLOCK_STARTED = "clock_started"
    SESSION_STOPPED = "session_stopped"
    SESSION_CANCELLED = "session_cancelled"
    PHASE = "phase"
    REP = "rep"
    TRACE = "trace"


@dataclass
class SessionEvent:
    type: EventType
    session_id: str
    ts: float
    count: int = 0

    def to_dict(self) -> dict:
        out = asdict(self)
        out["type"] = self.type.value
        return out


@dataclass
class PhaseEvent:
    type: EventType
    session_id: str
    ts: float
    phase: str
    previous: str

    def to_dict(self) -> dict:
        out = asdict(self)
        out["type"] = self.type.value
        return out


@dataclass
class RepEvent:
    type: EventType
    session_id: str
    ts: float
    count: int
    angle_deg: float
    side: str = "right"

    def to_dict(self) -> dict:
        out = asdict(self)
        out["type"] = self.type.value
        return out
