from __future__ import annotations
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pushup_tracker.common.events import EventType, PhaseEvent, RepEvent, SessionEvent
from pushup_tracker.counter.feedback import FrameResult, guidance_text
from pushup_tracker.counter.landmarks import coerce_frame
from pushup_tracker.counter.pipeline import Phase, RepConfig, RepStateMachine, Step
from pushup_tracker.counter.pose_core import SideSelector, extract_angle, visibility_gate
from pushup_tracker.counter.timer import SessionTimer

logger = logging.getLogger(__name__)

MAX_NOTES = 500


class SessionStateError(RuntimeError):
    """Raised when a finished or cancelled session is used again."""


def _to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


@dataclass(frozen=True)
class SessionRecord:
    count: int
    started_at: datetime
    ended_at: datetime
    duration_sec: int
    notes: str = ""

    def __post_init__(self):
        if not isinstance(self.count, int) or self.count < 0:
            raise ValueError("count must be a non-negative integer")
        if self.ended_at < self.started_at:
            raise ValueError("ended_at must not be before started_at")
        if self.duration_sec < 0:
            raise ValueError("duration_sec must be non-negative")
        if len(self.notes) > MAX_NOTES:
            raise ValueError(f"notes cannot exceed {MAX_NOTES} characters")

    @classmethod
    def build(cls, count: int, started_at: datetime, ended_at: datetime, notes: str = "") -> "SessionRecord":
        duration = round((ended_at - started_at).total_seconds())
        return cls(count=count, started_at=started_at, ended_at=ended_at,
                   duration_sec=max(0, duration), notes=(notes or "").strip())

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "startedAt": self.started_at.isoformat(),
            "endedAt": self.ended_at.isoformat(),
            "durationSec": self.duration_sec,
            "notes": self.notes,
        }


Reporter = Callable[[SessionRecord], Any]
EventSink = Callable[[dict], None]


class PushupSession:
    """
    One counting session: visibility gate -> angle -> state machine -> timer.

    Frames are processed synchronously, one at a time. Use as a context
    manager so the transient state is always released; leaving the block
    without ``finish`` cancels the session.
    """

    def __init__(
        self,
        cfg: Optional[RepConfig] = None,
        reporter: Optional[Reporter] = None,
        event_sink: Optional[EventSink] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cfg = cfg or RepConfig()
        self.session_id = session_id or str(uuid.uuid4())
        self.reporter = reporter
        self._event_sink = event_sink
        self._clock = clock
        self.machine = RepStateMachine(self.cfg, debug_cb=self._emit)
        self.timer = SessionTimer(setup_ms=self.cfg.setup_ms)
        self.sides = SideSelector(margin=self.cfg.side_switch_margin, latch=self.cfg.latch_side)
        self.started_ts: Optional[float] = None
        self.state = "idle"
        self.last_angle = 0.0
        self.last_side: Optional[str] = None
        self.last_result: Optional[FrameResult] = None
        self.record: Optional[SessionRecord] = None

    # ---- lifecycle ----

    @property
    def active(self) -> bool:
        return self.state == "running"

    @property
    def phase(self) -> Phase:
        return self.machine.phase

    @property
    def count(self) -> int:
        return self.machine.count

    def _now(self, now: Optional[float]) -> float:
        return float(now) if now is not None else self._clock()

    def start(self, now: Optional[float] = None) -> "PushupSession":
        if self.state != "idle":
            raise SessionStateError(f"session {self.session_id} already {self.state}")
        t = self._now(now)
        self.started_ts = t
        self.state = "running"
        logger.info("session %s started (setup %d ms)", self.session_id, self.cfg.setup_ms)
        self._emit(SessionEvent(EventType.SESSION_STARTED, self.session_id, t).to_dict())
        self.timer.begin_setup(t)
        self.machine.start(t)
        return self

    def finish(self, now: Optional[float] = None, notes: str = "") -> SessionRecord:
        """Stop & save: build the record and hand it to the reporter."""
        self._require_active()
        t = self._now(now)
        self.timer.stop(t)
        start_ts = self.timer.active_started if self.timer.active_started is not None else self.started_ts
        record = SessionRecord.build(
            count=self.count,
            started_at=_to_datetime(start_ts),
            ended_at=_to_datetime(max(t, start_ts)),
            notes=notes,
        )
        self.record = record
        self._release("finished")
        logger.info("session %s finished: %d reps in %ds", self.session_id, record.count, record.duration_sec)
        self._emit(SessionEvent(EventType.SESSION_STOPPED, self.session_id, t, count=record.count).to_dict())
        if self.reporter is not None:
            self.reporter(record)
        return record

    def cancel(self, now: Optional[float] = None):
        if self.state != "running":
            return
        t = self._now(now)
        self.timer.stop(t)
        count = self.count
        self._release("cancelled")
        logger.info("session %s cancelled at %d reps", self.session_id, count)
        self._emit(SessionEvent(EventType.SESSION_CANCELLED, self.session_id, t, count=count).to_dict())

    def _release(self, final_state: str):
        self.machine.reset()
        self.sides.reset()
        self.state = final_state

    def _require_active(self):
        if self.state != "running":
            raise SessionStateError(f"session {self.session_id} is {self.state}")

    def __enter__(self) -> "PushupSession":
        if self.state == "idle":
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cancel()
        return False

    # ---- per-frame work ----

    def push_frame(self, raw: Any, now: Optional[float] = None) -> FrameResult:
        self._require_active()
        t = self._now(now)
        frame = coerce_frame(raw)
        gate = visibility_gate(frame, self.cfg.visibility_threshold, self.cfg.min_upper_visible)
        sample = None
        if gate.trackable:
            sample = extract_angle(frame, self.sides.pick(frame))
        if sample is not None:
            self.last_angle = sample.angle_deg
            self.last_side = sample.side
        prev = self.machine.phase
        step = self.machine.step(sample.angle_deg if sample else None, sample is not None, t)
        self._after_step(step, prev, t)
        self.last_result = self._result(t, sample is not None, gate.visibility_pct, step.rep_completed)
        return self.last_result

    def tick(self, now: Optional[float] = None) -> FrameResult:
        """Fixed-rate time update, independent of frame arrival."""
        self._require_active()
        t = self._now(now)
        prev = self.machine.phase
        step = self.machine.tick(t)
        self._after_step(step, prev, t)
        last = self.last_result
        trackable = last.trackable if last else False
        pct = last.visibility_pct if last else 0
        return self._result(t, trackable, pct, False)

    def _after_step(self, step: Step, prev: Phase, t: float):
        if step.clock_started and self.timer.start_clock(t):
            logger.info("session %s clock started", self.session_id)
            self._emit(SessionEvent(EventType.CLOCK_STARTED, self.session_id, t).to_dict())
        if step.state.phase is not prev:
            self._emit(PhaseEvent(EventType.PHASE, self.session_id, t, step.state.phase.value, prev.value).to_dict())
        if step.rep_completed:
            self._emit(RepEvent(EventType.REP, self.session_id, t, step.state.count,
                                round(self.last_angle, 1), self.last_side or "right").to_dict())

    def _result(self, t: float, trackable: bool, pct: int, rep_completed: bool) -> FrameResult:
        phase = self.machine.phase
        return FrameResult(
            phase=phase,
            angle_deg=self.last_angle,
            count=self.machine.count,
            visibility_pct=pct,
            guidance_text=guidance_text(phase, trackable, pct),
            trackable=trackable,
            side=self.last_side,
            rep_completed=rep_completed,
            setup_remaining=self.timer.setup_remaining(t),
            duration_sec=self.timer.duration_sec(t),
        )

    def _emit(self, ev: dict):
        if self._event_sink is None:
            return
        try:
            self._event_sink(ev)
        except Exception:
            logger.warning("event sink failed for %s", ev.get("type"), exc_info=True)


@dataclass
class SessionStatus:
    session_id: str
    state: str
    phase: str
    count: int
    duration_sec: int
    setup_remaining: int


class RepSessionManager:
    """Host-side controller: owns at most one live session at a time."""

    def __init__(self, cfg: Optional[RepConfig] = None, reporter: Optional[Reporter] = None,
                 clock: Callable[[], float] = time.time):
        self.cfg = cfg or RepConfig()
        self.reporter = reporter
        self._clock = clock
        self.active: Optional[PushupSession] = None
        self._event_sink: Optional[EventSink] = None

    @property
    def active_id(self) -> Optional[str]:
        return self.active.session_id if self.active else None

    def set_event_sink(self, sink: Optional[EventSink]):
        self._event_sink = sink

    def _emit(self, ev: dict):
        # late-bound so a sink set after start still receives events
        if self._event_sink is None:
            return
        self._event_sink(ev)

    def start(self, now: Optional[float] = None) -> PushupSession:
        # drop any session that was left running
        if self.active is not None:
            logger.info("cancelling session %s before starting a new one", self.active.session_id)
            self.cancel(now)
        session = PushupSession(self.cfg, reporter=self.reporter, event_sink=self._emit, clock=self._clock)
        session.start(now)
        self.active = session
        return session

    def push_frame(self, raw: Any, now: Optional[float] = None) -> Optional[FrameResult]:
        if self.active is None:
            return None
        return self.active.push_frame(raw, now)

    def tick(self, now: Optional[float] = None) -> Optional[FrameResult]:
        if self.active is None:
            return None
        return self.active.tick(now)

    def stop(self, now: Optional[float] = None, notes: str = "") -> SessionRecord:
        if self.active is None:
            raise SessionStateError("no active session")
        session, self.active = self.active, None
        try:
            return session.finish(now, notes=notes)
        finally:
            session.cancel(now)

    def cancel(self, now: Optional[float] = None) -> Optional[str]:
        if self.active is None:
            return None
        session, self.active = self.active, None
        session.cancel(now)
        return session.session_id

    def status(self) -> SessionStatus:
        s = self.active
        if s is None:
            return SessionStatus(session_id="", state="idle", phase=Phase.SETUP.value, count=0,
                                 duration_sec=0, setup_remaining=0)
        t = self._clock()
        return SessionStatus(
            session_id=s.session_id,
            state=s.state,
            phase=s.phase.value,
            count=s.count,
            duration_sec=s.timer.duration_sec(t),
            setup_remaining=s.timer.setup_remaining(t),
        )
