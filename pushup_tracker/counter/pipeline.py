from __future__ import annotations
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# tolerance for float timestamps when comparing elapsed time with dwell limits
_EPS_MS = 1e-3


class Phase(str, Enum):
    SETUP = "setup"
    WAITING = "waiting"
    DOWN = "down"
    HOLDING = "holding"
    UP = "up"


@dataclass
class RepConfig:
    # Hysteresis bands (elbow angle, degrees)
    down_enter: float = 120.0
    down_exit: float = 125.0
    up_enter: float = 130.0
    up_exit: float = 125.0
    # Dwell / grace periods
    min_hold_ms: int = 300
    setup_ms: int = 5000
    # Visibility gate
    visibility_threshold: float = 0.6
    min_upper_visible: int = 4
    # Side selection (0 / False = recompute every frame)
    side_switch_margin: float = 0.0
    latch_side: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self):
        for name in ("down_enter", "down_exit", "up_enter", "up_exit"):
            value = getattr(self, name)
            if not 0.0 <= value <= 180.0:
                raise ValueError(f"{name} must be within [0, 180], got {value}")
        if self.down_enter > self.down_exit:
            raise ValueError("down_enter must not exceed down_exit")
        if self.up_exit > self.up_enter:
            raise ValueError("up_exit must not exceed up_enter")
        if self.min_hold_ms < 0:
            raise ValueError("min_hold_ms must be non-negative")
        if self.setup_ms < 0:
            raise ValueError("setup_ms must be non-negative")
        if not 0.0 <= self.visibility_threshold <= 1.0:
            raise ValueError("visibility_threshold must be within [0, 1]")
        if not 1 <= self.min_upper_visible <= 6:
            raise ValueError("min_upper_visible must be between 1 and 6")
        if self.side_switch_margin < 0:
            raise ValueError("side_switch_margin must be non-negative")


@dataclass(frozen=True)
class RepState:
    """Everything the counter remembers between frames (timestamps in seconds)."""
    phase: Phase = Phase.SETUP
    count: int = 0
    setup_started: float = 0.0
    down_started: Optional[float] = None
    paused_at: Optional[float] = None


@dataclass(frozen=True)
class Step:
    state: RepState
    rep_completed: bool = False
    clock_started: bool = False


def initial_state(now: float) -> RepState:
    return RepState(phase=Phase.SETUP, count=0, setup_started=now)


def _elapsed_ms(since: float, now: float) -> float:
    return (now - since) * 1000.0 + _EPS_MS


def transition(cfg: RepConfig, state: RepState, angle: Optional[float], trackable: bool, now: float) -> Step:
    """Advance the counter by one observation.

    Pure: returns a new state. At most one phase change happens per call, so
    waiting->holding and down->up can never be skipped. ``angle`` is ignored
    (and may be None) when the frame is not trackable.
    """
    if state.phase is Phase.SETUP:
        # wall clock, runs regardless of what the camera sees
        if _elapsed_ms(state.setup_started, now) >= cfg.setup_ms:
            return Step(replace(state, phase=Phase.WAITING), clock_started=True)
        return Step(state)

    if not trackable or angle is None:
        # freeze: keep phase, pause the dwell timer of an unconfirmed dip
        if state.phase is Phase.DOWN and state.paused_at is None:
            return Step(replace(state, paused_at=now))
        return Step(state)

    if state.paused_at is not None:
        # resume the dwell clock where it stopped
        shifted = state.down_started + (now - state.paused_at) if state.down_started is not None else None
        state = replace(state, down_started=shifted, paused_at=None)

    if state.phase is Phase.WAITING:
        if angle <= cfg.down_enter:
            return Step(replace(state, phase=Phase.DOWN, down_started=now))
        return Step(state)

    if state.phase is Phase.DOWN:
        if angle > cfg.down_exit:
            # bounce: left the band before the hold was confirmed
            return Step(replace(state, phase=Phase.WAITING, down_started=None))
        if _elapsed_ms(state.down_started, now) >= cfg.min_hold_ms:
            return Step(replace(state, phase=Phase.HOLDING))
        return Step(state)

    if state.phase is Phase.HOLDING:
        if angle >= cfg.up_enter:
            return Step(replace(state, phase=Phase.UP, count=state.count + 1, down_started=None), rep_completed=True)
        return Step(state)

    if state.phase is Phase.UP:
        if angle <= cfg.up_exit:
            return Step(replace(state, phase=Phase.WAITING))
        return Step(state)

    return Step(state)


class RepStateMachine:
    """
    Stateful wrapper around ``transition`` for one session.
    Emits "state→..." traces through ``debug_cb`` like the rest of the counter.
    """

    def __init__(self, cfg: Optional[RepConfig] = None, debug_cb: Optional[Callable[[dict], None]] = None):
        self.cfg = cfg or RepConfig()
        self._dbg = debug_cb or (lambda *_: None)
        self.state: Optional[RepState] = None

    @property
    def started(self) -> bool:
        return self.state is not None

    @property
    def phase(self) -> Phase:
        return self.state.phase if self.state else Phase.SETUP

    @property
    def count(self) -> int:
        return self.state.count if self.state else 0

    def start(self, now: float):
        self.state = initial_state(now)
        self._dbg({"type": "trace", "msg": f"state→{Phase.SETUP.value}"})

    def reset(self):
        self.state = None

    def step(self, angle: Optional[float], trackable: bool, now: float) -> Step:
        if self.state is None:
            raise RuntimeError("state machine not started")
        prev = self.state
        out = transition(self.cfg, prev, angle, trackable, now)
        self.state = out.state
        if out.state.phase is not prev.phase:
            logger.debug("phase %s -> %s (angle=%s)", prev.phase.value, out.state.phase.value, angle)
            self._dbg({"type": "trace", "msg": f"state→{out.state.phase.value}"})
        if out.rep_completed:
            logger.info("rep %d completed at %.1f°", out.state.count, angle)
        return out

    def tick(self, now: float) -> Step:
        """Time-only update; lets setup finish when no frames arrive."""
        if self.state is not None and self.state.phase is not Phase.SETUP:
            return Step(self.state)
        return self.step(None, False, now)
