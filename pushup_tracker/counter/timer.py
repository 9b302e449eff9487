from __future__ import annotations
import math
from typing import Optional


class SessionTimer:
    """Setup countdown plus the active duration clock.

    The duration clock starts once, on the first setup->waiting transition,
    and is frozen by ``stop``. All times are seconds on the caller's clock.
    """

    def __init__(self, setup_ms: int = 5000):
        self.setup_ms = setup_ms
        self.setup_started: Optional[float] = None
        self.active_started: Optional[float] = None
        self.stopped_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self.setup_started is not None and self.stopped_at is None

    def begin_setup(self, now: float):
        self.setup_started = now
        self.active_started = None
        self.stopped_at = None

    def start_clock(self, now: float) -> bool:
        if self.active_started is not None or self.stopped_at is not None:
            return False
        self.active_started = now
        return True

    def stop(self, now: float):
        if self.stopped_at is None:
            self.stopped_at = now

    def setup_remaining(self, now: float) -> int:
        """Whole seconds left in the countdown (0 once the clock is running)."""
        if self.setup_started is None or self.active_started is not None or self.stopped_at is not None:
            return 0
        left = self.setup_ms / 1000.0 - (now - self.setup_started)
        return max(0, math.ceil(left - 1e-9))

    def elapsed(self, now: float) -> float:
        if self.active_started is None:
            return 0.0
        end = self.stopped_at if self.stopped_at is not None else now
        return max(0.0, end - self.active_started)

    def duration_sec(self, now: float) -> int:
        return int(self.elapsed(now))


def format_duration(seconds: int) -> str:
    """mm:ss for the live display."""
    mins, secs = divmod(max(0, int(seconds)), 60)
    return f"{mins:02d}:{secs:02d}"
