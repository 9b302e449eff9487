from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from pushup_tracker.counter.pipeline import RepConfig

# Load environment variables from .env file
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    db_path: Path = Path("./pushups.db")
    setup_ms: int = 5000
    min_hold_ms: int = 300
    visibility_threshold: float = 0.6
    tick_ms: int = 250
    daily_goal: int = 50
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=Path(os.getenv("PUSHUP_DB_PATH", "./pushups.db")),
            setup_ms=_env_int("PUSHUP_SETUP_MS", 5000),
            min_hold_ms=_env_int("PUSHUP_MIN_HOLD_MS", 300),
            visibility_threshold=_env_float("PUSHUP_VIS_THRESHOLD", 0.6),
            tick_ms=max(10, _env_int("PUSHUP_TICK_MS", 250)),
            daily_goal=max(0, _env_int("PUSHUP_DAILY_GOAL", 50)),
            log_level=os.getenv("PUSHUP_LOG_LEVEL", "INFO").upper(),
        )

    def rep_config(self) -> RepConfig:
        return RepConfig(
            setup_ms=self.setup_ms,
            min_hold_ms=self.min_hold_ms,
            visibility_threshold=self.visibility_threshold,
        )
