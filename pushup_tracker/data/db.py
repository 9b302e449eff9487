from __future__ import annotations
import logging
import math
import sqlite3
import threading
import time
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pushup_tracker.counter.session import MAX_NOTES, SessionRecord

logger = logging.getLogger(__name__)

_DB_PATH = Path("./pushups.db")

SCHEMA = r"""
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS sessions (
  id TEXT PRIMARY KEY,
  count INTEGER NOT NULL CHECK (count >= 0),
  started_at REAL NOT NULL,
  ended_at REAL NOT NULL,
  duration_sec INTEGER NOT NULL DEFAULT 0,
  notes TEXT NOT NULL DEFAULT '',
  created_at REAL NOT NULL,
  updated_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_started ON sessions(started_at DESC);
"""

_conn: Optional[sqlite3.Connection] = None
_lock = threading.Lock()


class SessionNotFound(KeyError):
    """No stored session with the requested id."""


def configure(db_path: Path | str):
    """Point the data layer at another database file (closes the current connection)."""
    global _DB_PATH, _conn
    with _lock:
        if _conn is not None:
            _conn.close()
            _conn = None
        _DB_PATH = Path(db_path)


def get_conn() -> sqlite3.Connection:
    global _conn
    with _lock:
        if _conn is None:
            _DB_PATH.parent.mkdir(parents=True, exist_ok=True)
            _conn = sqlite3.connect(_DB_PATH.as_posix(), check_same_thread=False)
            _conn.row_factory = sqlite3.Row
            _conn.executescript(SCHEMA)
            _conn.commit()
            logger.info("opened session store at %s", _DB_PATH)
        return _conn


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def format_duration(seconds: int) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def _row_to_dict(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "count": row["count"],
        "started_at": _iso(row["started_at"]),
        "ended_at": _iso(row["ended_at"]),
        "duration_sec": row["duration_sec"],
        "duration_formatted": format_duration(row["duration_sec"]),
        "notes": row["notes"],
        "created_at": _iso(row["created_at"]),
        "updated_at": _iso(row["updated_at"]),
    }


def _duration(started_at: float, ended_at: float) -> int:
    return max(0, round(ended_at - started_at))

# Session writes

def insert_session(record: SessionRecord) -> dict:
    conn = get_conn()
    sid = uuid.uuid4().hex
    started = record.started_at.timestamp()
    ended = record.ended_at.timestamp()
    now = time.time()
    conn.execute(
        "INSERT INTO sessions (id, count, started_at, ended_at, duration_sec, notes, created_at, updated_at)"
        " VALUES (?,?,?,?,?,?,?,?)",
        (sid, record.count, started, ended, _duration(started, ended), record.notes, now, now),
    )
    conn.commit()
    logger.info("stored session %s (%d reps)", sid, record.count)
    return get_session(sid)


def update_session(
    session_id: str,
    count: Optional[int] = None,
    started_at: Optional[datetime] = None,
    ended_at: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> dict:
    if count is None and started_at is None and ended_at is None and notes is None:
        raise ValueError("At least one field must be provided for update")
    if count is not None and count < 0:
        raise ValueError("Count must be a non-negative integer")
    if notes is not None and len(notes) > MAX_NOTES:
        raise ValueError(f"Notes cannot exceed {MAX_NOTES} characters")

    conn = get_conn()
    row = conn.execute("SELECT * FROM sessions WHERE id=?", (session_id,)).fetchone()
    if row is None:
        raise SessionNotFound(session_id)
    new_count = row["count"] if count is None else count
    start = row["started_at"] if started_at is None else started_at.timestamp()
    end = row["ended_at"] if ended_at is None else ended_at.timestamp()
    if end < start:
        raise ValueError("endedAt must be after startedAt")
    new_notes = row["notes"] if notes is None else notes.strip()
    conn.execute(
        "UPDATE sessions SET count=?, started_at=?, ended_at=?, duration_sec=?, notes=?, updated_at=? WHERE id=?",
        (new_count, start, end, _duration(start, end), new_notes, time.time(), session_id),
    )
    conn.commit()
    return get_session(session_id)


def delete_session(session_id: str):
    conn = get_conn()
    cur = conn.execute("DELETE FROM sessions WHERE id=?", (session_id,))
    conn.commit()
    if cur.rowcount == 0:
        raise SessionNotFound(session_id)

# Reads

def get_session(session_id: str) -> dict:
    row = get_conn().execute("SELECT * FROM sessions WHERE id=?", (session_id,)).fetchone()
    if row is None:
        raise SessionNotFound(session_id)
    return _row_to_dict(row)


def list_sessions(page: int = 1, limit: int = 10) -> Tuple[List[dict], Dict[str, object]]:
    """Newest first. ``page`` is clamped to >= 1 and ``limit`` to 1..100."""
    page = max(1, int(page))
    limit = min(100, max(1, int(limit)))
    conn = get_conn()
    total = conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]
    rows = conn.execute(
        "SELECT * FROM sessions ORDER BY started_at DESC LIMIT ? OFFSET ?",
        (limit, (page - 1) * limit),
    ).fetchall()
    total_pages = math.ceil(total / limit)
    pagination = {
        "page": page,
        "limit": limit,
        "total_count": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
    return [_row_to_dict(r) for r in rows], pagination


def _daily_counts(conn: sqlite3.Connection) -> Dict[date, int]:
    days: Dict[date, int] = {}
    for row in conn.execute("SELECT started_at, count FROM sessions"):
        day = datetime.fromtimestamp(row["started_at"]).date()
        days[day] = days.get(day, 0) + row["count"]
    return days


def session_stats(daily_goal: int, now: Optional[datetime] = None) -> dict:
    """Today / this week (weeks start on Sunday) / all-time totals plus the daily streak.

    Days are local calendar days. The streak counts consecutive days with at
    least one rep, ending today, or yesterday when nothing was logged today.
    """
    now = now or datetime.now()
    today = now.date()
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    days = _daily_counts(get_conn())

    today_total = days.get(today, 0)
    week_total = sum(c for d, c in days.items() if week_start <= d < week_start + timedelta(days=7))
    total = sum(days.values())

    streak = 0
    active_days = sorted((d for d, c in days.items() if c > 0), reverse=True)[:365]
    cursor = today
    for i, day in enumerate(active_days):
        if day == cursor:
            streak += 1
            cursor -= timedelta(days=1)
        elif i == 0 and day == cursor - timedelta(days=1):
            streak += 1
            cursor = day - timedelta(days=1)
        else:
            break

    return {
        "today": today_total,
        "week": week_total,
        "total": total,
        "streak": streak,
        "goal_progress": round(today_total / daily_goal * 100) if daily_goal > 0 else 0,
    }


class SqliteSessionReporter:
    """Session reporter that persists finished sessions to the local store."""

    def __init__(self):
        self.last_saved: Optional[dict] = None

    def __call__(self, record: SessionRecord) -> dict:
        self.last_saved = insert_session(record)
        return self.last_saved
