from datetime import datetime, timedelta

import pytest

from pushup_tracker.counter.session import SessionRecord
from pushup_tracker.data import db


def _record(count, start, minutes=2, notes=""):
    return SessionRecord.build(count, start, start + timedelta(minutes=minutes), notes=notes)


def test_insert_and_get(temp_db):
    row = db.insert_session(_record(12, datetime(2024, 5, 15, 8, 0), minutes=1, notes=" easy "))
    assert row["count"] == 12
    assert row["duration_sec"] == 60
    assert row["duration_formatted"] == "1m 0s"
    assert row["notes"] == "easy"
    assert db.get_session(row["id"]) == row


def test_update_recomputes_duration(temp_db):
    start = datetime(2024, 5, 15, 8, 0)
    row = db.insert_session(_record(5, start))
    updated = db.update_session(row["id"], count=7, ended_at=start + timedelta(seconds=95), notes="  better ")
    assert updated["count"] == 7
    assert updated["duration_sec"] == 95
    assert updated["duration_formatted"] == "1m 35s"
    assert updated["notes"] == "better"


def test_update_rejects_bad_values(temp_db):
    start = datetime(2024, 5, 15, 8, 0)
    row = db.insert_session(_record(5, start))
    with pytest.raises(ValueError):
        db.update_session(row["id"])
    with pytest.raises(ValueError):
        db.update_session(row["id"], count=-1)
    with pytest.raises(ValueError):
        db.update_session(row["id"], ended_at=start - timedelta(minutes=1))
    with pytest.raises(ValueError):
        db.update_session(row["id"], notes="x" * 501)
    with pytest.raises(db.SessionNotFound):
        db.update_session("missing", count=1)


def test_delete(temp_db):
    row = db.insert_session(_record(3, datetime(2024, 5, 15, 8, 0)))
    db.delete_session(row["id"])
    with pytest.raises(db.SessionNotFound):
        db.get_session(row["id"])
    with pytest.raises(db.SessionNotFound):
        db.delete_session(row["id"])


def test_list_is_paginated_newest_first(temp_db):
    for day in (10, 11, 12):
        db.insert_session(_record(day, datetime(2024, 5, day, 8, 0)))
    rows, pagination = db.list_sessions(page=1, limit=2)
    assert [r["count"] for r in rows] == [12, 11]
    assert pagination == {
        "page": 1,
        "limit": 2,
        "total_count": 3,
        "total_pages": 2,
        "has_next": True,
        "has_prev": False,
    }
    rows, pagination = db.list_sessions(page=2, limit=2)
    assert [r["count"] for r in rows] == [10]
    assert not pagination["has_next"]
    assert pagination["has_prev"]


def test_list_clamps_arguments(temp_db):
    rows, pagination = db.list_sessions(page=0, limit=1000)
    assert rows == []
    assert pagination["page"] == 1
    assert pagination["limit"] == 100
    assert pagination["total_pages"] == 0


@pytest.fixture
def week_of_sessions(temp_db):
    # 2024-05-15 is a Wednesday; the week starts on Sunday the 12th
    for day, count in ((15, 10), (14, 5), (12, 7), (11, 4)):
        db.insert_session(_record(count, datetime(2024, 5, day, 9, 30)))


def test_stats(week_of_sessions):
    stats = db.session_stats(daily_goal=50, now=datetime(2024, 5, 15, 12, 0))
    assert stats == {"today": 10, "week": 22, "total": 26, "streak": 2, "goal_progress": 20}


def test_streak_survives_until_end_of_next_day(week_of_sessions):
    stats = db.session_stats(daily_goal=50, now=datetime(2024, 5, 16, 20, 0))
    assert stats["today"] == 0
    assert stats["streak"] == 2
    stats = db.session_stats(daily_goal=50, now=datetime(2024, 5, 17, 8, 0))
    assert stats["streak"] == 0


def test_stats_without_goal(temp_db):
    stats = db.session_stats(daily_goal=0, now=datetime(2024, 5, 15, 12, 0))
    assert stats["goal_progress"] == 0
    assert stats["total"] == 0


def test_reporter_persists_record(temp_db):
    reporter = db.SqliteSessionReporter()
    saved = reporter(_record(9, datetime(2024, 5, 15, 7, 0)))
    assert reporter.last_saved == saved
    assert db.get_session(saved["id"])["count"] == 9
