from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pushup_tracker.counter.session import MAX_NOTES


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # naive timestamps are read as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SessionCreate(_CamelModel):
    """
    Payload for saving a finished session (same field names as the web client sends).
    """
    count: int = Field(..., ge=0, description="Completed repetitions.")
    started_at: Optional[datetime] = Field(None, alias="startedAt")
    ended_at: Optional[datetime] = Field(None, alias="endedAt")
    notes: str = Field("", max_length=MAX_NOTES)

    @field_validator("started_at", "ended_at")
    @classmethod
    def timestamps_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @model_validator(mode="after")
    def ended_after_started(self) -> "SessionCreate":
        if self.started_at and self.ended_at and self.ended_at < self.started_at:
            raise ValueError("endedAt must be after startedAt")
        return self


class SessionUpdate(_CamelModel):
    count: Optional[int] = Field(None, ge=0)
    started_at: Optional[datetime] = Field(None, alias="startedAt")
    ended_at: Optional[datetime] = Field(None, alias="endedAt")
    notes: Optional[str] = Field(None, max_length=MAX_NOTES)

    @field_validator("started_at", "ended_at")
    @classmethod
    def timestamps_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @model_validator(mode="after")
    def has_changes(self) -> "SessionUpdate":
        if self.count is None and self.started_at is None and self.ended_at is None and self.notes is None:
            raise ValueError("At least one field must be provided for update")
        if self.started_at and self.ended_at and self.ended_at < self.started_at:
            raise ValueError("endedAt must be after startedAt")
        return self


class SessionOut(_CamelModel):
    id: str
    count: int
    started_at: str = Field(..., alias="startedAt")
    ended_at: str = Field(..., alias="endedAt")
    duration_sec: int = Field(..., alias="durationSec")
    duration_formatted: str = Field(..., alias="durationFormatted")
    notes: str = ""
    created_at: str = Field(..., alias="createdAt")
    updated_at: str = Field(..., alias="updatedAt")


class Pagination(_CamelModel):
    page: int
    limit: int
    total_count: int = Field(..., alias="totalCount")
    total_pages: int = Field(..., alias="totalPages")
    has_next: bool = Field(..., alias="hasNext")
    has_prev: bool = Field(..., alias="hasPrev")


class SessionPage(_CamelModel):
    sessions: List[SessionOut]
    pagination: Pagination


class StatsOut(_CamelModel):
    today: int
    week: int
    total: int
    streak: int
    goal_progress: int = Field(..., alias="goalProgress")


class StopRequest(_CamelModel):
    notes: str = Field("", max_length=MAX_NOTES)


class LiveStatus(_CamelModel):
    session_id: str = Field(..., alias="sessionId")
    state: str
    phase: str
    count: int
    duration_sec: int = Field(..., alias="durationSec")
    setup_remaining: int = Field(..., alias="setupRemaining")
