from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class SessionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class EventAction(str, Enum):
    START = "start"
    PAUSE = "pause"
    STOP = "stop"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Aware UTC datetime. Naive input is taken to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    try:
        return dt.astimezone(timezone.utc)
    except OverflowError:
        # Within a day of datetime.min/max the shifted value is unrepresentable.
        edge = datetime.min if dt.year == datetime.min.year else datetime.max
        return edge.replace(tzinfo=timezone.utc)


class FocusSession(SQLModel, table=True):
    __tablename__ = "sessions"

    id: str = Field(primary_key=True, index=True)
    owner: str = Field(index=True)
    task_title: str = "Focus"
    status: str = Field(default=SessionStatus.ACTIVE.value, index=True)
    # Start of the open interval; None once it has been folded into total_time.
    last_start_time: Optional[datetime] = None
    # Milliseconds of active time across closed intervals.
    total_time: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class SessionEvent(SQLModel, table=True):
    __tablename__ = "session_events"

    id: str = Field(primary_key=True, index=True)
    session_id: str = Field(foreign_key="sessions.id", index=True)
    action: str
    occured_at: datetime = Field(index=True)
    # Insertion index within the session; breaks ties on equal occured_at.
    sequence: int = 0
    created_at: datetime = Field(default_factory=utc_now)
