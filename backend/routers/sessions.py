"""
Focus sessions: open a session, record start/pause/stop events on it,
rebuild its active time from the event log, list sessions and stats.
"""
import hmac
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from config import get_settings
from db import get_session
from models import EventAction
from service import SessionService
from store import SQLStore

router = APIRouter(prefix="/api", tags=["sessions"])


class StartSessionRequest(BaseModel):
    task_title: str = "Focus"


class RecordEventRequest(BaseModel):
    action: EventAction
    # Defaults to the time the server receives the event.
    occured_at: Optional[datetime] = None


class RefreshResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_time_ms: int = Field(alias="totalTimeMs")


@dataclass
class Caller:
    user_id: Optional[str]
    is_privileged: bool


def get_caller(
    user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
) -> Caller:
    expected = get_settings().admin_token
    privileged = bool(expected and admin_token) and hmac.compare_digest(
        admin_token.encode(), expected.encode()
    )
    return Caller(user_id=user_id or None, is_privileged=privileged)


def get_service(db: Session = Depends(get_session)) -> SessionService:
    return SessionService(
        SQLStore(db),
        reject_backdated_events=get_settings().reject_backdated_events,
    )


def _require_user_id(caller: Caller) -> str:
    if not caller.user_id:
        raise HTTPException(status_code=400, detail="Missing X-User-Id header")
    return caller.user_id


def _owner_filter(caller: Caller) -> Optional[str]:
    """Owner to scope a lookup to; privileged callers see every session."""
    if caller.is_privileged:
        return None
    return _require_user_id(caller)


@router.post("/sessions", status_code=201)
def start_session(
    req: StartSessionRequest,
    service: SessionService = Depends(get_service),
    caller: Caller = Depends(get_caller),
):
    """Open a session for this user. 409 if one is already open."""
    uid = _require_user_id(caller)
    return service.open_session(uid, task_title=req.task_title)


@router.get("/sessions")
def list_sessions(
    limit: int = 20,
    service: SessionService = Depends(get_service),
    caller: Caller = Depends(get_caller),
):
    """List recent sessions (newest first) for this user."""
    uid = _require_user_id(caller)
    return service.list_sessions(uid, limit=limit)


@router.get("/sessions/{session_id}")
def get_session_detail(
    session_id: str,
    service: SessionService = Depends(get_service),
    caller: Caller = Depends(get_caller),
):
    return service.get_session(
        session_id, owner=_owner_filter(caller), is_privileged=caller.is_privileged
    )


@router.get("/sessions/{session_id}/events")
def list_session_events(
    session_id: str,
    service: SessionService = Depends(get_service),
    caller: Caller = Depends(get_caller),
):
    """The session's event log, oldest first."""
    return service.list_events(
        session_id, owner=_owner_filter(caller), is_privileged=caller.is_privileged
    )


@router.post("/sessions/{session_id}/events", status_code=201)
def record_event(
    session_id: str,
    req: RecordEventRequest,
    service: SessionService = Depends(get_service),
    caller: Caller = Depends(get_caller),
):
    """
    Record a start (resume), pause or stop. 400 if the action repeats the
    previous one, follows a stop, or is older than the last event.
    Admin callers (X-Admin-Token) skip those checks.
    """
    session, event = service.record_event(
        session_id,
        req.action,
        occured_at=req.occured_at,
        is_privileged=caller.is_privileged,
        owner=_owner_filter(caller),
    )
    return {"session": session, "event": event}


@router.post("/sessions/{session_id}/refresh", response_model=RefreshResponse)
def refresh_session(
    session_id: str,
    service: SessionService = Depends(get_service),
    caller: Caller = Depends(get_caller),
):
    """Recompute the session's active time from its event log."""
    total = service.refresh_session(
        session_id, owner=_owner_filter(caller), is_privileged=caller.is_privileged
    )
    return RefreshResponse(total_time_ms=total)


# --- Stats ---


@router.get("/stats")
def get_stats(
    service: SessionService = Depends(get_service),
    caller: Caller = Depends(get_caller),
):
    """Focus stats for this user: today and all-time, in active minutes."""
    uid = _require_user_id(caller)
    return service.stats(uid)
