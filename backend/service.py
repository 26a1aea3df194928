"""
Session lifecycle: open a session, record start/pause/stop events on it,
and rebuild its total from the event log on demand.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from errors import Conflict, InvalidTransition, NotFound
from locks import KeyedLocks, owner_locks, session_locks
from log import get_logger
from models import (
    EventAction,
    FocusSession,
    SessionEvent,
    SessionStatus,
    to_utc,
    utc_now,
)
from store import SessionStore
from tracking import SessionSnapshot, apply_event, rebuild, validate_event

logger = get_logger(__name__)


class SessionService:
    """
    Every write goes through a per-key lock: the owner's for opening a
    session, the session's for recording events and refreshing. Validation
    reads the latest event, so the read and the write that follows must not
    interleave with another request on the same session.
    """

    def __init__(
        self,
        store: SessionStore,
        reject_backdated_events: bool = True,
        session_locks: KeyedLocks = session_locks,
        owner_locks: KeyedLocks = owner_locks,
    ) -> None:
        self.store = store
        self.reject_backdated_events = reject_backdated_events
        self._session_locks = session_locks
        self._owner_locks = owner_locks

    def _load(
        self, session_id: str, owner: Optional[str], is_privileged: bool
    ) -> FocusSession:
        session = self.store.find_session(session_id)
        if session is None:
            raise NotFound("Session not found")
        # Other owners' sessions look exactly like missing ones.
        if owner is not None and not is_privileged and session.owner != owner:
            raise NotFound("Session not found")
        return session

    def open_session(
        self, owner: str, task_title: str = "Focus", now: Optional[datetime] = None
    ) -> FocusSession:
        """Open a new active session for `owner`, seeded with a start event."""
        started_at = to_utc(now) if now else utc_now()
        with self._owner_locks.hold(owner):
            existing = self.store.find_open_session(owner)
            if existing is not None:
                logger.info(
                    "Open session rejected, owner already has one",
                    extra={"owner": owner, "session_id": existing.id},
                )
                raise Conflict("A session is already open")

            session = self.store.create_session(
                FocusSession(
                    id=str(uuid.uuid4()),
                    owner=owner,
                    task_title=task_title.strip() or "Focus",
                    status=SessionStatus.ACTIVE.value,
                    last_start_time=started_at,
                    total_time=0,
                    created_at=started_at,
                    updated_at=started_at,
                )
            )
            self.store.append_event(
                SessionEvent(
                    id=str(uuid.uuid4()),
                    session_id=session.id,
                    action=EventAction.START.value,
                    occured_at=started_at,
                    sequence=0,
                )
            )

        logger.info("Session opened", extra={"owner": owner, "session_id": session.id})
        return session

    def record_event(
        self,
        session_id: str,
        action: EventAction | str,
        occured_at: Optional[datetime] = None,
        is_privileged: bool = False,
        owner: Optional[str] = None,
    ) -> tuple[FocusSession, SessionEvent]:
        """
        Validate, append and fold one event. Privileged callers skip
        validation. Returns the updated session and the stored event.
        """
        action = EventAction(action)
        occured_at = to_utc(occured_at) if occured_at else utc_now()

        with self._session_locks.hold(session_id):
            session = self._load(session_id, owner, is_privileged)
            last_event = self.store.find_latest_event(session_id)

            if is_privileged:
                logger.info(
                    "Privileged event, skipping validation",
                    extra={"session_id": session_id, "action": action.value},
                )
            else:
                try:
                    validate_event(
                        action,
                        occured_at,
                        last_event,
                        reject_backdated=self.reject_backdated_events,
                    )
                except InvalidTransition as e:
                    logger.info(
                        "Event rejected",
                        extra={
                            "session_id": session_id,
                            "action": action.value,
                            "last_action": last_event.action if last_event else None,
                            "reason": e.detail,
                        },
                    )
                    raise

            event = self.store.append_event(
                SessionEvent(
                    id=str(uuid.uuid4()),
                    session_id=session_id,
                    action=action.value,
                    occured_at=occured_at,
                    sequence=self.store.count_events(session_id),
                )
            )
            # A failure past this point leaves total_time stale until the next refresh.
            apply_event(SessionSnapshot.of(session), action, occured_at).write_to(session)
            session = self.store.save_session(session)

        logger.info(
            "Event recorded",
            extra={
                "session_id": session_id,
                "action": action.value,
                "status": session.status,
                "total_time": session.total_time,
            },
        )
        return session, event

    def refresh_session(
        self, session_id: str, owner: Optional[str] = None, is_privileged: bool = False
    ) -> int:
        """Recompute the session from its event log, save it, return total_time (ms)."""
        with self._session_locks.hold(session_id):
            session = self._load(session_id, owner, is_privileged)
            events = self.store.list_events_ascending(session_id)
            snapshot = rebuild(events)

            if snapshot.total_time != session.total_time:
                logger.warning(
                    "Stored total_time drifted from event log, correcting",
                    extra={
                        "session_id": session_id,
                        "stored": session.total_time,
                        "rebuilt": snapshot.total_time,
                    },
                )
            if snapshot.status is None:
                # No events at all: nothing to derive a status from.
                session.total_time = snapshot.total_time
            else:
                snapshot.write_to(session)
            self.store.save_session(session)

        return snapshot.total_time

    def get_session(
        self, session_id: str, owner: Optional[str] = None, is_privileged: bool = False
    ) -> FocusSession:
        return self._load(session_id, owner, is_privileged)

    def list_sessions(self, owner: str, limit: Optional[int] = None) -> list[FocusSession]:
        return self.store.list_sessions(owner, limit)

    def list_events(
        self, session_id: str, owner: Optional[str] = None, is_privileged: bool = False
    ) -> list[SessionEvent]:
        self._load(session_id, owner, is_privileged)
        return self.store.list_events_ascending(session_id)

    def stats(self, owner: str, now: Optional[datetime] = None) -> dict[str, Any]:
        """Active-time totals for this owner: today (UTC) and all-time."""
        today = (to_utc(now) if now else utc_now()).date()
        sessions = self.store.list_sessions(owner)

        total_minutes = 0
        today_sessions = 0
        today_minutes = 0
        active_session_id = None

        for s in sessions:
            minutes = max(0, (s.total_time or 0) // 60_000)
            total_minutes += minutes
            if s.created_at and to_utc(s.created_at).date() == today:
                today_sessions += 1
                today_minutes += minutes
            if s.status != SessionStatus.COMPLETED.value and active_session_id is None:
                active_session_id = s.id

        return {
            "total_sessions": len(sessions),
            "total_minutes": total_minutes,
            "today_sessions": today_sessions,
            "today_minutes": today_minutes,
            "active_session_id": active_session_id,
        }
