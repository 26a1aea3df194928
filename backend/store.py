"""
Record store for sessions and their events.

`SessionStore` is everything the session service needs from persistence;
`SQLStore` implements it on a SQLModel session.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from errors import StoreUnavailable
from log import get_logger, log_error
from models import FocusSession, SessionEvent, SessionStatus, utc_now

logger = get_logger(__name__)


class SessionStore(ABC):
    @abstractmethod
    def find_session(self, session_id: str) -> Optional[FocusSession]:
        """Return the session, or None if it doesn't exist."""

    @abstractmethod
    def find_open_session(self, owner: str) -> Optional[FocusSession]:
        """Return the owner's non-completed session, if any."""

    @abstractmethod
    def list_sessions(self, owner: str, limit: Optional[int] = None) -> list[FocusSession]:
        """The owner's sessions, newest first."""

    @abstractmethod
    def create_session(self, session: FocusSession) -> FocusSession: ...

    @abstractmethod
    def save_session(self, session: FocusSession) -> FocusSession: ...

    @abstractmethod
    def find_latest_event(self, session_id: str) -> Optional[SessionEvent]:
        """The event with the greatest (occured_at, sequence), or None."""

    @abstractmethod
    def list_events_ascending(self, session_id: str) -> list[SessionEvent]: ...

    @abstractmethod
    def count_events(self, session_id: str) -> int: ...

    @abstractmethod
    def append_event(self, event: SessionEvent) -> SessionEvent: ...


class SQLStore(SessionStore):
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Turn database failures into StoreUnavailable."""
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            log_error(logger, f"Store operation failed: {operation}", error=e)
            raise StoreUnavailable("Session store is unavailable, try again later") from e

    def find_session(self, session_id: str) -> Optional[FocusSession]:
        with self._guard("find_session"):
            return self.db.get(FocusSession, session_id)

    def find_open_session(self, owner: str) -> Optional[FocusSession]:
        statement = (
            select(FocusSession)
            .where(FocusSession.owner == owner)
            .where(FocusSession.status != SessionStatus.COMPLETED.value)
            .order_by(FocusSession.created_at.desc())
        )
        with self._guard("find_open_session"):
            return self.db.exec(statement).first()

    def list_sessions(self, owner: str, limit: Optional[int] = None) -> list[FocusSession]:
        statement = (
            select(FocusSession)
            .where(FocusSession.owner == owner)
            .order_by(FocusSession.created_at.desc())
        )
        if limit is not None:
            statement = statement.limit(limit)
        with self._guard("list_sessions"):
            return list(self.db.exec(statement).all())

    def create_session(self, session: FocusSession) -> FocusSession:
        with self._guard("create_session"):
            self.db.add(session)
            self.db.commit()
            self.db.refresh(session)
        return session

    def save_session(self, session: FocusSession) -> FocusSession:
        session.updated_at = utc_now()
        with self._guard("save_session"):
            self.db.add(session)
            self.db.commit()
            self.db.refresh(session)
        return session

    def find_latest_event(self, session_id: str) -> Optional[SessionEvent]:
        statement = (
            select(SessionEvent)
            .where(SessionEvent.session_id == session_id)
            .order_by(SessionEvent.occured_at.desc(), SessionEvent.sequence.desc())
            .limit(1)
        )
        with self._guard("find_latest_event"):
            return self.db.exec(statement).first()

    def list_events_ascending(self, session_id: str) -> list[SessionEvent]:
        statement = (
            select(SessionEvent)
            .where(SessionEvent.session_id == session_id)
            .order_by(SessionEvent.occured_at, SessionEvent.sequence)
        )
        with self._guard("list_events_ascending"):
            return list(self.db.exec(statement).all())

    def count_events(self, session_id: str) -> int:
        statement = (
            select(func.count())
            .select_from(SessionEvent)
            .where(SessionEvent.session_id == session_id)
        )
        with self._guard("count_events"):
            return self.db.exec(statement).one()

    def append_event(self, event: SessionEvent) -> SessionEvent:
        with self._guard("append_event"):
            self.db.add(event)
            self.db.commit()
            self.db.refresh(event)
        return event
