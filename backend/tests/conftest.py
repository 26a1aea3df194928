"""Pytest configuration."""

import os
import time
from datetime import datetime, timedelta, timezone

# Settings and the engine are built at import time; point them at memory first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["REJECT_BACKDATED_EVENTS"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from locks import KeyedLocks
from store import SessionStore

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def at(ms: int) -> datetime:
    """T0 shifted by `ms` milliseconds."""
    return T0 + timedelta(milliseconds=ms)


@pytest.fixture()
def test_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db(test_engine):
    with Session(test_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture()
def client(test_engine):
    from db import get_session
    from main import app

    def override_get_session():
        with Session(test_engine, expire_on_commit=False) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class MemoryStore(SessionStore):
    """In-memory SessionStore; `delay` slows the latest-event read to widen races."""

    def __init__(self, delay: float = 0.0):
        self.sessions = {}
        self.events = []
        self.delay = delay

    def find_session(self, session_id):
        return self.sessions.get(session_id)

    def find_open_session(self, owner):
        if self.delay:
            time.sleep(self.delay)
        for s in self.sessions.values():
            if s.owner == owner and s.status != "completed":
                return s
        return None

    def list_sessions(self, owner, limit=None):
        found = sorted(
            (s for s in self.sessions.values() if s.owner == owner),
            key=lambda s: s.created_at,
            reverse=True,
        )
        return found[:limit] if limit is not None else found

    def create_session(self, session):
        self.sessions[session.id] = session
        return session

    def save_session(self, session):
        self.sessions[session.id] = session
        return session

    def find_latest_event(self, session_id):
        if self.delay:
            time.sleep(self.delay)
        events = self.list_events_ascending(session_id)
        return events[-1] if events else None

    def list_events_ascending(self, session_id):
        return sorted(
            (e for e in self.events if e.session_id == session_id),
            key=lambda e: (e.occured_at, e.sequence),
        )

    def count_events(self, session_id):
        return sum(1 for e in self.events if e.session_id == session_id)

    def append_event(self, event):
        self.events.append(event)
        return event


@pytest.fixture()
def memory_store():
    return MemoryStore()


@pytest.fixture()
def make_service():
    from service import SessionService

    def _make(store, **kwargs):
        kwargs.setdefault("session_locks", KeyedLocks())
        kwargs.setdefault("owner_locks", KeyedLocks())
        return SessionService(store, **kwargs)

    return _make
