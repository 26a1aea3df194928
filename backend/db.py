from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from config import get_settings


def make_engine(url: str):
    kwargs = {"echo": False}
    if url.startswith("sqlite"):
        # Route handlers run in a threadpool; SQLite must accept any thread.
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


engine = make_engine(get_settings().database_url)


def init_db(bind=None) -> None:
    import models  # noqa: F401  registers the tables on SQLModel.metadata

    SQLModel.metadata.create_all(bind or engine)


def get_session():
    # Objects outlive the commits inside a request (an event, then its session).
    with Session(engine, expire_on_commit=False) as session:
        yield session
