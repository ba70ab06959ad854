"""Engine and session factory for the order store.

The engine is created on first use from ``DATABASE_URL`` and torn down by the
application lifespan. Request handlers get a session through ``get_db``; the
scheduler jobs open their own from ``get_sessionmaker``.
"""
from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from orderflow.config import get_settings
from orderflow.models.base import Base

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_engine() -> Engine:
    global _engine, _session_factory
    if _engine is None:
        url = get_settings().database_url
        # Request threads share the pool with the scheduler thread.
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, future=True, connect_args=connect_args)
        _session_factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False, future=True)
    return _engine


def get_engine() -> Engine:
    return _engine if _engine is not None else init_engine()


def get_sessionmaker() -> sessionmaker[Session]:
    """Return the session factory, creating the engine on first use."""

    if _session_factory is None:
        init_engine()
    return _session_factory  # type: ignore[return-value]


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # pragma: no cover
    # SQLite leaves foreign keys unenforced unless asked per connection.
    if not type(dbapi_connection).__module__.startswith("sqlite3"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_all() -> None:
    Base.metadata.create_all(bind=get_engine())


def close_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""

    session = get_sessionmaker()()
    try:
        yield session
    finally:
        session.close()


__all__ = ["init_engine", "get_engine", "get_sessionmaker", "create_all", "close_engine", "get_db"]
