"""DB-backed lease so that only one instance dispatches the outbox."""
from __future__ import annotations

import os
import socket
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orderflow import db
from orderflow.models import SchedulerLock
from orderflow.utils.time import as_utc, utcnow

LOCK_NAME = "notification-dispatch"
LOCK_TTL_SECONDS = 300


def _session(db_session: Session | None) -> tuple[Session, bool]:
    if db_session is not None:
        return db_session, False
    return db.get_sessionmaker()(), True


def owner_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


def _find(session: Session, name: str, *, for_update: bool = False) -> SchedulerLock | None:
    stmt = select(SchedulerLock).where(SchedulerLock.name == name)
    if for_update:
        stmt = stmt.with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def try_acquire(
    name: str = LOCK_NAME,
    *,
    ttl_seconds: int = LOCK_TTL_SECONDS,
    owner: str | None = None,
    db_session: Session | None = None,
) -> bool:
    """Take the lease if it is free, expired, or already ours."""

    session, should_close = _session(db_session)
    owner = owner or owner_id()
    now = utcnow()
    expires = now + timedelta(seconds=ttl_seconds)
    try:
        lock = _find(session, name, for_update=True)
        if lock is None:
            session.add(SchedulerLock(name=name, owner=owner, acquired_at=now, expires_at=expires))
        elif lock.owner == owner:
            lock.expires_at = expires
        else:
            expires_at = as_utc(lock.expires_at)
            if expires_at is not None and expires_at > now:
                session.rollback()
                return False
            lock.owner = owner
            lock.acquired_at = now
            lock.expires_at = expires
        session.commit()
        return True
    except IntegrityError:
        # Another instance inserted the row first.
        session.rollback()
        return False
    finally:
        if should_close:
            session.close()


def refresh(
    name: str = LOCK_NAME,
    *,
    ttl_seconds: int = LOCK_TTL_SECONDS,
    owner: str | None = None,
    db_session: Session | None = None,
) -> bool:
    session, should_close = _session(db_session)
    owner = owner or owner_id()
    try:
        lock = _find(session, name, for_update=True)
        if lock is None or lock.owner != owner:
            session.rollback()
            return False
        lock.expires_at = utcnow() + timedelta(seconds=ttl_seconds)
        session.commit()
        return True
    finally:
        if should_close:
            session.close()


def release(name: str = LOCK_NAME, *, owner: str | None = None, db_session: Session | None = None) -> None:
    session, should_close = _session(db_session)
    owner = owner or owner_id()
    try:
        lock = _find(session, name, for_update=True)
        if lock is not None and lock.owner == owner:
            session.delete(lock)
        session.commit()
    finally:
        if should_close:
            session.close()


def describe(name: str = LOCK_NAME, *, db_session: Session | None = None) -> dict[str, object]:
    """Summarise the lease for the health endpoint."""

    session, should_close = _session(db_session)
    try:
        lock = _find(session, name)
        if lock is None:
            return {"status": "none", "owner": None, "present": False}
        now = utcnow()
        expires_at = as_utc(lock.expires_at)
        expires_in = (expires_at - now).total_seconds() if expires_at else None
        return {
            "status": "owned_by_self" if lock.owner == owner_id() else "owned_by_other",
            "owner": lock.owner,
            "present": True,
            "expires_in_seconds": expires_in,
            "stale": expires_in is not None and expires_in < 0,
        }
    finally:
        if should_close:
            session.close()


__all__ = ["LOCK_NAME", "LOCK_TTL_SECONDS", "owner_id", "try_acquire", "refresh", "release", "describe"]
