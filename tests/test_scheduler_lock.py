from datetime import timedelta

from sqlalchemy import select

from orderflow.models import SchedulerLock
from orderflow.services import scheduler_lock
from orderflow.utils.time import utcnow


def test_scheduler_lock_enforces_single_owner(db_session):
    assert scheduler_lock.try_acquire(db_session=db_session, owner="node-A") is True
    assert scheduler_lock.try_acquire(db_session=db_session, owner="node-A") is True
    assert scheduler_lock.try_acquire(db_session=db_session, owner="node-B") is False

    scheduler_lock.release(db_session=db_session, owner="node-A")
    assert scheduler_lock.try_acquire(db_session=db_session, owner="node-B") is True


def test_lock_can_be_reacquired_after_expiry(db_session):
    assert scheduler_lock.try_acquire(db_session=db_session, owner="node-A", ttl_seconds=60)

    lock = db_session.execute(select(SchedulerLock)).scalar_one()
    lock.expires_at = utcnow() - timedelta(seconds=1)
    db_session.commit()

    assert scheduler_lock.try_acquire(db_session=db_session, owner="node-B", ttl_seconds=300)
    db_session.expire_all()
    assert db_session.execute(select(SchedulerLock)).scalar_one().owner == "node-B"


def test_refresh_only_for_owner(db_session):
    scheduler_lock.try_acquire(db_session=db_session, owner="node-A")
    assert scheduler_lock.refresh(db_session=db_session, owner="node-A") is True
    assert scheduler_lock.refresh(db_session=db_session, owner="node-B") is False


def test_describe_reports_presence(db_session, monkeypatch):
    assert scheduler_lock.describe(db_session=db_session)["present"] is False
    monkeypatch.setattr(scheduler_lock, "owner_id", lambda: "node-A")
    scheduler_lock.try_acquire(db_session=db_session)

    info = scheduler_lock.describe(db_session=db_session)
    assert info["present"] is True
    assert info["status"] == "owned_by_self"
    assert info["expires_in_seconds"] > 0
