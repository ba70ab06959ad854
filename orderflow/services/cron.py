"""Background jobs run by the APScheduler instance in ``orderflow.main``."""
from __future__ import annotations

import logging

from orderflow import db
from orderflow.services import scheduler_lock
from orderflow.services.notifications import dispatch_pending_notifications

logger = logging.getLogger(__name__)


def dispatch_notifications_once() -> dict[str, int] | None:
    """Drain due outbox rows if this instance still holds the dispatch lease."""

    if not scheduler_lock.refresh():
        logger.info("Skipping notification dispatch; lease held elsewhere")
        return None
    session = db.get_sessionmaker()()
    try:
        stats = dispatch_pending_notifications(session)
    finally:
        session.close()
    if stats["sent"] or stats["retried"] or stats["failed"]:
        logger.info("Notification dispatch finished", extra=stats)
    return stats


__all__ = ["dispatch_notifications_once"]
