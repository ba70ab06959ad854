"""Notification outbox: enqueue inside the transition, dispatch outside it."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from orderflow.config import get_settings
from orderflow.models import NotificationOutbox, NotificationStatus, OrderEvent
from orderflow.utils.time import utcnow

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    """Notification collaborator contract: render and deliver one event record."""

    def send(self, record: dict[str, Any]) -> None: ...


class LoggingNotificationSender:
    """Default sender that hands the record to the structured log stream."""

    def send(self, record: dict[str, Any]) -> None:
        logger.info("Notification dispatched", extra={"notification": record})


_sender: NotificationSender = LoggingNotificationSender()


def set_sender(sender: NotificationSender) -> None:
    global _sender
    _sender = sender


def get_sender() -> NotificationSender:
    return _sender


def event_record(event: OrderEvent) -> dict[str, Any]:
    return {
        "order_id": event.order_id,
        "event_type": event.event_type,
        "old_status": event.old_status.value,
        "new_status": event.new_status.value,
        "actor": event.actor,
        "timestamp": event.at.isoformat(),
    }


def enqueue(db: Session, event: OrderEvent) -> NotificationOutbox | None:
    """Record that ``event`` must be announced; committed with the transition."""

    if not get_settings().NOTIFICATIONS_ENABLED:
        return None
    row = NotificationOutbox(
        order_id=event.order_id,
        event_type=event.event_type,
        payload_json=event_record(event),
        status=NotificationStatus.PENDING,
        attempts=0,
        next_attempt_at=event.at,
    )
    db.add(row)
    return row


def backoff_delay(attempts: int) -> timedelta:
    base = get_settings().NOTIFICATION_BACKOFF_SECONDS
    return timedelta(seconds=base * (2 ** max(attempts - 1, 0)))


def dispatch_pending_notifications(
    db: Session,
    *,
    sender: NotificationSender | None = None,
    now: datetime | None = None,
) -> dict[str, int]:
    """Deliver due outbox rows; failures are rescheduled, never raised."""

    settings = get_settings()
    sender = sender or get_sender()
    now = now or utcnow()
    stmt = (
        select(NotificationOutbox)
        .where(
            NotificationOutbox.status == NotificationStatus.PENDING,
            NotificationOutbox.next_attempt_at <= now,
        )
        .order_by(NotificationOutbox.id)
        .limit(settings.NOTIFICATION_BATCH_SIZE)
    )
    rows = list(db.scalars(stmt))
    stats = {"sent": 0, "retried": 0, "failed": 0}
    for row in rows:
        row.attempts += 1
        try:
            sender.send(dict(row.payload_json))
        except Exception as exc:  # noqa: BLE001
            row.last_error = f"{type(exc).__name__}: {exc}"[:1000]
            if row.attempts >= settings.NOTIFICATION_MAX_ATTEMPTS:
                row.status = NotificationStatus.FAILED
                stats["failed"] += 1
                logger.error(
                    "Notification permanently failed",
                    extra={"notification_id": row.id, "order_id": row.order_id, "attempts": row.attempts},
                )
            else:
                row.next_attempt_at = now + backoff_delay(row.attempts)
                stats["retried"] += 1
                logger.warning(
                    "Notification delivery failed; rescheduled",
                    extra={"notification_id": row.id, "order_id": row.order_id, "attempts": row.attempts},
                )
        else:
            row.status = NotificationStatus.SENT
            row.sent_at = now
            row.last_error = None
            stats["sent"] += 1
        db.commit()
    return stats


def pending_count(db: Session) -> int:
    stmt = (
        select(func.count())
        .select_from(NotificationOutbox)
        .where(NotificationOutbox.status == NotificationStatus.PENDING)
    )
    return int(db.scalar(stmt) or 0)


__all__ = [
    "NotificationSender",
    "LoggingNotificationSender",
    "set_sender",
    "get_sender",
    "event_record",
    "enqueue",
    "backoff_delay",
    "dispatch_pending_notifications",
    "pending_count",
]
