"""ORM models package."""
from .audit import AuditLog
from .base import Base
from .delivery import ConfirmationMethod, Delivery
from .dispute import (
    OPEN_DISPUTE_STATUSES,
    Dispute,
    DisputeEvidence,
    DisputeOutcome,
    DisputeParty,
    DisputeReason,
    DisputeStatus,
)
from .escrow import EscrowEvent, EscrowRecord, EscrowStatus
from .notification import NotificationOutbox, NotificationStatus
from .order import Order, OrderEvent, OrderStatus
from .scheduler_lock import SchedulerLock

__all__ = [
    "AuditLog",
    "Base",
    "ConfirmationMethod",
    "Delivery",
    "OPEN_DISPUTE_STATUSES",
    "Dispute",
    "DisputeEvidence",
    "DisputeOutcome",
    "DisputeParty",
    "DisputeReason",
    "DisputeStatus",
    "EscrowEvent",
    "EscrowRecord",
    "EscrowStatus",
    "NotificationOutbox",
    "NotificationStatus",
    "Order",
    "OrderEvent",
    "OrderStatus",
    "SchedulerLock",
]
