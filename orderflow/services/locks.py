"""Per-order serialization of engine mutations.

Each mutation runs inside ``locked_order``: a process-local lock keyed by order
id plus ``SELECT ... FOR UPDATE`` on the order row for databases that honour
row locks. Any exception rolls the session back before propagating, so a
failed operation never leaves partial state behind.
"""
from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.orm import Session

from orderflow.models import Order
from orderflow.utils.errors import NotFound

class _OrderLock:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


_registry_guard = threading.Lock()
# Only orders with a thread inside or waiting on locked_order have an entry.
_order_locks: dict[int, _OrderLock] = {}


@contextmanager
def _hold(order_id: int) -> Iterator[None]:
    with _registry_guard:
        entry = _order_locks.get(order_id)
        if entry is None:
            entry = _order_locks[order_id] = _OrderLock()
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _registry_guard:
            entry.holders -= 1
            if entry.holders == 0:
                del _order_locks[order_id]


def active_lock_count() -> int:
    with _registry_guard:
        return len(_order_locks)


def get_order(db: Session, order_id: int, *, for_update: bool = False) -> Order:
    stmt = select(Order).where(Order.id == order_id)
    if for_update:
        stmt = stmt.with_for_update()
    order = db.execute(stmt).scalar_one_or_none()
    if order is None:
        raise NotFound("Order not found.", code="ORDER_NOT_FOUND", details={"order_id": order_id})
    return order


@contextmanager
def locked_order(db: Session, order_id: int) -> Iterator[Order]:
    """Yield the order with exclusive access; roll back on any error."""

    with _hold(order_id):
        try:
            # Another writer may have committed while we waited for the lock.
            db.expire_all()
            order = get_order(db, order_id, for_update=True)
            yield order
        except Exception:
            db.rollback()
            raise


__all__ = ["active_lock_count", "get_order", "locked_order"]
