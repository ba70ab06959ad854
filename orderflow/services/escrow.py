"""Escrow ledger services.

The ledger is driven by order transitions: funds are captured when the
supplier accepts, released only when the order completes, and refunded only
when it is cancelled or rejected. Every movement is guarded against the
current ledger state so a payout can never be duplicated.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.orm import Session

from orderflow.models import EscrowEvent, EscrowRecord, EscrowStatus, Order, OrderStatus
from orderflow.services.actors import Actor
from orderflow.services.locks import get_order, locked_order
from orderflow.utils.audit import log_audit
from orderflow.utils.errors import DisputeBlocksSettlement, EscrowStateConflict, NotFound, ValidationError
from orderflow.utils.time import utcnow

logger = logging.getLogger(__name__)

REFUNDABLE_ORDER_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REJECTED})


def to_decimal(value: Any) -> Decimal:
    """Convert a money amount to a two-decimal ``Decimal``."""

    if isinstance(value, Decimal):
        d = value
    else:
        try:
            # str() avoids binary float artefacts
            d = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError) as e:
            raise ValidationError(f"Invalid money amount: {value!r}", code="INVALID_AMOUNT") from e
    return d.quantize(Decimal("0.01"))


def ensure_escrow(order: Order) -> EscrowRecord:
    if order.escrow is None:
        order.escrow = EscrowRecord(status=EscrowStatus.PENDING)
    return order.escrow


def _conflict(escrow: EscrowRecord, order: Order, operation: str, required: str) -> EscrowStateConflict:
    return EscrowStateConflict(
        f"Escrow cannot {operation} in its current state.",
        details={
            "order_id": order.id,
            "operation": operation,
            "escrow_status": escrow.status.value,
            "order_status": order.status.value,
            "required": required,
        },
    )


def _record(db: Session, escrow: EscrowRecord, *, kind: str, actor: str, data: dict[str, Any]) -> None:
    escrow.events.append(EscrowEvent(kind=kind, actor=actor, data_json=data, at=utcnow()))
    log_audit(db, actor=actor, action=f"ESCROW_{kind}", entity="EscrowRecord", entity_id=escrow.id, data=data)


def _guard_dispute(order: Order, operation: str) -> None:
    dispute = order.open_dispute
    if dispute is not None:
        raise DisputeBlocksSettlement(dispute.id, dispute.status, operation)


def capture_funds(db: Session, order: Order, amount: Any, *, actor: str) -> EscrowRecord:
    """Move the order total into custody; the order must have just been confirmed."""

    escrow = ensure_escrow(order)
    if escrow.status != EscrowStatus.PENDING:
        raise _conflict(escrow, order, "capture", "escrow=pending")
    if order.status != OrderStatus.CONFIRMED:
        raise _conflict(escrow, order, "capture", "order=confirmed")

    amount_dec = to_decimal(amount)
    total = to_decimal(order.total)
    if amount_dec != total:
        raise ValidationError(
            "Captured amount must equal the order total.",
            code="ESCROW_AMOUNT_MISMATCH",
            details={"order_id": order.id, "amount": str(amount_dec), "order_total": str(total)},
        )

    escrow.amount = amount_dec
    escrow.status = EscrowStatus.HELD
    escrow.held_at = utcnow()
    db.flush()
    _record(db, escrow, kind="CAPTURED", actor=actor, data={"order_id": order.id, "amount": str(amount_dec)})
    logger.info("Escrow captured", extra={"order_id": order.id, "amount": str(amount_dec)})
    return escrow


def release_funds(db: Session, order: Order, *, actor: str) -> EscrowRecord:
    """Pay the supplier. The only path that moves money to the supplier."""

    escrow = ensure_escrow(order)
    _guard_dispute(order, "release")
    if escrow.status != EscrowStatus.HELD:
        raise _conflict(escrow, order, "release", "escrow=held")
    if order.status != OrderStatus.COMPLETED:
        raise _conflict(escrow, order, "release", "order=completed")

    escrow.status = EscrowStatus.RELEASED
    escrow.released_at = utcnow()
    _record(
        db,
        escrow,
        kind="RELEASED",
        actor=actor,
        data={"order_id": order.id, "amount": str(escrow.amount), "payee": order.supplier_id},
    )
    logger.info("Escrow released", extra={"order_id": order.id, "amount": str(escrow.amount)})
    return escrow


def refund_funds(db: Session, order: Order, reason: str | None, *, actor: str) -> EscrowRecord:
    """Return held funds to the buyer."""

    escrow = ensure_escrow(order)
    if not reason or not reason.strip():
        raise ValidationError("A refund reason is required.", code="REFUND_REASON_REQUIRED")
    _guard_dispute(order, "refund")
    if escrow.status != EscrowStatus.HELD:
        raise _conflict(escrow, order, "refund", "escrow=held")
    if order.status not in REFUNDABLE_ORDER_STATUSES:
        raise _conflict(escrow, order, "refund", "order=cancelled|rejected")

    escrow.status = EscrowStatus.REFUNDED
    escrow.refunded_at = utcnow()
    escrow.refund_reason = reason.strip()
    _record(
        db,
        escrow,
        kind="REFUNDED",
        actor=actor,
        data={"order_id": order.id, "amount": str(escrow.amount), "payee": order.buyer_id, "reason": reason},
    )
    logger.info("Escrow refunded", extra={"order_id": order.id, "amount": str(escrow.amount)})
    return escrow


# --- Public ledger operations (own unit of work) --------------------------


def capture(db: Session, order_id: int, amount: Any, *, actor: Actor) -> EscrowRecord:
    with locked_order(db, order_id) as order:
        escrow = capture_funds(db, order, amount, actor=actor.label)
        db.commit()
    return escrow


def release(db: Session, order_id: int, *, actor: Actor) -> EscrowRecord:
    with locked_order(db, order_id) as order:
        escrow = release_funds(db, order, actor=actor.label)
        db.commit()
    return escrow


def refund(db: Session, order_id: int, reason: str, *, actor: Actor) -> EscrowRecord:
    with locked_order(db, order_id) as order:
        escrow = refund_funds(db, order, reason, actor=actor.label)
        db.commit()
    return escrow


def get_escrow(db: Session, order_id: int) -> EscrowRecord:
    order = get_order(db, order_id)
    if order.escrow is None:
        raise NotFound("Escrow not found.", code="ESCROW_NOT_FOUND", details={"order_id": order_id})
    return order.escrow


__all__ = [
    "to_decimal",
    "ensure_escrow",
    "capture_funds",
    "release_funds",
    "refund_funds",
    "capture",
    "release",
    "refund",
    "get_escrow",
]
