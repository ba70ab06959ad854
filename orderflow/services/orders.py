"""Order lifecycle services.

This module is the only writer of ``Order.status``. Every public operation
runs in its own unit of work: it locks the order, checks the acting party,
applies one or more planned transitions together with their escrow side
effects, and commits once. Re-submitting a transition for an order that is
already in the requested status succeeds without side effects.
"""
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from orderflow.models import ConfirmationMethod, Order, OrderEvent, OrderStatus
from orderflow.schemas.order import OrderCreate
from orderflow.services import escrow as escrow_service
from orderflow.services import notifications as notification_service
from orderflow.services.actors import Actor, ActorRole, require_party, require_supplier
from orderflow.services.confirmation import prepare_delivery
from orderflow.services.locks import get_order, locked_order
from orderflow.services.state_machine import SideEffect, plan_transition
from orderflow.utils.audit import log_audit, sanitize_payload_for_audit
from orderflow.utils.errors import InvalidTransition, ValidationError
from orderflow.utils.time import utcnow

logger = logging.getLogger(__name__)


def _require_reason(reason: str | None, *, code: str) -> str:
    if reason is None or not reason.strip():
        raise ValidationError("A reason is required.", code=code)
    return reason.strip()


def apply_transition(
    db: Session,
    order: Order,
    target: OrderStatus,
    *,
    actor: Actor,
    reason: str | None = None,
    data: dict[str, Any] | None = None,
) -> OrderEvent:
    """Apply ``order.status -> target`` and its side effects without committing."""

    escrow = order.escrow
    plan = plan_transition(
        order.id,
        order.status,
        target,
        actor=actor.label,
        escrow_status=escrow.status if escrow is not None else None,
    )
    now = utcnow()
    order.status = plan.new_status
    setattr(order, plan.timestamp_field, now)

    for effect in plan.side_effects:
        if effect == SideEffect.CAPTURE_ESCROW:
            escrow_service.capture_funds(db, order, order.total, actor=plan.actor)
        elif effect == SideEffect.PREPARE_DELIVERY:
            prepare_delivery(order)
        elif effect == SideEffect.RELEASE_ESCROW:
            escrow_service.release_funds(db, order, actor=plan.actor)
        elif effect == SideEffect.REFUND_ESCROW:
            escrow_service.refund_funds(db, order, reason, actor=plan.actor)

    event = OrderEvent(
        order_id=order.id,
        event_type=plan.event_type,
        old_status=plan.old_status,
        new_status=plan.new_status,
        actor=plan.actor,
        data_json=sanitize_payload_for_audit(dict(data or {})),
        at=now,
    )
    order.events.append(event)
    notification_service.enqueue(db, event)
    logger.info(
        "Order transitioned",
        extra={
            "order_id": order.id,
            "old_status": plan.old_status.value,
            "new_status": plan.new_status.value,
            "actor": plan.actor,
            "side_effects": [effect.value for effect in plan.side_effects],
        },
    )
    return event


def create_order(db: Session, payload: OrderCreate, *, actor: Actor) -> Order:
    """Register a new pending order with its (empty) escrow record."""

    if actor.role == ActorRole.BUYER and actor.id != payload.buyer_id:
        raise ValidationError(
            "Buyers can only place orders for themselves.",
            code="BUYER_MISMATCH",
            details={"buyer_id": payload.buyer_id},
        )
    if actor.role == ActorRole.SUPPLIER:
        raise ValidationError("Suppliers cannot place orders.", code="BUYER_REQUIRED")

    subtotal = escrow_service.to_decimal(payload.subtotal)
    delivery_fee = escrow_service.to_decimal(payload.delivery_fee)
    order = Order(
        buyer_id=payload.buyer_id,
        supplier_id=payload.supplier_id,
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        total=subtotal + delivery_fee,
        status=OrderStatus.PENDING,
        delivery_date=payload.delivery_date,
        delivery_time_slot=payload.delivery_time_slot,
    )
    escrow_service.ensure_escrow(order)
    try:
        db.add(order)
        db.flush()
        order.order_number = f"ORD-{order.id:06d}"
        log_audit(
            db,
            actor=actor.label,
            action="ORDER_CREATED",
            entity="Order",
            entity_id=order.id,
            data={
                "order_number": order.order_number,
                "total": str(order.total),
                "buyer_id": order.buyer_id,
                "supplier_id": order.supplier_id,
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Order created", extra={"order_id": order.id, "total": str(order.total)})
    return order


def accept_order(db: Session, order_id: int, *, actor: Actor) -> Order:
    """Supplier accepts: capture escrow and generate the confirmation requirement."""

    with locked_order(db, order_id) as order:
        require_supplier(order, actor)
        if order.status == OrderStatus.CONFIRMED:
            return order
        apply_transition(db, order, OrderStatus.CONFIRMED, actor=actor)
        db.commit()
    return order


def reject_order(db: Session, order_id: int, reason: str, *, actor: Actor) -> Order:
    """Supplier declines a pending order."""

    cleaned = _require_reason(reason, code="REJECTION_REASON_REQUIRED")
    with locked_order(db, order_id) as order:
        require_supplier(order, actor)
        if order.status == OrderStatus.REJECTED:
            return order
        apply_transition(db, order, OrderStatus.REJECTED, actor=actor, reason=cleaned, data={"reason": cleaned})
        order.rejection_reason = cleaned
        db.commit()
    return order


def cancel_order(db: Session, order_id: int, reason: str, *, actor: Actor) -> Order:
    """Cancel before delivery starts; held funds go back to the buyer.

    Buyers may only cancel before the supplier accepts.
    """

    cleaned = _require_reason(reason, code="CANCELLATION_REASON_REQUIRED")
    with locked_order(db, order_id) as order:
        require_party(order, actor, ActorRole.BUYER, ActorRole.SUPPLIER, ActorRole.OPERATOR)
        if order.status == OrderStatus.CANCELLED:
            return order
        if actor.role == ActorRole.BUYER and order.status != OrderStatus.PENDING:
            raise InvalidTransition(
                order.status,
                OrderStatus.CANCELLED,
                details={"order_id": order.id, "rule": "buyer_cancel_before_acceptance"},
            )
        apply_transition(db, order, OrderStatus.CANCELLED, actor=actor, reason=cleaned, data={"reason": cleaned})
        order.cancellation_reason = cleaned
        db.commit()
    return order


def start_delivery(db: Session, order_id: int, *, actor: Actor) -> Order:
    with locked_order(db, order_id) as order:
        require_supplier(order, actor)
        if order.status == OrderStatus.IN_DELIVERY:
            return order
        apply_transition(db, order, OrderStatus.IN_DELIVERY, actor=actor)
        prepare_delivery(order)
        db.commit()
    return order


def mark_delivered(db: Session, order_id: int, *, actor: Actor) -> Order:
    """Supplier reports the handoff of a PIN order; the buyer's PIN certifies it.

    Photo orders reach the same status through photo submission instead.
    """

    with locked_order(db, order_id) as order:
        require_supplier(order, actor)
        if order.status == OrderStatus.AWAITING_CONFIRMATION:
            return order
        delivery = prepare_delivery(order)
        if delivery.method == ConfirmationMethod.PHOTO:
            raise ValidationError(
                "Photo evidence is required to mark this order delivered.",
                code="PHOTO_EVIDENCE_REQUIRED",
                details={"order_id": order.id, "required_method": ConfirmationMethod.PHOTO.value},
            )
        apply_transition(db, order, OrderStatus.AWAITING_CONFIRMATION, actor=actor)
        delivery.supplier_confirmed_at = delivery.supplier_confirmed_at or utcnow()
        db.commit()
    return order


def get_order_for(db: Session, order_id: int, *, actor: Actor) -> Order:
    order = get_order(db, order_id)
    require_party(order, actor, ActorRole.BUYER, ActorRole.SUPPLIER, ActorRole.OPERATOR, ActorRole.SYSTEM)
    return order


def list_events(db: Session, order_id: int, *, actor: Actor) -> list[OrderEvent]:
    get_order_for(db, order_id, actor=actor)
    stmt = select(OrderEvent).where(OrderEvent.order_id == order_id).order_by(OrderEvent.id)
    return list(db.scalars(stmt))


__all__ = [
    "apply_transition",
    "create_order",
    "accept_order",
    "reject_order",
    "cancel_order",
    "start_delivery",
    "mark_delivered",
    "get_order_for",
    "list_events",
]
