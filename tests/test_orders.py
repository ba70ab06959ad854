from decimal import Decimal

import pytest
from sqlalchemy import select

from orderflow.models import AuditLog, ConfirmationMethod, EscrowStatus, OrderEvent, OrderStatus
from orderflow.schemas.order import OrderCreate
from orderflow.services import orders as order_service
from orderflow.services.actors import Actor, ActorRole
from orderflow.utils.errors import Forbidden, InvalidTransition, ValidationError


def _events(db_session, order_id):
    return list(db_session.scalars(select(OrderEvent).where(OrderEvent.order_id == order_id).order_by(OrderEvent.id)))


def test_create_order_computes_total_and_number(lifecycle, db_session):
    order = lifecycle.pending("100.00", "15.50")

    assert order.status == OrderStatus.PENDING
    assert order.total == Decimal("115.50")
    assert order.order_number == f"ORD-{order.id:06d}"
    assert order.escrow.status == EscrowStatus.PENDING
    assert order.escrow.amount is None
    assert order.delivery is None
    assert db_session.scalars(select(AuditLog).where(AuditLog.action == "ORDER_CREATED")).first() is not None


def test_buyer_cannot_order_for_someone_else(db_session, buyer):
    payload = OrderCreate(buyer_id="other-buyer", supplier_id="supplier-1", subtotal=Decimal("10"))
    with pytest.raises(ValidationError) as exc_info:
        order_service.create_order(db_session, payload, actor=buyer)
    assert exc_info.value.code == "BUYER_MISMATCH"


def test_accept_captures_escrow_and_sets_pin_requirement(lifecycle):
    order = lifecycle.confirmed("150.00")

    assert order.status == OrderStatus.CONFIRMED
    assert order.confirmed_at is not None
    assert order.escrow.status == EscrowStatus.HELD
    assert order.escrow.amount == Decimal("150.00")
    assert order.delivery.method == ConfirmationMethod.PIN
    assert order.delivery.pin is not None and len(order.delivery.pin) == 4
    assert order.delivery.pin.isdigit()


def test_low_value_order_requires_photo(lifecycle):
    order = lifecycle.confirmed("119.99")
    assert order.delivery.method == ConfirmationMethod.PHOTO
    assert order.delivery.pin is None


def test_pin_threshold_is_inclusive(lifecycle):
    order = lifecycle.confirmed("100.00", "20.00")
    assert order.total == Decimal("120.00")
    assert order.delivery.method == ConfirmationMethod.PIN


def test_only_the_supplier_can_accept(lifecycle, db_session, buyer):
    order = lifecycle.pending()
    with pytest.raises(Forbidden):
        order_service.accept_order(db_session, order.id, actor=buyer)
    stranger = Actor(id="supplier-2", role=ActorRole.SUPPLIER)
    with pytest.raises(Forbidden):
        order_service.accept_order(db_session, order.id, actor=stranger)
    assert order.status == OrderStatus.PENDING


def test_accept_twice_emits_one_event(lifecycle, db_session, supplier):
    order = lifecycle.confirmed()
    order_service.accept_order(db_session, order.id, actor=supplier)

    events = _events(db_session, order.id)
    assert [e.event_type for e in events] == ["order.confirmed"]
    assert len(order.escrow.events) == 1


def test_supplier_rejection_needs_a_reason(lifecycle, db_session, supplier):
    order = lifecycle.pending()
    with pytest.raises(ValidationError):
        order_service.reject_order(db_session, order.id, "   ", actor=supplier)

    order_service.reject_order(db_session, order.id, "Out of stock", actor=supplier)
    assert order.status == OrderStatus.REJECTED
    assert order.rejection_reason == "Out of stock"
    assert order.rejected_at is not None
    # nothing was captured, so nothing is refunded
    assert order.escrow.status == EscrowStatus.PENDING


def test_buyer_cancel_before_acceptance(lifecycle, db_session, buyer):
    order = lifecycle.pending()
    order_service.cancel_order(db_session, order.id, "Changed my mind", actor=buyer)
    assert order.status == OrderStatus.CANCELLED
    assert order.cancellation_reason == "Changed my mind"


def test_buyer_cannot_cancel_after_acceptance(lifecycle, db_session, buyer):
    order = lifecycle.confirmed()
    with pytest.raises(InvalidTransition) as exc_info:
        order_service.cancel_order(db_session, order.id, "Too late", actor=buyer)
    assert exc_info.value.details["current_status"] == "confirmed"
    assert order.status == OrderStatus.CONFIRMED


def test_supplier_cancel_after_acceptance_refunds(lifecycle, db_session, supplier):
    order = lifecycle.confirmed("200.00")
    order_service.cancel_order(db_session, order.id, "Truck broke down", actor=supplier)

    assert order.status == OrderStatus.CANCELLED
    assert order.escrow.status == EscrowStatus.REFUNDED
    assert order.escrow.refund_reason == "Truck broke down"
    assert order.escrow.released_at is None


def test_invalid_transition_leaves_order_untouched(lifecycle, db_session, supplier):
    order = lifecycle.pending()
    with pytest.raises(InvalidTransition):
        order_service.start_delivery(db_session, order.id, actor=supplier)

    db_session.expire_all()
    assert order.status == OrderStatus.PENDING
    assert order.delivery_started_at is None
    assert _events(db_session, order.id) == []


def test_mark_delivered_requires_photo_for_low_value(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery("50.00")
    with pytest.raises(ValidationError) as exc_info:
        order_service.mark_delivered(db_session, order.id, actor=supplier)
    assert exc_info.value.details["required_method"] == "photo"
    assert order.status == OrderStatus.IN_DELIVERY


def test_mark_delivered_for_pin_order(lifecycle, db_session):
    order = lifecycle.awaiting("300.00")
    assert order.status == OrderStatus.AWAITING_CONFIRMATION
    assert order.delivery.supplier_confirmed_at is not None


def test_amounts_are_locked_after_confirmation(lifecycle):
    order = lifecycle.confirmed("100.00")
    with pytest.raises(ValidationError) as exc_info:
        order.total = Decimal("1.00")
    assert exc_info.value.code == "ORDER_TOTAL_LOCKED"


def test_events_carry_old_and_new_status(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery()
    events = order_service.list_events(db_session, order.id, actor=supplier)
    assert [(e.old_status, e.new_status) for e in events] == [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED),
        (OrderStatus.CONFIRMED, OrderStatus.IN_DELIVERY),
    ]
    assert all(e.actor == "supplier:supplier-1" for e in events)
