import pytest
from sqlalchemy import select

from orderflow.models import AuditLog, DisputeStatus, EscrowStatus, OrderStatus
from orderflow.services import deliveries as delivery_service
from orderflow.utils.errors import (
    Forbidden,
    InvalidTransition,
    PinAttemptsExhausted,
    PinMismatch,
    ValidationError,
)


def _wrong_pin(pin: str) -> str:
    return "0000" if pin != "0000" else "1111"


def test_correct_pin_completes_and_releases(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery("250.00")
    delivery = delivery_service.verify_pin(db_session, order.id, order.delivery.pin, actor=supplier)

    assert delivery.pin_verified_at is not None
    assert order.status == OrderStatus.COMPLETED
    assert order.delivered_at is not None
    assert order.completed_at is not None
    assert order.escrow.status == EscrowStatus.RELEASED
    assert [e.event_type for e in order.events][-2:] == ["order.delivered", "order.completed"]


def test_pin_from_awaiting_confirmation(lifecycle, db_session, supplier):
    order = lifecycle.awaiting("250.00")
    delivery_service.verify_pin(db_session, order.id, order.delivery.pin, actor=supplier)
    assert order.status == OrderStatus.COMPLETED
    assert order.events[-1].old_status == OrderStatus.AWAITING_CONFIRMATION


def test_wrong_pin_consumes_an_attempt(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery("250.00")
    with pytest.raises(PinMismatch) as exc_info:
        delivery_service.verify_pin(db_session, order.id, _wrong_pin(order.delivery.pin), actor=supplier)
    assert exc_info.value.details["attempts_remaining"] == 2

    db_session.expire_all()
    assert order.delivery.pin_attempts == 1
    assert order.status == OrderStatus.IN_DELIVERY


def test_third_wrong_pin_locks_without_settling(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery("250.00")
    wrong = _wrong_pin(order.delivery.pin)
    for remaining in (2, 1):
        with pytest.raises(PinMismatch) as exc_info:
            delivery_service.verify_pin(db_session, order.id, wrong, actor=supplier)
        assert exc_info.value.attempts_remaining == remaining
    with pytest.raises(PinAttemptsExhausted):
        delivery_service.verify_pin(db_session, order.id, wrong, actor=supplier)

    # even the right PIN is refused once locked
    with pytest.raises(PinAttemptsExhausted):
        delivery_service.verify_pin(db_session, order.id, order.delivery.pin, actor=supplier)

    db_session.expire_all()
    assert order.delivery.pin_attempts == 3
    assert order.delivery.is_locked
    assert order.status == OrderStatus.IN_DELIVERY
    assert order.escrow.status == EscrowStatus.HELD
    assert db_session.scalars(select(AuditLog).where(AuditLog.action == "DELIVERY_PIN_LOCKED")).first()


@pytest.mark.parametrize("bad_pin", ["12", "12345", "12a4", "", " 123"])
def test_malformed_pin_does_not_cost_an_attempt(lifecycle, db_session, supplier, bad_pin):
    order = lifecycle.in_delivery("250.00")
    with pytest.raises(ValidationError) as exc_info:
        delivery_service.verify_pin(db_session, order.id, bad_pin, actor=supplier)
    assert exc_info.value.code == "INVALID_PIN_FORMAT"
    db_session.expire_all()
    assert order.delivery.pin_attempts == 0


def test_pin_on_photo_order_names_required_method(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery("60.00")
    with pytest.raises(ValidationError) as exc_info:
        delivery_service.verify_pin(db_session, order.id, "1234", actor=supplier)
    assert exc_info.value.details["required_method"] == "photo"


def test_repeated_correct_pin_is_idempotent(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery("250.00")
    delivery_service.verify_pin(db_session, order.id, order.delivery.pin, actor=supplier)
    delivery_service.verify_pin(db_session, order.id, order.delivery.pin, actor=supplier)

    db_session.expire_all()
    assert [e.event_type for e in order.events].count("order.completed") == 1
    assert [e.kind for e in order.escrow.events] == ["CAPTURED", "RELEASED"]


def test_wrong_pin_after_completion_is_not_a_replay(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery("250.00")
    delivery_service.verify_pin(db_session, order.id, order.delivery.pin, actor=supplier)

    with pytest.raises(InvalidTransition):
        delivery_service.verify_pin(db_session, order.id, _wrong_pin(order.delivery.pin), actor=supplier)

    db_session.expire_all()
    assert order.status == OrderStatus.COMPLETED
    assert order.delivery.pin_attempts == 0


def test_photo_event_does_not_expose_signed_url(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery("80.00")
    signed = "https://cdn.example.com/proof/7.jpg?X-Amz-Signature=abc123"
    delivery = delivery_service.submit_photo(db_session, order.id, signed, actor=supplier)

    assert delivery.photo_url == signed
    event = order.events[-1]
    assert event.event_type == "order.awaiting_confirmation"
    assert event.data_json["photo_url"] == "https://cdn.example.com/proof/7.jpg?***"


def test_photo_then_buyer_confirmation(lifecycle, db_session, supplier, buyer):
    order = lifecycle.in_delivery("80.00")
    delivery = delivery_service.submit_photo(
        db_session, order.id, "https://cdn.example.com/p.jpg", actor=supplier
    )
    assert order.status == OrderStatus.AWAITING_CONFIRMATION
    assert delivery.photo_uploaded_at is not None
    assert order.escrow.status == EscrowStatus.HELD

    delivery_service.confirm_receipt(db_session, order.id, actor=buyer)
    assert order.status == OrderStatus.COMPLETED
    assert order.escrow.status == EscrowStatus.RELEASED
    assert delivery.buyer_confirmed_at is not None


def test_photo_on_pin_order_is_rejected(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery("500.00")
    with pytest.raises(ValidationError) as exc_info:
        delivery_service.submit_photo(db_session, order.id, "https://cdn.example.com/p.jpg", actor=supplier)
    assert exc_info.value.details["required_method"] == "pin"


def test_buyer_cannot_confirm_before_photo(lifecycle, db_session, buyer):
    order = lifecycle.in_delivery("80.00")
    with pytest.raises(InvalidTransition):
        delivery_service.confirm_receipt(db_session, order.id, actor=buyer)


def test_supplier_cannot_confirm_receipt(lifecycle, db_session, supplier):
    order = lifecycle.awaiting("80.00")
    with pytest.raises(Forbidden):
        delivery_service.confirm_receipt(db_session, order.id, actor=supplier)


def test_buyer_rejection_opens_dispute(lifecycle, db_session, buyer):
    order = lifecycle.awaiting("80.00")
    dispute = delivery_service.report_issue(
        db_session, order.id, "Half the bags were torn", actor=buyer
    )
    assert dispute.status == DisputeStatus.OPENED
    assert dispute.site_visit_required is False
    assert order.status == OrderStatus.DISPUTED
    assert order.dispute_reason == "Half the bags were torn"
    assert order.escrow.status == EscrowStatus.HELD

    again = delivery_service.report_issue(db_session, order.id, "Half the bags were torn", actor=buyer)
    assert again.id == dispute.id


def test_short_description_is_rejected(lifecycle, db_session, buyer):
    order = lifecycle.awaiting("80.00")
    with pytest.raises(ValidationError) as exc_info:
        delivery_service.report_issue(db_session, order.id, "bad", actor=buyer)
    assert exc_info.value.details["min_length"] == 10
    assert order.status == OrderStatus.AWAITING_CONFIRMATION
