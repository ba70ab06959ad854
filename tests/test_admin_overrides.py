import logging

import pytest
from sqlalchemy import select

from orderflow.models import AuditLog, DisputeOutcome, EscrowStatus, OrderStatus
from orderflow.services import admin as admin_service
from orderflow.services import deliveries as delivery_service
from orderflow.utils.errors import Forbidden, InvalidTransition, PinAttemptsExhausted, PinMismatch, ValidationError


def _lock(db_session, order, supplier):
    wrong = "0000" if order.delivery.pin != "0000" else "1111"
    for _ in range(2):
        with pytest.raises(PinMismatch):
            delivery_service.verify_pin(db_session, order.id, wrong, actor=supplier)
    with pytest.raises(PinAttemptsExhausted):
        delivery_service.verify_pin(db_session, order.id, wrong, actor=supplier)


def test_unlock_resets_attempts_and_is_audited(lifecycle, db_session, supplier, operator, caplog):
    order = lifecycle.in_delivery("200.00")
    _lock(db_session, order, supplier)

    with caplog.at_level(logging.WARNING, logger="orderflow.services.admin"):
        delivery = admin_service.unlock_pin(db_session, order.id, "Driver typo confirmed by phone", actor=operator)

    assert delivery.pin_attempts == 0
    assert delivery.locked_at is None
    assert delivery.unlocked_at is not None
    assert any("PIN unlocked" in record.getMessage() for record in caplog.records)
    entry = db_session.scalars(select(AuditLog).where(AuditLog.action == "ADMIN_PIN_UNLOCK")).one()
    assert entry.actor == "operator:ops-1"
    assert entry.data_json["justification"] == "Driver typo confirmed by phone"

    delivery_service.verify_pin(db_session, order.id, delivery.pin, actor=supplier)
    assert order.status == OrderStatus.COMPLETED


def test_unlock_can_regenerate_pin(lifecycle, db_session, supplier, operator):
    order = lifecycle.in_delivery("200.00")
    _lock(db_session, order, supplier)
    delivery = admin_service.unlock_pin(
        db_session, order.id, "PIN leaked", actor=operator, regenerate_pin=True
    )
    assert delivery.pin is not None and len(delivery.pin) == 4


def test_unlock_requires_justification_and_lock(lifecycle, db_session, operator):
    order = lifecycle.in_delivery("200.00")
    with pytest.raises(ValidationError) as exc_info:
        admin_service.unlock_pin(db_session, order.id, "  ", actor=operator)
    assert exc_info.value.code == "JUSTIFICATION_REQUIRED"
    with pytest.raises(ValidationError) as exc_info:
        admin_service.unlock_pin(db_session, order.id, "No reason really", actor=operator)
    assert exc_info.value.code == "DELIVERY_NOT_LOCKED"


def test_unlock_is_operator_only(lifecycle, db_session, supplier):
    order = lifecycle.in_delivery("200.00")
    _lock(db_session, order, supplier)
    with pytest.raises(Forbidden):
        admin_service.unlock_pin(db_session, order.id, "Let me in", actor=supplier)


def test_force_resolve_skips_outstanding_visit(lifecycle, db_session, operator, caplog):
    order, dispute = lifecycle.disputed("500.00")
    assert dispute.site_visit_outstanding

    with caplog.at_level(logging.WARNING, logger="orderflow.services.admin"):
        admin_service.force_resolve_dispute(
            db_session,
            dispute.id,
            DisputeOutcome.REFUND,
            "Supplier admitted the fault",
            "Inspector unavailable for two weeks",
            actor=operator,
        )

    assert dispute.override_reason == "Inspector unavailable for two weeks"
    assert order.status == OrderStatus.CANCELLED
    assert order.escrow.status == EscrowStatus.REFUNDED
    entry = db_session.scalars(select(AuditLog).where(AuditLog.action == "ADMIN_DISPUTE_FORCE_RESOLVE")).one()
    assert entry.data_json["site_visit_outstanding"] is True
    assert any("force-resolved" in record.getMessage() for record in caplog.records)


def test_force_resolve_replay_records_one_override(lifecycle, db_session, operator, caplog):
    order, dispute = lifecycle.disputed("500.00")
    args = (DisputeOutcome.RELEASE, "Goods match the delivery note", "Inspector on leave")

    with caplog.at_level(logging.WARNING, logger="orderflow.services.admin"):
        admin_service.force_resolve_dispute(db_session, dispute.id, *args, actor=operator)
        replay = admin_service.force_resolve_dispute(db_session, dispute.id, *args, actor=operator)

    assert replay.id == dispute.id
    assert order.status == OrderStatus.COMPLETED
    entries = db_session.scalars(select(AuditLog).where(AuditLog.action == "ADMIN_DISPUTE_FORCE_RESOLVE")).all()
    assert len(entries) == 1
    assert sum("force-resolved" in record.getMessage() for record in caplog.records) == 1
    db_session.expire_all()
    assert [e.kind for e in order.escrow.events] == ["CAPTURED", "RELEASED"]


def test_force_resolve_replay_with_other_outcome_is_rejected(lifecycle, db_session, operator):
    _, dispute = lifecycle.disputed("500.00")
    admin_service.force_resolve_dispute(
        db_session, dispute.id, DisputeOutcome.REFUND, "Damaged", "Inspector on leave", actor=operator
    )
    with pytest.raises(InvalidTransition):
        admin_service.force_resolve_dispute(
            db_session, dispute.id, DisputeOutcome.RELEASE, "Fine after all", "Second thoughts", actor=operator
        )
    assert len(db_session.scalars(select(AuditLog).where(AuditLog.action == "ADMIN_DISPUTE_FORCE_RESOLVE")).all()) == 1


def test_force_resolve_keeps_qc_notes(lifecycle, db_session, operator):
    _, dispute = lifecycle.disputed("500.00")
    admin_service.force_resolve_dispute(
        db_session,
        dispute.id,
        DisputeOutcome.REFUND,
        "Supplier admitted the fault",
        "Inspector unavailable",
        actor=operator,
        notes="Call recording attached",
        qc_action="full_refund",
    )
    assert dispute.qc_notes == "Call recording attached"
    assert dispute.qc_action == "full_refund"
