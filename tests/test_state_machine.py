import pytest

from orderflow.models import DisputeStatus, EscrowStatus, OrderStatus
from orderflow.services.state_machine import (
    ORDER_TRANSITIONS,
    TERMINAL_STATUSES,
    SideEffect,
    can_transition,
    can_transition_dispute,
    plan_transition,
)
from orderflow.utils.errors import InvalidTransition


def test_every_status_has_a_transition_row():
    assert set(ORDER_TRANSITIONS) == set(OrderStatus)


def test_terminal_statuses_have_no_exits():
    for status in TERMINAL_STATUSES:
        assert ORDER_TRANSITIONS[status] == frozenset()


@pytest.mark.parametrize(
    "current,target",
    [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED),
        (OrderStatus.PENDING, OrderStatus.REJECTED),
        (OrderStatus.CONFIRMED, OrderStatus.IN_DELIVERY),
        (OrderStatus.IN_DELIVERY, OrderStatus.AWAITING_CONFIRMATION),
        (OrderStatus.AWAITING_CONFIRMATION, OrderStatus.COMPLETED),
        (OrderStatus.DELIVERED, OrderStatus.DISPUTED),
        (OrderStatus.DISPUTED, OrderStatus.CANCELLED),
    ],
)
def test_legal_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (OrderStatus.PENDING, OrderStatus.COMPLETED),
        (OrderStatus.PENDING, OrderStatus.DISPUTED),
        (OrderStatus.CONFIRMED, OrderStatus.COMPLETED),
        (OrderStatus.COMPLETED, OrderStatus.DISPUTED),
        (OrderStatus.CANCELLED, OrderStatus.CONFIRMED),
        (OrderStatus.DISPUTED, OrderStatus.IN_DELIVERY),
    ],
)
def test_illegal_transition_reports_both_statuses(current, target):
    with pytest.raises(InvalidTransition) as exc_info:
        plan_transition(7, current, target, actor="system:test", escrow_status=EscrowStatus.HELD)
    details = exc_info.value.details
    assert details["current_status"] == current.value
    assert details["requested_status"] == target.value
    assert details["order_id"] == 7


def test_confirmation_captures_and_prepares_delivery():
    plan = plan_transition(
        1, OrderStatus.PENDING, OrderStatus.CONFIRMED, actor="supplier:s", escrow_status=EscrowStatus.PENDING
    )
    assert plan.side_effects == (SideEffect.CAPTURE_ESCROW, SideEffect.PREPARE_DELIVERY)
    assert plan.event_type == "order.confirmed"
    assert plan.timestamp_field == "confirmed_at"


def test_completion_releases():
    plan = plan_transition(
        1, OrderStatus.DISPUTED, OrderStatus.COMPLETED, actor="operator:o", escrow_status=EscrowStatus.HELD
    )
    assert plan.side_effects == (SideEffect.RELEASE_ESCROW,)


def test_cancellation_refunds_only_captured_funds():
    before_capture = plan_transition(
        1, OrderStatus.PENDING, OrderStatus.CANCELLED, actor="buyer:b", escrow_status=EscrowStatus.PENDING
    )
    after_capture = plan_transition(
        1, OrderStatus.CONFIRMED, OrderStatus.CANCELLED, actor="supplier:s", escrow_status=EscrowStatus.HELD
    )
    assert before_capture.side_effects == ()
    assert after_capture.side_effects == (SideEffect.REFUND_ESCROW,)


def test_dispute_workflow_table():
    assert can_transition_dispute(DisputeStatus.OPENED, DisputeStatus.INVESTIGATING)
    assert can_transition_dispute(DisputeStatus.INVESTIGATING, DisputeStatus.ESCALATED)
    assert can_transition_dispute(DisputeStatus.ESCALATED, DisputeStatus.RESOLVED)
    assert not can_transition_dispute(DisputeStatus.OPENED, DisputeStatus.ESCALATED)
    assert not can_transition_dispute(DisputeStatus.RESOLVED, DisputeStatus.OPENED)
