"""Order transition table and pure transition planning.

``plan_transition`` computes the next state and the list of side effects a
transition must apply; it touches no session. ``orders.apply_transition``
executes a plan inside the caller's unit of work.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from orderflow.models import DisputeStatus, EscrowStatus, OrderStatus
from orderflow.utils.errors import InvalidTransition

ORDER_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = MappingProxyType(
    {
        OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.REJECTED, OrderStatus.CANCELLED}),
        OrderStatus.CONFIRMED: frozenset(
            {OrderStatus.IN_DELIVERY, OrderStatus.CANCELLED, OrderStatus.DISPUTED}
        ),
        OrderStatus.IN_DELIVERY: frozenset(
            {OrderStatus.AWAITING_CONFIRMATION, OrderStatus.DELIVERED, OrderStatus.DISPUTED}
        ),
        OrderStatus.AWAITING_CONFIRMATION: frozenset(
            {OrderStatus.DELIVERED, OrderStatus.COMPLETED, OrderStatus.DISPUTED}
        ),
        OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED, OrderStatus.DISPUTED}),
        OrderStatus.DISPUTED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
        OrderStatus.COMPLETED: frozenset(),
        OrderStatus.REJECTED: frozenset(),
        OrderStatus.CANCELLED: frozenset(),
    }
)

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.REJECTED, OrderStatus.CANCELLED})

TIMESTAMP_FIELDS: Mapping[OrderStatus, str] = MappingProxyType(
    {
        OrderStatus.CONFIRMED: "confirmed_at",
        OrderStatus.IN_DELIVERY: "delivery_started_at",
        OrderStatus.AWAITING_CONFIRMATION: "awaiting_confirmation_at",
        OrderStatus.DELIVERED: "delivered_at",
        OrderStatus.COMPLETED: "completed_at",
        OrderStatus.REJECTED: "rejected_at",
        OrderStatus.CANCELLED: "cancelled_at",
        OrderStatus.DISPUTED: "disputed_at",
    }
)

EVENT_TYPES: Mapping[OrderStatus, str] = MappingProxyType(
    {
        OrderStatus.CONFIRMED: "order.confirmed",
        OrderStatus.IN_DELIVERY: "order.delivery_started",
        OrderStatus.AWAITING_CONFIRMATION: "order.awaiting_confirmation",
        OrderStatus.DELIVERED: "order.delivered",
        OrderStatus.COMPLETED: "order.completed",
        OrderStatus.REJECTED: "order.rejected",
        OrderStatus.CANCELLED: "order.cancelled",
        OrderStatus.DISPUTED: "order.disputed",
    }
)

DISPUTE_TRANSITIONS: Mapping[DisputeStatus, frozenset[DisputeStatus]] = MappingProxyType(
    {
        DisputeStatus.OPENED: frozenset({DisputeStatus.INVESTIGATING, DisputeStatus.RESOLVED}),
        DisputeStatus.INVESTIGATING: frozenset({DisputeStatus.ESCALATED, DisputeStatus.RESOLVED}),
        DisputeStatus.ESCALATED: frozenset({DisputeStatus.RESOLVED}),
        DisputeStatus.RESOLVED: frozenset(),
    }
)


class SideEffect(str, Enum):
    PREPARE_DELIVERY = "prepare_delivery"
    CAPTURE_ESCROW = "capture_escrow"
    RELEASE_ESCROW = "release_escrow"
    REFUND_ESCROW = "refund_escrow"


@dataclass(frozen=True)
class TransitionPlan:
    order_id: int
    old_status: OrderStatus
    new_status: OrderStatus
    actor: str
    event_type: str
    timestamp_field: str
    side_effects: tuple[SideEffect, ...]


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def can_transition_dispute(current: DisputeStatus, target: DisputeStatus) -> bool:
    return target in DISPUTE_TRANSITIONS.get(current, frozenset())


def plan_transition(
    order_id: int,
    current: OrderStatus,
    target: OrderStatus,
    *,
    actor: str,
    escrow_status: EscrowStatus | None,
) -> TransitionPlan:
    """Return the plan for ``current -> target`` or raise ``InvalidTransition``."""

    if not can_transition(current, target):
        raise InvalidTransition(current, target, details={"order_id": order_id})

    effects: list[SideEffect] = []
    if target == OrderStatus.CONFIRMED:
        effects.extend((SideEffect.CAPTURE_ESCROW, SideEffect.PREPARE_DELIVERY))
    elif target == OrderStatus.COMPLETED:
        effects.append(SideEffect.RELEASE_ESCROW)
    elif target in (OrderStatus.CANCELLED, OrderStatus.REJECTED) and escrow_status == EscrowStatus.HELD:
        # Nothing was captured before confirmation, so there is nothing to give back.
        effects.append(SideEffect.REFUND_ESCROW)

    return TransitionPlan(
        order_id=order_id,
        old_status=current,
        new_status=target,
        actor=actor,
        event_type=EVENT_TYPES[target],
        timestamp_field=TIMESTAMP_FIELDS[target],
        side_effects=tuple(effects),
    )


__all__ = [
    "ORDER_TRANSITIONS",
    "TERMINAL_STATUSES",
    "TIMESTAMP_FIELDS",
    "EVENT_TYPES",
    "DISPUTE_TRANSITIONS",
    "SideEffect",
    "TransitionPlan",
    "can_transition",
    "can_transition_dispute",
    "plan_transition",
]
