"""Operator overrides. Every call is audited and logged at WARNING."""
import logging

from sqlalchemy.orm import Session

from orderflow.models import Delivery, Dispute, DisputeOutcome, DisputeStatus
from orderflow.services.actors import Actor, require_operator
from orderflow.services.confirmation import generate_pin
from orderflow.services.disputes import locked_dispute, resolve_in_session
from orderflow.services.locks import locked_order
from orderflow.utils.audit import log_audit
from orderflow.utils.errors import NotFound, ValidationError
from orderflow.utils.time import utcnow

logger = logging.getLogger(__name__)


def _require_justification(justification: str | None) -> str:
    cleaned = (justification or "").strip()
    if not cleaned:
        raise ValidationError("A justification is required for administrative overrides.", code="JUSTIFICATION_REQUIRED")
    return cleaned


def unlock_pin(
    db: Session,
    order_id: int,
    justification: str,
    *,
    actor: Actor,
    regenerate_pin: bool = False,
) -> Delivery:
    """Reset a locked PIN delivery so the supplier can try again."""

    reason = _require_justification(justification)
    with locked_order(db, order_id) as order:
        require_operator(order, actor)
        delivery = order.delivery
        if delivery is None:
            raise NotFound("Delivery not prepared yet.", code="DELIVERY_NOT_FOUND", details={"order_id": order_id})
        if not delivery.is_locked:
            raise ValidationError(
                "Delivery PIN is not locked.",
                code="DELIVERY_NOT_LOCKED",
                details={"order_id": order_id, "attempts": delivery.pin_attempts},
            )
        previous_attempts = delivery.pin_attempts
        delivery.pin_attempts = 0
        delivery.locked_at = None
        delivery.unlocked_at = utcnow()
        if regenerate_pin:
            delivery.pin = generate_pin(len(delivery.pin) if delivery.pin else None)
        log_audit(
            db,
            actor=actor.label,
            action="ADMIN_PIN_UNLOCK",
            entity="Delivery",
            entity_id=delivery.id,
            data={
                "order_id": order_id,
                "justification": reason,
                "previous_attempts": previous_attempts,
                "pin_regenerated": regenerate_pin,
            },
        )
        db.commit()
    logger.warning(
        "Administrative override: delivery PIN unlocked",
        extra={"order_id": order_id, "actor": actor.label, "justification": reason},
    )
    return delivery


def force_resolve_dispute(
    db: Session,
    dispute_id: int,
    outcome: DisputeOutcome,
    resolution: str,
    justification: str,
    *,
    actor: Actor,
    notes: str | None = None,
    qc_action: str | None = None,
) -> Dispute:
    """Resolve a dispute even when a required site visit is still outstanding.

    Repeating the call with the same outcome returns the resolved dispute
    without recording a second override.
    """

    reason = _require_justification(justification)
    with locked_dispute(db, dispute_id) as (order, dispute):
        require_operator(order, actor)
        if dispute.status == DisputeStatus.RESOLVED:
            # Raises unless the outcome matches the recorded one.
            return resolve_in_session(db, order, dispute, outcome, resolution, actor=actor, override_reason=reason)
        visit_outstanding = dispute.site_visit_outstanding
        resolve_in_session(
            db,
            order,
            dispute,
            outcome,
            resolution,
            actor=actor,
            override_reason=reason,
            notes=notes,
            qc_action=qc_action,
        )
        log_audit(
            db,
            actor=actor.label,
            action="ADMIN_DISPUTE_FORCE_RESOLVE",
            entity="Dispute",
            entity_id=dispute.id,
            data={
                "order_id": order.id,
                "outcome": outcome.value,
                "justification": reason,
                "site_visit_outstanding": visit_outstanding,
            },
        )
        db.commit()
    logger.warning(
        "Administrative override: dispute force-resolved",
        extra={"dispute_id": dispute_id, "actor": actor.label, "justification": reason},
    )
    return dispute


__all__ = ["unlock_pin", "force_resolve_dispute"]
