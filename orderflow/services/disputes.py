"""Dispute workflow: opening, QC review, site visits and resolution."""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from orderflow.config import get_settings
from orderflow.models import (
    Dispute,
    DisputeEvidence,
    DisputeOutcome,
    DisputeParty,
    DisputeReason,
    DisputeStatus,
    Order,
    OrderStatus,
)
from orderflow.services.actors import Actor, ActorRole, require_operator, require_party
from orderflow.services.locks import locked_order
from orderflow.services.orders import apply_transition
from orderflow.services.state_machine import can_transition_dispute
from orderflow.utils.audit import log_audit
from orderflow.utils.errors import InvalidTransition, NotFound, SiteVisitIncomplete, ValidationError
from orderflow.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)

_PARTY_BY_ROLE = {
    ActorRole.BUYER: DisputeParty.BUYER,
    ActorRole.SUPPLIER: DisputeParty.SUPPLIER,
    ActorRole.OPERATOR: DisputeParty.SYSTEM,
    ActorRole.SYSTEM: DisputeParty.SYSTEM,
}


def validate_description(description: str | None) -> str:
    minimum = get_settings().DISPUTE_MIN_DESCRIPTION_LENGTH
    cleaned = (description or "").strip()
    if len(cleaned) < minimum:
        raise ValidationError(
            f"Description must be at least {minimum} characters.",
            code="DESCRIPTION_TOO_SHORT",
            details={"min_length": minimum, "length": len(cleaned)},
        )
    return cleaned


def site_visit_required_for(total, threshold: Decimal | None = None) -> bool:
    if threshold is None:
        threshold = get_settings().SITE_VISIT_THRESHOLD
    return Decimal(str(total)) >= Decimal(str(threshold))


def open_in_session(
    db: Session,
    order: Order,
    *,
    reason: DisputeReason,
    description: str,
    party: DisputeParty,
    actor: Actor,
    evidence_urls: list[str] | None = None,
) -> Dispute:
    """Move ``order`` to disputed and attach a new dispute. Does not commit."""

    cleaned = validate_description(description)
    apply_transition(
        db,
        order,
        OrderStatus.DISPUTED,
        actor=actor,
        data={"reason": reason.value, "opened_by": party.value},
    )
    now = utcnow()
    dispute = Dispute(
        reason=reason,
        description=cleaned,
        opened_by=party,
        opened_by_actor=actor.label,
        opened_at=now,
        status=DisputeStatus.OPENED,
        site_visit_required=site_visit_required_for(order.total),
        site_visit_forced=False,
        site_visit_completed=False,
    )
    for url in evidence_urls or []:
        if url and url.strip():
            dispute.evidence.append(DisputeEvidence(url=url.strip(), submitted_by=actor.label))
    # Appended through the collection so open_dispute sees it before flush.
    order.disputes.append(dispute)
    order.dispute_reason = cleaned
    db.flush()
    log_audit(
        db,
        actor=actor.label,
        action="DISPUTE_OPENED",
        entity="Dispute",
        entity_id=dispute.id,
        data={
            "order_id": order.id,
            "reason": reason.value,
            "opened_by": party.value,
            "site_visit_required": dispute.site_visit_required,
        },
    )
    logger.info(
        "Dispute opened",
        extra={"order_id": order.id, "dispute_id": dispute.id, "site_visit_required": dispute.site_visit_required},
    )
    return dispute


def open_dispute(
    db: Session,
    order_id: int,
    description: str,
    *,
    actor: Actor,
    reason: DisputeReason = DisputeReason.OTHER,
    evidence_urls: list[str] | None = None,
) -> Dispute:
    """Raise a dispute from any state that allows it (supplier, buyer or system)."""

    validate_description(description)
    with locked_order(db, order_id) as order:
        require_party(order, actor, ActorRole.BUYER, ActorRole.SUPPLIER, ActorRole.OPERATOR, ActorRole.SYSTEM)
        existing = order.open_dispute
        if order.status == OrderStatus.DISPUTED and existing is not None:
            return existing
        dispute = open_in_session(
            db,
            order,
            reason=reason,
            description=description,
            party=_PARTY_BY_ROLE[actor.role],
            actor=actor,
            evidence_urls=evidence_urls,
        )
        db.commit()
    return dispute


def _load(db: Session, dispute_id: int) -> Dispute:
    dispute = db.get(Dispute, dispute_id)
    if dispute is None:
        raise NotFound("Dispute not found.", code="DISPUTE_NOT_FOUND", details={"dispute_id": dispute_id})
    return dispute


@contextmanager
def locked_dispute(db: Session, dispute_id: int) -> Iterator[tuple[Order, Dispute]]:
    order_id = _load(db, dispute_id).order_id
    with locked_order(db, order_id) as order:
        yield order, _load(db, dispute_id)


def get_dispute(db: Session, dispute_id: int, *, actor: Actor) -> Dispute:
    dispute = _load(db, dispute_id)
    require_party(
        dispute.order, actor, ActorRole.BUYER, ActorRole.SUPPLIER, ActorRole.OPERATOR, ActorRole.SYSTEM
    )
    return dispute


def _require_open(dispute: Dispute, requested: DisputeStatus) -> None:
    if not dispute.is_open:
        raise InvalidTransition(dispute.status, requested, entity="dispute", details={"dispute_id": dispute.id})


def _move(dispute: Dispute, target: DisputeStatus) -> None:
    if not can_transition_dispute(dispute.status, target):
        raise InvalidTransition(dispute.status, target, entity="dispute", details={"dispute_id": dispute.id})
    dispute.status = target


def _record_qc(dispute: Dispute, notes: str | None, qc_action: str | None) -> None:
    """Append operator notes to the QC log and keep the latest action."""

    cleaned = (notes or "").strip()
    if cleaned:
        dispute.qc_notes = f"{dispute.qc_notes}\n{cleaned}" if dispute.qc_notes else cleaned
    if qc_action:
        dispute.qc_action = qc_action


def start_investigation(
    db: Session,
    dispute_id: int,
    *,
    actor: Actor,
    notes: str | None = None,
    qc_action: str | None = None,
) -> Dispute:
    with locked_dispute(db, dispute_id) as (order, dispute):
        require_operator(order, actor)
        if dispute.status == DisputeStatus.INVESTIGATING:
            return dispute
        _move(dispute, DisputeStatus.INVESTIGATING)
        _record_qc(dispute, notes, qc_action)
        log_audit(
            db,
            actor=actor.label,
            action="DISPUTE_INVESTIGATING",
            entity="Dispute",
            entity_id=dispute.id,
            data={"order_id": order.id, "notes": notes, "qc_action": qc_action},
        )
        db.commit()
    return dispute


def escalate(
    db: Session,
    dispute_id: int,
    *,
    actor: Actor,
    notes: str | None = None,
    qc_action: str | None = None,
) -> Dispute:
    with locked_dispute(db, dispute_id) as (order, dispute):
        require_operator(order, actor)
        if dispute.status == DisputeStatus.ESCALATED:
            return dispute
        _move(dispute, DisputeStatus.ESCALATED)
        _record_qc(dispute, notes, qc_action)
        log_audit(
            db,
            actor=actor.label,
            action="DISPUTE_ESCALATED",
            entity="Dispute",
            entity_id=dispute.id,
            data={"order_id": order.id, "notes": notes, "qc_action": qc_action},
        )
        db.commit()
    logger.info("Dispute escalated", extra={"dispute_id": dispute_id})
    return dispute


def require_site_visit(db: Session, dispute_id: int, *, actor: Actor, reason: str | None = None) -> Dispute:
    """Operators may demand a visit below the value threshold."""

    with locked_dispute(db, dispute_id) as (order, dispute):
        require_operator(order, actor)
        _require_open(dispute, dispute.status)
        if dispute.site_visit_required:
            return dispute
        dispute.site_visit_required = True
        dispute.site_visit_forced = True
        log_audit(
            db,
            actor=actor.label,
            action="DISPUTE_SITE_VISIT_REQUIRED",
            entity="Dispute",
            entity_id=dispute.id,
            data={"order_id": order.id, "reason": reason},
        )
        db.commit()
    return dispute


def schedule_site_visit(
    db: Session, dispute_id: int, scheduled_at: datetime, inspector: str, *, actor: Actor
) -> Dispute:
    cleaned_inspector = (inspector or "").strip()
    if not cleaned_inspector:
        raise ValidationError("An inspector must be assigned.", code="INSPECTOR_REQUIRED")
    with locked_dispute(db, dispute_id) as (order, dispute):
        require_operator(order, actor)
        _require_open(dispute, dispute.status)
        if not dispute.site_visit_required:
            raise ValidationError(
                "No site visit is required for this dispute.",
                code="SITE_VISIT_NOT_REQUIRED",
                details={"dispute_id": dispute.id},
            )
        if dispute.site_visit_completed:
            raise ValidationError(
                "The site visit has already been completed.",
                code="SITE_VISIT_ALREADY_COMPLETED",
                details={"dispute_id": dispute.id},
            )
        dispute.site_visit_scheduled_at = as_utc(scheduled_at)
        dispute.site_visit_inspector = cleaned_inspector
        log_audit(
            db,
            actor=actor.label,
            action="DISPUTE_SITE_VISIT_SCHEDULED",
            entity="Dispute",
            entity_id=dispute.id,
            data={"order_id": order.id, "scheduled_at": dispute.site_visit_scheduled_at.isoformat(), "inspector": cleaned_inspector},
        )
        db.commit()
    return dispute


def complete_site_visit(db: Session, dispute_id: int, *, actor: Actor, notes: str | None = None) -> Dispute:
    with locked_dispute(db, dispute_id) as (order, dispute):
        require_operator(order, actor)
        if dispute.site_visit_completed:
            return dispute
        _require_open(dispute, dispute.status)
        if dispute.site_visit_scheduled_at is None or not dispute.site_visit_inspector:
            raise ValidationError(
                "Schedule the site visit and assign an inspector first.",
                code="SITE_VISIT_NOT_SCHEDULED",
                details={"dispute_id": dispute.id},
            )
        dispute.site_visit_completed = True
        dispute.site_visit_completed_at = utcnow()
        if notes:
            dispute.qc_notes = notes
        log_audit(
            db,
            actor=actor.label,
            action="DISPUTE_SITE_VISIT_COMPLETED",
            entity="Dispute",
            entity_id=dispute.id,
            data={"order_id": order.id, "inspector": dispute.site_visit_inspector},
        )
        db.commit()
    return dispute


def add_evidence(
    db: Session, dispute_id: int, url: str, *, actor: Actor, description: str | None = None
) -> DisputeEvidence:
    cleaned = (url or "").strip()
    if not cleaned:
        raise ValidationError("An evidence URL is required.", code="EVIDENCE_URL_REQUIRED")
    with locked_dispute(db, dispute_id) as (order, dispute):
        require_party(order, actor, ActorRole.BUYER, ActorRole.SUPPLIER, ActorRole.OPERATOR)
        _require_open(dispute, dispute.status)
        evidence = DisputeEvidence(url=cleaned, description=description, submitted_by=actor.label)
        dispute.evidence.append(evidence)
        db.flush()
        log_audit(
            db,
            actor=actor.label,
            action="DISPUTE_EVIDENCE_ADDED",
            entity="Dispute",
            entity_id=dispute.id,
            data={"order_id": order.id, "url": cleaned},
        )
        db.commit()
    return evidence


def resolve_in_session(
    db: Session,
    order: Order,
    dispute: Dispute,
    outcome: DisputeOutcome,
    resolution: str,
    *,
    actor: Actor,
    override_reason: str | None = None,
    notes: str | None = None,
    qc_action: str | None = None,
) -> Dispute:
    """Close ``dispute`` and settle the order. Does not commit.

    Release completes the order; refund cancels it with the resolution text
    as the refund reason. A pending site visit blocks resolution unless an
    override reason is supplied.
    """

    cleaned = (resolution or "").strip()
    if not cleaned:
        raise ValidationError("A resolution note is required.", code="RESOLUTION_REQUIRED")
    if dispute.status == DisputeStatus.RESOLVED:
        if dispute.outcome == outcome:
            return dispute
        raise InvalidTransition(
            dispute.status,
            DisputeStatus.RESOLVED,
            entity="dispute",
            details={"dispute_id": dispute.id, "outcome": dispute.outcome.value if dispute.outcome else None},
        )
    if dispute.site_visit_outstanding and override_reason is None:
        raise SiteVisitIncomplete(
            "A required site visit has not been completed.",
            details={
                "dispute_id": dispute.id,
                "scheduled_at": dispute.site_visit_scheduled_at.isoformat() if dispute.site_visit_scheduled_at else None,
                "inspector": dispute.site_visit_inspector,
            },
        )

    _move(dispute, DisputeStatus.RESOLVED)
    dispute.outcome = outcome
    dispute.resolution = cleaned
    dispute.resolved_at = utcnow()
    dispute.resolved_by = actor.label
    dispute.override_reason = override_reason
    _record_qc(dispute, notes, qc_action)

    data = {"dispute_id": dispute.id, "outcome": outcome.value}
    if outcome == DisputeOutcome.RELEASE:
        apply_transition(db, order, OrderStatus.COMPLETED, actor=actor, data=data)
    else:
        apply_transition(db, order, OrderStatus.CANCELLED, actor=actor, reason=cleaned, data=data)
        order.cancellation_reason = cleaned
    log_audit(
        db,
        actor=actor.label,
        action="DISPUTE_RESOLVED",
        entity="Dispute",
        entity_id=dispute.id,
        data={
            "order_id": order.id,
            "outcome": outcome.value,
            "override": override_reason is not None,
            "notes": notes,
            "qc_action": qc_action,
        },
    )
    logger.info(
        "Dispute resolved",
        extra={"dispute_id": dispute.id, "order_id": order.id, "outcome": outcome.value},
    )
    return dispute


def resolve(
    db: Session,
    dispute_id: int,
    outcome: DisputeOutcome,
    resolution: str,
    *,
    actor: Actor,
    notes: str | None = None,
    qc_action: str | None = None,
) -> Dispute:
    with locked_dispute(db, dispute_id) as (order, dispute):
        require_operator(order, actor)
        resolve_in_session(
            db, order, dispute, outcome, resolution, actor=actor, notes=notes, qc_action=qc_action
        )
        db.commit()
    return dispute


__all__ = [
    "validate_description",
    "site_visit_required_for",
    "open_in_session",
    "open_dispute",
    "locked_dispute",
    "get_dispute",
    "start_investigation",
    "escalate",
    "require_site_visit",
    "schedule_site_visit",
    "complete_site_visit",
    "add_evidence",
    "resolve_in_session",
    "resolve",
]
