"""Dispute endpoints (opening, QC workflow, site visits, resolution)."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from orderflow.db import get_db
from orderflow.models import Dispute, DisputeEvidence
from orderflow.schemas.dispute import (
    DisputeCreate,
    DisputeRead,
    DisputeResolution,
    EvidenceCreate,
    EvidenceRead,
    QcNotesPayload,
    SiteVisitCompletion,
    SiteVisitRequirement,
    SiteVisitSchedule,
)
from orderflow.security import get_actor
from orderflow.services import disputes as dispute_service
from orderflow.services.actors import Actor

router = APIRouter(tags=["disputes"])


@router.post("/orders/{order_id}/disputes", response_model=DisputeRead, status_code=status.HTTP_201_CREATED)
def open_dispute(
    order_id: int,
    payload: DisputeCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Dispute:
    return dispute_service.open_dispute(
        db,
        order_id,
        payload.description,
        actor=actor,
        reason=payload.reason,
        evidence_urls=payload.evidence_urls,
    )


@router.get("/disputes/{dispute_id}", response_model=DisputeRead)
def read_dispute(dispute_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)) -> Dispute:
    return dispute_service.get_dispute(db, dispute_id, actor=actor)


@router.post("/disputes/{dispute_id}/investigate", response_model=DisputeRead)
def start_investigation(
    dispute_id: int,
    payload: QcNotesPayload | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Dispute:
    payload = payload or QcNotesPayload()
    return dispute_service.start_investigation(
        db, dispute_id, actor=actor, notes=payload.notes, qc_action=payload.qc_action
    )


@router.post("/disputes/{dispute_id}/escalate", response_model=DisputeRead)
def escalate(
    dispute_id: int,
    payload: QcNotesPayload | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Dispute:
    payload = payload or QcNotesPayload()
    return dispute_service.escalate(db, dispute_id, actor=actor, notes=payload.notes, qc_action=payload.qc_action)


@router.post("/disputes/{dispute_id}/require-site-visit", response_model=DisputeRead)
def require_site_visit(
    dispute_id: int,
    payload: SiteVisitRequirement | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Dispute:
    reason = payload.reason if payload else None
    return dispute_service.require_site_visit(db, dispute_id, actor=actor, reason=reason)


@router.post("/disputes/{dispute_id}/schedule-visit", response_model=DisputeRead)
def schedule_site_visit(
    dispute_id: int,
    payload: SiteVisitSchedule,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Dispute:
    return dispute_service.schedule_site_visit(
        db, dispute_id, payload.scheduled_at, payload.inspector, actor=actor
    )


@router.post("/disputes/{dispute_id}/complete-visit", response_model=DisputeRead)
def complete_site_visit(
    dispute_id: int,
    payload: SiteVisitCompletion | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Dispute:
    notes = payload.notes if payload else None
    return dispute_service.complete_site_visit(db, dispute_id, actor=actor, notes=notes)


@router.post("/disputes/{dispute_id}/evidence", response_model=EvidenceRead, status_code=status.HTTP_201_CREATED)
def add_evidence(
    dispute_id: int,
    payload: EvidenceCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> DisputeEvidence:
    return dispute_service.add_evidence(db, dispute_id, payload.url, actor=actor, description=payload.description)


@router.post("/disputes/{dispute_id}/resolve", response_model=DisputeRead)
def resolve(
    dispute_id: int,
    payload: DisputeResolution,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Dispute:
    return dispute_service.resolve(
        db,
        dispute_id,
        payload.outcome,
        payload.resolution,
        actor=actor,
        notes=payload.notes,
        qc_action=payload.qc_action,
    )
