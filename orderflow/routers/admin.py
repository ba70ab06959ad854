"""Operator override endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from orderflow.db import get_db
from orderflow.models import Delivery, Dispute
from orderflow.schemas.delivery import DeliveryRead, PinUnlockPayload
from orderflow.schemas.dispute import DisputeForceResolution, DisputeRead
from orderflow.security import get_actor
from orderflow.services import admin as admin_service
from orderflow.services.actors import Actor

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/deliveries/{order_id}/unlock-pin", response_model=DeliveryRead)
def unlock_pin(
    order_id: int,
    payload: PinUnlockPayload,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Delivery:
    return admin_service.unlock_pin(
        db, order_id, payload.justification, actor=actor, regenerate_pin=payload.regenerate_pin
    )


@router.post("/disputes/{dispute_id}/force-resolve", response_model=DisputeRead)
def force_resolve(
    dispute_id: int,
    payload: DisputeForceResolution,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Dispute:
    return admin_service.force_resolve_dispute(
        db,
        dispute_id,
        payload.outcome,
        payload.resolution,
        payload.justification,
        actor=actor,
        notes=payload.notes,
        qc_action=payload.qc_action,
    )
