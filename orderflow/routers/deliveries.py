"""Delivery confirmation endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from orderflow.db import get_db
from orderflow.models import Delivery, Dispute
from orderflow.schemas.delivery import BuyerDeliveryRead, DeliveryRead, PhotoSubmission, PinSubmission
from orderflow.schemas.dispute import DisputeCreate, DisputeRead
from orderflow.security import get_actor
from orderflow.services import deliveries as delivery_service
from orderflow.services.actors import Actor, ActorRole

router = APIRouter(prefix="/orders", tags=["deliveries"])


def _present(delivery: Delivery, actor: Actor) -> dict:
    # Only the buyer sees the PIN.
    schema = BuyerDeliveryRead if actor.role == ActorRole.BUYER else DeliveryRead
    return schema.model_validate(delivery).model_dump(mode="json")


@router.get("/{order_id}/delivery", response_model=None)
def read_delivery(order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)) -> dict:
    return _present(delivery_service.get_delivery(db, order_id, actor=actor), actor)


@router.post("/{order_id}/delivery/pin", response_model=DeliveryRead)
def verify_pin(
    order_id: int,
    payload: PinSubmission,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Delivery:
    return delivery_service.verify_pin(db, order_id, payload.pin, actor=actor)


@router.post("/{order_id}/delivery/photo", response_model=DeliveryRead)
def submit_photo(
    order_id: int,
    payload: PhotoSubmission,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Delivery:
    return delivery_service.submit_photo(db, order_id, payload.photo_url, actor=actor)


@router.post("/{order_id}/confirm-receipt", response_model=DeliveryRead)
def confirm_receipt(order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)) -> Delivery:
    return delivery_service.confirm_receipt(db, order_id, actor=actor)


@router.post("/{order_id}/report-issue", response_model=DisputeRead, status_code=status.HTTP_201_CREATED)
def report_issue(
    order_id: int,
    payload: DisputeCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Dispute:
    return delivery_service.report_issue(
        db,
        order_id,
        payload.description,
        actor=actor,
        reason=payload.reason,
        evidence_urls=payload.evidence_urls,
    )
