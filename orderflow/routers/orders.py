"""Order lifecycle endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from orderflow.db import get_db
from orderflow.models import Order, OrderEvent
from orderflow.schemas.order import OrderCreate, OrderEventRead, OrderRead, ReasonPayload
from orderflow.security import get_actor
from orderflow.services import orders as order_service
from orderflow.services.actors import Actor

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Order:
    return order_service.create_order(db, payload, actor=actor)


@router.get("/{order_id}", response_model=OrderRead)
def read_order(order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)) -> Order:
    return order_service.get_order_for(db, order_id, actor=actor)


@router.get("/{order_id}/events", response_model=list[OrderEventRead])
def list_order_events(
    order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)
) -> list[OrderEvent]:
    return order_service.list_events(db, order_id, actor=actor)


@router.post("/{order_id}/accept", response_model=OrderRead)
def accept_order(order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)) -> Order:
    return order_service.accept_order(db, order_id, actor=actor)


@router.post("/{order_id}/reject", response_model=OrderRead)
def reject_order(
    order_id: int,
    payload: ReasonPayload,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Order:
    return order_service.reject_order(db, order_id, payload.reason, actor=actor)


@router.post("/{order_id}/cancel", response_model=OrderRead)
def cancel_order(
    order_id: int,
    payload: ReasonPayload,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Order:
    return order_service.cancel_order(db, order_id, payload.reason, actor=actor)


@router.post("/{order_id}/start-delivery", response_model=OrderRead)
def start_delivery(order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)) -> Order:
    return order_service.start_delivery(db, order_id, actor=actor)


@router.post("/{order_id}/mark-delivered", response_model=OrderRead)
def mark_delivered(order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)) -> Order:
    return order_service.mark_delivered(db, order_id, actor=actor)
