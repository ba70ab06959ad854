"""Escrow ledger read endpoint.

Funds only move as side effects of order transitions, so there are no
write routes here.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from orderflow.db import get_db
from orderflow.models import EscrowRecord
from orderflow.schemas.escrow import EscrowRead
from orderflow.security import get_actor
from orderflow.services import escrow as escrow_service
from orderflow.services.actors import Actor, ActorRole, require_party

router = APIRouter(prefix="/orders", tags=["escrow"])


@router.get("/{order_id}/escrow", response_model=EscrowRead)
def read_escrow(order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)) -> EscrowRecord:
    escrow = escrow_service.get_escrow(db, order_id)
    require_party(escrow.order, actor, ActorRole.BUYER, ActorRole.SUPPLIER, ActorRole.OPERATOR, ActorRole.SYSTEM)
    return escrow
