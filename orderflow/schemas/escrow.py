"""Escrow schemas."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from orderflow.models.escrow import EscrowStatus


class EscrowEventRead(BaseModel):
    kind: str
    actor: str
    data_json: dict
    at: datetime

    model_config = ConfigDict(from_attributes=True)


class EscrowRead(BaseModel):
    id: int
    order_id: int
    status: EscrowStatus
    amount: Decimal | None = None
    held_at: datetime | None = None
    released_at: datetime | None = None
    refunded_at: datetime | None = None
    refund_reason: str | None = None
    events: list[EscrowEventRead] = []

    model_config = ConfigDict(from_attributes=True)
