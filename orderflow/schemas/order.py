"""Order schemas."""
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from orderflow.models.order import OrderStatus


class OrderCreate(BaseModel):
    buyer_id: str = Field(min_length=1, max_length=64)
    supplier_id: str = Field(min_length=1, max_length=64)
    subtotal: Decimal = Field(ge=Decimal("0"), max_digits=18, decimal_places=2)
    delivery_fee: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), max_digits=18, decimal_places=2)
    delivery_date: date | None = None
    delivery_time_slot: str | None = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def _distinct_parties(self) -> "OrderCreate":
        if self.buyer_id == self.supplier_id:
            raise ValueError("buyer and supplier must differ")
        return self


class ReasonPayload(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)


class OrderRead(BaseModel):
    id: int
    order_number: str | None
    buyer_id: str
    supplier_id: str
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal
    status: OrderStatus
    delivery_date: date | None = None
    delivery_time_slot: str | None = None
    created_at: datetime
    confirmed_at: datetime | None = None
    delivery_started_at: datetime | None = None
    awaiting_confirmation_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    rejected_at: datetime | None = None
    cancelled_at: datetime | None = None
    disputed_at: datetime | None = None
    rejection_reason: str | None = None
    cancellation_reason: str | None = None
    dispute_reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderEventRead(BaseModel):
    id: int
    order_id: int
    event_type: str
    old_status: OrderStatus
    new_status: OrderStatus
    actor: str
    data_json: dict
    at: datetime

    model_config = ConfigDict(from_attributes=True)
