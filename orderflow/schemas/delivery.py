"""Delivery confirmation schemas."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from orderflow.models.delivery import ConfirmationMethod


class PinSubmission(BaseModel):
    # Format is checked by the service so a malformed PIN never costs an attempt.
    pin: str = Field(max_length=16)


class PhotoSubmission(BaseModel):
    photo_url: str = Field(min_length=1, max_length=1024)


class DeliveryRead(BaseModel):
    order_id: int
    method: ConfirmationMethod
    pin_attempts: int
    max_pin_attempts: int
    attempts_remaining: int
    is_locked: bool
    is_confirmed: bool
    pin_verified_at: datetime | None = None
    locked_at: datetime | None = None
    photo_url: str | None = None
    photo_uploaded_at: datetime | None = None
    supplier_confirmed_at: datetime | None = None
    buyer_confirmed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class BuyerDeliveryRead(DeliveryRead):
    """Delivery view for the buyer, who hands the PIN to the driver."""

    pin: str | None = None


class PinUnlockPayload(BaseModel):
    justification: str = Field(min_length=1, max_length=2000)
    regenerate_pin: bool = False
