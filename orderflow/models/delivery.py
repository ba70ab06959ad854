"""Delivery confirmation model."""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, enum_column


class ConfirmationMethod(str, PyEnum):
    """How a delivery must be certified before settlement."""

    PIN = "pin"
    PHOTO = "photo"


class Delivery(Base):
    """Confirmation requirement and evidence for an order's handoff."""

    __tablename__ = "deliveries"
    __table_args__ = (
        CheckConstraint("pin_attempts >= 0", name="ck_delivery_pin_attempts_non_negative"),
        CheckConstraint("pin_attempts <= max_pin_attempts", name="ck_delivery_pin_attempts_bounded"),
    )

    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, unique=True)
    method: Mapped[ConfirmationMethod] = mapped_column(
        enum_column(ConfirmationMethod, "confirmation_method"), nullable=False
    )

    pin: Mapped[str | None] = mapped_column(String(8), nullable=True)
    pin_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_pin_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    pin_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    photo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    photo_uploaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    supplier_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    buyer_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="delivery")

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_pin_attempts - self.pin_attempts, 0)

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None

    @property
    def is_confirmed(self) -> bool:
        if self.method == ConfirmationMethod.PIN:
            return self.pin_verified_at is not None
        return self.photo_url is not None and self.buyer_confirmed_at is not None
