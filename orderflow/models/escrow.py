"""Escrow ledger models."""
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from orderflow.utils.errors import EscrowStateConflict

from .base import Base, enum_column


class EscrowStatus(str, PyEnum):
    """Custodial state of the buyer's funds."""

    PENDING = "pending"
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class EscrowRecord(Base):
    """The single escrow record attached to an order."""

    __tablename__ = "escrow_records"
    __table_args__ = (
        CheckConstraint("amount IS NULL OR amount >= 0", name="ck_escrow_amount_non_negative"),
        CheckConstraint(
            "released_at IS NULL OR refunded_at IS NULL",
            name="ck_escrow_release_refund_exclusive",
        ),
    )

    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, unique=True)
    status: Mapped[EscrowStatus] = mapped_column(
        enum_column(EscrowStatus, "escrow_status"), nullable=False, default=EscrowStatus.PENDING
    )
    amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    held_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    order = relationship("Order", back_populates="escrow")
    events = relationship(
        "EscrowEvent", back_populates="escrow", cascade="all, delete-orphan", order_by="EscrowEvent.id"
    )

    @validates("amount")
    def _freeze_amount(self, key: str, value: Decimal | None) -> Decimal | None:
        if self.status is not None and self.status != EscrowStatus.PENDING and self.amount is not None:
            if value is None or Decimal(str(value)) != Decimal(str(self.amount)):
                raise EscrowStateConflict(
                    "Escrow amount is immutable once funds are held.",
                    details={"escrow_status": self.status.value, "operation": "amend_amount"},
                )
        return value


class EscrowEvent(Base):
    """Ledger movement for an escrow record."""

    __tablename__ = "escrow_events"

    escrow_id: Mapped[int] = mapped_column(ForeignKey("escrow_records.id"), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    actor: Mapped[str] = mapped_column(String(100), nullable=False)
    data_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    escrow = relationship("EscrowRecord", back_populates="events")
