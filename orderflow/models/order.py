"""Order and order timeline models."""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from orderflow.utils.errors import ValidationError

from .base import Base, enum_column


class OrderStatus(str, PyEnum):
    """Lifecycle status of an order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_DELIVERY = "in_delivery"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


MONETARY_FIELDS = ("subtotal", "delivery_fee", "total")


class Order(Base):
    """A buyer's order placed with a single supplier."""

    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_order_subtotal_non_negative"),
        CheckConstraint("delivery_fee >= 0", name="ck_order_delivery_fee_non_negative"),
        Index("ix_orders_status", "status"),
        Index("ix_orders_buyer", "buyer_id"),
        Index("ix_orders_supplier", "supplier_id"),
    )

    order_number: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    supplier_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        enum_column(OrderStatus, "order_status"), nullable=False, default=OrderStatus.PENDING
    )

    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_time_slot: Mapped[str | None] = mapped_column(String(32), nullable=True)

    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivery_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    awaiting_confirmation_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    delivery = relationship("Delivery", back_populates="order", uselist=False, cascade="all, delete-orphan")
    escrow = relationship("EscrowRecord", back_populates="order", uselist=False, cascade="all, delete-orphan")
    disputes = relationship(
        "Dispute", back_populates="order", cascade="all, delete-orphan", order_by="Dispute.id"
    )
    events = relationship(
        "OrderEvent", back_populates="order", cascade="all, delete-orphan", order_by="OrderEvent.id"
    )

    @validates(*MONETARY_FIELDS)
    def _lock_totals(self, key: str, value: Decimal) -> Decimal:
        status = self.status
        if status is not None and status != OrderStatus.PENDING:
            current = getattr(self, key)
            if current is not None and Decimal(str(current)) != Decimal(str(value)):
                raise ValidationError(
                    "Order amounts are immutable once the order leaves pending.",
                    code="ORDER_TOTAL_LOCKED",
                    details={"field": key, "status": status.value},
                )
        return value

    @property
    def open_dispute(self):
        for dispute in self.disputes:
            if dispute.is_open:
                return dispute
        return None


class OrderEvent(Base):
    """Domain event emitted once per accepted order transition."""

    __tablename__ = "order_events"

    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    old_status: Mapped[OrderStatus] = mapped_column(enum_column(OrderStatus, "order_status"), nullable=False)
    new_status: Mapped[OrderStatus] = mapped_column(enum_column(OrderStatus, "order_status"), nullable=False)
    actor: Mapped[str] = mapped_column(String(100), nullable=False)
    data_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    order = relationship("Order", back_populates="events")
