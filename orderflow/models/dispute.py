"""Dispute and site-visit models."""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, enum_column


class DisputeStatus(str, PyEnum):
    OPENED = "opened"
    INVESTIGATING = "investigating"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


OPEN_DISPUTE_STATUSES = frozenset(
    {DisputeStatus.OPENED, DisputeStatus.INVESTIGATING, DisputeStatus.ESCALATED}
)


class DisputeParty(str, PyEnum):
    BUYER = "buyer"
    SUPPLIER = "supplier"
    SYSTEM = "system"


class DisputeReason(str, PyEnum):
    DAMAGED_GOODS = "damaged_goods"
    MISSING_ITEMS = "missing_items"
    WRONG_ITEMS = "wrong_items"
    QUALITY_ISSUE = "quality_issue"
    LATE_DELIVERY = "late_delivery"
    OTHER = "other"


class DisputeOutcome(str, PyEnum):
    """Settlement direction chosen when a dispute is resolved."""

    RELEASE = "release"
    REFUND = "refund"


class Dispute(Base):
    """A claim against an order that freezes escrow until resolved."""

    __tablename__ = "disputes"
    __table_args__ = (
        Index(
            "uq_disputes_one_open_per_order",
            "order_id",
            unique=True,
            sqlite_where=text("status != 'resolved'"),
            postgresql_where=text("status != 'resolved'"),
        ),
    )

    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    reason: Mapped[DisputeReason] = mapped_column(enum_column(DisputeReason, "dispute_reason"), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    opened_by: Mapped[DisputeParty] = mapped_column(enum_column(DisputeParty, "dispute_party"), nullable=False)
    opened_by_actor: Mapped[str] = mapped_column(String(100), nullable=False)
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[DisputeStatus] = mapped_column(
        enum_column(DisputeStatus, "dispute_status"), nullable=False, default=DisputeStatus.OPENED
    )

    qc_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    qc_action: Mapped[str | None] = mapped_column(String(64), nullable=True)

    outcome: Mapped[DisputeOutcome | None] = mapped_column(
        enum_column(DisputeOutcome, "dispute_outcome"), nullable=True
    )
    resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    site_visit_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    site_visit_forced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    site_visit_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    site_visit_scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    site_visit_inspector: Mapped[str | None] = mapped_column(String(100), nullable=True)
    site_visit_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="disputes")
    evidence = relationship(
        "DisputeEvidence", back_populates="dispute", cascade="all, delete-orphan", order_by="DisputeEvidence.id"
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_DISPUTE_STATUSES

    @property
    def site_visit_outstanding(self) -> bool:
        return self.site_visit_required and not self.site_visit_completed


class DisputeEvidence(Base):
    """Evidence reference (photo, document) attached to a dispute."""

    __tablename__ = "dispute_evidence"

    dispute_id: Mapped[int] = mapped_column(ForeignKey("disputes.id"), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(1024), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_by: Mapped[str] = mapped_column(String(100), nullable=False)

    dispute = relationship("Dispute", back_populates="evidence")
