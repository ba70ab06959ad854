"""initial order, delivery, escrow and dispute schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


ORDER_STATUS = (
    "pending",
    "confirmed",
    "in_delivery",
    "awaiting_confirmation",
    "delivered",
    "completed",
    "rejected",
    "cancelled",
    "disputed",
)


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "orders",
        *_base_columns(),
        sa.Column("order_number", sa.String(length=32), nullable=True, unique=True),
        sa.Column("buyer_id", sa.String(length=64), nullable=False),
        sa.Column("supplier_id", sa.String(length=64), nullable=False),
        sa.Column("subtotal", sa.Numeric(18, 2), nullable=False),
        sa.Column("delivery_fee", sa.Numeric(18, 2), nullable=False),
        sa.Column("total", sa.Numeric(18, 2), nullable=False),
        sa.Column("status", _enum("order_status", *ORDER_STATUS), nullable=False),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        sa.Column("delivery_time_slot", sa.String(length=32), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("awaiting_confirmation_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disputed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("dispute_reason", sa.Text(), nullable=True),
        sa.CheckConstraint("subtotal >= 0", name="ck_order_subtotal_non_negative"),
        sa.CheckConstraint("delivery_fee >= 0", name="ck_order_delivery_fee_non_negative"),
    )
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_buyer", "orders", ["buyer_id"])
    op.create_index("ix_orders_supplier", "orders", ["supplier_id"])

    op.create_table(
        "order_events",
        *_base_columns(),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("old_status", _enum("order_status", *ORDER_STATUS), nullable=False),
        sa.Column("new_status", _enum("order_status", *ORDER_STATUS), nullable=False),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_order_events_order_id", "order_events", ["order_id"])

    op.create_table(
        "deliveries",
        *_base_columns(),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False, unique=True),
        sa.Column("method", _enum("confirmation_method", "pin", "photo"), nullable=False),
        sa.Column("pin", sa.String(length=8), nullable=True),
        sa.Column("pin_attempts", sa.Integer(), nullable=False),
        sa.Column("max_pin_attempts", sa.Integer(), nullable=False),
        sa.Column("pin_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("photo_url", sa.String(length=1024), nullable=True),
        sa.Column("photo_uploaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("supplier_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("buyer_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("pin_attempts >= 0", name="ck_delivery_pin_attempts_non_negative"),
        sa.CheckConstraint("pin_attempts <= max_pin_attempts", name="ck_delivery_pin_attempts_bounded"),
    )

    op.create_table(
        "escrow_records",
        *_base_columns(),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False, unique=True),
        sa.Column("status", _enum("escrow_status", "pending", "held", "released", "refunded"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("held_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_reason", sa.Text(), nullable=True),
        sa.CheckConstraint("amount IS NULL OR amount >= 0", name="ck_escrow_amount_non_negative"),
        sa.CheckConstraint(
            "released_at IS NULL OR refunded_at IS NULL", name="ck_escrow_release_refund_exclusive"
        ),
    )

    op.create_table(
        "escrow_events",
        *_base_columns(),
        sa.Column("escrow_id", sa.Integer(), sa.ForeignKey("escrow_records.id"), nullable=False),
        sa.Column("kind", sa.String(length=50), nullable=False),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_escrow_events_escrow_id", "escrow_events", ["escrow_id"])

    op.create_table(
        "disputes",
        *_base_columns(),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column(
            "reason",
            _enum(
                "dispute_reason",
                "damaged_goods",
                "missing_items",
                "wrong_items",
                "quality_issue",
                "late_delivery",
                "other",
            ),
            nullable=False,
        ),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("opened_by", _enum("dispute_party", "buyer", "supplier", "system"), nullable=False),
        sa.Column("opened_by_actor", sa.String(length=100), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status", _enum("dispute_status", "opened", "investigating", "escalated", "resolved"), nullable=False
        ),
        sa.Column("qc_notes", sa.Text(), nullable=True),
        sa.Column("qc_action", sa.String(length=64), nullable=True),
        sa.Column("outcome", _enum("dispute_outcome", "release", "refund"), nullable=True),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(length=100), nullable=True),
        sa.Column("override_reason", sa.Text(), nullable=True),
        sa.Column("site_visit_required", sa.Boolean(), nullable=False),
        sa.Column("site_visit_forced", sa.Boolean(), nullable=False),
        sa.Column("site_visit_completed", sa.Boolean(), nullable=False),
        sa.Column("site_visit_scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("site_visit_inspector", sa.String(length=100), nullable=True),
        sa.Column("site_visit_completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_disputes_order_id", "disputes", ["order_id"])
    op.create_index(
        "uq_disputes_one_open_per_order",
        "disputes",
        ["order_id"],
        unique=True,
        sqlite_where=sa.text("status != 'resolved'"),
        postgresql_where=sa.text("status != 'resolved'"),
    )

    op.create_table(
        "dispute_evidence",
        *_base_columns(),
        sa.Column("dispute_id", sa.Integer(), sa.ForeignKey("disputes.id"), nullable=False),
        sa.Column("url", sa.String(length=1024), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("submitted_by", sa.String(length=100), nullable=False),
    )
    op.create_index("ix_dispute_evidence_dispute_id", "dispute_evidence", ["dispute_id"])

    op.create_table(
        "notification_outbox",
        *_base_columns(),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        sa.Column("status", _enum("notification_status", "pending", "sent", "failed"), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
    )
    op.create_index("ix_notification_outbox_order_id", "notification_outbox", ["order_id"])
    op.create_index("ix_notification_outbox_due", "notification_outbox", ["status", "next_attempt_at"])

    op.create_table(
        "audit_logs",
        *_base_columns(),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])

    op.create_table(
        "scheduler_locks",
        *_base_columns(),
        sa.Column("name", sa.String(length=64), nullable=False, unique=True),
        sa.Column("owner", sa.String(length=128), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("scheduler_locks")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_notification_outbox_due", table_name="notification_outbox")
    op.drop_index("ix_notification_outbox_order_id", table_name="notification_outbox")
    op.drop_table("notification_outbox")
    op.drop_index("ix_dispute_evidence_dispute_id", table_name="dispute_evidence")
    op.drop_table("dispute_evidence")
    op.drop_index("uq_disputes_one_open_per_order", table_name="disputes")
    op.drop_index("ix_disputes_order_id", table_name="disputes")
    op.drop_table("disputes")
    op.drop_index("ix_escrow_events_escrow_id", table_name="escrow_events")
    op.drop_table("escrow_events")
    op.drop_table("escrow_records")
    op.drop_table("deliveries")
    op.drop_index("ix_order_events_order_id", table_name="order_events")
    op.drop_table("order_events")
    op.drop_index("ix_orders_supplier", table_name="orders")
    op.drop_index("ix_orders_buyer", table_name="orders")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_table("orders")
