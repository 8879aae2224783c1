"""Booking core tables: services, availability, bookings and payments."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_booking_core"
down_revision = None
branch_labels = None
depends_on = None


JSONB_TYPE = postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite")

service_status_enum = sa.Enum(
    "DRAFT", "ACTIVE", "PAUSED", "ARCHIVED", name="servicestatus"
)
booking_status_enum = sa.Enum(
    "PENDING",
    "CONFIRMED",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
    name="bookingstatus",
)
booking_payment_status_enum = sa.Enum(
    "PENDING", "PAID", "FAILED", "REFUNDED", name="bookingpaymentstatus"
)
location_type_enum = sa.Enum(
    "VENDOR_LOCATION", "CUSTOMER_LOCATION", "ONLINE", name="locationtype"
)
payment_status_enum = sa.Enum(
    "PENDING",
    "PROCESSING",
    "COMPLETED",
    "FAILED",
    "REFUNDED",
    name="paymentstatus",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "vendor_services",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("vendor_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("base_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", service_status_enum, nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_vendor_services_vendor_status", "vendor_services", ["vendor_id", "status"]
    )

    op.create_table(
        "availability_templates",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("vendor_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.Time(timezone=False), nullable=False),
        sa.Column("end_time", sa.Time(timezone=False), nullable=False),
        sa.Column("breaks", JSONB_TYPE, nullable=False),
        sa.Column("default_duration_minutes", sa.Integer(), nullable=False),
        sa.Column("buffer_minutes", sa.Integer(), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=True),
        sa.Column("effective_until", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint(
            "vendor_id",
            "day_of_week",
            "effective_from",
            "effective_until",
            name="uq_availability_templates_vendor_day_range",
        ),
    )
    op.create_index(
        "ix_availability_templates_vendor_day",
        "availability_templates",
        ["vendor_id", "day_of_week"],
    )

    op.create_table(
        "availability_slots",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "template_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("availability_templates.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("vendor_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "service_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("vendor_services.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.Time(timezone=False), nullable=False),
        sa.Column("end_time", sa.Time(timezone=False), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index(
        "ix_availability_slots_vendor_day",
        "availability_slots",
        ["vendor_id", "day_of_week"],
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("booking_reference", sa.String(length=32), nullable=False, unique=True),
        sa.Column("customer_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("guest_name", sa.String(length=255), nullable=True),
        sa.Column("guest_email", sa.String(length=255), nullable=True),
        sa.Column("guest_phone", sa.String(length=32), nullable=True),
        sa.Column("vendor_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "service_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("vendor_services.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("deposit_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("payment_status", booking_payment_status_enum, nullable=False),
        sa.Column("location_type", location_type_enum, nullable=False),
        sa.Column("service_address", JSONB_TYPE, nullable=True),
        sa.Column("customer_notes", sa.Text(), nullable=True),
        sa.Column("vendor_notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_refund_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_bookings_vendor_scheduled", "bookings", ["vendor_id", "scheduled_at"]
    )
    op.create_index("ix_bookings_vendor_status", "bookings", ["vendor_id", "status"])
    op.create_index("ix_bookings_customer", "bookings", ["customer_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("customer_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("vendor_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("platform_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("vendor_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", payment_status_enum, nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column(
            "provider_charge_id", sa.String(length=255), nullable=False, unique=True
        ),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("refund_reason", sa.Text(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("charge_metadata", JSONB_TYPE, nullable=False),
        sa.Column("provider_response", JSONB_TYPE, nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_payments_booking_status", "payments", ["booking_id", "status"]
    )

    op.create_table(
        "payment_events",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "provider_event_id", sa.String(length=255), nullable=False, unique=True
        ),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("charge_id", sa.String(length=255), nullable=True),
        sa.Column("outcome", sa.String(length=32), nullable=True),
        sa.Column(
            "received_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("raw", JSONB_TYPE, nullable=False),
    )
    op.create_index("ix_payment_events_charge", "payment_events", ["charge_id"])


def downgrade() -> None:
    op.drop_index("ix_payment_events_charge", table_name="payment_events")
    op.drop_table("payment_events")
    op.drop_index("ix_payments_booking_status", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_bookings_customer", table_name="bookings")
    op.drop_index("ix_bookings_vendor_status", table_name="bookings")
    op.drop_index("ix_bookings_vendor_scheduled", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_availability_slots_vendor_day", table_name="availability_slots")
    op.drop_table("availability_slots")
    op.drop_index(
        "ix_availability_templates_vendor_day", table_name="availability_templates"
    )
    op.drop_table("availability_templates")
    op.drop_index("ix_vendor_services_vendor_status", table_name="vendor_services")
    op.drop_table("vendor_services")

    bind = op.get_bind()
    for enum_type in (
        payment_status_enum,
        location_type_enum,
        booking_payment_status_enum,
        booking_status_enum,
        service_status_enum,
    ):
        enum_type.drop(bind, checkfirst=True)
