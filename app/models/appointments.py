"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from app.models.base import metadata

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    # Participants
    Column("patient_id", UUID(as_uuid=True), ForeignKey("patients.id"), nullable=False),
    Column(
        "professional_id",
        UUID(as_uuid=True),
        ForeignKey("professionals.id"),
        nullable=False,
    ),
    Column("service_id", UUID(as_uuid=True), ForeignKey("services.id"), nullable=False),
    Column("room_id", UUID(as_uuid=True), ForeignKey("rooms.id"), nullable=True),
    # Window
    Column("start_time", TIMESTAMP(timezone=True), nullable=False),
    Column("end_time", TIMESTAMP(timezone=True), nullable=False),
    Column("duration", Integer, nullable=False),
    Column("timezone", Text, nullable=False, server_default="Europe/Madrid"),
    # Status management
    Column("status", Text, nullable=False, server_default="pending"),
    Column("payment_status", Text, nullable=False, server_default="pending"),
    Column("source", Text, nullable=False, server_default="admin"),
    Column("booking_method", Text, nullable=False, server_default="online"),
    # Snapshot fields (denormalized for history)
    Column("pricing", JSONB, nullable=False),
    Column("patient_info", JSONB, nullable=False),
    Column("notes", JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    # Lifecycle sub-records
    Column("rescheduling", JSONB(none_as_null=True), nullable=True),
    Column("cancellation", JSONB(none_as_null=True), nullable=True),
    Column("attendance", JSONB, nullable=False),
    Column("reminders", JSONB, nullable=False),
    # Audit fields
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    # Soft delete (healthcare compliance)
    Column("deleted_at", TIMESTAMP(timezone=True), nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'in_progress', 'completed', "
        "'cancelled', 'no_show', 'rescheduled')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "payment_status IN ('pending', 'partial', 'paid', 'refunded', 'overdue')",
        name="appointments_payment_status_check",
    ),
    CheckConstraint("duration > 0", name="appointments_duration_positive"),
    CheckConstraint("end_time > start_time", name="appointments_window_check"),
    CheckConstraint(
        "(status = 'cancelled') = (cancellation IS NOT NULL)",
        name="appointments_cancellation_check",
    ),
    Index("idx_appointments_professional_window", "professional_id", "start_time", "end_time"),
    Index("idx_appointments_room_window", "room_id", "start_time", "end_time"),
    Index("idx_appointments_patient_start", "patient_id", "start_time"),
    Index("idx_appointments_status_start", "status", "start_time"),
)
