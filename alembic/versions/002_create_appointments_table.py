"""Create appointments table.

Revision ID: 002
Revises: 001
Create Date: 2026-01-12 00:10:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "appointments",
        sa.Column("id", postgresql.UUID(), nullable=False),
        sa.Column("patient_id", postgresql.UUID(), nullable=False),
        sa.Column("professional_id", postgresql.UUID(), nullable=False),
        sa.Column("service_id", postgresql.UUID(), nullable=False),
        sa.Column("room_id", postgresql.UUID(), nullable=True),
        sa.Column("start_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("timezone", sa.Text(), server_default="Europe/Madrid", nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("payment_status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("source", sa.Text(), server_default="admin", nullable=False),
        sa.Column("booking_method", sa.Text(), server_default="online", nullable=False),
        sa.Column("pricing", postgresql.JSONB(), nullable=False),
        sa.Column("patient_info", postgresql.JSONB(), nullable=False),
        sa.Column(
            "notes", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False
        ),
        sa.Column("rescheduling", postgresql.JSONB(), nullable=True),
        sa.Column("cancellation", postgresql.JSONB(), nullable=True),
        sa.Column("attendance", postgresql.JSONB(), nullable=False),
        sa.Column("reminders", postgresql.JSONB(), nullable=False),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column("deleted_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'in_progress', 'completed', "
            "'cancelled', 'no_show', 'rescheduled')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'partial', 'paid', 'refunded', 'overdue')",
            name="appointments_payment_status_check",
        ),
        sa.CheckConstraint("duration > 0", name="appointments_duration_positive"),
        sa.CheckConstraint("end_time > start_time", name="appointments_window_check"),
        sa.CheckConstraint(
            "(status = 'cancelled') = (cancellation IS NOT NULL)",
            name="appointments_cancellation_check",
        ),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"]),
        sa.ForeignKeyConstraint(["professional_id"], ["professionals.id"]),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"]),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index(
        "idx_appointments_professional_window",
        "appointments",
        ["professional_id", "start_time", "end_time"],
    )
    op.create_index(
        "idx_appointments_room_window", "appointments", ["room_id", "start_time", "end_time"]
    )
    op.create_index("idx_appointments_patient_start", "appointments", ["patient_id", "start_time"])
    op.create_index("idx_appointments_status_start", "appointments", ["status", "start_time"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("idx_appointments_status_start", table_name="appointments")
    op.drop_index("idx_appointments_patient_start", table_name="appointments")
    op.drop_index("idx_appointments_room_window", table_name="appointments")
    op.drop_index("idx_appointments_professional_window", table_name="appointments")
    op.drop_table("appointments")
