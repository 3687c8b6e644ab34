"""Create append-only audit_logs table.

Revision ID: 003
Revises: 002
Create Date: 2026-01-12 00:20:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", postgresql.UUID(), nullable=False),
        sa.Column("actor_id", postgresql.UUID(), nullable=True),
        sa.Column("actor_type", sa.Text(), server_default="user", nullable=False),
        sa.Column("actor_role", sa.Text(), nullable=True),
        sa.Column(
            "timestamp",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column("status", sa.Text(), server_default="success", nullable=False),
        sa.Column(
            "changes", postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False
        ),
        sa.Column("risk_level", sa.Text(), nullable=False),
        sa.Column("hipaa_relevant", sa.Boolean(), nullable=False),
        sa.Column("gdpr_relevant", sa.Boolean(), nullable=False),
        sa.Column("requires_retention", sa.Boolean(), nullable=False),
        sa.Column("retention_policy", sa.Text(), nullable=False),
        sa.Column("retention_period", sa.Text(), nullable=False),
        sa.Column("archive_after", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("delete_after", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "related", postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index(
        "idx_audit_logs_entity", "audit_logs", ["entity_type", "entity_id", "timestamp"]
    )
    op.create_index("idx_audit_logs_actor", "audit_logs", ["actor_id", "timestamp"])
    op.create_index("idx_audit_logs_delete_after", "audit_logs", ["delete_after"])

    # Rows are never edited in place
    op.execute(
        """
        CREATE OR REPLACE FUNCTION audit_logs_append_only()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'audit_logs is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER audit_logs_no_update
        BEFORE UPDATE ON audit_logs
        FOR EACH ROW EXECUTE FUNCTION audit_logs_append_only();
        """
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.execute("DROP TRIGGER IF EXISTS audit_logs_no_update ON audit_logs")
    op.execute("DROP FUNCTION IF EXISTS audit_logs_append_only()")
    op.drop_index("idx_audit_logs_delete_after", table_name="audit_logs")
    op.drop_index("idx_audit_logs_actor", table_name="audit_logs")
    op.drop_index("idx_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
