"""Audit log table model using SQLAlchemy Core.

Rows are append-only: the application only inserts and reads.
"""

from sqlalchemy import Boolean, Column, Index, Table, Text, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from app.models.base import metadata

audit_logs = Table(
    "audit_logs",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("action", Text, nullable=False),
    Column("entity_type", Text, nullable=False),
    Column("entity_id", UUID(as_uuid=True), nullable=False),
    # Actor
    Column("actor_id", UUID(as_uuid=True), nullable=True),
    Column("actor_type", Text, nullable=False, server_default="user"),
    Column("actor_role", Text, nullable=True),
    Column("timestamp", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("status", Text, nullable=False, server_default="success"),
    # Change tracking
    Column("changes", JSONB, nullable=False, server_default=text("'[]'::jsonb")),
    # Security and compliance
    Column("risk_level", Text, nullable=False),
    Column("hipaa_relevant", Boolean, nullable=False),
    Column("gdpr_relevant", Boolean, nullable=False),
    Column("requires_retention", Boolean, nullable=False),
    # Retention
    Column("retention_policy", Text, nullable=False),
    Column("retention_period", Text, nullable=False),
    Column("archive_after", TIMESTAMP(timezone=True), nullable=True),
    Column("delete_after", TIMESTAMP(timezone=True), nullable=True),
    # Back-references
    Column("related", JSONB, nullable=False, server_default=text("'[]'::jsonb")),
    Index("idx_audit_logs_entity", "entity_type", "entity_id", "timestamp"),
    Index("idx_audit_logs_actor", "actor_id", "timestamp"),
    Index("idx_audit_logs_delete_after", "delete_after"),
)
