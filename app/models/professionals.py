"""Professional directory table using SQLAlchemy Core."""

from sqlalchemy import Column, DateTime, String, Table, Text, text
from sqlalchemy.dialects.postgresql import UUID

from app.models.base import metadata

professionals = Table(
    "professionals",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("user_id", UUID(as_uuid=True), nullable=True, unique=True),
    Column("name", Text, nullable=False),
    Column("email", String(320)),
    # active | inactive | on_leave
    Column("status", String(20), nullable=False, server_default="active"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
)
