"""Patient directory table using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from app.models.base import metadata

patients = Table(
    "patients",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("name", Text, nullable=False),
    Column("email", String(320), nullable=False, index=True),
    Column("phone", String(20)),
    Column("date_of_birth", Date),
    # Emergency contact
    Column("emergency_contact_name", Text),
    Column("emergency_contact_phone", String(20)),
    Column("emergency_contact_relation", String(50)),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    # Metadata
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
)
