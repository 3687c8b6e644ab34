"""Audit log schemas."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditAction(str, Enum):
    """Audited appointment actions."""

    CREATED = "created"
    UPDATED = "updated"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    DELETED = "deleted"
    CONFIRMED = "confirmed"
    PATIENT_ARRIVED = "patient_arrived"
    SESSION_STARTED = "session_started"
    SESSION_COMPLETED = "session_completed"
    NO_SHOW = "no_show"
    RESCHEDULE_OFFERED = "reschedule_offered"


class ActorType(str, Enum):
    """Who performed an audited action."""

    USER = "user"
    SYSTEM = "system"
    API = "api"


class ChangeType(str, Enum):
    """Kind of field change."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class RiskLevel(str, Enum):
    """Security risk classification."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AuditStatus(str, Enum):
    """Outcome of the audited operation."""

    SUCCESS = "success"
    FAILURE = "failure"


class FieldChange(BaseModel):
    """One field-level change."""

    field: str
    old_value: Any = None
    new_value: Any = None
    change_type: ChangeType = ChangeType.UPDATE


class AuditClassification(BaseModel):
    """Security and compliance tags for an entry."""

    risk_level: RiskLevel
    hipaa_relevant: bool = True
    gdpr_relevant: bool = True
    requires_retention: bool = True
    retention_policy: str = "appointment_records"
    retention_period: str = "7y"


class RelatedRef(BaseModel):
    """Back-reference to an entity touched by the action."""

    type: str
    id: str


class AuditLogEntry(BaseModel):
    """Immutable audit record."""

    id: UUID = Field(default_factory=uuid4)
    action: AuditAction
    entity_type: str = "appointment"
    entity_id: UUID
    actor_id: UUID | None = None
    actor_type: ActorType = ActorType.USER
    actor_role: str | None = None
    timestamp: datetime
    status: AuditStatus = AuditStatus.SUCCESS
    changes: list[FieldChange] = Field(default_factory=list)

    risk_level: RiskLevel
    hipaa_relevant: bool
    gdpr_relevant: bool
    requires_retention: bool
    retention_policy: str
    retention_period: str
    archive_after: datetime | None = None
    delete_after: datetime | None = None

    related: list[RelatedRef] = Field(default_factory=list)

    model_config = {"from_attributes": True, "frozen": True}


class AuditLogListResponse(BaseModel):
    """Audit entries for one entity."""

    total: int
    items: list[AuditLogEntry]


class ComplianceReportRow(BaseModel):
    """Count of compliance-relevant entries per action."""

    action: AuditAction
    count: int
    high_risk_count: int
    unique_actors: int
