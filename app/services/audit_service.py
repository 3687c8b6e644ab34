"""Audit trail recorder for appointment changes.

Every mutating appointment operation appends exactly one entry here. Entries are
never updated or deleted by the application; purging after the retention window is
left to an external archival job that reads ``delete_after``.
"""

import calendar
import json
import re
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog

from app.config import settings
from app.repositories.audit_log_repository import AuditLogRepository
from app.schemas.appointments import Appointment
from app.schemas.audit import (
    ActorType,
    AuditAction,
    AuditClassification,
    AuditLogEntry,
    ChangeType,
    ComplianceReportRow,
    FieldChange,
    RelatedRef,
    RiskLevel,
)
from app.schemas.auth import Actor

logger = structlog.get_logger(__name__)

# action -> (risk level, hipaa relevant, gdpr relevant)
CLASSIFICATIONS: dict[AuditAction, tuple[RiskLevel, bool, bool]] = {
    AuditAction.CREATED: (RiskLevel.MEDIUM, True, True),
    AuditAction.UPDATED: (RiskLevel.LOW, True, False),
    AuditAction.RESCHEDULED: (RiskLevel.MEDIUM, True, True),
    AuditAction.CANCELLED: (RiskLevel.HIGH, True, True),
    AuditAction.DELETED: (RiskLevel.HIGH, True, True),
    AuditAction.CONFIRMED: (RiskLevel.LOW, True, False),
    AuditAction.PATIENT_ARRIVED: (RiskLevel.LOW, True, False),
    AuditAction.SESSION_STARTED: (RiskLevel.LOW, True, False),
    AuditAction.SESSION_COMPLETED: (RiskLevel.LOW, True, False),
    AuditAction.NO_SHOW: (RiskLevel.MEDIUM, True, True),
    AuditAction.RESCHEDULE_OFFERED: (RiskLevel.LOW, True, False),
}

# Fields whose change makes a plain update GDPR relevant
PHI_FIELDS = frozenset({"patient_info", "notes"})

# Fields recorded on creation
CREATED_FIELDS = (
    "patient_id",
    "professional_id",
    "service_id",
    "room_id",
    "start_time",
    "end_time",
    "duration",
    "status",
    "source",
)

MASK = "***MASKED***"
_SENSITIVE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"password",
        r"email",
        r"phone",
        r"ssn",
        r"birth",
        r"address",
        r"medical",
        r"diagnosis",
        r"treatment",
        r"emergency",
    )
]

_PERIOD_RE = re.compile(r"^\s*(\d+)\s*([ym])\s*$", re.IGNORECASE)


def serialize_state(appointment: Appointment) -> dict[str, Any]:
    """JSON-compatible snapshot used for before/after diffs."""
    return appointment.model_dump(mode="json", exclude={"updated_at"})


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def diff_changes(
    before: dict[str, Any],
    after: dict[str, Any],
    change_type: ChangeType | None = None,
) -> list[FieldChange]:
    """
    Field-by-field diff of two serialized states.

    Only fields whose JSON serialization differs are kept, so untouched fields never
    show up as changes. Order follows ``before`` then any fields new in ``after``.

    Args:
        before: State before the operation
        after: State after the operation
        change_type: Force a change type instead of inferring it per field

    Returns:
        Ordered list of changes
    """
    fields = list(before) + [field for field in after if field not in before]
    changes: list[FieldChange] = []

    for field in fields:
        old_value = before.get(field)
        new_value = after.get(field)
        if _canonical(old_value) == _canonical(new_value):
            continue

        if change_type is not None:
            kind = change_type
        elif old_value is None:
            kind = ChangeType.CREATE
        elif new_value is None:
            kind = ChangeType.DELETE
        else:
            kind = ChangeType.UPDATE

        changes.append(
            FieldChange(field=field, old_value=old_value, new_value=new_value, change_type=kind)
        )

    return changes


def creation_changes(appointment: Appointment) -> list[FieldChange]:
    """Changes recorded for a newly created appointment."""
    state = serialize_state(appointment)
    return diff_changes(
        {},
        {field: state[field] for field in CREATED_FIELDS},
        change_type=ChangeType.CREATE,
    )


def retention_months(period: str) -> int:
    """Parse a retention period such as ``"7y"`` or ``"18m"`` into months."""
    match = _PERIOD_RE.match(period)
    if not match:
        raise ValueError(f"Invalid retention period: {period!r}")
    amount, unit = int(match.group(1)), match.group(2).lower()
    return amount * 12 if unit == "y" else amount


def add_months(moment: datetime, months: int) -> datetime:
    """Shift a timestamp by whole months, clamping the day to the target month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _is_sensitive(name: str) -> bool:
    return any(pattern.search(name) for pattern in _SENSITIVE_PATTERNS)


def _mask_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: MASK if _is_sensitive(key) and item is not None else _mask_value(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_mask_value(item) for item in value]
    return value


def mask_sensitive(entry: AuditLogEntry) -> AuditLogEntry:
    """Copy of an entry with personal values masked, for display."""
    masked: list[FieldChange] = []
    for change in entry.changes:
        if _is_sensitive(change.field):
            masked.append(change.model_copy(update={"old_value": MASK, "new_value": MASK}))
        else:
            masked.append(
                change.model_copy(
                    update={
                        "old_value": _mask_value(change.old_value),
                        "new_value": _mask_value(change.new_value),
                    }
                )
            )
    return entry.model_copy(update={"changes": masked})


class AuditService:
    """Appends classified audit entries and answers audit queries."""

    ENTITY_TYPE = "appointment"

    def __init__(
        self,
        repository: AuditLogRepository,
        retention_policy: str | None = None,
        retention_period: str | None = None,
    ):
        """
        Initialize service.

        Args:
            repository: Audit log persistence
            retention_policy: Retention policy name stamped on entries
            retention_period: Retention duration such as ``"7y"``
        """
        self.repository = repository
        self.retention_policy = retention_policy or settings.audit_retention_policy
        self.retention_period = retention_period or settings.audit_retention_period
        self._retention_months = retention_months(self.retention_period)

    def classify(self, action: AuditAction, changes: list[FieldChange]) -> AuditClassification:
        """Security and compliance tags for an action."""
        risk_level, hipaa, gdpr = CLASSIFICATIONS[action]
        if action == AuditAction.UPDATED:
            gdpr = any(change.field in PHI_FIELDS for change in changes)

        return AuditClassification(
            risk_level=risk_level,
            hipaa_relevant=hipaa,
            gdpr_relevant=gdpr,
            requires_retention=True,
            retention_policy=self.retention_policy,
            retention_period=self.retention_period,
        )

    async def record(
        self,
        action: AuditAction,
        entity: Appointment,
        actor: Actor | None,
        changes: list[FieldChange],
        timestamp: datetime,
        classification: AuditClassification | None = None,
    ) -> AuditLogEntry:
        """
        Append one audit entry for a change to an appointment.

        Args:
            action: What happened
            entity: Appointment after the change
            actor: Acting user, or None for system actions
            changes: Field-level changes
            timestamp: When the change happened
            classification: Override of the default classification

        Returns:
            The stored entry
        """
        classification = classification or self.classify(action, changes)

        related = [
            RelatedRef(type="patient", id=str(entity.patient_id)),
            RelatedRef(type="professional", id=str(entity.professional_id)),
        ]
        if actor is not None:
            related.append(RelatedRef(type="user", id=str(actor.user_id)))

        entry = AuditLogEntry(
            action=action,
            entity_type=self.ENTITY_TYPE,
            entity_id=entity.id,
            actor_id=actor.user_id if actor else None,
            actor_type=ActorType.USER if actor else ActorType.SYSTEM,
            actor_role=actor.role.value if actor else None,
            timestamp=timestamp,
            changes=changes,
            risk_level=classification.risk_level,
            hipaa_relevant=classification.hipaa_relevant,
            gdpr_relevant=classification.gdpr_relevant,
            requires_retention=classification.requires_retention,
            retention_policy=classification.retention_policy,
            retention_period=classification.retention_period,
            archive_after=add_months(timestamp, int(self._retention_months * 0.8)),
            delete_after=add_months(timestamp, self._retention_months),
            related=related,
        )

        stored = await self.repository.append(entry)
        logger.info(
            "audit_entry_recorded",
            action=action.value,
            entity_id=str(entity.id),
            risk_level=classification.risk_level.value,
            changes=len(changes),
        )
        return stored

    async def find_by_entity(self, entity_id: UUID) -> list[AuditLogEntry]:
        """Audit trail of one appointment, oldest first."""
        return await self.repository.find_by_entity(self.ENTITY_TYPE, entity_id)

    async def find_by_actor(self, actor_id: UUID, limit: int = 100) -> list[AuditLogEntry]:
        """Recent entries written by one actor."""
        return await self.repository.find_by_actor(actor_id, limit)

    async def compliance_report(self, start: datetime, end: datetime) -> list[ComplianceReportRow]:
        """Compliance-relevant activity grouped by action."""
        return await self.repository.compliance_report(start, end)
