"""Tests for the audit trail recorder."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from app.schemas.appointments import AppointmentNotes, AppointmentStatus
from app.schemas.audit import (
    ActorType,
    AuditAction,
    AuditLogEntry,
    ChangeType,
    FieldChange,
    RiskLevel,
)
from app.schemas.auth import Actor, UserRole
from app.services.audit_service import (
    MASK,
    AuditService,
    add_months,
    creation_changes,
    diff_changes,
    mask_sensitive,
    retention_months,
    serialize_state,
)
from tests.fakes import NOW, InMemoryAuditLogRepository, make_appointment


@pytest.fixture
def repository() -> InMemoryAuditLogRepository:
    return InMemoryAuditLogRepository()


@pytest.fixture
def audit(repository) -> AuditService:
    return AuditService(repository, "appointment_records", "7y")


@pytest.fixture
def actor() -> Actor:
    return Actor(user_id=uuid4(), role=UserRole.RECEPTION)


def test_diff_only_reports_changed_fields() -> None:
    appointment = make_appointment()
    before = serialize_state(appointment)
    appointment.status = AppointmentStatus.CONFIRMED
    appointment.notes = AppointmentNotes(admin_notes="Prefers mornings")

    changes = diff_changes(before, serialize_state(appointment))

    assert [c.field for c in changes] == ["status", "notes"]
    status_change = changes[0]
    assert status_change.old_value == "pending"
    assert status_change.new_value == "confirmed"
    assert status_change.change_type == ChangeType.UPDATE


def test_diff_of_unchanged_state_is_empty() -> None:
    appointment = make_appointment()
    assert diff_changes(serialize_state(appointment), serialize_state(appointment)) == []


def test_diff_infers_create_and_delete() -> None:
    changes = diff_changes(
        {"cancellation": None, "room_id": "r1"},
        {"cancellation": {"reason": "x"}, "room_id": None},
    )
    assert [c.change_type for c in changes] == [ChangeType.CREATE, ChangeType.DELETE]


def test_creation_changes_cover_booking_fields() -> None:
    changes = creation_changes(make_appointment())
    fields = {c.field for c in changes if c.field != "room_id"}
    assert {"patient_id", "professional_id", "start_time", "end_time", "duration", "status"} <= fields
    assert all(c.change_type == ChangeType.CREATE for c in changes)


@pytest.mark.parametrize(
    ("period", "months"),
    [("7y", 84), ("18m", 18), (" 2Y ", 24)],
)
def test_retention_months(period, months) -> None:
    assert retention_months(period) == months


def test_retention_months_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        retention_months("seven years")


def test_add_months_clamps_day() -> None:
    assert add_months(datetime(2024, 1, 31, tzinfo=UTC), 1) == datetime(2024, 2, 29, tzinfo=UTC)
    assert add_months(datetime(2024, 11, 15, tzinfo=UTC), 3) == datetime(2025, 2, 15, tzinfo=UTC)


@pytest.mark.parametrize(
    ("action", "risk", "gdpr"),
    [
        (AuditAction.CREATED, RiskLevel.MEDIUM, True),
        (AuditAction.RESCHEDULED, RiskLevel.MEDIUM, True),
        (AuditAction.CANCELLED, RiskLevel.HIGH, True),
        (AuditAction.DELETED, RiskLevel.HIGH, True),
        (AuditAction.CONFIRMED, RiskLevel.LOW, False),
        (AuditAction.NO_SHOW, RiskLevel.MEDIUM, True),
    ],
)
def test_classification_table(audit, action, risk, gdpr) -> None:
    classification = audit.classify(action, [])
    assert classification.risk_level == risk
    assert classification.hipaa_relevant is True
    assert classification.gdpr_relevant is gdpr
    assert classification.retention_policy == "appointment_records"
    assert classification.retention_period == "7y"


def test_update_is_gdpr_relevant_only_for_personal_fields(audit) -> None:
    payment_only = [FieldChange(field="payment_status", old_value="pending", new_value="paid")]
    notes = [FieldChange(field="notes", old_value={}, new_value={"admin_notes": "x"})]

    assert audit.classify(AuditAction.UPDATED, payment_only).gdpr_relevant is False
    assert audit.classify(AuditAction.UPDATED, notes).gdpr_relevant is True
    assert audit.classify(AuditAction.UPDATED, notes).risk_level == RiskLevel.LOW


@pytest.mark.asyncio
async def test_record_appends_classified_entry(audit, repository, actor) -> None:
    appointment = make_appointment()

    entry = await audit.record(AuditAction.CANCELLED, appointment, actor, [], NOW)

    assert repository.entries == [entry]
    assert entry.entity_id == appointment.id
    assert entry.entity_type == "appointment"
    assert entry.actor_id == actor.user_id
    assert entry.actor_type == ActorType.USER
    assert entry.actor_role == "reception"
    assert entry.risk_level == RiskLevel.HIGH
    assert entry.requires_retention is True
    assert entry.archive_after == datetime(2029, 8, 10, 8, 0, tzinfo=UTC)
    assert entry.delete_after == datetime(2031, 1, 10, 8, 0, tzinfo=UTC)
    assert {(ref.type, ref.id) for ref in entry.related} == {
        ("patient", str(appointment.patient_id)),
        ("professional", str(appointment.professional_id)),
        ("user", str(actor.user_id)),
    }


@pytest.mark.asyncio
async def test_system_actions_have_no_actor(audit) -> None:
    entry = await audit.record(AuditAction.NO_SHOW, make_appointment(), None, [], NOW)
    assert entry.actor_id is None
    assert entry.actor_type == ActorType.SYSTEM


@pytest.mark.asyncio
async def test_find_by_entity_and_actor(audit, actor) -> None:
    appointment = make_appointment()
    other = make_appointment()
    await audit.record(AuditAction.CREATED, appointment, actor, [], NOW)
    await audit.record(AuditAction.CREATED, other, actor, [], NOW)
    await audit.record(AuditAction.CONFIRMED, appointment, actor, [], NOW.replace(hour=9))

    trail = await audit.find_by_entity(appointment.id)
    assert [e.action for e in trail] == [AuditAction.CREATED, AuditAction.CONFIRMED]

    activity = await audit.find_by_actor(actor.user_id, limit=2)
    assert len(activity) == 2
    assert activity[0].action == AuditAction.CONFIRMED


def test_mask_sensitive_hides_personal_values() -> None:
    appointment = make_appointment()
    changes = creation_changes(appointment) + [
        FieldChange(
            field="patient_info",
            old_value=None,
            new_value={"name": "Lucía Martín", "email": "lucia@example.com", "phone": "+34600"},
        )
    ]
    entry = AuditLogEntry(
        action=AuditAction.UPDATED,
        entity_id=appointment.id,
        timestamp=NOW,
        changes=changes,
        risk_level=RiskLevel.LOW,
        hipaa_relevant=True,
        gdpr_relevant=True,
        requires_retention=True,
        retention_policy="appointment_records",
        retention_period="7y",
    )

    masked = mask_sensitive(entry)

    patient_info = masked.changes[-1].new_value
    assert patient_info["name"] == "Lucía Martín"
    assert patient_info["email"] == MASK
    assert patient_info["phone"] == MASK
    assert entry.changes[-1].new_value["email"] == "lucia@example.com"
