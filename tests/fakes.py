"""In-memory stand-ins for the store and directory collaborators."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from app.core.security import actor_claims, create_access_token
from app.schemas.appointments import (
    NON_BLOCKING_STATUSES,
    Appointment,
    AppointmentFilters,
    AppointmentStatistics,
    AppointmentStatus,
    PatientInfo,
    Pricing,
)
from app.schemas.audit import AuditLogEntry, ComplianceReportRow, RiskLevel
from app.schemas.auth import Actor
from app.schemas.directory import PatientRecord, ProfessionalRecord, RoomRecord, ServiceRecord

NOW = datetime(2024, 1, 10, 8, 0, tzinfo=UTC)

PATIENT_ID = UUID("00000000-0000-0000-0000-0000000000a1")
PATIENT_EMAIL = "lucia.martin@example.com"
PROFESSIONAL_ID = UUID("00000000-0000-0000-0000-0000000000b1")
OTHER_PROFESSIONAL_ID = UUID("00000000-0000-0000-0000-0000000000b2")
SERVICE_ID = UUID("00000000-0000-0000-0000-0000000000c1")
ROOM_ID = UUID("00000000-0000-0000-0000-0000000000d1")
OTHER_ROOM_ID = UUID("00000000-0000-0000-0000-0000000000d2")


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _matches(appointment: Appointment, filters: AppointmentFilters) -> bool:
    if not filters.include_deleted and appointment.is_deleted:
        return False
    if filters.statuses and appointment.status not in filters.statuses:
        return False
    if filters.payment_statuses and appointment.payment_status not in filters.payment_statuses:
        return False
    if filters.patient_id and appointment.patient_id != filters.patient_id:
        return False
    if filters.patient_email and appointment.patient_info.email.lower() != filters.patient_email.lower():
        return False
    if filters.professional_id and appointment.professional_id != filters.professional_id:
        return False
    if filters.service_id and appointment.service_id != filters.service_id:
        return False
    if filters.room_id and appointment.room_id != filters.room_id:
        return False
    if filters.source and appointment.source != filters.source:
        return False
    if filters.from_date and appointment.start_time < filters.from_date:
        return False
    if filters.to_date and appointment.start_time > filters.to_date:
        return False
    if filters.search:
        needle = filters.search.lower()
        haystack = [appointment.patient_info.name, appointment.patient_info.email]
        if not any(needle in value.lower() for value in haystack):
            return False
    return True


class InMemoryAppointmentRepository:
    """Dict-backed stand-in for ``AppointmentRepository``."""

    def __init__(self):
        self.rows: dict[UUID, Appointment] = {}
        self.saves = 0

    async def find_by_id(self, appointment_id: UUID, include_deleted: bool = False) -> Appointment | None:
        appointment = self.rows.get(appointment_id)
        if appointment is None or (appointment.is_deleted and not include_deleted):
            return None
        return appointment.model_copy(deep=True)

    async def find(self, filters: AppointmentFilters) -> list[Appointment]:
        matching = sorted(
            (a for a in self.rows.values() if _matches(a, filters)),
            key=lambda a: a.start_time,
        )
        offset = (filters.page - 1) * filters.page_size
        return [a.model_copy(deep=True) for a in matching[offset : offset + filters.page_size]]

    async def count(self, filters: AppointmentFilters) -> int:
        return sum(1 for a in self.rows.values() if _matches(a, filters))

    async def find_for_professional(self, professional_id: UUID, start: datetime, end: datetime) -> list[Appointment]:
        # Unfiltered; ConflictService applies the overlap predicate.
        return [a.model_copy(deep=True) for a in self.rows.values() if a.professional_id == professional_id]

    async def find_for_room(self, room_id: UUID, start: datetime, end: datetime) -> list[Appointment]:
        return [a.model_copy(deep=True) for a in self.rows.values() if a.room_id == room_id]

    async def find_upcoming(
        self,
        start: datetime,
        end: datetime,
        professional_id: UUID | None = None,
    ) -> list[Appointment]:
        return sorted(
            (
                a.model_copy(deep=True)
                for a in self.rows.values()
                if not a.is_deleted
                and a.status in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)
                and start <= a.start_time <= end
                and (professional_id is None or a.professional_id == professional_id)
            ),
            key=lambda a: a.start_time,
        )

    async def statistics(self, filters: AppointmentFilters) -> AppointmentStatistics:
        matching = [a for a in self.rows.values() if _matches(a, filters)]
        revenue = [a.pricing.total_amount for a in matching]

        def count(status: AppointmentStatus) -> int:
            return sum(1 for a in matching if a.status == status)

        return AppointmentStatistics(
            total_appointments=len(matching),
            pending_appointments=count(AppointmentStatus.PENDING),
            confirmed_appointments=count(AppointmentStatus.CONFIRMED),
            completed_appointments=count(AppointmentStatus.COMPLETED),
            cancelled_appointments=count(AppointmentStatus.CANCELLED),
            no_show_appointments=count(AppointmentStatus.NO_SHOW),
            total_revenue=sum(revenue, Decimal("0")),
            average_revenue=(sum(revenue, Decimal("0")) / len(revenue)).quantize(Decimal("0.01"))
            if revenue
            else None,
        )

    async def create(self, appointment: Appointment) -> Appointment:
        self.rows[appointment.id] = appointment.model_copy(deep=True)
        return appointment.model_copy(deep=True)

    async def save(self, appointment: Appointment) -> Appointment:
        self.saves += 1
        self.rows[appointment.id] = appointment.model_copy(deep=True)
        return appointment.model_copy(deep=True)

    def persisted_blocking(self, professional_id: UUID) -> list[Appointment]:
        return [
            a
            for a in self.rows.values()
            if a.professional_id == professional_id
            and not a.is_deleted
            and a.status not in NON_BLOCKING_STATUSES
        ]


class InMemoryAuditLogRepository:
    """List-backed stand-in for ``AuditLogRepository``."""

    def __init__(self):
        self.entries: list[AuditLogEntry] = []
        self.fail_with: Exception | None = None

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        if self.fail_with is not None:
            raise self.fail_with
        self.entries.append(entry)
        return entry

    async def find_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditLogEntry]:
        return sorted(
            (e for e in self.entries if e.entity_type == entity_type and e.entity_id == entity_id),
            key=lambda e: e.timestamp,
        )

    async def find_by_actor(self, actor_id: UUID, limit: int = 100) -> list[AuditLogEntry]:
        matching = sorted(
            (e for e in self.entries if e.actor_id == actor_id),
            key=lambda e: e.timestamp,
            reverse=True,
        )
        return matching[:limit]

    async def compliance_report(self, start: datetime, end: datetime) -> list[ComplianceReportRow]:
        grouped: dict = {}
        for entry in self.entries:
            if not start <= entry.timestamp <= end:
                continue
            if not (entry.hipaa_relevant or entry.gdpr_relevant):
                continue
            grouped.setdefault(entry.action, []).append(entry)

        rows = [
            ComplianceReportRow(
                action=action,
                count=len(entries),
                high_risk_count=sum(1 for e in entries if e.risk_level == RiskLevel.HIGH),
                unique_actors=len({e.actor_id for e in entries}),
            )
            for action, entries in grouped.items()
        ]
        return sorted(rows, key=lambda row: row.count, reverse=True)


class InMemoryDirectory:
    """Dict-backed stand-in for ``DirectoryService``."""

    def __init__(self):
        self.patients: dict[UUID, PatientRecord] = {}
        self.professionals: dict[UUID, ProfessionalRecord] = {}
        self.services: dict[UUID, ServiceRecord] = {}
        self.rooms: dict[UUID, RoomRecord] = {}

    async def find_patient(self, patient_id: UUID) -> PatientRecord | None:
        return self.patients.get(patient_id)

    async def find_professional(self, professional_id: UUID) -> ProfessionalRecord | None:
        return self.professionals.get(professional_id)

    async def find_service(self, service_id: UUID) -> ServiceRecord | None:
        return self.services.get(service_id)

    async def find_room(self, room_id: UUID) -> RoomRecord | None:
        return self.rooms.get(room_id)


def auth_headers_for(actor: Actor) -> dict:
    """Bearer header carrying the actor's claims."""
    token = create_access_token(data=actor_claims(actor), expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


def make_appointment(
    start: datetime | None = None,
    duration: int = 50,
    professional_id: UUID = PROFESSIONAL_ID,
    room_id: UUID | None = None,
    status: AppointmentStatus = AppointmentStatus.PENDING,
    **overrides,
) -> Appointment:
    """Stored appointment for the default patient and service."""
    start = start or datetime(2024, 1, 15, 9, 0, tzinfo=UTC)
    return Appointment(
        patient_id=PATIENT_ID,
        professional_id=professional_id,
        service_id=SERVICE_ID,
        room_id=room_id,
        start_time=start,
        end_time=start + timedelta(minutes=duration),
        duration=duration,
        status=status,
        pricing=Pricing(base_price=Decimal("60.00"), total_amount=Decimal("60.00")),
        patient_info=PatientInfo(name="Lucía Martín", email=PATIENT_EMAIL),
        created_at=NOW,
        updated_at=NOW,
        **overrides,
    )
