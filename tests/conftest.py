"""Shared fixtures: in-memory collaborators, a fixed clock and actors for each role."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

# Load environment variables from .env file
load_dotenv()

from app.core.locks import LocalSchedulingLock
from app.dependencies import get_appointment_service
from app.main import app
from app.schemas.appointments import EmergencyContact
from app.schemas.auth import Actor, UserRole
from app.schemas.directory import PatientRecord, ProfessionalRecord, RoomRecord, ServiceRecord
from app.services.appointment_service import AppointmentService
from app.services.appointment_state import AppointmentStateMachine
from app.services.audit_service import AuditService
from app.services.authorization_service import RolePermissionPolicy
from tests.fakes import (
    OTHER_PROFESSIONAL_ID,
    OTHER_ROOM_ID,
    PATIENT_EMAIL,
    PATIENT_ID,
    PROFESSIONAL_ID,
    ROOM_ID,
    SERVICE_ID,
    FixedClock,
    InMemoryAppointmentRepository,
    InMemoryAuditLogRepository,
    InMemoryDirectory,
)


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to a few days before the booked slots."""
    return FixedClock()


@pytest.fixture
def appointment_repository() -> InMemoryAppointmentRepository:
    return InMemoryAppointmentRepository()


@pytest.fixture
def audit_repository() -> InMemoryAuditLogRepository:
    return InMemoryAuditLogRepository()


@pytest.fixture
def directory() -> InMemoryDirectory:
    """Directory with one patient, two professionals, one 50 minute service and two rooms."""
    directory = InMemoryDirectory()
    directory.patients[PATIENT_ID] = PatientRecord(
        id=PATIENT_ID,
        name="Lucía Martín",
        email=PATIENT_EMAIL,
        phone="+34600111222",
        emergency_contact=EmergencyContact(name="Pablo Martín", phone="+34600333444", relationship="brother"),
    )
    directory.professionals[PROFESSIONAL_ID] = ProfessionalRecord(id=PROFESSIONAL_ID, name="Dra. Elena Ruiz")
    directory.professionals[OTHER_PROFESSIONAL_ID] = ProfessionalRecord(
        id=OTHER_PROFESSIONAL_ID, name="Dr. Marcos Vidal"
    )
    directory.services[SERVICE_ID] = ServiceRecord(
        id=SERVICE_ID,
        name="Individual therapy",
        duration_minutes=50,
        price=Decimal("60.00"),
        currency="EUR",
    )
    directory.rooms[ROOM_ID] = RoomRecord(id=ROOM_ID, name="Room 1")
    directory.rooms[OTHER_ROOM_ID] = RoomRecord(id=OTHER_ROOM_ID, name="Room 2")
    return directory


@pytest.fixture
def appointment_service(
    appointment_repository: InMemoryAppointmentRepository,
    audit_repository: InMemoryAuditLogRepository,
    directory: InMemoryDirectory,
    clock: FixedClock,
) -> AppointmentService:
    return AppointmentService(
        appointments=appointment_repository,
        audit=AuditService(audit_repository, "appointment_records", "7y"),
        directory=directory,
        authorization=RolePermissionPolicy(),
        lock=LocalSchedulingLock(blocking_timeout=1.0),
        state_machine=AppointmentStateMachine(cutoff_hours=2),
        store_timeout=1.0,
        clock=clock,
    )


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=uuid4(), role=UserRole.ADMIN, email="admin@clinic.example")


@pytest.fixture
def reception() -> Actor:
    return Actor(user_id=uuid4(), role=UserRole.RECEPTION, email="desk@clinic.example")


@pytest.fixture
def professional() -> Actor:
    return Actor(user_id=uuid4(), role=UserRole.PROFESSIONAL, professional_id=PROFESSIONAL_ID)


@pytest.fixture
def other_professional() -> Actor:
    return Actor(user_id=uuid4(), role=UserRole.PROFESSIONAL, professional_id=OTHER_PROFESSIONAL_ID)


@pytest.fixture
def patient() -> Actor:
    return Actor(user_id=uuid4(), role=UserRole.PATIENT, email=PATIENT_EMAIL.upper(), patient_id=PATIENT_ID)


@pytest.fixture
def booking_data() -> dict:
    """Booking request for 2024-01-15 09:00 with the service default duration."""
    return {
        "patient_id": PATIENT_ID,
        "professional_id": PROFESSIONAL_ID,
        "service_id": SERVICE_ID,
        "start_time": datetime(2024, 1, 15, 9, 0, tzinfo=UTC),
    }


@pytest_asyncio.fixture
async def client(appointment_service: AppointmentService) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client wired to the in-memory service."""
    app.dependency_overrides[get_appointment_service] = lambda: appointment_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
