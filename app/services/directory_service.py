"""Read-only lookups of the patients, professionals, services and rooms referenced by appointments."""

from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.patients import patients
from app.models.professionals import professionals
from app.models.rooms import rooms
from app.models.services import services
from app.schemas.appointments import EmergencyContact
from app.schemas.directory import (
    PatientRecord,
    ProfessionalRecord,
    RoomRecord,
    ServiceRecord,
)


class DirectoryService:
    """Resolves referenced entities; only active records are returned."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def find_patient(self, patient_id: UUID) -> PatientRecord | None:
        """Get an active patient by ID."""
        stmt = select(patients).where(and_(patients.c.id == patient_id, patients.c.is_active.is_(True)))
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            return None

        emergency_contact = None
        if row["emergency_contact_name"] and row["emergency_contact_phone"]:
            emergency_contact = EmergencyContact(
                name=row["emergency_contact_name"],
                phone=row["emergency_contact_phone"],
                relationship=row["emergency_contact_relation"],
            )

        return PatientRecord(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            date_of_birth=row["date_of_birth"],
            emergency_contact=emergency_contact,
        )

    async def find_professional(self, professional_id: UUID) -> ProfessionalRecord | None:
        """Get an active professional by ID."""
        stmt = select(professionals).where(
            and_(professionals.c.id == professional_id, professionals.c.status == "active")
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        return ProfessionalRecord.model_validate(dict(row)) if row else None

    async def find_service(self, service_id: UUID) -> ServiceRecord | None:
        """Get an active service by ID."""
        stmt = select(services).where(and_(services.c.id == service_id, services.c.is_active.is_(True)))
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        return ServiceRecord.model_validate(dict(row)) if row else None

    async def find_room(self, room_id: UUID) -> RoomRecord | None:
        """Get an active room by ID."""
        stmt = select(rooms).where(and_(rooms.c.id == room_id, rooms.c.is_active.is_(True)))
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        return RoomRecord.model_validate(dict(row)) if row else None
