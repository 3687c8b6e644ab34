"""Read-only records returned by directory lookups."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel

from app.schemas.appointments import EmergencyContact


class PatientRecord(BaseModel):
    """Active patient."""

    id: UUID
    name: str
    email: str
    phone: str | None = None
    date_of_birth: date | None = None
    emergency_contact: EmergencyContact | None = None

    model_config = {"from_attributes": True}


class ProfessionalRecord(BaseModel):
    """Active professional."""

    id: UUID
    name: str
    email: str | None = None

    model_config = {"from_attributes": True}


class ServiceRecord(BaseModel):
    """Bookable service with its default duration and price."""

    id: UUID
    name: str
    duration_minutes: int | None = None
    price: Decimal
    currency: str | None = None

    model_config = {"from_attributes": True}


class RoomRecord(BaseModel):
    """Bookable room."""

    id: UUID
    name: str

    model_config = {"from_attributes": True}
