"""Database models."""

from app.models.appointments import appointments
from app.models.audit_logs import audit_logs
from app.models.base import metadata
from app.models.patients import patients
from app.models.professionals import professionals
from app.models.rooms import rooms
from app.models.services import services

__all__ = [
    "appointments",
    "audit_logs",
    "metadata",
    "patients",
    "professionals",
    "rooms",
    "services",
]
