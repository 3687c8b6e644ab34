"""Authenticated actor and permission vocabulary."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class UserRole(str, Enum):
    """Clinic user roles."""

    ADMIN = "admin"
    RECEPTION = "reception"
    PROFESSIONAL = "professional"
    PATIENT = "patient"


class SchedulingAction(str, Enum):
    """Actions the authorization collaborator decides on."""

    READ = "read"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    CONFIRM = "confirm"
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"
    OFFER_RESCHEDULE = "offer_reschedule"
    MARK_ARRIVED = "mark_arrived"
    MARK_NO_SHOW = "mark_no_show"
    START_SESSION = "start_session"
    END_SESSION = "end_session"
    DELETE = "delete"
    VIEW_AUDIT = "view_audit"
    VIEW_STATS = "view_stats"
    VIEW_UPCOMING = "view_upcoming"


class Actor(BaseModel):
    """The user on whose behalf an operation runs."""

    user_id: UUID
    role: UserRole
    email: str | None = None
    professional_id: UUID | None = None
    patient_id: UUID | None = None

    @property
    def subject_id(self) -> str:
        """
        Identity used for ownership checks.

        Professionals are matched on their professional id; patients on the email
        captured in the appointment's patient snapshot.
        """
        if self.role == UserRole.PROFESSIONAL and self.professional_id:
            return str(self.professional_id)
        if self.role == UserRole.PATIENT and self.email:
            return self.email.lower()
        return str(self.user_id)


class ResourceOwners(BaseModel):
    """Identities owning an appointment."""

    professional_id: str | None = None
    patient_email: str | None = None
