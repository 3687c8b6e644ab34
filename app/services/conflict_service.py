"""Detection of appointments overlapping a proposed window."""

from datetime import datetime
from uuid import UUID

import structlog

from app.core.exceptions import ConflictException
from app.core.time_ranges import overlaps
from app.repositories.appointment_repository import AppointmentRepository
from app.schemas.appointments import Appointment, ConflictSummary

logger = structlog.get_logger(__name__)


def is_conflict(
    existing: Appointment,
    start: datetime,
    end: datetime,
    exclude_appointment_id: UUID | None = None,
) -> bool:
    """
    The single conflict predicate shared by create, update and reschedule.

    An existing appointment conflicts when it still occupies its slot (not cancelled,
    not a no-show, not soft-deleted), is not the appointment being moved, and its
    window overlaps ``[start, end)``.
    """
    return (
        existing.blocks_schedule
        and existing.id != exclude_appointment_id
        and overlaps(existing.start_time, existing.end_time, start, end)
    )


class ConflictService:
    """Finds and rejects overlapping bookings."""

    def __init__(self, repository: AppointmentRepository):
        """Initialize service with the appointment repository."""
        self.repository = repository

    async def find_conflicts(
        self,
        professional_id: UUID,
        start: datetime,
        end: datetime,
        exclude_appointment_id: UUID | None = None,
    ) -> list[Appointment]:
        """
        Appointments of a professional that overlap a window.

        Args:
            professional_id: Professional whose schedule is checked
            start: Proposed window start
            end: Proposed window end
            exclude_appointment_id: Appointment being moved, ignored in the check

        Returns:
            Every conflicting appointment, ordered by start time
        """
        candidates = await self.repository.find_for_professional(professional_id, start, end)
        return sorted(
            (a for a in candidates if is_conflict(a, start, end, exclude_appointment_id)),
            key=lambda a: a.start_time,
        )

    async def find_room_conflicts(
        self,
        room_id: UUID,
        start: datetime,
        end: datetime,
        exclude_appointment_id: UUID | None = None,
    ) -> list[Appointment]:
        """Appointments occupying a room during a window."""
        candidates = await self.repository.find_for_room(room_id, start, end)
        return sorted(
            (a for a in candidates if is_conflict(a, start, end, exclude_appointment_id)),
            key=lambda a: a.start_time,
        )

    async def ensure_available(
        self,
        professional_id: UUID,
        start: datetime,
        end: datetime,
        room_id: UUID | None = None,
        exclude_appointment_id: UUID | None = None,
    ) -> None:
        """
        Reject a window that overlaps the professional's or the room's bookings.

        Raises:
            ConflictException: With the full conflict set of the first blocked resource
        """
        conflicts = await self.find_conflicts(professional_id, start, end, exclude_appointment_id)
        if conflicts:
            logger.info(
                "appointment_conflict_detected",
                professional_id=str(professional_id),
                conflicts=[str(c.id) for c in conflicts],
            )
            raise ConflictException(
                "Professional is not available at the selected time",
                conflicts=[
                    ConflictSummary.from_appointment(c).model_dump(mode="json") for c in conflicts
                ],
                resource="professional",
            )

        if room_id is None:
            return

        room_conflicts = await self.find_room_conflicts(room_id, start, end, exclude_appointment_id)
        if room_conflicts:
            logger.info(
                "room_conflict_detected",
                room_id=str(room_id),
                conflicts=[str(c.id) for c in room_conflicts],
            )
            raise ConflictException(
                "Room is not available at the selected time",
                conflicts=[
                    ConflictSummary.from_appointment(c).model_dump(mode="json")
                    for c in room_conflicts
                ],
                resource="room",
            )
