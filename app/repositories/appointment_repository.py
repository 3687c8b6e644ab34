"""Appointment persistence using SQLAlchemy Core."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Numeric, and_, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointments import appointments
from app.schemas.appointments import (
    NON_BLOCKING_STATUSES,
    Appointment,
    AppointmentFilters,
    AppointmentStatistics,
    AppointmentStatus,
)

# Sub-records stored as JSONB documents
JSON_FIELDS = frozenset(
    {
        "pricing",
        "patient_info",
        "notes",
        "rescheduling",
        "cancellation",
        "attendance",
        "reminders",
    }
)
ENUM_FIELDS = ("status", "payment_status", "source", "booking_method")

_NON_BLOCKING = [status.value for status in NON_BLOCKING_STATUSES]


def to_row(appointment: Appointment) -> dict[str, Any]:
    """Flatten an appointment into column values."""
    values = appointment.model_dump(exclude=set(JSON_FIELDS))
    for field in ENUM_FIELDS:
        values[field] = values[field].value
    values.update(appointment.model_dump(mode="json", include=set(JSON_FIELDS)))
    return values


class AppointmentRepository:
    """Keyed retrieval and save of appointments."""

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session."""
        self.db = db

    @staticmethod
    def _conditions(filters: AppointmentFilters) -> list[Any]:
        conditions: list[Any] = []

        if not filters.include_deleted:
            conditions.append(appointments.c.deleted_at.is_(None))

        if filters.statuses:
            conditions.append(appointments.c.status.in_([s.value for s in filters.statuses]))

        if filters.payment_statuses:
            conditions.append(
                appointments.c.payment_status.in_([s.value for s in filters.payment_statuses])
            )

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.patient_email:
            conditions.append(
                func.lower(appointments.c.patient_info["email"].astext)
                == filters.patient_email.lower()
            )

        if filters.professional_id:
            conditions.append(appointments.c.professional_id == filters.professional_id)

        if filters.service_id:
            conditions.append(appointments.c.service_id == filters.service_id)

        if filters.room_id:
            conditions.append(appointments.c.room_id == filters.room_id)

        if filters.source:
            conditions.append(appointments.c.source == filters.source.value)

        if filters.from_date:
            conditions.append(appointments.c.start_time >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.start_time <= filters.to_date)

        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                or_(
                    appointments.c.patient_info["name"].astext.ilike(pattern),
                    appointments.c.patient_info["email"].astext.ilike(pattern),
                    appointments.c.notes["patient_notes"].astext.ilike(pattern),
                    appointments.c.notes["professional_notes"].astext.ilike(pattern),
                    appointments.c.notes["admin_notes"].astext.ilike(pattern),
                )
            )

        return conditions

    async def find_by_id(
        self,
        appointment_id: UUID,
        include_deleted: bool = False,
    ) -> Appointment | None:
        """Get an appointment by ID, skipping soft-deleted rows unless asked."""
        conditions = [appointments.c.id == appointment_id]
        if not include_deleted:
            conditions.append(appointments.c.deleted_at.is_(None))

        result = await self.db.execute(select(appointments).where(and_(*conditions)))
        row = result.fetchone()
        return Appointment.model_validate(dict(row._mapping)) if row else None

    async def find(self, filters: AppointmentFilters) -> list[Appointment]:
        """List appointments matching the filters, one page at a time."""
        offset = (filters.page - 1) * filters.page_size
        stmt = (
            select(appointments)
            .where(and_(*self._conditions(filters)))
            .order_by(appointments.c.start_time.asc())
            .limit(filters.page_size)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        return [Appointment.model_validate(dict(row._mapping)) for row in result.fetchall()]

    async def count(self, filters: AppointmentFilters) -> int:
        """Count appointments matching the filters."""
        stmt = select(func.count()).select_from(appointments).where(and_(*self._conditions(filters)))
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def _find_blocking(self, owner_condition: Any, start: datetime, end: datetime) -> list[Appointment]:
        stmt = (
            select(appointments)
            .where(
                and_(
                    owner_condition,
                    appointments.c.deleted_at.is_(None),
                    appointments.c.status.not_in(_NON_BLOCKING),
                    appointments.c.start_time < end,
                    appointments.c.end_time > start,
                )
            )
            .order_by(appointments.c.start_time.asc())
        )
        result = await self.db.execute(stmt)
        return [Appointment.model_validate(dict(row._mapping)) for row in result.fetchall()]

    async def find_for_professional(
        self,
        professional_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[Appointment]:
        """Candidate blocking appointments of a professional around a window."""
        return await self._find_blocking(appointments.c.professional_id == professional_id, start, end)

    async def find_for_room(self, room_id: UUID, start: datetime, end: datetime) -> list[Appointment]:
        """Candidate blocking appointments in a room around a window."""
        return await self._find_blocking(appointments.c.room_id == room_id, start, end)

    async def find_upcoming(
        self,
        start: datetime,
        end: datetime,
        professional_id: UUID | None = None,
    ) -> list[Appointment]:
        """Pending or confirmed appointments starting within ``[start, end]``."""
        conditions = [
            appointments.c.start_time >= start,
            appointments.c.start_time <= end,
            appointments.c.status.in_(
                [AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value]
            ),
            appointments.c.deleted_at.is_(None),
        ]
        if professional_id:
            conditions.append(appointments.c.professional_id == professional_id)

        stmt = select(appointments).where(and_(*conditions)).order_by(appointments.c.start_time.asc())
        result = await self.db.execute(stmt)
        return [Appointment.model_validate(dict(row._mapping)) for row in result.fetchall()]

    async def statistics(self, filters: AppointmentFilters) -> AppointmentStatistics:
        """Aggregate status counts and revenue."""
        status = appointments.c.status
        revenue = appointments.c.pricing["total_amount"].astext.cast(Numeric(10, 2))

        stmt = select(
            func.count().label("total_appointments"),
            func.count().filter(status == "pending").label("pending_appointments"),
            func.count().filter(status == "confirmed").label("confirmed_appointments"),
            func.count().filter(status == "completed").label("completed_appointments"),
            func.count().filter(status == "cancelled").label("cancelled_appointments"),
            func.count().filter(status == "no_show").label("no_show_appointments"),
            func.coalesce(func.sum(revenue), 0).label("total_revenue"),
            func.avg(revenue).label("average_revenue"),
        ).where(and_(*self._conditions(filters)))

        result = await self.db.execute(stmt)
        row = result.mappings().one()
        data = dict(row)
        if data["average_revenue"] is not None:
            data["average_revenue"] = Decimal(data["average_revenue"]).quantize(Decimal("0.01"))
        return AppointmentStatistics.model_validate(data)

    async def create(self, appointment: Appointment) -> Appointment:
        """Insert a new appointment."""
        stmt = insert(appointments).values(**to_row(appointment)).returning(appointments)
        result = await self.db.execute(stmt)
        await self.db.commit()
        row = result.fetchone()
        return Appointment.model_validate(dict(row._mapping))

    async def save(self, appointment: Appointment) -> Appointment:
        """Persist the full current state of an existing appointment."""
        values = to_row(appointment)
        values.pop("id")
        values.pop("created_at", None)

        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment.id)
            .values(**values)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        row = result.fetchone()
        return Appointment.model_validate(dict(row._mapping))
