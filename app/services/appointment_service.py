"""Appointment service for business logic.

Single entry point for every appointment operation. Each call runs permission checks,
directory lookups, conflict detection, the lifecycle transition, persistence and the
audit entry in that order.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.core.exceptions import (
    AuditWriteException,
    ForbiddenException,
    NotFoundException,
    PolicyViolationException,
    StoreFailureException,
    ValidationException,
)
from app.core.locks import SchedulingLock
from app.core.time_ranges import window_end
from app.repositories.appointment_repository import AppointmentRepository
from app.schemas.appointments import (
    TERMINAL_STATUSES,
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentNotes,
    AppointmentResponse,
    AppointmentStatistics,
    AppointmentStatus,
    AppointmentUpdate,
    CancelRequest,
    PatientInfo,
    Pricing,
    RescheduleRequest,
)
from app.schemas.audit import (
    AuditAction,
    AuditLogEntry,
    ChangeType,
    ComplianceReportRow,
    FieldChange,
)
from app.schemas.auth import Actor, ResourceOwners, SchedulingAction, UserRole
from app.services.appointment_state import (
    AppointmentStateMachine,
    RejectionReason,
    TransitionResult,
)
from app.services.audit_service import (
    AuditService,
    creation_changes,
    diff_changes,
    mask_sensitive,
    serialize_state,
)
from app.services.authorization_service import AuthorizationPolicy
from app.services.conflict_service import ConflictService
from app.services.directory_service import DirectoryService

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_REJECTION_MESSAGES = {
    RejectionReason.TOO_CLOSE_TO_START: "Appointment starts too soon to be changed",
    RejectionReason.INVALID_STATUS: "Operation not allowed in the appointment's current status",
}


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _owners(appointment: Appointment) -> ResourceOwners:
    return ResourceOwners(
        professional_id=str(appointment.professional_id),
        patient_email=appointment.patient_info.email.lower(),
    )


class AppointmentService:
    """Service for managing the appointment lifecycle."""

    def __init__(
        self,
        appointments: AppointmentRepository,
        audit: AuditService,
        directory: DirectoryService,
        authorization: AuthorizationPolicy,
        lock: SchedulingLock,
        state_machine: AppointmentStateMachine | None = None,
        store_timeout: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize service with its collaborators.

        Args:
            appointments: Appointment persistence
            audit: Audit trail recorder
            directory: Patient, professional, service and room lookups
            authorization: Permission decisions
            lock: Per-professional scheduling lock
            state_machine: Lifecycle transitions
            store_timeout: Upper bound in seconds for a single store call
            clock: Source of the current time
        """
        self.appointments = appointments
        self.audit = audit
        self.directory = directory
        self.authorization = authorization
        self.lock = lock
        self.state = state_machine or AppointmentStateMachine()
        self.conflicts = ConflictService(appointments)
        self.store_timeout = store_timeout if store_timeout is not None else settings.store_timeout_seconds
        self.clock = clock or _utc_now

    async def _store(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Run one store call under the configured timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.store_timeout)
        except TimeoutError as e:
            logger.error("store_operation_timed_out", operation=operation, timeout=self.store_timeout)
            raise StoreFailureException(f"Storage operation '{operation}' timed out") from e
        except SQLAlchemyError as e:
            logger.error("store_operation_failed", operation=operation, error=str(e))
            raise StoreFailureException(f"Storage operation '{operation}' failed") from e

    def _authorize(
        self,
        actor: Actor,
        action: SchedulingAction,
        owners: ResourceOwners | None = None,
    ) -> None:
        if not self.authorization.can_perform(actor.role, actor.subject_id, action, owners):
            logger.warning(
                "permission_denied",
                user_id=str(actor.user_id),
                role=actor.role.value,
                action=action.value,
                ownership_check=owners is not None,
            )
            raise ForbiddenException(f"Not allowed to {action.value.replace('_', ' ')} this appointment")

    async def _load(self, appointment_id: UUID, include_deleted: bool = False) -> Appointment:
        appointment = await self._store(
            "find_by_id", self.appointments.find_by_id(appointment_id, include_deleted=include_deleted)
        )
        if not appointment:
            raise NotFoundException(f"Appointment {appointment_id} not found")
        return appointment

    async def _load_owned(self, actor: Actor, action: SchedulingAction, appointment_id: UUID) -> Appointment:
        """Role gate, load, then ownership check."""
        self._authorize(actor, action)
        appointment = await self._load(appointment_id)
        self._authorize(actor, action, _owners(appointment))
        return appointment

    @staticmethod
    def _raise_if_rejected(result: TransitionResult, appointment: Appointment) -> None:
        if result.accepted:
            return
        reason = result.reason or RejectionReason.INVALID_STATUS
        logger.info(
            "appointment_transition_rejected",
            appointment_id=str(appointment.id),
            status=appointment.status.value,
            reason=reason.value,
        )
        raise PolicyViolationException(reason.value, _REJECTION_MESSAGES[reason])

    async def _audit(
        self,
        action: AuditAction,
        appointment: Appointment,
        actor: Actor,
        changes: list[FieldChange],
        timestamp: datetime,
    ) -> None:
        try:
            await self._store(
                "audit_append",
                self.audit.record(action, appointment, actor, changes, timestamp),
            )
        except StoreFailureException as e:
            logger.error(
                "audit_write_failed",
                action=action.value,
                appointment_id=str(appointment.id),
                committed=True,
                error=e.message,
            )
            raise AuditWriteException(str(appointment.id), action.value) from e

    @staticmethod
    def _resolve_window(
        start: datetime,
        end: datetime | None,
        duration: int | None,
    ) -> tuple[datetime, int]:
        """Return ``(end, duration)`` for a window; an explicit end wins over a duration."""
        if end is None:
            return window_end(start, duration), duration

        seconds = (end - start).total_seconds()
        if seconds <= 0:
            raise ValidationException("End time must be after start time")
        if seconds % 60:
            raise ValidationException("Appointment window must be a whole number of minutes")
        return end, int(seconds // 60)

    async def create_appointment(self, actor: Actor, data: AppointmentCreate) -> AppointmentResponse:
        """
        Book a new appointment.

        Args:
            actor: Acting user
            data: Booking request

        Returns:
            Created appointment with status pending

        Raises:
            ForbiddenException: If the actor may not book for this professional
            NotFoundException: If a referenced patient, professional, service or room is missing
            ConflictException: If the window overlaps the professional's or room's bookings
        """
        self._authorize(actor, SchedulingAction.CREATE)
        self._authorize(
            actor,
            SchedulingAction.CREATE,
            ResourceOwners(professional_id=str(data.professional_id)),
        )

        patient = await self._store("find_patient", self.directory.find_patient(data.patient_id))
        if not patient:
            raise NotFoundException("Patient not found")

        professional = await self._store(
            "find_professional", self.directory.find_professional(data.professional_id)
        )
        if not professional:
            raise NotFoundException("Professional not found")

        service = await self._store("find_service", self.directory.find_service(data.service_id))
        if not service:
            raise NotFoundException("Service not found")

        if data.room_id:
            room = await self._store("find_room", self.directory.find_room(data.room_id))
            if not room:
                raise NotFoundException("Room not found")

        fallback_duration = (
            data.duration or service.duration_minutes or settings.default_service_duration_minutes
        )
        end_time, duration = self._resolve_window(data.start_time, data.end_time, fallback_duration)

        total = service.price - data.discount_amount + data.copay_amount
        if total < 0:
            raise ValidationException("Discount exceeds the service price")

        now = self.clock()
        appointment = Appointment(
            patient_id=patient.id,
            professional_id=professional.id,
            service_id=service.id,
            room_id=data.room_id,
            start_time=data.start_time,
            end_time=end_time,
            duration=duration,
            timezone=data.timezone or settings.default_timezone,
            status=AppointmentStatus.PENDING,
            payment_status=data.payment_status,
            source=data.source,
            booking_method=data.booking_method,
            pricing=Pricing(
                base_price=service.price,
                discount_amount=data.discount_amount,
                discount_reason=data.discount_reason,
                copay_amount=data.copay_amount,
                total_amount=total,
                currency=service.currency or settings.default_currency,
            ),
            patient_info=PatientInfo(
                name=patient.name,
                email=patient.email,
                phone=patient.phone,
                date_of_birth=patient.date_of_birth,
                emergency_contact=(
                    patient.emergency_contact.model_copy() if patient.emergency_contact else None
                ),
            ),
            notes=data.notes.model_copy() if data.notes else AppointmentNotes(),
            created_at=now,
            updated_at=now,
        )

        async with self.lock.hold(professional.id):
            await self._store(
                "conflict_check",
                self.conflicts.ensure_available(
                    professional.id, appointment.start_time, appointment.end_time, room_id=data.room_id
                ),
            )
            created = await self._store("create", self.appointments.create(appointment))

        logger.info(
            "appointment_created",
            appointment_id=str(created.id),
            professional_id=str(created.professional_id),
            start_time=created.start_time.isoformat(),
            duration=created.duration,
        )
        await self._audit(AuditAction.CREATED, created, actor, creation_changes(created), now)
        return AppointmentResponse.model_validate(created.model_dump())

    async def update_appointment(
        self,
        actor: Actor,
        appointment_id: UUID,
        data: AppointmentUpdate,
    ) -> AppointmentResponse:
        """
        Patch an appointment.

        Time fields recompute the window and re-run the conflict check excluding the
        appointment itself. Notes are merged field by field.

        Raises:
            PolicyViolationException: If the window of a closed appointment is changed
            ConflictException: If the new window or room is taken
        """
        appointment = await self._load_owned(actor, SchedulingAction.UPDATE, appointment_id)
        fields = data.model_fields_set

        if data.changes_window and appointment.status in TERMINAL_STATUSES:
            self._raise_if_rejected(
                TransitionResult.rejected(RejectionReason.INVALID_STATUS), appointment
            )

        if "room_id" in fields and data.room_id is not None and data.room_id != appointment.room_id:
            room = await self._store("find_room", self.directory.find_room(data.room_id))
            if not room:
                raise NotFoundException("Room not found")

        # Only a copy loaded under the professional's lock is saved
        async with self.lock.hold(appointment.professional_id):
            current = await self._load(appointment_id)
            if data.changes_window and current.status in TERMINAL_STATUSES:
                self._raise_if_rejected(
                    TransitionResult.rejected(RejectionReason.INVALID_STATUS), current
                )
            room_changed = "room_id" in fields and data.room_id != current.room_id

            before = serialize_state(current)
            self._apply_patch(current, data)
            if data.changes_window or (room_changed and current.room_id is not None):
                await self._store(
                    "conflict_check",
                    self.conflicts.ensure_available(
                        current.professional_id,
                        current.start_time,
                        current.end_time,
                        room_id=current.room_id,
                        exclude_appointment_id=current.id,
                    ),
                )
            now = self.clock()
            current.updated_at = now
            saved = await self._store("save", self.appointments.save(current))

        changes = diff_changes(before, serialize_state(saved))
        logger.info(
            "appointment_updated",
            appointment_id=str(saved.id),
            fields=[change.field for change in changes],
        )
        await self._audit(AuditAction.UPDATED, saved, actor, changes, now)
        return AppointmentResponse.model_validate(saved.model_dump())

    def _apply_patch(self, appointment: Appointment, data: AppointmentUpdate) -> None:
        fields = data.model_fields_set

        if data.changes_window:
            start = data.start_time if data.start_time is not None else appointment.start_time
            if data.end_time is not None:
                end, duration = self._resolve_window(start, data.end_time, None)
            else:
                duration = data.duration if data.duration is not None else appointment.duration
                end, duration = self._resolve_window(start, None, duration)
            appointment.start_time = start
            appointment.end_time = end
            appointment.duration = duration

        if data.payment_status is not None:
            appointment.payment_status = data.payment_status

        if "room_id" in fields:
            appointment.room_id = data.room_id

        if data.notes is not None:
            appointment.notes = appointment.notes.model_copy(
                update=data.notes.model_dump(exclude_unset=True)
            )

    async def reschedule_appointment(
        self,
        actor: Actor,
        appointment_id: UUID,
        data: RescheduleRequest,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new window.

        The cutoff is evaluated against the stored start time. When no new end time is
        given the current duration is kept.

        Raises:
            PolicyViolationException: With reason ``too_close_to_start`` or ``invalid_status``
            ConflictException: If the new window overlaps another booking
        """
        appointment = await self._load_owned(actor, SchedulingAction.RESCHEDULE, appointment_id)
        self._raise_if_rejected(self.state.check_reschedule(appointment, self.clock()), appointment)

        async with self.lock.hold(appointment.professional_id):
            current = await self._load(appointment_id)
            now = self.clock()
            self._raise_if_rejected(self.state.check_reschedule(current, now), current)

            new_end, _ = self._resolve_window(
                data.new_start_time, data.new_end_time, current.duration
            )
            await self._store(
                "conflict_check",
                self.conflicts.ensure_available(
                    current.professional_id,
                    data.new_start_time,
                    new_end,
                    room_id=current.room_id,
                    exclude_appointment_id=current.id,
                ),
            )

            before = serialize_state(current)
            result = self.state.reschedule(
                current, data.new_start_time, new_end, actor.user_id, data.reason, now
            )
            self._raise_if_rejected(result, current)
            current.updated_at = now
            saved = await self._store("save", self.appointments.save(current))

        logger.info(
            "appointment_rescheduled",
            appointment_id=str(saved.id),
            start_time=saved.start_time.isoformat(),
            rescheduling_count=saved.rescheduling.rescheduling_count if saved.rescheduling else 0,
        )
        await self._audit(
            AuditAction.RESCHEDULED, saved, actor, diff_changes(before, serialize_state(saved)), now
        )
        return AppointmentResponse.model_validate(saved.model_dump())

    async def cancel_appointment(
        self,
        actor: Actor,
        appointment_id: UUID,
        data: CancelRequest,
    ) -> AppointmentResponse:
        """
        Cancel an appointment, optionally refunding part of the price.

        Raises:
            PolicyViolationException: With reason ``too_close_to_start`` or ``invalid_status``
        """
        appointment = await self._load_owned(actor, SchedulingAction.CANCEL, appointment_id)

        async with self.lock.hold(appointment.professional_id):
            current = await self._load(appointment_id)
            now = self.clock()
            before = serialize_state(current)

            result = self.state.cancel(current, actor.user_id, data.reason, now, data.refund_amount)
            self._raise_if_rejected(result, current)
            current.updated_at = now
            saved = await self._store("save", self.appointments.save(current))

        logger.info(
            "appointment_cancelled",
            appointment_id=str(saved.id),
            refund_amount=str(saved.cancellation.refund_amount) if saved.cancellation else "0",
        )
        await self._audit(
            AuditAction.CANCELLED, saved, actor, diff_changes(before, serialize_state(saved)), now
        )
        return AppointmentResponse.model_validate(saved.model_dump())

    async def _transition(
        self,
        actor: Actor,
        appointment_id: UUID,
        action: SchedulingAction,
        audit_action: AuditAction,
        apply: Callable[[Appointment, datetime], TransitionResult],
    ) -> AppointmentResponse:
        appointment = await self._load_owned(actor, action, appointment_id)

        async with self.lock.hold(appointment.professional_id):
            current = await self._load(appointment_id)
            now = self.clock()
            before = serialize_state(current)

            self._raise_if_rejected(apply(current, now), current)
            current.updated_at = now
            saved = await self._store("save", self.appointments.save(current))

        logger.info(
            "appointment_status_changed",
            appointment_id=str(saved.id),
            action=audit_action.value,
            status=saved.status.value,
        )
        await self._audit(
            audit_action, saved, actor, diff_changes(before, serialize_state(saved)), now
        )
        return AppointmentResponse.model_validate(saved.model_dump())

    async def confirm_appointment(self, actor: Actor, appointment_id: UUID) -> AppointmentResponse:
        """Confirm a pending appointment."""
        return await self._transition(
            actor,
            appointment_id,
            SchedulingAction.CONFIRM,
            AuditAction.CONFIRMED,
            lambda appointment, now: self.state.confirm(appointment),
        )

    async def mark_no_show(self, actor: Actor, appointment_id: UUID) -> AppointmentResponse:
        """Record that the patient did not attend a confirmed appointment."""
        return await self._transition(
            actor,
            appointment_id,
            SchedulingAction.MARK_NO_SHOW,
            AuditAction.NO_SHOW,
            lambda appointment, now: self.state.mark_no_show(appointment),
        )

    async def offer_reschedule(self, actor: Actor, appointment_id: UUID) -> AppointmentResponse:
        """Flag that a new slot was offered for a cancelled appointment."""
        return await self._transition(
            actor,
            appointment_id,
            SchedulingAction.OFFER_RESCHEDULE,
            AuditAction.RESCHEDULE_OFFERED,
            lambda appointment, now: self.state.offer_reschedule(appointment),
        )

    async def mark_arrived(self, actor: Actor, appointment_id: UUID) -> AppointmentResponse:
        """Record the patient's arrival at the clinic."""
        return await self._transition(
            actor,
            appointment_id,
            SchedulingAction.MARK_ARRIVED,
            AuditAction.PATIENT_ARRIVED,
            self.state.mark_arrived,
        )

    async def start_session(self, actor: Actor, appointment_id: UUID) -> AppointmentResponse:
        """Start the session."""
        return await self._transition(
            actor,
            appointment_id,
            SchedulingAction.START_SESSION,
            AuditAction.SESSION_STARTED,
            self.state.start_session,
        )

    async def end_session(self, actor: Actor, appointment_id: UUID) -> AppointmentResponse:
        """End the session and complete the appointment."""
        return await self._transition(
            actor,
            appointment_id,
            SchedulingAction.END_SESSION,
            AuditAction.SESSION_COMPLETED,
            self.state.end_session,
        )

    async def delete_appointment(self, actor: Actor, appointment_id: UUID) -> None:
        """
        Soft-delete an appointment.

        The row stays in the store with ``deleted_at`` set and is excluded from
        schedules and conflict checks.
        """
        self._authorize(actor, SchedulingAction.DELETE)
        appointment = await self._load(appointment_id)

        async with self.lock.hold(appointment.professional_id):
            current = await self._load(appointment_id)
            now = self.clock()
            before = serialize_state(current)

            self.state.soft_delete(current, now)
            current.updated_at = now
            saved = await self._store("save", self.appointments.save(current))

        logger.info("appointment_deleted", appointment_id=str(saved.id))
        await self._audit(
            AuditAction.DELETED,
            saved,
            actor,
            diff_changes(before, serialize_state(saved), change_type=ChangeType.DELETE),
            now,
        )

    async def get_appointment(
        self,
        actor: Actor,
        appointment_id: UUID,
        include_deleted: bool = False,
    ) -> AppointmentResponse:
        """
        Get one appointment.

        Soft-deleted appointments are only visible to admins asking for them.
        """
        self._authorize(actor, SchedulingAction.READ)
        if include_deleted and actor.role != UserRole.ADMIN:
            raise ForbiddenException("Only admins can view deleted appointments")

        appointment = await self._load(appointment_id, include_deleted=include_deleted)
        self._authorize(actor, SchedulingAction.READ, _owners(appointment))
        return AppointmentResponse.model_validate(appointment.model_dump())

    def _scope_filters(self, actor: Actor, filters: AppointmentFilters) -> AppointmentFilters:
        """Restrict filters to what the actor may see."""
        if filters.include_deleted and actor.role != UserRole.ADMIN:
            raise ForbiddenException("Only admins can view deleted appointments")

        if actor.role == UserRole.PROFESSIONAL:
            if not actor.professional_id:
                raise ForbiddenException("Account is not linked to a professional")
            return filters.model_copy(update={"professional_id": actor.professional_id})

        if actor.role == UserRole.PATIENT:
            if not actor.email:
                raise ForbiddenException("Account has no email to match appointments")
            return filters.model_copy(update={"patient_email": actor.email.lower()})

        return filters

    async def list_appointments(
        self,
        actor: Actor,
        filters: AppointmentFilters,
    ) -> AppointmentListResponse:
        """
        List appointments visible to the actor.

        Professionals only see their own schedule and patients only the
        appointments booked under their email, whatever filters they send.
        """
        self._authorize(actor, SchedulingAction.LIST)
        scoped = self._scope_filters(actor, filters)

        items = await self._store("find", self.appointments.find(scoped))
        total = await self._store("count", self.appointments.count(scoped))

        return AppointmentListResponse(
            total=total,
            page=scoped.page,
            page_size=scoped.page_size,
            items=[AppointmentResponse.model_validate(a.model_dump()) for a in items],
        )

    async def upcoming_appointments(
        self,
        actor: Actor,
        hours: int = 24,
        professional_id: UUID | None = None,
    ) -> list[AppointmentResponse]:
        """Pending or confirmed appointments starting within the next ``hours``."""
        self._authorize(actor, SchedulingAction.VIEW_UPCOMING)
        now = self.clock()
        items = await self._store(
            "find_upcoming",
            self.appointments.find_upcoming(now, now + timedelta(hours=hours), professional_id),
        )
        return [AppointmentResponse.model_validate(a.model_dump()) for a in items]

    async def statistics(
        self,
        actor: Actor,
        professional_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> AppointmentStatistics:
        """Status counts and revenue, scoped to the professional for professional actors."""
        self._authorize(actor, SchedulingAction.VIEW_STATS)
        if actor.role == UserRole.PROFESSIONAL:
            if professional_id is not None and professional_id != actor.professional_id:
                raise ForbiddenException("Professionals can only view their own statistics")
            professional_id = actor.professional_id

        filters = AppointmentFilters(professional_id=professional_id, from_date=start, to_date=end)
        return await self._store("statistics", self.appointments.statistics(filters))

    async def audit_trail(self, actor: Actor, appointment_id: UUID) -> list[AuditLogEntry]:
        """
        Audit entries of one appointment, oldest first.

        Deleted appointments keep their trail. Personal values are masked for
        everyone but admins.
        """
        self._authorize(actor, SchedulingAction.VIEW_AUDIT)
        await self._load(appointment_id, include_deleted=True)
        entries = await self._store("audit_find", self.audit.find_by_entity(appointment_id))
        if actor.role == UserRole.ADMIN:
            return entries
        return [mask_sensitive(entry) for entry in entries]

    async def compliance_report(
        self,
        actor: Actor,
        start: datetime,
        end: datetime,
    ) -> list[ComplianceReportRow]:
        """Compliance-relevant audit activity between two instants."""
        self._authorize(actor, SchedulingAction.VIEW_AUDIT)
        if actor.role != UserRole.ADMIN:
            raise ForbiddenException("Only admins can view compliance reports")
        return await self._store("audit_report", self.audit.compliance_report(start, end))

    async def actor_activity(
        self,
        actor: Actor,
        actor_id: UUID,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        """Most recent audit entries written by one user."""
        self._authorize(actor, SchedulingAction.VIEW_AUDIT)
        if actor.role != UserRole.ADMIN:
            raise ForbiddenException("Only admins can view user activity")
        return await self._store("audit_find_by_actor", self.audit.find_by_actor(actor_id, limit))
