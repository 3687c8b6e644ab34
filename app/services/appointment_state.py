"""Appointment status transitions and their eligibility policies.

    pending -> confirmed -> in_progress -> completed
    pending | confirmed -> cancelled
    confirmed -> no_show

Rescheduling moves the window in place and keeps the status. Transitions mutate the
appointment passed in and report a ``TransitionResult``; a rejected result leaves the
appointment untouched.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from app.config import settings
from app.core.time_ranges import duration_minutes, hours_until
from app.schemas.appointments import (
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    Cancellation,
    PaymentStatus,
    Reminders,
    Rescheduling,
)

# Statuses from which a booking can still be moved, cancelled or started
OPEN_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


class RejectionReason(str, Enum):
    """Why a transition was refused."""

    TOO_CLOSE_TO_START = "too_close_to_start"
    INVALID_STATUS = "invalid_status"


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a transition attempt."""

    accepted: bool
    reason: RejectionReason | None = None

    @classmethod
    def ok(cls) -> "TransitionResult":
        return cls(accepted=True)

    @classmethod
    def rejected(cls, reason: RejectionReason) -> "TransitionResult":
        return cls(accepted=False, reason=reason)


class AppointmentStateMachine:
    """Applies lifecycle transitions to appointments."""

    def __init__(self, cutoff_hours: float | None = None):
        """
        Initialize the state machine.

        Args:
            cutoff_hours: Minimum hours before start for reschedule and cancel
        """
        self.cutoff_hours = (
            cutoff_hours if cutoff_hours is not None else settings.reschedule_cutoff_hours
        )

    def _window_guard(self, appointment: Appointment, now: datetime) -> RejectionReason | None:
        # Status is checked before the time window.
        if appointment.status not in OPEN_STATUSES:
            return RejectionReason.INVALID_STATUS
        if hours_until(appointment.start_time, now) < self.cutoff_hours:
            return RejectionReason.TOO_CLOSE_TO_START
        return None

    def check_reschedule(self, appointment: Appointment, now: datetime) -> TransitionResult:
        """Eligibility of a reschedule against the currently stored start time."""
        reason = self._window_guard(appointment, now)
        return TransitionResult.rejected(reason) if reason else TransitionResult.ok()

    def check_cancel(self, appointment: Appointment, now: datetime) -> TransitionResult:
        """Eligibility of a cancellation against the currently stored start time."""
        reason = self._window_guard(appointment, now)
        return TransitionResult.rejected(reason) if reason else TransitionResult.ok()

    def can_be_rescheduled(self, appointment: Appointment, now: datetime) -> bool:
        """Check if the appointment may still be moved."""
        return self.check_reschedule(appointment, now).accepted

    def can_be_cancelled(self, appointment: Appointment, now: datetime) -> bool:
        """Check if the appointment may still be cancelled."""
        return self.check_cancel(appointment, now).accepted

    def confirm(self, appointment: Appointment) -> TransitionResult:
        """pending -> confirmed."""
        if appointment.status != AppointmentStatus.PENDING:
            return TransitionResult.rejected(RejectionReason.INVALID_STATUS)
        appointment.status = AppointmentStatus.CONFIRMED
        return TransitionResult.ok()

    def mark_arrived(self, appointment: Appointment, now: datetime) -> TransitionResult:
        """Record the patient's arrival. Status is unchanged."""
        appointment.attendance.patient_arrived = True
        appointment.attendance.patient_arrived_at = now
        return TransitionResult.ok()

    def start_session(self, appointment: Appointment, now: datetime) -> TransitionResult:
        """pending | confirmed -> in_progress."""
        if appointment.status not in OPEN_STATUSES:
            return TransitionResult.rejected(RejectionReason.INVALID_STATUS)

        appointment.status = AppointmentStatus.IN_PROGRESS
        appointment.attendance.session_started = True
        appointment.attendance.session_started_at = now
        appointment.attendance.professional_present = True
        return TransitionResult.ok()

    def end_session(self, appointment: Appointment, now: datetime) -> TransitionResult:
        """Complete the session; refused once the appointment is closed."""
        if appointment.status in TERMINAL_STATUSES:
            return TransitionResult.rejected(RejectionReason.INVALID_STATUS)

        appointment.status = AppointmentStatus.COMPLETED
        appointment.attendance.session_ended = True
        appointment.attendance.session_ended_at = now
        if appointment.attendance.session_started_at is not None:
            appointment.attendance.actual_duration = duration_minutes(
                appointment.attendance.session_started_at, now
            )
        return TransitionResult.ok()

    def mark_no_show(self, appointment: Appointment) -> TransitionResult:
        """confirmed -> no_show."""
        if appointment.status != AppointmentStatus.CONFIRMED:
            return TransitionResult.rejected(RejectionReason.INVALID_STATUS)
        appointment.status = AppointmentStatus.NO_SHOW
        return TransitionResult.ok()

    def reschedule(
        self,
        appointment: Appointment,
        new_start: datetime,
        new_end: datetime,
        rescheduled_by: UUID,
        reason: str,
        now: datetime,
    ) -> TransitionResult:
        """
        Move the appointment to ``[new_start, new_end)``.

        The caller checks the new window for conflicts first. The first reschedule
        creates the history record with count 1 and keeps the original window; later
        ones increment the count and overwrite who/when/why. All reminder flags reset
        so reminders fire again for the new time.
        """
        check = self.check_reschedule(appointment, now)
        if not check.accepted:
            return check

        if appointment.rescheduling is None:
            appointment.rescheduling = Rescheduling(
                original_start_time=appointment.start_time,
                original_end_time=appointment.end_time,
                rescheduled_by=rescheduled_by,
                rescheduled_at=now,
                reason=reason,
                rescheduling_count=1,
            )
        else:
            appointment.rescheduling.rescheduling_count += 1
            appointment.rescheduling.rescheduled_at = now
            appointment.rescheduling.rescheduled_by = rescheduled_by
            appointment.rescheduling.reason = reason

        appointment.start_time = new_start
        appointment.end_time = new_end
        appointment.duration = duration_minutes(new_start, new_end)
        appointment.reminders = Reminders()
        return TransitionResult.ok()

    def cancel(
        self,
        appointment: Appointment,
        cancelled_by: UUID,
        reason: str,
        now: datetime,
        refund_amount: Decimal | None = None,
    ) -> TransitionResult:
        """
        pending | confirmed -> cancelled.

        A positive refund marks the refund processed and the payment refunded;
        otherwise the payment status is left as is.
        """
        check = self.check_cancel(appointment, now)
        if not check.accepted:
            return check

        refund = refund_amount if refund_amount is not None else Decimal("0")
        appointment.cancellation = Cancellation(
            cancelled_by=cancelled_by,
            cancelled_at=now,
            reason=reason,
            previous_status=appointment.status,
            refund_amount=refund,
            refund_processed=refund > 0,
            reschedule_offered=False,
        )
        appointment.status = AppointmentStatus.CANCELLED
        if refund > 0:
            appointment.payment_status = PaymentStatus.REFUNDED
        return TransitionResult.ok()

    def offer_reschedule(self, appointment: Appointment) -> TransitionResult:
        """Flag a cancelled appointment as having been offered a new slot."""
        if appointment.status != AppointmentStatus.CANCELLED or appointment.cancellation is None:
            return TransitionResult.rejected(RejectionReason.INVALID_STATUS)
        appointment.cancellation.reschedule_offered = True
        return TransitionResult.ok()

    def soft_delete(self, appointment: Appointment, now: datetime) -> TransitionResult:
        """Hide the appointment from schedules while keeping it for compliance review."""
        appointment.deleted_at = now
        return TransitionResult.ok()
