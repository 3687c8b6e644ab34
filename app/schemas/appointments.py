"""Appointment schemas: the stored entity, its sub-records, and request/response models."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from pydantic import AwareDatetime, BaseModel, Field, model_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    # Accepted for legacy rows; rescheduling keeps the current status.
    RESCHEDULED = "rescheduled"


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)

# Statuses that never block a time slot.
NON_BLOCKING_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW})


class PaymentStatus(str, Enum):
    """Payment status enumeration."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"
    OVERDUE = "overdue"


class AppointmentSource(str, Enum):
    """Appointment source enumeration."""

    ADMIN = "admin"
    PUBLIC_BOOKING = "public_booking"
    PROFESSIONAL = "professional"
    PATIENT_PORTAL = "patient_portal"


class BookingMethod(str, Enum):
    """How the booking reached the clinic."""

    ONLINE = "online"
    PHONE = "phone"
    IN_PERSON = "in_person"
    EMAIL = "email"


class Pricing(BaseModel):
    """Price snapshot taken at creation."""

    base_price: Decimal
    discount_amount: Decimal = Decimal("0")
    discount_reason: str | None = None
    copay_amount: Decimal = Decimal("0")
    total_amount: Decimal
    currency: str = "EUR"
    invoiced_at: datetime | None = None


class EmergencyContact(BaseModel):
    """Emergency contact details."""

    name: str
    phone: str
    relationship: str | None = None


class PatientInfo(BaseModel):
    """Patient data copied at creation so later profile edits do not rewrite history."""

    name: str
    email: str
    phone: str | None = None
    date_of_birth: date | None = None
    emergency_contact: EmergencyContact | None = None


class AppointmentNotes(BaseModel):
    """Free-text notes by audience."""

    patient_notes: str | None = Field(None, max_length=2000)
    professional_notes: str | None = Field(None, max_length=2000)
    admin_notes: str | None = Field(None, max_length=2000)


class Rescheduling(BaseModel):
    """
    Rescheduling history.

    Created on the first reschedule with count 1. Later reschedules increment the
    counter and overwrite ``reason``/``rescheduled_at``/``rescheduled_by``; the original
    window always refers to the window before the first reschedule.
    """

    original_start_time: datetime
    original_end_time: datetime
    rescheduled_by: UUID
    rescheduled_at: datetime
    reason: str
    rescheduling_count: int = Field(default=1, ge=1)


class Cancellation(BaseModel):
    """Cancellation details, present iff the appointment is cancelled."""

    cancelled_by: UUID
    cancelled_at: datetime
    reason: str
    previous_status: AppointmentStatus
    refund_amount: Decimal = Decimal("0")
    refund_processed: bool = False
    reschedule_offered: bool = False


class Attendance(BaseModel):
    """Attendance and session timing."""

    patient_arrived: bool = False
    patient_arrived_at: datetime | None = None
    professional_present: bool = False
    session_started: bool = False
    session_started_at: datetime | None = None
    session_ended: bool = False
    session_ended_at: datetime | None = None
    actual_duration: int | None = None


class ReminderChannel(BaseModel):
    """Delivery state of one reminder channel."""

    sent: bool = False
    sent_at: datetime | None = None


class Reminders(BaseModel):
    """Reminder state per channel."""

    sms: ReminderChannel = Field(default_factory=ReminderChannel)
    email: ReminderChannel = Field(default_factory=ReminderChannel)
    push: ReminderChannel = Field(default_factory=ReminderChannel)


class Appointment(BaseModel):
    """Stored appointment entity."""

    id: UUID = Field(default_factory=uuid4)
    patient_id: UUID
    professional_id: UUID
    service_id: UUID
    room_id: UUID | None = None

    start_time: datetime
    end_time: datetime
    duration: int = Field(..., gt=0)
    timezone: str = "Europe/Madrid"

    status: AppointmentStatus = AppointmentStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    source: AppointmentSource = AppointmentSource.ADMIN
    booking_method: BookingMethod = BookingMethod.ONLINE

    pricing: Pricing
    patient_info: PatientInfo
    notes: AppointmentNotes = Field(default_factory=AppointmentNotes)

    rescheduling: Rescheduling | None = None
    cancellation: Cancellation | None = None
    attendance: Attendance = Field(default_factory=Attendance)
    reminders: Reminders = Field(default_factory=Reminders)

    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def is_deleted(self) -> bool:
        """Check if the appointment is soft-deleted."""
        return self.deleted_at is not None

    @property
    def blocks_schedule(self) -> bool:
        """Check if the appointment occupies its window for conflict purposes."""
        return self.deleted_at is None and self.status not in NON_BLOCKING_STATUSES


def _check_window(start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and end <= start:
        raise ValueError("End time must be after start time")


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    patient_id: UUID
    professional_id: UUID
    service_id: UUID
    room_id: UUID | None = None
    start_time: AwareDatetime
    end_time: AwareDatetime | None = None
    duration: int | None = Field(None, gt=0, le=24 * 60)
    timezone: str | None = Field(None, max_length=64)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    source: AppointmentSource = AppointmentSource.ADMIN
    booking_method: BookingMethod = BookingMethod.ONLINE
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    discount_reason: str | None = Field(None, max_length=200)
    copay_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: AppointmentNotes | None = None

    @model_validator(mode="after")
    def validate_window(self) -> "AppointmentCreate":
        """Validate end time is after start time."""
        _check_window(self.start_time, self.end_time)
        return self


class AppointmentUpdate(BaseModel):
    """
    Schema for patching an appointment.

    Status changes go through the dedicated lifecycle endpoints. Sending ``room_id``
    as null detaches the room.
    """

    start_time: AwareDatetime | None = None
    end_time: AwareDatetime | None = None
    duration: int | None = Field(None, gt=0, le=24 * 60)
    payment_status: PaymentStatus | None = None
    room_id: UUID | None = None
    notes: AppointmentNotes | None = None

    @model_validator(mode="after")
    def validate_window(self) -> "AppointmentUpdate":
        """Validate end time is after start time when both are sent."""
        _check_window(self.start_time, self.end_time)
        return self

    @property
    def changes_window(self) -> bool:
        """Check if the patch touches the time window."""
        return bool({"start_time", "end_time", "duration"} & self.model_fields_set)


class RescheduleRequest(BaseModel):
    """Schema for moving an appointment to a new window."""

    new_start_time: AwareDatetime
    new_end_time: AwareDatetime | None = None
    reason: str = Field(..., min_length=1, max_length=500)

    @model_validator(mode="after")
    def validate_window(self) -> "RescheduleRequest":
        """Validate end time is after start time."""
        _check_window(self.new_start_time, self.new_end_time)
        return self


class CancelRequest(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str = Field(..., min_length=1, max_length=500)
    refund_amount: Decimal | None = Field(None, ge=0)


class ConflictSummary(BaseModel):
    """An existing appointment blocking a proposed window."""

    id: UUID
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "ConflictSummary":
        """Build a summary from a stored appointment."""
        return cls(
            id=appointment.id,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            status=appointment.status,
        )


class AppointmentResponse(Appointment):
    """Schema for appointment response."""


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    statuses: list[AppointmentStatus] | None = None
    payment_statuses: list[PaymentStatus] | None = None
    patient_id: UUID | None = None
    patient_email: str | None = None
    professional_id: UUID | None = None
    service_id: UUID | None = None
    room_id: UUID | None = None
    source: AppointmentSource | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    search: str | None = Field(None, max_length=200)
    include_deleted: bool = False
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class AppointmentStatistics(BaseModel):
    """Aggregate counts and revenue over a set of appointments."""

    total_appointments: int = 0
    pending_appointments: int = 0
    confirmed_appointments: int = 0
    completed_appointments: int = 0
    cancelled_appointments: int = 0
    no_show_appointments: int = 0
    total_revenue: Decimal = Decimal("0")
    average_revenue: Decimal | None = None
