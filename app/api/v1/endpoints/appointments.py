"""Appointment endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentActor, SchedulingService
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentSource,
    AppointmentStatistics,
    AppointmentStatus,
    AppointmentUpdate,
    CancelRequest,
    PaymentStatus,
    RescheduleRequest,
)
from app.schemas.audit import AuditLogListResponse

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    service: SchedulingService,
) -> AppointmentResponse:
    """
    Book a new appointment.

    The end time defaults to the service duration when neither ``end_time`` nor
    ``duration`` is sent.

    Args:
        data: Appointment creation data
        actor: Authenticated user
        service: Scheduling service

    Returns:
        Created appointment
    """
    return await service.create_appointment(actor, data)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    service: SchedulingService,
    statuses: list[AppointmentStatus] | None = Query(None, alias="status"),
    payment_statuses: list[PaymentStatus] | None = Query(None, alias="payment_status"),
    patient_id: UUID | None = Query(None),
    professional_id: UUID | None = Query(None),
    service_id: UUID | None = Query(None),
    room_id: UUID | None = Query(None),
    source: AppointmentSource | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    search: str | None = Query(None, max_length=200),
    include_deleted: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments visible to the authenticated user.

    Professionals only see their own schedule and patients their own bookings.

    Returns:
        Paginated list of appointments ordered by start time
    """
    filters = AppointmentFilters(
        statuses=statuses,
        payment_statuses=payment_statuses,
        patient_id=patient_id,
        professional_id=professional_id,
        service_id=service_id,
        room_id=room_id,
        source=source,
        from_date=from_date,
        to_date=to_date,
        search=search,
        include_deleted=include_deleted,
        page=page,
        page_size=page_size,
    )
    return await service.list_appointments(actor, filters)


@router.get(
    "/upcoming",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Upcoming appointments",
)
async def upcoming_appointments(
    actor: CurrentActor,
    service: SchedulingService,
    hours: int = Query(24, ge=1, le=24 * 14),
    professional_id: UUID | None = Query(None),
) -> list[AppointmentResponse]:
    """Pending or confirmed appointments starting within the next hours."""
    return await service.upcoming_appointments(actor, hours, professional_id)


@router.get(
    "/statistics",
    response_model=AppointmentStatistics,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Appointment statistics",
)
async def appointment_statistics(
    actor: CurrentActor,
    service: SchedulingService,
    professional_id: UUID | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
) -> AppointmentStatistics:
    """Status counts and revenue over a date range."""
    return await service.statistics(actor, professional_id, from_date, to_date)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    service: SchedulingService,
    include_deleted: bool = Query(False),
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Args:
        appointment_id: Appointment ID
        actor: Authenticated user
        service: Scheduling service
        include_deleted: Admins may look up soft-deleted appointments

    Returns:
        Appointment details
    """
    return await service.get_appointment(actor, appointment_id, include_deleted)


@router.patch(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    actor: CurrentActor,
    service: SchedulingService,
) -> AppointmentResponse:
    """
    Patch time, room, payment status or notes of an appointment.

    Status changes go through the lifecycle endpoints below.
    """
    return await service.update_appointment(actor, appointment_id, data)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: RescheduleRequest,
    actor: CurrentActor,
    service: SchedulingService,
) -> AppointmentResponse:
    """Move an appointment to a new window."""
    return await service.reschedule_appointment(actor, appointment_id, data)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    data: CancelRequest,
    actor: CurrentActor,
    service: SchedulingService,
) -> AppointmentResponse:
    """Cancel an appointment with an optional refund."""
    return await service.cancel_appointment(actor, appointment_id, data)


@router.post(
    "/{appointment_id}/offer-reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Offer a new slot for a cancelled appointment",
)
async def offer_reschedule(
    appointment_id: UUID,
    actor: CurrentActor,
    service: SchedulingService,
) -> AppointmentResponse:
    return await service.offer_reschedule(actor, appointment_id)


@router.post(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    service: SchedulingService,
) -> AppointmentResponse:
    return await service.confirm_appointment(actor, appointment_id)


@router.post(
    "/{appointment_id}/no-show",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark appointment as no-show",
)
async def mark_no_show(
    appointment_id: UUID,
    actor: CurrentActor,
    service: SchedulingService,
) -> AppointmentResponse:
    return await service.mark_no_show(actor, appointment_id)


@router.post(
    "/{appointment_id}/arrived",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark patient as arrived",
)
async def mark_arrived(
    appointment_id: UUID,
    actor: CurrentActor,
    service: SchedulingService,
) -> AppointmentResponse:
    return await service.mark_arrived(actor, appointment_id)


@router.post(
    "/{appointment_id}/start-session",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Start session",
)
async def start_session(
    appointment_id: UUID,
    actor: CurrentActor,
    service: SchedulingService,
) -> AppointmentResponse:
    return await service.start_session(actor, appointment_id)


@router.post(
    "/{appointment_id}/end-session",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="End session",
)
async def end_session(
    appointment_id: UUID,
    actor: CurrentActor,
    service: SchedulingService,
) -> AppointmentResponse:
    return await service.end_session(actor, appointment_id)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Appointments"],
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    service: SchedulingService,
) -> None:
    """
    Soft-delete an appointment.

    The record is kept for compliance review and frees its time slot.

    Args:
        appointment_id: Appointment ID
        actor: Authenticated user
        service: Scheduling service
    """
    await service.delete_appointment(actor, appointment_id)


@router.get(
    "/{appointment_id}/audit-logs",
    response_model=AuditLogListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Audit"],
    summary="Audit trail of an appointment",
)
async def appointment_audit_trail(
    appointment_id: UUID,
    actor: CurrentActor,
    service: SchedulingService,
) -> AuditLogListResponse:
    """Audit entries of one appointment, oldest first."""
    entries = await service.audit_trail(actor, appointment_id)
    return AuditLogListResponse(total=len(entries), items=entries)
