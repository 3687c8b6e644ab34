"""Audit log endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentActor, SchedulingService
from app.schemas.audit import AuditLogListResponse, ComplianceReportRow

router = APIRouter()


@router.get(
    "/compliance-report",
    response_model=list[ComplianceReportRow],
    status_code=status.HTTP_200_OK,
    tags=["Audit"],
    summary="Compliance report",
)
async def compliance_report(
    actor: CurrentActor,
    service: SchedulingService,
    start: datetime = Query(...),
    end: datetime = Query(...),
) -> list[ComplianceReportRow]:
    """
    HIPAA or GDPR relevant activity grouped by action.

    Args:
        actor: Authenticated admin
        service: Scheduling service
        start: Range start
        end: Range end

    Returns:
        One row per action, most frequent first
    """
    return await service.compliance_report(actor, start, end)


@router.get(
    "/actors/{actor_id}",
    response_model=AuditLogListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Audit"],
    summary="Audit entries written by a user",
)
async def actor_activity(
    actor_id: UUID,
    actor: CurrentActor,
    service: SchedulingService,
    limit: int = Query(100, ge=1, le=1000),
) -> AuditLogListResponse:
    entries = await service.actor_activity(actor, actor_id, limit)
    return AuditLogListResponse(total=len(entries), items=entries)
