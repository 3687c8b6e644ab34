"""FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.locks import LocalSchedulingLock, RedisSchedulingLock, SchedulingLock
from app.core.redis_client import get_redis_client
from app.core.security import actor_from_claims, decode_access_token
from app.database import get_db
from app.repositories.appointment_repository import AppointmentRepository
from app.repositories.audit_log_repository import AuditLogRepository
from app.schemas.auth import Actor
from app.services.appointment_service import AppointmentService
from app.services.audit_service import AuditService
from app.services.authorization_service import RolePermissionPolicy
from app.services.directory_service import DirectoryService

logger = structlog.get_logger(__name__)

# Security
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Build the acting user from the JWT claims.

    The token carries ``sub`` and ``role``; professionals also carry
    ``professional_id`` and patients ``email`` for ownership checks.

    Args:
        credentials: Bearer token credentials

    Returns:
        Authenticated actor

    Raises:
        HTTPException: If token is invalid or expired
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    try:
        return actor_from_claims(payload)
    except ValidationError:
        logger.warning("invalid_token_claims", sub=payload.get("sub"), role=payload.get("role"))
        raise _credentials_error("Invalid token claims")


@lru_cache
def get_scheduling_lock() -> SchedulingLock:
    """Process-wide professional lock for the configured backend."""
    if settings.lock_backend == "local":
        return LocalSchedulingLock(blocking_timeout=settings.lock_blocking_timeout_seconds)
    return RedisSchedulingLock(
        get_redis_client(),
        timeout=settings.lock_timeout_seconds,
        blocking_timeout=settings.lock_blocking_timeout_seconds,
    )


def get_appointment_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    lock: Annotated[SchedulingLock, Depends(get_scheduling_lock)],
) -> AppointmentService:
    """Wire the scheduling service to the request's database session."""
    return AppointmentService(
        appointments=AppointmentRepository(db),
        audit=AuditService(AuditLogRepository(db)),
        directory=DirectoryService(db),
        authorization=RolePermissionPolicy(),
        lock=lock,
    )


# Type aliases for dependency injection
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
SchedulingService = Annotated[AppointmentService, Depends(get_appointment_service)]
