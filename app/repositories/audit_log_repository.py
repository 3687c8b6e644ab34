"""Append-only audit log persistence using SQLAlchemy Core."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, distinct, func, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_logs import audit_logs
from app.schemas.audit import AuditLogEntry, ComplianceReportRow, RiskLevel


class AuditLogRepository:
    """Insert and query audit entries; rows are never updated or deleted."""

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session."""
        self.db = db

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Insert one audit entry."""
        values = entry.model_dump(exclude={"changes", "related"})
        for field in ("action", "actor_type", "status", "risk_level"):
            values[field] = values[field].value
        values.update(entry.model_dump(mode="json", include={"changes", "related"}))

        await self.db.execute(insert(audit_logs).values(**values))
        await self.db.commit()
        return entry

    async def find_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditLogEntry]:
        """Entries for one entity, oldest first."""
        stmt = (
            select(audit_logs)
            .where(
                and_(
                    audit_logs.c.entity_type == entity_type,
                    audit_logs.c.entity_id == entity_id,
                )
            )
            .order_by(audit_logs.c.timestamp.asc())
        )
        result = await self.db.execute(stmt)
        return [AuditLogEntry.model_validate(dict(row._mapping)) for row in result.fetchall()]

    async def find_by_actor(self, actor_id: UUID, limit: int = 100) -> list[AuditLogEntry]:
        """Most recent entries written by one actor."""
        stmt = (
            select(audit_logs)
            .where(audit_logs.c.actor_id == actor_id)
            .order_by(audit_logs.c.timestamp.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return [AuditLogEntry.model_validate(dict(row._mapping)) for row in result.fetchall()]

    async def compliance_report(self, start: datetime, end: datetime) -> list[ComplianceReportRow]:
        """Per-action counts of HIPAA or GDPR relevant entries in ``[start, end]``."""
        stmt = (
            select(
                audit_logs.c.action,
                func.count().label("count"),
                func.count()
                .filter(audit_logs.c.risk_level == RiskLevel.HIGH.value)
                .label("high_risk_count"),
                func.count(distinct(audit_logs.c.actor_id)).label("unique_actors"),
            )
            .where(
                and_(
                    audit_logs.c.timestamp >= start,
                    audit_logs.c.timestamp <= end,
                    or_(audit_logs.c.hipaa_relevant.is_(True), audit_logs.c.gdpr_relevant.is_(True)),
                )
            )
            .group_by(audit_logs.c.action)
            .order_by(func.count().desc())
        )
        result = await self.db.execute(stmt)
        return [ComplianceReportRow.model_validate(dict(row)) for row in result.mappings().all()]
