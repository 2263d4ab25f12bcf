"""Repositories for derived compliance records."""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select

from fieldsafe.db.models import (
    AuditFinding,
    ComplianceAssessmentRow,
    ComplianceTrendRow,
    MonitoringConfigRow,
    RiskScoreRow,
    RuleResultRow,
)
from fieldsafe.db.repositories.base import BaseRepository


class AssessmentRepository(BaseRepository[ComplianceAssessmentRow, UUID]):
    """Append-only compliance assessments."""

    async def get_latest(
        self,
        facility_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        scope: str | None = None,
    ) -> ComplianceAssessmentRow | None:
        """Most recent assessment for a facility, optionally in ``[start, end)``."""
        stmt = select(ComplianceAssessmentRow).where(
            ComplianceAssessmentRow.facility_id == facility_id
        )
        if scope is not None:
            stmt = stmt.where(ComplianceAssessmentRow.scope == scope)
        if start is not None:
            stmt = stmt.where(ComplianceAssessmentRow.assessment_date >= start)
        if end is not None:
            stmt = stmt.where(ComplianceAssessmentRow.assessment_date < end)
        stmt = stmt.order_by(
            ComplianceAssessmentRow.assessment_date.desc(),
            ComplianceAssessmentRow.id.desc(),
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()


class RuleResultRepository(BaseRepository[RuleResultRow, UUID]):
    """Append-only rule results."""

    async def list_for_assessment(self, assessment_id: UUID) -> list[RuleResultRow]:
        stmt = (
            select(RuleResultRow)
            .where(RuleResultRow.assessment_id == assessment_id)
            .order_by(RuleResultRow.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class RiskScoreRepository(BaseRepository[RiskScoreRow, UUID]):
    """Append-only risk scores; newer ``calculated_at`` supersedes older rows."""

    async def list_for_facility(self, facility_id: int) -> list[RiskScoreRow]:
        stmt = (
            select(RiskScoreRow)
            .where(RiskScoreRow.facility_id == facility_id)
            .order_by(RiskScoreRow.calculated_at, RiskScoreRow.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class TrendRepository(BaseRepository[ComplianceTrendRow, UUID]):
    """Trend rows, unique per facility and period."""

    async def get_by_period(
        self,
        facility_id: int,
        period_type: str,
        period_start: date,
    ) -> ComplianceTrendRow | None:
        stmt = select(ComplianceTrendRow).where(
            ComplianceTrendRow.facility_id == facility_id,
            ComplianceTrendRow.period_type == period_type,
            ComplianceTrendRow.period_start == period_start,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_facility(self, facility_id: int) -> list[ComplianceTrendRow]:
        stmt = (
            select(ComplianceTrendRow)
            .where(ComplianceTrendRow.facility_id == facility_id)
            .order_by(ComplianceTrendRow.period_start, ComplianceTrendRow.period_type)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class MonitoringConfigRepository(BaseRepository[MonitoringConfigRow, int]):
    """Per-facility snapshot schedules."""

    async def get_for_facility(self, facility_id: int) -> MonitoringConfigRow | None:
        stmt = select(MonitoringConfigRow).where(MonitoringConfigRow.facility_id == facility_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()


class FindingRepository(BaseRepository[AuditFinding, int]):
    """Audit findings derived from scored simulations."""
