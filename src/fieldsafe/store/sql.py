"""SQLAlchemy-backed entity accessor.

Wraps one AsyncSession. Reads go through the evidence and compliance
repositories; writes flush inside ``transaction()`` and are committed
together when the block exits cleanly.
"""

from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldsafe.assessment.types import AssessmentScope, ComplianceAssessment, FindingCounts
from fieldsafe.compliance.conditions import record_matches
from fieldsafe.compliance.types import RuleResult, Verdict
from fieldsafe.core.exceptions import RecordStoreError
from fieldsafe.core.logging import get_logger
from fieldsafe.db.models import (
    AuditFinding,
    ComplianceAssessmentRow,
    ComplianceTrendRow,
    MonitoringConfigRow,
    RiskScoreRow,
    RuleResultRow,
)
from fieldsafe.db.repositories import (
    AssessmentRepository,
    EvidenceRepository,
    FindingRepository,
    MonitoringConfigRepository,
    RiskScoreRepository,
    RuleResultRepository,
    TrendRepository,
)
from fieldsafe.evidence.types import (
    AuditResponseRecord,
    EntityType,
    EvidenceRecord,
    FindingRecord,
    RequirementRecord,
    SimulationRecord,
)
from fieldsafe.risk.types import RiskFactor, RiskLevel, RiskScore
from fieldsafe.trends.types import ComplianceTrend, MonitoringConfig, PeriodType

logger = get_logger(__name__)

_TREND_FIELDS = (
    "assessment_id",
    "period_end",
    "overall_score",
    "overall_grade",
    "sop_readiness_pct",
    "checklist_submissions_pct",
    "audit_coverage_pct",
    "critical_findings",
    "major_findings",
    "minor_findings",
    "rules_passed",
    "rules_failed",
    "rules_total",
    "recorded_at",
)


def assessment_to_row(assessment: ComplianceAssessment) -> ComplianceAssessmentRow:
    return ComplianceAssessmentRow(
        id=assessment.id,
        facility_id=assessment.facility_id,
        assessment_date=assessment.assessment_date,
        assessment_type=assessment.assessment_type.value,
        scope=assessment.scope.value,
        module_code=assessment.module_code,
        simulation_id=assessment.simulation_id,
        assessed_by=assessment.assessed_by,
        overall_score=assessment.overall_score,
        overall_grade=assessment.overall_grade,
        has_auto_fail=assessment.has_auto_fail,
        module_scores={
            code: module.model_dump(mode="json")
            for code, module in assessment.module_scores.items()
        },
        sop_readiness_pct=assessment.sop_readiness_pct,
        checklist_submissions_pct=assessment.checklist_submissions_pct,
        audit_coverage_pct=assessment.audit_coverage_pct,
        critical_findings=assessment.findings.critical,
        major_findings=assessment.findings.major,
        minor_findings=assessment.findings.minor,
        rules_passed=assessment.rules_passed,
        rules_failed=assessment.rules_failed,
        rules_not_applicable=assessment.rules_not_applicable,
    )


def assessment_from_row(row: ComplianceAssessmentRow) -> ComplianceAssessment:
    return ComplianceAssessment(
        id=row.id,
        facility_id=row.facility_id,
        assessment_date=row.assessment_date,
        assessment_type=row.assessment_type,
        scope=row.scope,
        module_code=row.module_code,
        simulation_id=row.simulation_id,
        assessed_by=row.assessed_by,
        overall_score=row.overall_score,
        overall_grade=row.overall_grade,
        has_auto_fail=row.has_auto_fail,
        module_scores=row.module_scores or {},
        sop_readiness_pct=row.sop_readiness_pct,
        checklist_submissions_pct=row.checklist_submissions_pct,
        audit_coverage_pct=row.audit_coverage_pct,
        findings=FindingCounts(
            critical=row.critical_findings,
            major=row.major_findings,
            minor=row.minor_findings,
        ),
        rules_passed=row.rules_passed,
        rules_failed=row.rules_failed,
        rules_not_applicable=row.rules_not_applicable,
    )


def rule_result_to_row(result: RuleResult) -> RuleResultRow:
    payload = result.model_dump(mode="json", include={"details"})
    return RuleResultRow(
        id=result.id,
        rule_code=result.rule_code,
        facility_id=result.facility_id,
        assessment_id=result.assessment_id,
        status=result.verdict.value,
        details=payload["details"],
        evaluated_at=result.evaluated_at,
    )


def rule_result_from_row(row: RuleResultRow) -> RuleResult:
    return RuleResult(
        id=row.id,
        rule_code=row.rule_code,
        facility_id=row.facility_id,
        assessment_id=row.assessment_id,
        verdict=Verdict(row.status),
        details=row.details or {},
        evaluated_at=row.evaluated_at,
    )


def risk_score_to_row(score: RiskScore) -> RiskScoreRow:
    return RiskScoreRow(
        id=score.id,
        facility_id=score.facility_id,
        module_code=score.module_code,
        assessment_id=score.assessment_id,
        risk_level=score.risk_level.value,
        risk_score=score.risk_score,
        contributing_factors=[factor.to_dict() for factor in score.contributing_factors],
        recommendations=list(score.recommendations),
        calculated_at=score.calculated_at,
    )


def risk_score_from_row(row: RiskScoreRow) -> RiskScore:
    return RiskScore(
        id=row.id,
        facility_id=row.facility_id,
        module_code=row.module_code,
        assessment_id=row.assessment_id,
        risk_level=RiskLevel(row.risk_level),
        risk_score=row.risk_score,
        contributing_factors=[RiskFactor.model_validate(f) for f in row.contributing_factors or []],
        recommendations=list(row.recommendations or []),
        calculated_at=row.calculated_at,
    )


def trend_from_row(row: ComplianceTrendRow) -> ComplianceTrend:
    return ComplianceTrend(
        id=row.id,
        facility_id=row.facility_id,
        period_type=PeriodType(row.period_type),
        period_start=row.period_start,
        **{name: getattr(row, name) for name in _TREND_FIELDS},
    )


class SQLEntityAccessor:
    """Entity accessor over one SQLAlchemy AsyncSession.

    Example:
        async with get_async_session() as session:
            accessor = SQLEntityAccessor(session)
            assessment = await ComplianceAggregator(accessor).assess(12)
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.evidence = EvidenceRepository(session)
        self.findings = FindingRepository(session)
        self.assessments = AssessmentRepository(session)
        self.rule_results = RuleResultRepository(session)
        self.risk_scores = RiskScoreRepository(session)
        self.trends = TrendRepository(session)
        self.monitoring = MonitoringConfigRepository(session)
        self._in_transaction = False

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error("record_store_error", operation=operation, error=str(e))
            raise RecordStoreError(str(e), operation) from e

    @property
    def _commit(self) -> bool:
        return not self._in_transaction

    # Evidence reads

    async def fetch_entities(
        self,
        facility_id: int,
        entity_type: EntityType,
        filter: Mapping[str, Any] | None = None,
        *,
        simulation_id: int | None = None,
    ) -> list[EvidenceRecord]:
        async with self._guard("fetch_entities"):
            records: Sequence[EvidenceRecord]
            if entity_type == EntityType.SOP:
                records = await self.evidence.sops(facility_id)
            elif entity_type == EntityType.CHECKLIST:
                records = await self.evidence.checklists(facility_id)
            elif entity_type == EntityType.CERTIFICATION:
                records = await self.evidence.certifications(facility_id)
            elif entity_type == EntityType.CAPA:
                records = await self.evidence.capas(facility_id)
            elif entity_type == EntityType.AUDIT_FINDING:
                records = await self.evidence.findings(facility_id)
            elif entity_type == EntityType.AUDIT_RESPONSE:
                if simulation_id is None:
                    latest = await self.evidence.latest_simulation(facility_id)
                    simulation_id = latest.simulation_id if latest else None
                records = (
                    await self.evidence.responses(simulation_id)
                    if simulation_id is not None
                    else []
                )
            else:
                raise ValueError(f"Unsupported entity type: {entity_type}")
        return [r for r in records if record_matches(r, filter)]

    async def fetch_enabled_modules(self, facility_id: int) -> list[str]:
        async with self._guard("fetch_enabled_modules"):
            return await self.evidence.enabled_modules(facility_id)

    async def fetch_simulation(self, simulation_id: int) -> SimulationRecord | None:
        async with self._guard("fetch_simulation"):
            return await self.evidence.simulation(simulation_id)

    async def fetch_latest_simulation(self, facility_id: int) -> SimulationRecord | None:
        async with self._guard("fetch_latest_simulation"):
            return await self.evidence.latest_simulation(facility_id)

    async def fetch_responses(self, simulation_id: int) -> list[AuditResponseRecord]:
        async with self._guard("fetch_responses"):
            return await self.evidence.responses(simulation_id)

    async def fetch_open_findings(self, facility_id: int) -> list[FindingRecord]:
        async with self._guard("fetch_open_findings"):
            return await self.evidence.findings(facility_id, open_only=True)

    async def fetch_rule_rows(self) -> list[dict[str, Any]]:
        async with self._guard("fetch_rule_rows"):
            return await self.evidence.rule_rows()

    async def fetch_requirements(self, module_codes: Sequence[str]) -> list[RequirementRecord]:
        async with self._guard("fetch_requirements"):
            return await self.evidence.requirements(module_codes)

    # Derived reads

    async def fetch_latest_assessment(
        self,
        facility_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        scope: AssessmentScope | None = None,
    ) -> ComplianceAssessment | None:
        async with self._guard("fetch_latest_assessment"):
            row = await self.assessments.get_latest(
                facility_id, start, end, scope=scope.value if scope else None
            )
        return assessment_from_row(row) if row else None

    async def fetch_rule_results(self, assessment_id: UUID) -> list[RuleResult]:
        async with self._guard("fetch_rule_results"):
            rows = await self.rule_results.list_for_assessment(assessment_id)
        return [rule_result_from_row(row) for row in rows]

    async def fetch_trend(
        self,
        facility_id: int,
        period_type: PeriodType,
        period_start: date,
    ) -> ComplianceTrend | None:
        async with self._guard("fetch_trend"):
            row = await self.trends.get_by_period(facility_id, period_type.value, period_start)
        return trend_from_row(row) if row else None

    async def fetch_trends(self, facility_id: int) -> list[ComplianceTrend]:
        async with self._guard("fetch_trends"):
            rows = await self.trends.list_for_facility(facility_id)
        return [trend_from_row(row) for row in rows]

    async def fetch_risk_scores(self, facility_id: int) -> list[RiskScore]:
        async with self._guard("fetch_risk_scores"):
            rows = await self.risk_scores.list_for_facility(facility_id)
        return [risk_score_from_row(row) for row in rows]

    async def fetch_monitoring_config(self, facility_id: int) -> MonitoringConfig | None:
        async with self._guard("fetch_monitoring_config"):
            row = await self.monitoring.get_for_facility(facility_id)
        if row is None:
            return None
        return MonitoringConfig(
            facility_id=row.facility_id,
            frequency=PeriodType(row.frequency),
            next_run=row.next_run,
            is_active=row.is_active,
        )

    # Writes

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Commit the block's writes together, or roll all of them back."""
        if self._in_transaction:
            yield
            return

        self._in_transaction = True
        try:
            yield
            async with self._guard("commit"):
                await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.debug("sql_transaction_rolled_back")
            raise
        finally:
            self._in_transaction = False

    async def insert_assessment(self, assessment: ComplianceAssessment) -> None:
        async with self._guard("insert_assessment"):
            await self.assessments.create(assessment_to_row(assessment), commit=self._commit)

    async def insert_rule_results(self, results: Sequence[RuleResult]) -> None:
        if not results:
            return
        async with self._guard("insert_rule_results"):
            await self.rule_results.create_many(
                [rule_result_to_row(r) for r in results], commit=self._commit
            )

    async def insert_risk_scores(self, scores: Sequence[RiskScore]) -> None:
        if not scores:
            return
        async with self._guard("insert_risk_scores"):
            await self.risk_scores.create_many(
                [risk_score_to_row(s) for s in scores], commit=self._commit
            )

    async def insert_findings(self, findings: Sequence[FindingRecord]) -> list[FindingRecord]:
        if not findings:
            return []
        rows = [
            AuditFinding(
                facility_id=f.facility_id,
                simulation_id=f.simulation_id,
                question_id=f.question_id,
                severity=f.severity.value,
                status=f.status,
                description=f.description,
            )
            for f in findings
        ]
        async with self._guard("insert_findings"):
            await self.findings.create_many(rows, commit=self._commit)
        return [
            finding.model_copy(update={"finding_id": row.id})
            for finding, row in zip(findings, rows, strict=True)
        ]

    async def upsert_trend(self, trend: ComplianceTrend) -> ComplianceTrend:
        async with self._guard("upsert_trend"):
            existing = await self.trends.get_by_period(
                trend.facility_id, trend.period_type.value, trend.period_start
            )
            if existing is not None:
                updates = {name: getattr(trend, name) for name in _TREND_FIELDS}
                await self.trends.update(existing, updates, commit=self._commit)
                return trend.model_copy(update={"id": existing.id})

            row = ComplianceTrendRow(
                id=trend.id,
                facility_id=trend.facility_id,
                period_type=trend.period_type.value,
                period_start=trend.period_start,
                **{name: getattr(trend, name) for name in _TREND_FIELDS},
            )
            await self.trends.create(row, commit=self._commit)
            return trend

    async def save_monitoring_config(self, config: MonitoringConfig) -> None:
        async with self._guard("save_monitoring_config"):
            existing = await self.monitoring.get_for_facility(config.facility_id)
            values = {
                "frequency": config.frequency.value,
                "next_run": config.next_run,
                "is_active": config.is_active,
            }
            if existing is not None:
                await self.monitoring.update(existing, values, commit=self._commit)
            else:
                await self.monitoring.create(
                    MonitoringConfigRow(facility_id=config.facility_id, **values),
                    commit=self._commit,
                )
