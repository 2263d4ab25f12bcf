"""Compliance Aggregator for per-facility assessments.

This module provides the ComplianceAggregator that:
1. Runs the rules engine and, when a simulation is given, the audit scorer
2. Computes SOP, checklist and audit coverage ratios
3. Scores modules by requirement weight when no simulation is scored
4. Tallies open findings by severity, including ones derived from the audit
5. Combines everything into one immutable ComplianceAssessment
6. Optionally persists it with its risk scores and a due trend row
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from uuid_utils.compat import uuid7

from fieldsafe.assessment.coverage import (
    audit_coverage_pct,
    checklist_submissions_pct,
    sop_readiness_pct,
)
from fieldsafe.assessment.requirements import RequirementScorer
from fieldsafe.assessment.types import (
    AssessmentOptions,
    AssessmentScope,
    ComplianceAssessment,
    FindingCounts,
    ModuleAssessment,
)
from fieldsafe.compliance.engine import RulesEngine, summarize_results
from fieldsafe.compliance.rules import RuleLibrary
from fieldsafe.compliance.types import RuleResult
from fieldsafe.config.settings import Settings, get_settings
from fieldsafe.core.logging import LogContext, get_logger
from fieldsafe.evidence.types import (
    AuditResponseRecord,
    ChecklistRecord,
    EntityType,
    FindingRecord,
    Severity,
    SOPRecord,
)
from fieldsafe.risk.risk_scorer import RiskScorer
from fieldsafe.risk.types import RiskScore
from fieldsafe.scoring.audit_scorer import AuditScorer, AuditScoreResult, deficiencies
from fieldsafe.scoring.grading import GradeTable
from fieldsafe.trends.recorder import TrendRecorder
from fieldsafe.trends.types import ComplianceTrend
from fieldsafe.utils.numbers import percentage, round_half_up

if TYPE_CHECKING:
    from fieldsafe.store.accessor import EntityAccessor

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class _Evidence:
    sops: list[SOPRecord]
    checklists: list[ChecklistRecord]
    responses: list[AuditResponseRecord]


@dataclass
class AssessmentRun:
    """Everything one assessment run produced.

    Attributes:
        assessment: The computed assessment.
        rule_results: Results of the rules engine run.
        audit: Audit score, when a simulation was scored.
        findings: Findings derived from the audit in this run; stored
            copies with ids once saved.
        risk_scores: Risk scores, when the assessment was saved.
        trend: Trend row, when saving made a monitoring snapshot due.
        saved: Whether the assessment was persisted.
    """

    assessment: ComplianceAssessment
    rule_results: list[RuleResult] = field(default_factory=list)
    audit: AuditScoreResult | None = None
    findings: list[FindingRecord] = field(default_factory=list)
    risk_scores: list[RiskScore] = field(default_factory=list)
    trend: ComplianceTrend | None = None
    saved: bool = False


class ComplianceAggregator:
    """Combines audit scores, rule results and coverage into assessments.

    One aggregator serves one accessor; construct a new one per run.

    Example:
        ```python
        aggregator = ComplianceAggregator(accessor)
        assessment = await aggregator.assess(
            facility_id=12,
            options=AssessmentOptions(simulation_id=7, save_assessment=True),
        )
        print(assessment.overall_score, assessment.overall_grade)
        ```
    """

    def __init__(
        self,
        accessor: "EntityAccessor",
        *,
        library: RuleLibrary | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the aggregator and its component engines.

        Args:
            accessor: Record store accessor for this run
            library: Rule library (loaded from the store if None)
            settings: Settings providing grading and risk configuration
            clock: Source of the assessment timestamp
        """
        self.settings = settings or get_settings()
        self._accessor = accessor
        self._clock = clock
        self.grades = GradeTable(self.settings.grading)
        self.rules_engine = RulesEngine(accessor, library, clock=clock)
        self.audit_scorer = AuditScorer(accessor, self.grades)
        self.requirement_scorer = RequirementScorer(self.settings.requirements, self.grades)
        self.risk_scorer = RiskScorer(accessor, self.settings.risk, library, clock=clock)
        self.trend_recorder = TrendRecorder(accessor, clock=clock)

    async def assess(
        self,
        facility_id: int,
        options: AssessmentOptions | None = None,
    ) -> ComplianceAssessment:
        """Assess a facility.

        Args:
            facility_id: Facility to assess
            options: Run options (evidence-only, unsaved run if None)

        Returns:
            The computed assessment

        Raises:
            RecordStoreError: If the store fails; nothing partial is written
        """
        run = await self.run(facility_id, options)
        return run.assessment

    async def run(
        self,
        facility_id: int,
        options: AssessmentOptions | None = None,
    ) -> AssessmentRun:
        """Assess a facility and return every derived record of the run."""
        options = options or AssessmentOptions()
        assessment_id = uuid7()
        assessed_at = self._clock()

        with LogContext(facility_id=facility_id, assessment_id=str(assessment_id)):
            enabled_modules = await self._accessor.fetch_enabled_modules(facility_id)
            scope_modules = self._scope_modules(enabled_modules, options.module_code)

            results = await self.rules_engine.run(
                facility_id,
                module_code=options.module_code,
                assessment_id=assessment_id,
                simulation_id=options.simulation_id,
            )

            audit: AuditScoreResult | None = None
            if options.simulation_id is not None:
                audit = await self.audit_scorer.score(
                    options.simulation_id,
                    modules=self._audit_modules(enabled_modules, options.module_code),
                )

            evidence = await self._evidence(facility_id, options)
            coverage = self._coverage(evidence, options.module_code, scope_modules, assessed_at)

            derived: list[FindingRecord] = []
            if audit is not None and options.record_findings:
                derived = await self._derive_findings(facility_id, audit)
            open_findings = await self._accessor.fetch_open_findings(facility_id)
            findings = self._finding_counts([*open_findings, *derived], options.module_code)

            summary = summarize_results(results)
            if audit is not None:
                overall = audit.overall_score
                grade = audit.grade
                has_auto_fail = audit.has_auto_fail
                module_scores = self._module_scores(audit)
            else:
                module_scores = await self._requirement_scores(
                    scope_modules, evidence, assessed_at
                )
                if module_scores:
                    overall = percentage(
                        sum(m.earned for m in module_scores.values()),
                        sum(m.total for m in module_scores.values()),
                        empty=0.0,
                    )
                else:
                    overall = round_half_up(sum(coverage.values()) / len(coverage))
                grade = self.grades.grade_for(overall)
                has_auto_fail = False

            assessment = ComplianceAssessment(
                id=assessment_id,
                facility_id=facility_id,
                assessment_date=assessed_at,
                assessment_type=options.assessment_type,
                scope=AssessmentScope.MODULE if options.module_code else AssessmentScope.FACILITY,
                module_code=options.module_code,
                simulation_id=options.simulation_id,
                assessed_by=options.assessed_by,
                overall_score=overall,
                overall_grade=grade,
                has_auto_fail=has_auto_fail,
                module_scores=module_scores,
                sop_readiness_pct=coverage["sop"],
                checklist_submissions_pct=coverage["checklist"],
                audit_coverage_pct=coverage["audit"],
                findings=findings,
                rules_passed=summary.passed,
                rules_failed=summary.failed,
                rules_not_applicable=summary.not_applicable,
            )

            logger.info(
                "assessment_computed",
                overall_score=assessment.overall_score,
                overall_grade=assessment.overall_grade,
                has_auto_fail=assessment.has_auto_fail,
                sop_readiness_pct=assessment.sop_readiness_pct,
                checklist_submissions_pct=assessment.checklist_submissions_pct,
                audit_coverage_pct=assessment.audit_coverage_pct,
                derived_findings=len(derived),
            )

            run = AssessmentRun(
                assessment=assessment, rule_results=results, audit=audit, findings=derived
            )
            if options.save_assessment:
                await self._persist(run, scope_modules, open_findings)
            return run

    async def _persist(
        self,
        run: AssessmentRun,
        scope_modules: list[str],
        open_findings: list[FindingRecord],
    ) -> None:
        """Write everything the run derived in one transaction.

        Derived findings, the assessment, its rule results, risk scores and
        a due trend row are stored together; a failure at any step leaves
        none of them stored. Module-scoped runs write module risk rows only
        and never record a trend.
        """
        assessment = run.assessment
        is_facility_run = assessment.scope == AssessmentScope.FACILITY
        audit_scores = (
            {code: m.score_pct for code, m in run.audit.module_scores.items()}
            if run.audit is not None
            else None
        )
        library = await self.rules_engine.get_library()

        async with self._accessor.transaction():
            findings = run.findings
            if findings:
                findings = await self._accessor.insert_findings(findings)

            risk_scores = await self.risk_scorer.score(
                assessment.facility_id,
                rule_results=run.rule_results,
                modules=scope_modules,
                assessment_id=assessment.id,
                library=library,
                findings=[*open_findings, *findings],
                audit_scores=audit_scores,
                include_facility=is_facility_run,
            )

            await self._accessor.insert_assessment(assessment)
            await self._accessor.insert_rule_results(run.rule_results)
            await self._accessor.insert_risk_scores(risk_scores)

            trend = None
            if is_facility_run:
                trend = await self.trend_recorder.record_if_due(
                    assessment.facility_id,
                    as_of=assessment.assessment_date,
                    assessment=assessment,
                    rule_results=run.rule_results,
                )

        run.findings = findings
        run.risk_scores = risk_scores
        run.trend = trend
        run.saved = True
        logger.info(
            "assessment_saved",
            rule_results=len(run.rule_results),
            risk_scores=len(risk_scores),
            findings=len(findings),
            trend_recorded=trend is not None,
        )

    @staticmethod
    def _scope_modules(enabled_modules: list[str], module_code: str | None) -> list[str]:
        if module_code is None:
            return list(enabled_modules)
        return [code for code in enabled_modules if code == module_code]

    @staticmethod
    def _audit_modules(enabled_modules: list[str], module_code: str | None) -> list[str] | None:
        """Modules the audit scorer may count (None = every module answered)."""
        if module_code is not None:
            return [module_code]
        return list(enabled_modules) or None

    async def _evidence(self, facility_id: int, options: AssessmentOptions) -> _Evidence:
        """SOPs, checklists and the responses of the scored or latest simulation."""
        sops = await self._accessor.fetch_entities(facility_id, EntityType.SOP)
        checklists = await self._accessor.fetch_entities(facility_id, EntityType.CHECKLIST)

        simulation_id = options.simulation_id
        if simulation_id is None:
            latest = await self._accessor.fetch_latest_simulation(facility_id)
            simulation_id = latest.simulation_id if latest else None
        responses = (
            await self._accessor.fetch_responses(simulation_id)
            if simulation_id is not None
            else []
        )

        return _Evidence(
            sops=[s for s in sops if isinstance(s, SOPRecord)],
            checklists=[c for c in checklists if isinstance(c, ChecklistRecord)],
            responses=[r for r in responses if isinstance(r, AuditResponseRecord)],
        )

    def _coverage(
        self,
        evidence: _Evidence,
        module_code: str | None,
        scope_modules: list[str],
        assessed_at: datetime,
    ) -> dict[str, float]:
        sops = evidence.sops
        checklists = evidence.checklists
        if module_code is not None:
            sops = [s for s in sops if s.module_code == module_code]
            checklists = [c for c in checklists if c.module_code == module_code]

        return {
            "sop": sop_readiness_pct(sops),
            "checklist": checklist_submissions_pct(
                checklists,
                today=assessed_at.date(),
                default_window_days=self.settings.default_checklist_window_days,
            ),
            "audit": audit_coverage_pct(scope_modules, evidence.responses),
        }

    async def _requirement_scores(
        self,
        scope_modules: list[str],
        evidence: _Evidence,
        assessed_at: datetime,
    ) -> dict[str, ModuleAssessment]:
        if not scope_modules:
            return {}
        requirements = await self._accessor.fetch_requirements(scope_modules)
        return self.requirement_scorer.score(
            requirements,
            sops=evidence.sops,
            checklists=evidence.checklists,
            responses=evidence.responses,
            today=assessed_at.date(),
        )

    async def _derive_findings(
        self, facility_id: int, audit: AuditScoreResult
    ) -> list[FindingRecord]:
        existing = await self._accessor.fetch_entities(
            facility_id, EntityType.AUDIT_FINDING, {"simulation_id": audit.simulation_id}
        )
        if existing:
            logger.info(
                "audit_findings_already_recorded",
                simulation_id=audit.simulation_id,
                findings=len(existing),
            )
            return []
        return [d.to_finding(facility_id, audit.simulation_id) for d in deficiencies(audit)]

    @staticmethod
    def _finding_counts(findings: list[FindingRecord], module_code: str | None) -> FindingCounts:
        findings = [f for f in findings if f.is_open]
        if module_code is not None:
            findings = [f for f in findings if f.module_code == module_code]
        return FindingCounts(
            critical=sum(1 for f in findings if f.severity == Severity.CRITICAL),
            major=sum(1 for f in findings if f.severity == Severity.MAJOR),
            minor=sum(1 for f in findings if f.severity == Severity.MINOR),
        )

    @staticmethod
    def _module_scores(audit: AuditScoreResult | None) -> dict[str, ModuleAssessment]:
        if audit is None:
            return {}
        return {
            code: ModuleAssessment(
                module_code=code,
                earned=m.earned,
                total=m.total,
                score_pct=m.score_pct,
                grade=m.grade,
                has_auto_fail=m.has_auto_fail,
            )
            for code, m in audit.module_scores.items()
        }
