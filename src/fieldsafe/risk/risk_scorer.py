"""Risk Scorer for facility and module risk levels.

This module provides the RiskScorer that:
1. Weighs open audit findings by severity
2. Weighs overdue corrective actions by days overdue (capped)
3. Weighs failed compliance rules by rule severity
4. Weighs module SOP readiness gaps and below-pass audit scores
5. Buckets the capped sum into a risk level with ranked factors
"""

from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from fieldsafe.assessment.types import AssessmentScope
from fieldsafe.compliance.rules import RuleLibrary
from fieldsafe.compliance.types import ComplianceRule, RuleResult, Verdict
from fieldsafe.config.settings import RiskScorerConfig
from fieldsafe.core.logging import get_logger
from fieldsafe.evidence.types import (
    AuditResponseRecord,
    CAPARecord,
    EntityType,
    FindingRecord,
    Severity,
    SOPRecord,
)
from fieldsafe.risk.types import FactorKind, RiskFactor, RiskLevel, RiskScore
from fieldsafe.scoring.audit_scorer import AuditScorer
from fieldsafe.utils.numbers import percentage, round_half_up

if TYPE_CHECKING:
    from fieldsafe.store.accessor import EntityAccessor

logger = get_logger(__name__)

MAX_RISK_SCORE = 100.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RiskScorer:
    """Calculates risk scores from current facility state.

    Scores are always recomputed from current state; there is no
    incremental path.

    Example:
        ```python
        scorer = RiskScorer(accessor)
        scores = await scorer.score(facility_id=12)
        overall = scores[0]
        print(overall.risk_level, overall.risk_score)
        ```
    """

    def __init__(
        self,
        accessor: "EntityAccessor",
        config: RiskScorerConfig | None = None,
        library: RuleLibrary | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the risk scorer.

        Args:
            accessor: Record store accessor for this run
            config: Weights and thresholds (defaults if None)
            library: Rule library used to look up rule severity and
                module. If None, rules are loaded from the store.
            clock: Source of the calculation timestamp
        """
        self._accessor = accessor
        self.config = config or RiskScorerConfig()
        self._library = library
        self._clock = clock

    async def score(
        self,
        facility_id: int,
        *,
        rule_results: Sequence[RuleResult] | None = None,
        modules: Sequence[str] | None = None,
        assessment_id: UUID | None = None,
        library: RuleLibrary | None = None,
        findings: Sequence[FindingRecord] | None = None,
        audit_scores: Mapping[str, float] | None = None,
        include_facility: bool = True,
    ) -> list[RiskScore]:
        """Score a facility and each of its modules.

        Args:
            facility_id: Facility to score
            rule_results: Results of the latest rules run. If None, the
                results of the latest saved facility-wide assessment are used.
            modules: Module codes to score (default: enabled modules)
            assessment_id: Assessment the scores are attached to
            library: Rule library for this call (overrides the scorer's)
            findings: Open findings to weigh. If None, they are fetched.
            audit_scores: Audit score percentage per module. If None, the
                latest simulation's responses are scored.
            include_facility: Emit the facility-wide score. Module-scoped
                runs pass False so only their module rows are produced.

        Returns:
            Facility-wide score first (when included), then one score per
            module

        Raises:
            RecordStoreError: If the store cannot serve the inputs
        """
        calculated_at = self._clock()
        today = calculated_at.date()

        if findings is None:
            findings = await self._accessor.fetch_open_findings(facility_id)
        capas = await self._accessor.fetch_entities(facility_id, EntityType.CAPA)
        sops = await self._accessor.fetch_entities(facility_id, EntityType.SOP)
        if rule_results is None:
            rule_results = await self._latest_rule_results(facility_id)
        if modules is None:
            modules = await self._accessor.fetch_enabled_modules(facility_id)
        if library is None:
            library = await self._get_library()
        if audit_scores is None:
            audit_scores = await self._latest_audit_scores(facility_id, modules)

        factors = self.collect_factors(
            findings=findings,
            capas=[c for c in capas if isinstance(c, CAPARecord)],
            rule_results=rule_results,
            library=library,
            today=today,
            sops=[s for s in sops if isinstance(s, SOPRecord)],
            audit_scores=audit_scores,
            modules=modules,
        )

        scores: list[RiskScore] = []
        if include_facility:
            scores.append(
                self.build_score(
                    facility_id,
                    factors,
                    module_code=None,
                    assessment_id=assessment_id,
                    calculated_at=calculated_at,
                )
            )
        for module_code in modules:
            module_factors = [f for f in factors if f.module_code == module_code]
            scores.append(
                self.build_score(
                    facility_id,
                    module_factors,
                    module_code=module_code,
                    assessment_id=assessment_id,
                    calculated_at=calculated_at,
                )
            )

        logger.info(
            "risk_scored",
            facility_id=facility_id,
            risk_score=scores[0].risk_score if scores else None,
            risk_level=scores[0].risk_level.value if scores else None,
            factors=len(factors),
            modules=len(modules),
        )
        return scores

    def collect_factors(
        self,
        *,
        findings: Sequence[FindingRecord],
        capas: Sequence[CAPARecord],
        rule_results: Sequence[RuleResult],
        library: RuleLibrary,
        today: date,
        sops: Sequence[SOPRecord] = (),
        audit_scores: Mapping[str, float] | None = None,
        modules: Sequence[str] = (),
    ) -> list[RiskFactor]:
        """Turn risk inputs into weighted factors.

        SOP readiness and audit score gaps are only weighed for the
        given ``modules``.
        """
        config = self.config
        factors: list[RiskFactor] = []

        finding_points = {
            Severity.CRITICAL: config.critical_finding_points,
            Severity.MAJOR: config.major_finding_points,
            Severity.MINOR: config.minor_finding_points,
        }
        for finding in findings:
            if not finding.is_open:
                continue
            factors.append(
                RiskFactor(
                    kind=FactorKind.FINDING,
                    reference=finding.reference,
                    description=f"Open {finding.severity.value} finding: {finding.label}",
                    points=finding_points[finding.severity],
                    module_code=finding.module_code,
                )
            )

        for capa in capas:
            days = capa.days_overdue(today)
            if days <= 0:
                continue
            points = config.overdue_capa_base_points + config.overdue_capa_points_per_day * min(
                days, config.overdue_capa_day_cap
            )
            factors.append(
                RiskFactor(
                    kind=FactorKind.OVERDUE_CAPA,
                    reference=f"capa:{capa.capa_id}",
                    description=f"{capa.label} is {days} days overdue",
                    points=round_half_up(points),
                    module_code=capa.module_code,
                )
            )

        rule_points = {
            Severity.CRITICAL: config.failed_rule_critical_points,
            Severity.MAJOR: config.failed_rule_major_points,
            Severity.MINOR: config.failed_rule_minor_points,
        }
        for result in rule_results:
            if result.verdict != Verdict.FAIL:
                continue
            rule = library.get(result.rule_code)
            if not isinstance(rule, ComplianceRule):
                continue
            factors.append(
                RiskFactor(
                    kind=FactorKind.FAILED_RULE,
                    reference=f"rule:{rule.rule_code}",
                    description=f"Failed rule {rule.rule_code}: {rule.name}",
                    points=rule_points[rule.severity],
                    module_code=rule.module_code,
                )
            )

        for module_code in modules:
            applicable = [s for s in sops if s.module_code == module_code and s.is_applicable]
            current = sum(1 for s in applicable if s.is_current)
            if applicable and current < len(applicable):
                ready_pct = percentage(current, len(applicable))
                factors.append(
                    RiskFactor(
                        kind=FactorKind.SOP_READINESS,
                        reference=f"sop_readiness:{module_code}",
                        description=(
                            f"{module_code} SOP readiness {ready_pct}% "
                            f"({current} of {len(applicable)} current)"
                        ),
                        points=round_half_up((100.0 - ready_pct) * config.sop_gap_points_per_pct),
                        module_code=module_code,
                    )
                )

            audit_pct = (audit_scores or {}).get(module_code)
            if audit_pct is not None and audit_pct < config.audit_pass_pct:
                factors.append(
                    RiskFactor(
                        kind=FactorKind.AUDIT_SCORE,
                        reference=f"audit_score:{module_code}",
                        description=(
                            f"{module_code} audit score {audit_pct}% is below "
                            f"{config.audit_pass_pct}%"
                        ),
                        points=round_half_up(
                            (config.audit_pass_pct - audit_pct) * config.audit_gap_points_per_pct
                        ),
                        module_code=module_code,
                    )
                )

        return factors

    def build_score(
        self,
        facility_id: int,
        factors: Sequence[RiskFactor],
        *,
        module_code: str | None,
        assessment_id: UUID | None,
        calculated_at: datetime,
    ) -> RiskScore:
        """Build one RiskScore from its factors."""
        total = min(round_half_up(sum(f.points for f in factors)), MAX_RISK_SCORE)
        level = self.level_for(total)
        ranked = sorted(factors, key=lambda f: (-f.points, f.reference))
        top = ranked[: self.config.max_factors]
        return RiskScore(
            facility_id=facility_id,
            module_code=module_code,
            assessment_id=assessment_id,
            risk_level=level,
            risk_score=total,
            contributing_factors=top,
            recommendations=self.recommendations_for(level, top),
            calculated_at=calculated_at,
        )

    def level_for(self, score: float) -> RiskLevel:
        """Bucket a numeric score into a risk level."""
        if score >= self.config.critical_threshold:
            return RiskLevel.CRITICAL
        if score >= self.config.high_threshold:
            return RiskLevel.HIGH
        if score >= self.config.medium_threshold:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def recommendations_for(
        self, level: RiskLevel, factors: Sequence[RiskFactor]
    ) -> list[str]:
        """Derive recommendation text from level and top factors."""
        recommendations: list[str] = []
        if level == RiskLevel.CRITICAL:
            recommendations.append("Escalate to management: immediate remediation required")
        elif level == RiskLevel.HIGH:
            recommendations.append("Schedule a remediation review this week")

        kinds = [f.kind for f in factors]
        if FactorKind.FINDING in kinds:
            recommendations.append("Address open audit findings, prioritizing critical items")
        if FactorKind.OVERDUE_CAPA in kinds:
            recommendations.append("Resolve overdue corrective actions")
        failed_rules = [
            f.reference.removeprefix("rule:") for f in factors if f.kind == FactorKind.FAILED_RULE
        ]
        if failed_rules:
            recommendations.append(f"Remediate failed compliance rules: {', '.join(failed_rules)}")
        if FactorKind.SOP_READINESS in kinds:
            recommendations.append("Review and approve outstanding SOPs")
        audit_modules = [f.module_code for f in factors if f.kind == FactorKind.AUDIT_SCORE]
        if audit_modules:
            recommendations.append(
                f"Retrain and re-audit low-scoring modules: {', '.join(audit_modules)}"
            )

        if not recommendations:
            recommendations.append("No action required; maintain current controls")
        return recommendations

    async def _get_library(self) -> RuleLibrary:
        if self._library is None:
            self._library = RuleLibrary.from_records(await self._accessor.fetch_rule_rows())
        return self._library

    async def _latest_rule_results(self, facility_id: int) -> list[RuleResult]:
        assessment = await self._accessor.fetch_latest_assessment(
            facility_id, scope=AssessmentScope.FACILITY
        )
        if assessment is None:
            return []
        return await self._accessor.fetch_rule_results(assessment.id)

    async def _latest_audit_scores(
        self, facility_id: int, modules: Sequence[str]
    ) -> dict[str, float]:
        """Module score percentages of the latest simulation."""
        latest = await self._accessor.fetch_latest_simulation(facility_id)
        if latest is None:
            return {}
        responses = await self._accessor.fetch_responses(latest.simulation_id)
        result = AuditScorer(self._accessor).score_responses(
            latest.simulation_id,
            [r for r in responses if isinstance(r, AuditResponseRecord)],
            modules=list(modules),
        )
        return {code: m.score_pct for code, m in result.module_scores.items()}


def create_risk_scorer(
    accessor: "EntityAccessor",
    config: RiskScorerConfig | None = None,
) -> RiskScorer:
    """Create a risk scorer.

    Args:
        accessor: Record store accessor for this run
        config: Optional scorer configuration

    Returns:
        Configured RiskScorer
    """
    return RiskScorer(accessor, config=config)
