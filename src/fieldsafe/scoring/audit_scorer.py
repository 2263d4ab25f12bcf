"""Audit Scorer for module-by-module scoring of audit simulations.

This module provides the AuditScorer that:
1. Totals earned and available points per module
2. Detects auto-fail items scored zero and forces the failing grade
3. Computes a points-weighted overall score and letter grade
4. Derives audit findings from deficient responses
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from fieldsafe.core.logging import get_logger
from fieldsafe.evidence.types import AuditResponseRecord, FindingRecord, Severity
from fieldsafe.scoring.grading import GradeTable, ScoreOutcome
from fieldsafe.utils.numbers import percentage

if TYPE_CHECKING:
    from fieldsafe.store.accessor import EntityAccessor

logger = get_logger(__name__)


@dataclass
class ModuleScore:
    """Points and grade for one module of a simulation.

    Attributes:
        module_code: Module the questions belong to.
        earned: Sum of (clamped) response scores.
        total: Sum of question points.
        score_pct: earned / total as a percentage (0 when total is 0).
        grade: Letter grade, forced to failing on auto-fail.
        has_auto_fail: An auto-fail question scored exactly 0.
        question_count: Scored responses in the module.
        auto_fail_questions: Codes of auto-fail questions scored 0.
        deficient: Responses scored below their points.
    """

    module_code: str
    earned: int = 0
    total: int = 0
    score_pct: float = 0.0
    grade: str = "F"
    has_auto_fail: bool = False
    question_count: int = 0
    auto_fail_questions: list[str] = field(default_factory=list)
    deficient: list[AuditResponseRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "module_code": self.module_code,
            "earned": self.earned,
            "total": self.total,
            "score_pct": self.score_pct,
            "grade": self.grade,
            "has_auto_fail": self.has_auto_fail,
            "question_count": self.question_count,
            "auto_fail_questions": list(self.auto_fail_questions),
        }


@dataclass
class AuditScoreResult:
    """Scored simulation.

    Attributes:
        simulation_id: Simulation that was scored.
        module_scores: Scores keyed by module code (modules with no
            responses are absent).
        earned: Points earned across in-scope modules.
        total: Points available across in-scope modules.
        overall_score: Points-weighted percentage.
        grade: Overall letter grade.
        has_auto_fail: Any module has an auto-fail.
        outcome: Passed, failed on points or failed on a critical item.
    """

    simulation_id: int
    module_scores: dict[str, ModuleScore] = field(default_factory=dict)
    earned: int = 0
    total: int = 0
    overall_score: float = 0.0
    grade: str = "F"
    has_auto_fail: bool = False
    outcome: ScoreOutcome = ScoreOutcome.FAILED_ON_POINTS

    @property
    def auto_fail_modules(self) -> list[str]:
        return [code for code, m in self.module_scores.items() if m.has_auto_fail]

    @property
    def is_empty(self) -> bool:
        return not self.module_scores

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "simulation_id": self.simulation_id,
            "module_scores": {code: m.to_dict() for code, m in self.module_scores.items()},
            "earned": self.earned,
            "total": self.total,
            "overall_score": self.overall_score,
            "grade": self.grade,
            "has_auto_fail": self.has_auto_fail,
            "outcome": self.outcome.value,
        }


@dataclass(frozen=True)
class Deficiency:
    """Audit finding derived from a deficient response."""

    severity: Severity
    module_code: str
    question_code: str
    question_id: int
    score: int
    points: int
    is_auto_fail: bool
    description: str

    def to_finding(self, facility_id: int, simulation_id: int) -> FindingRecord:
        """Open finding for this deficiency, not yet stored."""
        return FindingRecord(
            facility_id=facility_id,
            severity=self.severity,
            status="open",
            module_code=self.module_code,
            simulation_id=simulation_id,
            question_id=self.question_id,
            question_code=self.question_code,
            description=self.description,
            is_auto_fail=self.is_auto_fail,
        )


class AuditScorer:
    """Scores audit simulations module by module.

    Example:
        ```python
        scorer = AuditScorer(accessor)
        result = await scorer.score(simulation_id=7)
        if result.has_auto_fail:
            print(result.auto_fail_modules)
        ```
    """

    def __init__(
        self,
        accessor: "EntityAccessor",
        grades: GradeTable | None = None,
    ):
        """Initialize the audit scorer.

        Args:
            accessor: Record store accessor for this run
            grades: Grade table (default bands if None)
        """
        self._accessor = accessor
        self.grades = grades or GradeTable()

    async def score(
        self,
        simulation_id: int,
        *,
        modules: list[str] | None = None,
    ) -> AuditScoreResult:
        """Score a simulation.

        Args:
            simulation_id: Simulation to score
            modules: Restrict scoring to these module codes

        Returns:
            AuditScoreResult; empty (overall 0, failing grade) when the
            simulation has no responses

        Raises:
            RecordStoreError: If the store cannot serve the responses
        """
        responses = await self._accessor.fetch_responses(simulation_id)
        result = self.score_responses(simulation_id, responses, modules=modules)
        logger.info(
            "audit_scored",
            simulation_id=simulation_id,
            modules=len(result.module_scores),
            overall_score=result.overall_score,
            grade=result.grade,
            has_auto_fail=result.has_auto_fail,
            outcome=result.outcome.value,
        )
        return result

    def score_responses(
        self,
        simulation_id: int,
        responses: list[AuditResponseRecord],
        *,
        modules: list[str] | None = None,
    ) -> AuditScoreResult:
        """Score an explicit set of responses.

        Responses without a score are skipped. Scores outside
        0..points are clamped and logged.
        """
        in_scope = set(modules) if modules is not None else None
        module_scores: dict[str, ModuleScore] = {}

        for response in responses:
            if in_scope is not None and response.module_code not in in_scope:
                continue
            if response.score is None:
                continue

            score = self._clamp(response)
            module = module_scores.get(response.module_code)
            if module is None:
                module = ModuleScore(module_code=response.module_code)
                module_scores[response.module_code] = module

            module.earned += score
            module.total += response.points
            module.question_count += 1
            if score < response.points:
                module.deficient.append(response.model_copy(update={"score": score}))
            if response.is_auto_fail and score == 0:
                module.has_auto_fail = True
                module.auto_fail_questions.append(response.question_code)

        for module in module_scores.values():
            module.score_pct = percentage(module.earned, module.total, empty=0.0)
            module.grade = self.grades.grade_for(module.score_pct, module.has_auto_fail)

        earned = sum(m.earned for m in module_scores.values())
        total = sum(m.total for m in module_scores.values())
        overall = percentage(earned, total, empty=0.0)
        has_auto_fail = any(m.has_auto_fail for m in module_scores.values())

        if not module_scores:
            logger.debug("audit_simulation_empty", simulation_id=simulation_id)

        return AuditScoreResult(
            simulation_id=simulation_id,
            module_scores=module_scores,
            earned=earned,
            total=total,
            overall_score=overall,
            grade=self.grades.grade_for(overall, has_auto_fail),
            has_auto_fail=has_auto_fail,
            outcome=self.grades.outcome_for(overall, has_auto_fail),
        )

    def _clamp(self, response: AuditResponseRecord) -> int:
        score = response.score or 0
        clamped = min(max(score, 0), response.points)
        if clamped != score:
            logger.warning(
                "audit_response_score_clamped",
                simulation_id=response.simulation_id,
                question_code=response.question_code,
                score=score,
                points=response.points,
            )
        return clamped


def deficiencies(result: AuditScoreResult) -> list[Deficiency]:
    """Derive audit findings from deficient responses.

    An auto-fail question scored 0 is critical, any other zero score is
    major, and partial credit is minor.

    Args:
        result: Scored simulation

    Returns:
        Deficiencies, most severe first
    """
    derived: list[Deficiency] = []
    for module in result.module_scores.values():
        for response in module.deficient:
            score = response.score or 0
            if score == 0 and response.is_auto_fail:
                severity = Severity.CRITICAL
                description = f"Auto-fail item {response.question_code} scored 0"
            elif score == 0:
                severity = Severity.MAJOR
                description = f"{response.question_code} scored 0 of {response.points}"
            else:
                severity = Severity.MINOR
                description = (
                    f"{response.question_code} partial credit {score} of {response.points}"
                )
            derived.append(
                Deficiency(
                    severity=severity,
                    module_code=module.module_code,
                    question_code=response.question_code,
                    question_id=response.question_id,
                    score=score,
                    points=response.points,
                    is_auto_fail=response.is_auto_fail,
                    description=description,
                )
            )

    rank = {Severity.CRITICAL: 0, Severity.MAJOR: 1, Severity.MINOR: 2}
    return sorted(derived, key=lambda d: rank[d.severity])
