"""Requirement-weighted module scores for evidence-only assessments.

Each requirement carries a weight by criticality and counts as met when
any of its linked evidence is in good standing: a current SOP, a
checklist submitted within the window, or an audit question scored at or
above the pass percentage.
"""

from collections.abc import Iterable, Sequence
from datetime import date

from fieldsafe.assessment.types import ModuleAssessment
from fieldsafe.config.settings import RequirementScoringConfig
from fieldsafe.evidence.types import (
    AuditResponseRecord,
    ChecklistRecord,
    EvidenceLink,
    EvidenceLinkType,
    RequirementRecord,
    Severity,
    SOPRecord,
)
from fieldsafe.scoring.grading import GradeTable
from fieldsafe.utils.numbers import percentage


class RequirementScorer:
    """Scores modules by the weighted share of requirements with good evidence.

    Usage:
        scorer = RequirementScorer(config, grades)
        modules = scorer.score(requirements, sops=sops, checklists=checklists,
                               responses=responses, today=date.today())
    """

    def __init__(
        self,
        config: RequirementScoringConfig | None = None,
        grades: GradeTable | None = None,
    ):
        self.config = config or RequirementScoringConfig()
        self.grades = grades or GradeTable()

    def weight(self, criticality: Severity) -> int:
        if criticality == Severity.CRITICAL:
            return self.config.critical_weight
        if criticality == Severity.MAJOR:
            return self.config.major_weight
        return self.config.minor_weight

    def score(
        self,
        requirements: Iterable[RequirementRecord],
        *,
        sops: Sequence[SOPRecord],
        checklists: Sequence[ChecklistRecord],
        responses: Sequence[AuditResponseRecord],
        today: date,
    ) -> dict[str, ModuleAssessment]:
        """Score every module that has at least one requirement.

        Args:
            requirements: Requirements of the in-scope modules
            sops: The facility's SOPs
            checklists: The facility's checklist templates
            responses: Audit responses that may satisfy question links
            today: Evaluation date

        Returns:
            Module scores keyed by module code, in code order
        """
        current_sops = {s.sop_id for s in sops if s.is_current}
        recent_checklists = {
            c.template_id
            for c in checklists
            if c.last_submitted is not None
            and (today - c.last_submitted).days <= self.config.checklist_window_days
        }
        passing_questions = {
            r.question_id
            for r in responses
            if r.score is not None
            and r.points > 0
            and r.score * 100.0 / r.points >= self.config.audit_pass_pct
        }

        earned: dict[str, int] = {}
        total: dict[str, int] = {}
        met: dict[str, int] = {}
        count: dict[str, int] = {}
        for requirement in requirements:
            code = requirement.module_code
            weight = self.weight(requirement.criticality)
            total[code] = total.get(code, 0) + weight
            count[code] = count.get(code, 0) + 1
            satisfied = any(
                self._satisfied(link, current_sops, recent_checklists, passing_questions)
                for link in requirement.evidence
            )
            if satisfied:
                earned[code] = earned.get(code, 0) + weight
                met[code] = met.get(code, 0) + 1

        modules: dict[str, ModuleAssessment] = {}
        for code in sorted(total):
            score_pct = percentage(earned.get(code, 0), total[code], empty=0.0)
            modules[code] = ModuleAssessment(
                module_code=code,
                earned=earned.get(code, 0),
                total=total[code],
                score_pct=score_pct,
                grade=self.grades.grade_for(score_pct),
                requirements_met=met.get(code, 0),
                requirements_total=count[code],
            )
        return modules

    @staticmethod
    def _satisfied(
        link: EvidenceLink,
        current_sops: set[int],
        recent_checklists: set[int],
        passing_questions: set[int],
    ) -> bool:
        if link.evidence_type == EvidenceLinkType.SOP:
            return link.evidence_id in current_sops
        if link.evidence_type == EvidenceLinkType.CHECKLIST:
            return link.evidence_id in recent_checklists
        return link.evidence_id in passing_questions
