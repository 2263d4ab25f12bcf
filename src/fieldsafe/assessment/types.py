"""Compliance assessment type definitions."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from uuid_utils.compat import uuid7


class AssessmentType(str, Enum):
    """How an assessment run was triggered."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    AUDIT = "audit"


class AssessmentScope(str, Enum):
    """Breadth of an assessment run."""

    FACILITY = "facility"
    MODULE = "module"


class AssessmentOptions(BaseModel):
    """Options for one assessment run.

    Attributes:
        simulation_id: Audit simulation to score (None = evidence-only run)
        save_assessment: Persist the assessment and trigger risk scoring
            and trend recording
        assessment_type: Trigger category recorded on the assessment
        module_code: Restrict rules and audit scoring to one module
        assessed_by: Optional user reference recorded on the assessment
        record_findings: Derive open findings from the scored simulation's
            deficient responses, unless the simulation already has findings.
            They count toward the assessment and risk, and are stored with it
            when the assessment is saved.
    """

    simulation_id: int | None = None
    save_assessment: bool = False
    assessment_type: AssessmentType = AssessmentType.MANUAL
    module_code: str | None = None
    assessed_by: int | None = None
    record_findings: bool = False


class ModuleAssessment(BaseModel):
    """Result of one module inside an assessment.

    Audit runs score modules by simulation points. Evidence-only runs score
    them by requirement weight, and then also carry the requirement counts.
    """

    model_config = ConfigDict(frozen=True)

    module_code: str
    earned: int
    total: int
    score_pct: float
    grade: str
    has_auto_fail: bool = False
    requirements_met: int | None = None
    requirements_total: int | None = None


class FindingCounts(BaseModel):
    """Open audit findings by severity."""

    model_config = ConfigDict(frozen=True)

    critical: int = 0
    major: int = 0
    minor: int = 0

    @property
    def total(self) -> int:
        return self.critical + self.major + self.minor


class ComplianceAssessment(BaseModel):
    """One immutable computation of a facility's compliance state.

    Derived from evidence and never edited; a correction is a new run.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid7)
    facility_id: int
    assessment_date: datetime
    assessment_type: AssessmentType = AssessmentType.MANUAL
    scope: AssessmentScope = AssessmentScope.FACILITY
    module_code: str | None = None
    simulation_id: int | None = None
    assessed_by: int | None = None

    overall_score: float = Field(ge=0.0, le=100.0)
    overall_grade: str
    has_auto_fail: bool = False
    module_scores: dict[str, ModuleAssessment] = Field(default_factory=dict)

    sop_readiness_pct: float = Field(ge=0.0, le=100.0)
    checklist_submissions_pct: float = Field(ge=0.0, le=100.0)
    audit_coverage_pct: float = Field(ge=0.0, le=100.0)

    findings: FindingCounts = Field(default_factory=FindingCounts)

    rules_passed: int = 0
    rules_failed: int = 0
    rules_not_applicable: int = 0

    @property
    def rules_total(self) -> int:
        return self.rules_passed + self.rules_failed + self.rules_not_applicable

    def score_fields(self) -> dict[str, object]:
        """Values that depend only on the evidence, not on run identity."""
        return self.model_dump(
            exclude={"id", "assessment_date", "assessed_by", "assessment_type"}
        )
