"""Typed evidence records served by the entity accessor.

These are read-only views of operational data for one facility, already
joined to whatever reference data the engine needs (e.g. an audit
response carries its question's points and auto-fail flag). Rule
conditions address their fields by name, including read-only properties
such as ``CAPARecord.is_open``.
"""

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EntityType(str, Enum):
    """Entity populations a compliance rule can target."""

    SOP = "sop"
    CHECKLIST = "checklist"
    CERTIFICATION = "certification"
    CAPA = "capa"
    AUDIT_RESPONSE = "audit_response"
    AUDIT_FINDING = "audit_finding"


class Severity(str, Enum):
    """Severity shared by compliance rules and audit findings."""

    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class SOPStatus(str, Enum):
    """Readiness of an SOP at a facility."""

    CURRENT = "current"
    NEEDS_REVIEW = "needs_review"
    DRAFT = "draft"
    MISSING = "missing"


OPEN_CAPA_STATUSES = frozenset({"open", "in_progress"})
OPEN_FINDING_STATUSES = frozenset({"open"})


class EvidenceRecord(BaseModel):
    """Base for all evidence records."""

    model_config = ConfigDict(frozen=True)

    @property
    def label(self) -> str:
        """Short human-readable name used in rule result details."""
        raise NotImplementedError


class SOPRecord(EvidenceRecord):
    """An SOP document with its status at one facility."""

    sop_id: int
    sop_code: str
    title: str
    category: str | None = None
    module_code: str | None = None
    status: SOPStatus = SOPStatus.MISSING
    last_reviewed: date | None = None
    is_applicable: bool = True

    @property
    def is_current(self) -> bool:
        return self.status == SOPStatus.CURRENT

    @property
    def label(self) -> str:
        return f"{self.sop_code} {self.title}"


class ChecklistRecord(EvidenceRecord):
    """A checklist template with the facility's submission history summarized."""

    template_id: int
    name: str
    module_code: str | None = None
    frequency_days: int | None = Field(default=None, ge=1)
    last_submitted: date | None = None
    submission_count: int = Field(default=0, ge=0)
    is_applicable: bool = True

    @property
    def label(self) -> str:
        return self.name


class CertificationRecord(EvidenceRecord):
    """A supplier certification."""

    certification_id: int
    cert_name: str
    cert_type: str | None = None
    supplier_id: int
    supplier_name: str
    supplier_active: bool = True
    issue_date: date | None = None
    expiry_date: date | None = None
    module_code: str | None = None

    @property
    def label(self) -> str:
        return f"{self.supplier_name}: {self.cert_name}"


class CAPARecord(EvidenceRecord):
    """A corrective action attached to a nonconformance."""

    capa_id: int
    description: str
    status: str = "open"
    severity: Severity = Severity.MINOR
    module_code: str | None = None
    nonconformance_id: int | None = None
    target_completion_date: date | None = None
    completed_date: date | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_CAPA_STATUSES

    def days_overdue(self, today: date) -> int:
        """Whole days past the target date; 0 when closed, undated or not yet due."""
        if not self.is_open or self.target_completion_date is None:
            return 0
        return max((today - self.target_completion_date).days, 0)

    @property
    def label(self) -> str:
        return f"CAPA #{self.capa_id}: {self.description}"


class AuditResponseRecord(EvidenceRecord):
    """One response in a simulation, joined to its question."""

    response_id: int | None = None
    simulation_id: int
    question_id: int
    question_code: str
    module_code: str
    points: int = Field(ge=0)
    is_auto_fail: bool = False
    category: str | None = None
    score: int | None = None
    evidence_url: str | None = None

    @property
    def label(self) -> str:
        return self.question_code


class FindingRecord(EvidenceRecord):
    """An audit finding raised against a facility.

    ``finding_id`` is None for a finding derived in the current run that
    has not been stored yet.
    """

    finding_id: int | None = None
    facility_id: int
    severity: Severity
    status: str = "open"
    module_code: str | None = None
    simulation_id: int | None = None
    question_id: int | None = None
    question_code: str | None = None
    description: str = ""
    is_auto_fail: bool = False

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_FINDING_STATUSES

    @property
    def reference(self) -> str:
        """Stable key for the finding, also before it has an id."""
        if self.finding_id is not None:
            return f"finding:{self.finding_id}"
        return f"finding:simulation-{self.simulation_id}:{self.question_code}"

    @property
    def label(self) -> str:
        if self.finding_id is None:
            return f"New finding ({self.question_code})"
        if self.question_code:
            return f"Finding #{self.finding_id} ({self.question_code})"
        return f"Finding #{self.finding_id}"


class SimulationRecord(EvidenceRecord):
    """An audit simulation header."""

    simulation_id: int
    facility_id: int
    name: str | None = None
    simulation_date: date | None = None
    status: str = "in_progress"

    @property
    def label(self) -> str:
        return self.name or f"Simulation #{self.simulation_id}"


class EvidenceLinkType(str, Enum):
    """Kinds of evidence that can satisfy a requirement."""

    SOP = "sop"
    CHECKLIST = "checklist"
    AUDIT_QUESTION = "audit_question"


class EvidenceLink(BaseModel):
    """Pointer from a requirement to one piece of evidence."""

    model_config = ConfigDict(frozen=True)

    evidence_type: EvidenceLinkType
    evidence_id: int
    evidence_code: str | None = None


class RequirementRecord(BaseModel):
    """A food safety management system requirement of one module.

    The requirement is met when any of its linked evidence is in good
    standing for the facility.
    """

    model_config = ConfigDict(frozen=True)

    requirement_id: int
    requirement_code: str
    module_code: str
    requirement_text: str = ""
    criticality: Severity = Severity.MINOR
    evidence: list[EvidenceLink] = Field(default_factory=list)


ENTITY_RECORD_TYPES: dict[EntityType, type[EvidenceRecord]] = {
    EntityType.SOP: SOPRecord,
    EntityType.CHECKLIST: ChecklistRecord,
    EntityType.CERTIFICATION: CertificationRecord,
    EntityType.CAPA: CAPARecord,
    EntityType.AUDIT_RESPONSE: AuditResponseRecord,
    EntityType.AUDIT_FINDING: FindingRecord,
}
"""Record model served for each entity type."""


def record_attributes(record_type: type[EvidenceRecord]) -> frozenset[str]:
    """Names a rule condition may address on a record type.

    Includes model fields and read-only properties.
    """
    properties = {
        name
        for klass in record_type.__mro__
        if issubclass(klass, EvidenceRecord)
        for name, member in vars(klass).items()
        if isinstance(member, property) and not name.startswith("_")
    }
    return frozenset(record_type.model_fields) | properties
