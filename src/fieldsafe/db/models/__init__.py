"""Database models for fieldsafe."""

from .base import Base, PortableJSON, PortableUUID, TimestampMixin, UTCDateTime
from .compliance import (
    ComplianceAssessmentRow,
    ComplianceTrendRow,
    RiskScoreRow,
    RuleResultRow,
)
from .operations import (
    AuditFinding,
    AuditModule,
    AuditQuestion,
    AuditResponse,
    AuditSimulation,
    ChecklistSubmission,
    ChecklistTemplate,
    ComplianceRuleRow,
    CorrectiveAction,
    Facility,
    FacilityModule,
    FSMSRequirement,
    MonitoringConfigRow,
    Nonconformance,
    RequirementEvidenceLink,
    SOPDocument,
    SOPFacilityStatus,
    Supplier,
    SupplierCertification,
)

__all__ = [
    "AuditFinding",
    "AuditModule",
    "AuditQuestion",
    "AuditResponse",
    "AuditSimulation",
    "Base",
    "ChecklistSubmission",
    "ChecklistTemplate",
    "ComplianceAssessmentRow",
    "ComplianceRuleRow",
    "ComplianceTrendRow",
    "CorrectiveAction",
    "Facility",
    "FacilityModule",
    "FSMSRequirement",
    "MonitoringConfigRow",
    "Nonconformance",
    "PortableJSON",
    "PortableUUID",
    "RequirementEvidenceLink",
    "RiskScoreRow",
    "RuleResultRow",
    "SOPDocument",
    "SOPFacilityStatus",
    "Supplier",
    "SupplierCertification",
    "TimestampMixin",
    "UTCDateTime",
]
