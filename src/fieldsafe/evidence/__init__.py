"""Evidence records consumed by the compliance engine."""

from fieldsafe.evidence.types import (
    ENTITY_RECORD_TYPES,
    AuditResponseRecord,
    CAPARecord,
    CertificationRecord,
    ChecklistRecord,
    EntityType,
    EvidenceLink,
    EvidenceLinkType,
    EvidenceRecord,
    FindingRecord,
    RequirementRecord,
    Severity,
    SimulationRecord,
    SOPRecord,
    SOPStatus,
    record_attributes,
)

__all__ = [
    "ENTITY_RECORD_TYPES",
    "AuditResponseRecord",
    "CAPARecord",
    "CertificationRecord",
    "ChecklistRecord",
    "EntityType",
    "EvidenceLink",
    "EvidenceLinkType",
    "EvidenceRecord",
    "FindingRecord",
    "RequirementRecord",
    "SOPRecord",
    "SOPStatus",
    "Severity",
    "SimulationRecord",
    "record_attributes",
]
