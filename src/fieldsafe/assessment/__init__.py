"""Per-facility compliance assessments.

The aggregator lives in ``fieldsafe.assessment.aggregator``; this package
root only exports the value types, which the store and the scoring
components depend on.
"""

from fieldsafe.assessment.types import (
    AssessmentOptions,
    AssessmentScope,
    AssessmentType,
    ComplianceAssessment,
    FindingCounts,
    ModuleAssessment,
)

__all__ = [
    "AssessmentOptions",
    "AssessmentScope",
    "AssessmentType",
    "ComplianceAssessment",
    "FindingCounts",
    "ModuleAssessment",
]
