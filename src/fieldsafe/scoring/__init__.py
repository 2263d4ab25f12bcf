"""Audit simulation scoring and letter grades."""

from fieldsafe.scoring.audit_scorer import (
    AuditScorer,
    AuditScoreResult,
    Deficiency,
    ModuleScore,
    deficiencies,
)
from fieldsafe.scoring.grading import GradeTable, ScoreOutcome

__all__ = [
    "AuditScoreResult",
    "AuditScorer",
    "Deficiency",
    "GradeTable",
    "ModuleScore",
    "ScoreOutcome",
    "deficiencies",
]
