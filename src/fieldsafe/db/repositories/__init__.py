"""Repositories over the fieldsafe database."""

from fieldsafe.db.repositories.base import BaseRepository
from fieldsafe.db.repositories.compliance import (
    AssessmentRepository,
    FindingRepository,
    MonitoringConfigRepository,
    RiskScoreRepository,
    RuleResultRepository,
    TrendRepository,
)
from fieldsafe.db.repositories.evidence import EvidenceRepository

__all__ = [
    "AssessmentRepository",
    "BaseRepository",
    "EvidenceRepository",
    "FindingRepository",
    "MonitoringConfigRepository",
    "RiskScoreRepository",
    "RuleResultRepository",
    "TrendRepository",
]
