"""Facility and module risk scoring."""

from fieldsafe.risk.risk_scorer import RiskScorer, create_risk_scorer
from fieldsafe.risk.types import FactorKind, RiskFactor, RiskLevel, RiskScore

__all__ = [
    "FactorKind",
    "RiskFactor",
    "RiskLevel",
    "RiskScore",
    "RiskScorer",
    "create_risk_scorer",
]
