"""Risk scoring type definitions."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from uuid_utils.compat import uuid7


class RiskLevel(str, Enum):
    """Risk level classification."""

    LOW = "low"  # < medium threshold
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"  # >= critical threshold


class FactorKind(str, Enum):
    """Source of a risk factor."""

    FINDING = "finding"
    OVERDUE_CAPA = "overdue_capa"
    FAILED_RULE = "failed_rule"
    SOP_READINESS = "sop_readiness"
    AUDIT_SCORE = "audit_score"


class RiskFactor(BaseModel):
    """One item that contributed to a risk score."""

    model_config = ConfigDict(frozen=True)

    kind: FactorKind
    reference: str
    description: str
    points: float
    module_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "reference": self.reference,
            "description": self.description,
            "points": self.points,
            "module_code": self.module_code,
        }


class RiskScore(BaseModel):
    """Risk assessment for a facility or one of its modules.

    Recomputed wholesale each run. Older rows are superseded by newer
    ``calculated_at`` timestamps, never deleted.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid7)
    facility_id: int
    module_code: str | None = None  # None = facility-wide
    assessment_id: UUID | None = None
    risk_level: RiskLevel
    risk_score: float = Field(ge=0.0, le=100.0)
    contributing_factors: list[RiskFactor] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    calculated_at: datetime

    @property
    def is_facility_wide(self) -> bool:
        return self.module_code is None
