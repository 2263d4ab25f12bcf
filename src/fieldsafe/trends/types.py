"""Trend snapshot and monitoring schedule type definitions."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from uuid_utils.compat import uuid7


class PeriodType(str, Enum):
    """Trend bucket sizes."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class ComplianceTrend(BaseModel):
    """Periodic snapshot of assessment metrics.

    One row per (facility_id, period_type, period_start); a re-snapshot of
    the same period replaces the row.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid7)
    facility_id: int
    period_type: PeriodType
    period_start: date
    period_end: date
    assessment_id: UUID

    overall_score: float = Field(ge=0.0, le=100.0)
    overall_grade: str
    sop_readiness_pct: float = Field(ge=0.0, le=100.0)
    checklist_submissions_pct: float = Field(ge=0.0, le=100.0)
    audit_coverage_pct: float = Field(ge=0.0, le=100.0)

    critical_findings: int = 0
    major_findings: int = 0
    minor_findings: int = 0

    rules_passed: int = 0
    rules_failed: int = 0
    rules_total: int = 0

    recorded_at: datetime

    @model_validator(mode="after")
    def check_period(self) -> "ComplianceTrend":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not precede period_start")
        return self

    @property
    def key(self) -> tuple[int, PeriodType, date]:
        return (self.facility_id, self.period_type, self.period_start)


class MonitoringConfig(BaseModel):
    """Snapshot schedule for one facility."""

    facility_id: int
    frequency: PeriodType = PeriodType.MONTHLY
    next_run: datetime | None = None  # None = due now
    is_active: bool = True

    def is_due(self, as_of: datetime) -> bool:
        return self.is_active and (self.next_run is None or self.next_run <= as_of)
