"""Derived compliance models written by the engine.

Assessments, rule results and risk scores are append-only. Trend rows
are unique per (facility_id, period_type, period_start) and replaced in
place on re-snapshot.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, PortableJSON, PortableUUID, UTCDateTime


class ComplianceAssessmentRow(Base):
    """One immutable assessment of a facility."""

    __tablename__ = "compliance_assessments"

    id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    assessment_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    assessment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scope: Mapped[str] = mapped_column(String(20), nullable=False, default="facility")
    module_code: Mapped[str | None] = mapped_column(String(50))
    simulation_id: Mapped[int | None] = mapped_column(ForeignKey("audit_simulations.id"))
    assessed_by: Mapped[int | None] = mapped_column(Integer)

    overall_score: Mapped[float] = mapped_column(Float, nullable=False)
    overall_grade: Mapped[str] = mapped_column(String(5), nullable=False)
    has_auto_fail: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    module_scores: Mapped[dict[str, Any]] = mapped_column(PortableJSON, nullable=False, default=dict)

    sop_readiness_pct: Mapped[float] = mapped_column(Float, nullable=False)
    checklist_submissions_pct: Mapped[float] = mapped_column(Float, nullable=False)
    audit_coverage_pct: Mapped[float] = mapped_column(Float, nullable=False)

    critical_findings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    major_findings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minor_findings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    rules_passed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rules_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rules_not_applicable: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    rule_results: Mapped[list["RuleResultRow"]] = relationship(
        "RuleResultRow", back_populates="assessment"
    )

    __table_args__ = (Index("idx_assessment_facility_date", "facility_id", "assessment_date"),)

    def __repr__(self) -> str:
        return (
            f"<ComplianceAssessment(id={self.id}, facility={self.facility_id}, "
            f"score={self.overall_score})>"
        )


class RuleResultRow(Base):
    """Verdict of one rule for one facility in one assessment."""

    __tablename__ = "compliance_rule_results"

    id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True)
    rule_code: Mapped[str] = mapped_column(String(50), nullable=False)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    assessment_id: Mapped[UUID | None] = mapped_column(
        PortableUUID(), ForeignKey("compliance_assessments.id")
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(PortableJSON, nullable=False, default=dict)
    evaluated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    assessment: Mapped[ComplianceAssessmentRow | None] = relationship(
        "ComplianceAssessmentRow", back_populates="rule_results"
    )

    __table_args__ = (
        Index("idx_rule_result_assessment", "assessment_id"),
        Index("idx_rule_result_facility_rule", "facility_id", "rule_code"),
    )


class RiskScoreRow(Base):
    """Risk score for a facility or one of its modules."""

    __tablename__ = "risk_scores"

    id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    module_code: Mapped[str | None] = mapped_column(String(50))
    assessment_id: Mapped[UUID | None] = mapped_column(
        PortableUUID(), ForeignKey("compliance_assessments.id")
    )
    risk_level: Mapped[str] = mapped_column(String(20), nullable=False)
    risk_score: Mapped[float] = mapped_column(Float, nullable=False)
    contributing_factors: Mapped[list[dict[str, Any]]] = mapped_column(
        PortableJSON, nullable=False, default=list
    )
    recommendations: Mapped[list[str]] = mapped_column(PortableJSON, nullable=False, default=list)
    calculated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("idx_risk_facility_module", "facility_id", "module_code", "calculated_at"),
    )


class ComplianceTrendRow(Base):
    """Periodic snapshot of assessment metrics."""

    __tablename__ = "compliance_trends"

    id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    period_type: Mapped[str] = mapped_column(String(20), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    assessment_id: Mapped[UUID] = mapped_column(
        PortableUUID(), ForeignKey("compliance_assessments.id"), nullable=False
    )

    overall_score: Mapped[float] = mapped_column(Float, nullable=False)
    overall_grade: Mapped[str] = mapped_column(String(5), nullable=False)
    sop_readiness_pct: Mapped[float] = mapped_column(Float, nullable=False)
    checklist_submissions_pct: Mapped[float] = mapped_column(Float, nullable=False)
    audit_coverage_pct: Mapped[float] = mapped_column(Float, nullable=False)

    critical_findings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    major_findings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minor_findings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    rules_passed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rules_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rules_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "facility_id", "period_type", "period_start", name="uq_trend_facility_period"
        ),
    )
