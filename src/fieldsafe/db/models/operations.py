"""Operational models: the evidence the compliance engine reads.

These tables are written by the surrounding platform (checklist forms,
audit simulator, supplier and CAPA management). The engine only reads
them, apart from the monitoring schedule's ``next_run`` and the audit
findings it derives from a scored simulation.
"""

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, PortableJSON, TimestampMixin, UTCDateTime


class Facility(Base, TimestampMixin):
    """A site whose compliance is assessed."""

    __tablename__ = "facilities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    facility_type: Mapped[str | None] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    modules: Mapped[list["FacilityModule"]] = relationship(
        "FacilityModule", back_populates="facility", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Facility(id={self.id}, name={self.name})>"


class AuditModule(Base):
    """A regulatory/operational module grouping audit questions."""

    __tablename__ = "audit_modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    questions: Mapped[list["AuditQuestion"]] = relationship(
        "AuditQuestion", back_populates="module"
    )


class FacilityModule(Base):
    """Module enablement per facility."""

    __tablename__ = "facility_modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    facility_id: Mapped[int] = mapped_column(
        ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False
    )
    module_id: Mapped[int] = mapped_column(
        ForeignKey("audit_modules.id", ondelete="CASCADE"), nullable=False
    )
    is_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    facility: Mapped[Facility] = relationship("Facility", back_populates="modules")
    module: Mapped[AuditModule] = relationship("AuditModule")

    __table_args__ = (UniqueConstraint("facility_id", "module_id", name="uq_facility_module"),)


class AuditQuestion(Base):
    """A scored audit question (static reference data)."""

    __tablename__ = "audit_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = mapped_column(ForeignKey("audit_modules.id"), nullable=False)
    question_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    question_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_auto_fail: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    category: Mapped[str | None] = mapped_column(String(100))

    module: Mapped[AuditModule] = relationship("AuditModule", back_populates="questions")


class AuditSimulation(Base, TimestampMixin):
    """An audit simulation run against a facility."""

    __tablename__ = "audit_simulations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))
    simulation_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="in_progress")

    responses: Mapped[list["AuditResponse"]] = relationship(
        "AuditResponse", back_populates="simulation", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_simulation_facility", "facility_id", "simulation_date"),)


class AuditResponse(Base):
    """Score for one question in one simulation."""

    __tablename__ = "audit_responses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    simulation_id: Mapped[int] = mapped_column(
        ForeignKey("audit_simulations.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(ForeignKey("audit_questions.id"), nullable=False)
    score: Mapped[int | None] = mapped_column(Integer)
    evidence_url: Mapped[str | None] = mapped_column(String(1024))
    notes: Mapped[str | None] = mapped_column(Text)

    simulation: Mapped[AuditSimulation] = relationship(
        "AuditSimulation", back_populates="responses"
    )
    question: Mapped[AuditQuestion] = relationship("AuditQuestion")

    __table_args__ = (
        UniqueConstraint("simulation_id", "question_id", name="uq_response_question"),
    )


class AuditFinding(Base, TimestampMixin):
    """A finding raised from an audit."""

    __tablename__ = "audit_findings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    simulation_id: Mapped[int | None] = mapped_column(ForeignKey("audit_simulations.id"))
    question_id: Mapped[int | None] = mapped_column(ForeignKey("audit_questions.id"))
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="minor")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    question: Mapped[AuditQuestion | None] = relationship("AuditQuestion")

    __table_args__ = (Index("idx_finding_facility_status", "facility_id", "status"),)


class SOPDocument(Base, TimestampMixin):
    """A standard operating procedure."""

    __tablename__ = "sop_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sop_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100))
    module_code: Mapped[str | None] = mapped_column(String(50))


class SOPFacilityStatus(Base):
    """Status of an SOP at one facility."""

    __tablename__ = "sop_facility_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sop_id: Mapped[int] = mapped_column(
        ForeignKey("sop_documents.id", ondelete="CASCADE"), nullable=False
    )
    facility_id: Mapped[int] = mapped_column(
        ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="missing")
    last_reviewed: Mapped[date | None] = mapped_column(Date)
    is_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    sop: Mapped[SOPDocument] = relationship("SOPDocument")

    __table_args__ = (UniqueConstraint("sop_id", "facility_id", name="uq_sop_facility"),)


class ChecklistTemplate(Base, TimestampMixin):
    """A recurring checklist."""

    __tablename__ = "checklist_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    module_code: Mapped[str | None] = mapped_column(String(50))
    frequency_days: Mapped[int | None] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ChecklistSubmission(Base, TimestampMixin):
    """A completed checklist."""

    __tablename__ = "checklist_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("checklist_templates.id", ondelete="CASCADE"), nullable=False
    )
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    submission_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        Index("idx_submission_template_facility", "template_id", "facility_id"),
    )


class Supplier(Base, TimestampMixin):
    """A supplier; facility-less suppliers serve every facility."""

    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    facility_id: Mapped[int | None] = mapped_column(ForeignKey("facilities.id"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    certifications: Mapped[list["SupplierCertification"]] = relationship(
        "SupplierCertification", back_populates="supplier", cascade="all, delete-orphan"
    )


class SupplierCertification(Base, TimestampMixin):
    """A certification held by a supplier."""

    __tablename__ = "supplier_certifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False
    )
    cert_name: Mapped[str] = mapped_column(String(255), nullable=False)
    cert_type: Mapped[str | None] = mapped_column(String(100))
    module_code: Mapped[str | None] = mapped_column(String(50))
    issue_date: Mapped[date | None] = mapped_column(Date)
    expiry_date: Mapped[date | None] = mapped_column(Date)

    supplier: Mapped[Supplier] = relationship("Supplier", back_populates="certifications")


class Nonconformance(Base, TimestampMixin):
    """A recorded nonconformance."""

    __tablename__ = "nonconformances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    finding_date: Mapped[date] = mapped_column(Date, nullable=False)
    finding_category: Mapped[str] = mapped_column(String(100), nullable=False)
    finding_description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="minor")
    module_code: Mapped[str | None] = mapped_column(String(50))

    actions: Mapped[list["CorrectiveAction"]] = relationship(
        "CorrectiveAction", back_populates="nonconformance", cascade="all, delete-orphan"
    )


class CorrectiveAction(Base, TimestampMixin):
    """A corrective action (CAPA) for a nonconformance."""

    __tablename__ = "corrective_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nonconformance_id: Mapped[int] = mapped_column(
        ForeignKey("nonconformances.id", ondelete="CASCADE"), nullable=False
    )
    action_description: Mapped[str] = mapped_column(Text, nullable=False)
    responsible_party: Mapped[str | None] = mapped_column(String(255))
    target_completion_date: Mapped[date | None] = mapped_column(Date)
    actual_completion_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")

    nonconformance: Mapped[Nonconformance] = relationship(
        "Nonconformance", back_populates="actions"
    )


class FSMSRequirement(Base, TimestampMixin):
    """A food safety management system requirement of one module."""

    __tablename__ = "fsms_requirements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = mapped_column(
        ForeignKey("audit_modules.id", ondelete="CASCADE"), nullable=False
    )
    requirement_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    requirement_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    criticality: Mapped[str] = mapped_column(String(20), nullable=False, default="minor")

    module: Mapped[AuditModule] = relationship("AuditModule")
    evidence_links: Mapped[list["RequirementEvidenceLink"]] = relationship(
        "RequirementEvidenceLink", back_populates="requirement", cascade="all, delete-orphan"
    )


class RequirementEvidenceLink(Base):
    """Evidence (SOP, checklist template or audit question) that can meet a requirement."""

    __tablename__ = "requirement_evidence_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requirement_id: Mapped[int] = mapped_column(
        ForeignKey("fsms_requirements.id", ondelete="CASCADE"), nullable=False
    )
    evidence_type: Mapped[str] = mapped_column(String(20), nullable=False)
    evidence_id: Mapped[int] = mapped_column(Integer, nullable=False)
    evidence_code: Mapped[str | None] = mapped_column(String(50))

    requirement: Mapped[FSMSRequirement] = relationship(
        "FSMSRequirement", back_populates="evidence_links"
    )

    __table_args__ = (Index("idx_evidence_link_requirement", "requirement_id"),)


class ComplianceRuleRow(Base, TimestampMixin):
    """A compliance rule as authored on the admin surface.

    ``condition`` is stored raw and validated when the library loads.
    """

    __tablename__ = "compliance_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text)
    rule_type: Mapped[str | None] = mapped_column(String(50))
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="major")
    module_code: Mapped[str | None] = mapped_column(String(50))
    condition: Mapped[dict[str, Any]] = mapped_column(PortableJSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_rule_row(self) -> dict[str, Any]:
        """Raw row in the shape RuleLibrary.from_records expects."""
        row: dict[str, Any] = {
            "rule_code": self.rule_code,
            "name": self.name,
            "description": self.description,
            "severity": self.severity,
            "module_code": self.module_code,
            "condition": self.condition,
            "is_active": self.is_active,
        }
        if self.rule_type is not None:
            row["rule_type"] = self.rule_type
        return row


class MonitoringConfigRow(Base, TimestampMixin):
    """Trend snapshot schedule for a facility."""

    __tablename__ = "monitoring_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    facility_id: Mapped[int] = mapped_column(
        ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    frequency: Mapped[str] = mapped_column(String(20), nullable=False, default="monthly")
    next_run: Mapped[datetime | None] = mapped_column(UTCDateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
