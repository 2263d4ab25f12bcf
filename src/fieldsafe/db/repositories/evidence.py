"""Read-only queries over operational tables.

Each query returns typed evidence records for one facility, joined to
the reference data the engine needs.
"""

from collections.abc import Sequence
from typing import Any

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldsafe.db.models import (
    AuditFinding,
    AuditModule,
    AuditQuestion,
    AuditResponse,
    AuditSimulation,
    ChecklistSubmission,
    ChecklistTemplate,
    ComplianceRuleRow,
    CorrectiveAction,
    FacilityModule,
    FSMSRequirement,
    Nonconformance,
    RequirementEvidenceLink,
    SOPDocument,
    SOPFacilityStatus,
    Supplier,
    SupplierCertification,
)
from fieldsafe.evidence.types import (
    AuditResponseRecord,
    CAPARecord,
    CertificationRecord,
    ChecklistRecord,
    EvidenceLink,
    EvidenceLinkType,
    FindingRecord,
    RequirementRecord,
    Severity,
    SimulationRecord,
    SOPRecord,
    SOPStatus,
)


def _sop_status(value: str | None) -> SOPStatus:
    try:
        return SOPStatus(value) if value else SOPStatus.MISSING
    except ValueError:
        return SOPStatus.MISSING


def _criticality(value: str | None) -> Severity:
    try:
        return Severity(value) if value else Severity.MINOR
    except ValueError:
        return Severity.MINOR


class EvidenceRepository:
    """Queries that assemble evidence records from operational tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def sops(self, facility_id: int) -> list[SOPRecord]:
        """All SOPs with the facility's status (missing when no status row)."""
        stmt = (
            select(SOPDocument, SOPFacilityStatus)
            .outerjoin(
                SOPFacilityStatus,
                and_(
                    SOPFacilityStatus.sop_id == SOPDocument.id,
                    SOPFacilityStatus.facility_id == facility_id,
                ),
            )
            .order_by(SOPDocument.sop_code)
        )
        result = await self.db.execute(stmt)
        return [
            SOPRecord(
                sop_id=sop.id,
                sop_code=sop.sop_code,
                title=sop.title,
                category=sop.category,
                module_code=sop.module_code,
                status=_sop_status(status.status if status else None),
                last_reviewed=status.last_reviewed if status else None,
                is_applicable=status.is_applicable if status else True,
            )
            for sop, status in result.all()
        ]

    async def checklists(self, facility_id: int) -> list[ChecklistRecord]:
        """Active templates with the facility's last submission date and count."""
        last_submitted = func.max(ChecklistSubmission.submission_date)
        submissions = func.count(ChecklistSubmission.id)
        stmt = (
            select(ChecklistTemplate, last_submitted, submissions)
            .outerjoin(
                ChecklistSubmission,
                and_(
                    ChecklistSubmission.template_id == ChecklistTemplate.id,
                    ChecklistSubmission.facility_id == facility_id,
                ),
            )
            .where(ChecklistTemplate.is_active.is_(True))
            .group_by(ChecklistTemplate.id)
            .order_by(ChecklistTemplate.id)
        )
        result = await self.db.execute(stmt)
        return [
            ChecklistRecord(
                template_id=template.id,
                name=template.name,
                module_code=template.module_code,
                frequency_days=template.frequency_days,
                last_submitted=last,
                submission_count=count or 0,
            )
            for template, last, count in result.all()
        ]

    async def certifications(self, facility_id: int) -> list[CertificationRecord]:
        """Certifications of the facility's suppliers and of shared suppliers."""
        stmt = (
            select(SupplierCertification, Supplier)
            .join(Supplier, SupplierCertification.supplier_id == Supplier.id)
            .where(or_(Supplier.facility_id == facility_id, Supplier.facility_id.is_(None)))
            .order_by(SupplierCertification.id)
        )
        result = await self.db.execute(stmt)
        return [
            CertificationRecord(
                certification_id=cert.id,
                cert_name=cert.cert_name,
                cert_type=cert.cert_type,
                supplier_id=supplier.id,
                supplier_name=supplier.name,
                supplier_active=supplier.is_active,
                issue_date=cert.issue_date,
                expiry_date=cert.expiry_date,
                module_code=cert.module_code,
            )
            for cert, supplier in result.all()
        ]

    async def capas(self, facility_id: int) -> list[CAPARecord]:
        """Corrective actions on the facility's nonconformances."""
        stmt = (
            select(CorrectiveAction, Nonconformance)
            .join(Nonconformance, CorrectiveAction.nonconformance_id == Nonconformance.id)
            .where(Nonconformance.facility_id == facility_id)
            .order_by(CorrectiveAction.id)
        )
        result = await self.db.execute(stmt)
        return [
            CAPARecord(
                capa_id=action.id,
                description=action.action_description,
                status=action.status,
                severity=nc.severity,
                module_code=nc.module_code,
                nonconformance_id=nc.id,
                target_completion_date=action.target_completion_date,
                completed_date=action.actual_completion_date,
            )
            for action, nc in result.all()
        ]

    async def responses(self, simulation_id: int) -> list[AuditResponseRecord]:
        """Responses of a simulation joined to their questions and modules."""
        stmt = (
            select(AuditResponse, AuditQuestion, AuditModule)
            .join(AuditQuestion, AuditResponse.question_id == AuditQuestion.id)
            .join(AuditModule, AuditQuestion.module_id == AuditModule.id)
            .where(AuditResponse.simulation_id == simulation_id)
            .order_by(AuditResponse.id)
        )
        result = await self.db.execute(stmt)
        return [
            AuditResponseRecord(
                response_id=response.id,
                simulation_id=response.simulation_id,
                question_id=question.id,
                question_code=question.question_code,
                module_code=module.code,
                points=question.points,
                is_auto_fail=question.is_auto_fail,
                category=question.category,
                score=response.score,
                evidence_url=response.evidence_url,
            )
            for response, question, module in result.all()
        ]

    async def findings(self, facility_id: int, *, open_only: bool = False) -> list[FindingRecord]:
        """Audit findings for the facility."""
        stmt = (
            select(AuditFinding, AuditQuestion, AuditModule)
            .outerjoin(AuditQuestion, AuditFinding.question_id == AuditQuestion.id)
            .outerjoin(AuditModule, AuditQuestion.module_id == AuditModule.id)
            .where(AuditFinding.facility_id == facility_id)
            .order_by(AuditFinding.id)
        )
        if open_only:
            stmt = stmt.where(AuditFinding.status == "open")
        result = await self.db.execute(stmt)
        return [
            FindingRecord(
                finding_id=finding.id,
                facility_id=finding.facility_id,
                severity=finding.severity,
                status=finding.status,
                module_code=module.code if module else None,
                simulation_id=finding.simulation_id,
                question_id=finding.question_id,
                question_code=question.question_code if question else None,
                description=finding.description,
                is_auto_fail=question.is_auto_fail if question else False,
            )
            for finding, question, module in result.all()
        ]

    async def simulation(self, simulation_id: int) -> SimulationRecord | None:
        row = await self.db.get(AuditSimulation, simulation_id)
        return self._simulation_record(row) if row else None

    async def latest_simulation(self, facility_id: int) -> SimulationRecord | None:
        stmt = (
            select(AuditSimulation)
            .where(AuditSimulation.facility_id == facility_id)
            .order_by(
                AuditSimulation.simulation_date.desc().nulls_last(),
                AuditSimulation.id.desc(),
            )
            .limit(1)
        )
        result = await self.db.execute(stmt)
        row = result.scalar_one_or_none()
        return self._simulation_record(row) if row else None

    async def enabled_modules(self, facility_id: int) -> list[str]:
        stmt = (
            select(AuditModule.code)
            .join(FacilityModule, FacilityModule.module_id == AuditModule.id)
            .where(
                FacilityModule.facility_id == facility_id,
                FacilityModule.is_applicable.is_(True),
            )
            .order_by(AuditModule.code)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def requirements(self, module_codes: Sequence[str]) -> list[RequirementRecord]:
        """Requirements of the given modules with their evidence links.

        Links of an unknown evidence type are skipped.
        """
        if not module_codes:
            return []
        stmt = (
            select(FSMSRequirement, AuditModule.code)
            .join(AuditModule, FSMSRequirement.module_id == AuditModule.id)
            .where(AuditModule.code.in_(list(module_codes)))
            .order_by(AuditModule.code, FSMSRequirement.requirement_code)
        )
        result = await self.db.execute(stmt)
        rows = result.all()
        if not rows:
            return []

        link_stmt = (
            select(RequirementEvidenceLink)
            .where(RequirementEvidenceLink.requirement_id.in_([req.id for req, _ in rows]))
            .order_by(RequirementEvidenceLink.id)
        )
        links: dict[int, list[EvidenceLink]] = {}
        for link in (await self.db.execute(link_stmt)).scalars().all():
            try:
                evidence_type = EvidenceLinkType(link.evidence_type)
            except ValueError:
                continue
            links.setdefault(link.requirement_id, []).append(
                EvidenceLink(
                    evidence_type=evidence_type,
                    evidence_id=link.evidence_id,
                    evidence_code=link.evidence_code,
                )
            )

        return [
            RequirementRecord(
                requirement_id=req.id,
                requirement_code=req.requirement_code,
                module_code=module_code,
                requirement_text=req.requirement_text,
                criticality=_criticality(req.criticality),
                evidence=links.get(req.id, []),
            )
            for req, module_code in rows
        ]

    async def rule_rows(self) -> list[dict[str, Any]]:
        stmt = select(ComplianceRuleRow).order_by(ComplianceRuleRow.rule_code)
        result = await self.db.execute(stmt)
        return [row.to_rule_row() for row in result.scalars().all()]

    @staticmethod
    def _simulation_record(row: AuditSimulation) -> SimulationRecord:
        return SimulationRecord(
            simulation_id=row.id,
            facility_id=row.facility_id,
            name=row.name,
            simulation_date=row.simulation_date,
            status=row.status,
        )
