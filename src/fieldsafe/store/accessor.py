"""Entity accessor protocol.

The accessor is the engine's only path to the record store. One accessor
is constructed per run and passed explicitly to each component; there is
no module-level client.

Reads return typed records for one facility. Writes are whole-record
inserts of derived rows (trend rows are upserted by their period key)
and are only visible once the enclosing ``transaction()`` commits.
Implementations raise RecordStoreError when the store is unavailable.
"""

from collections.abc import Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from fieldsafe.assessment.types import AssessmentScope, ComplianceAssessment
from fieldsafe.compliance.types import RuleResult
from fieldsafe.evidence.types import (
    AuditResponseRecord,
    EntityType,
    EvidenceRecord,
    FindingRecord,
    RequirementRecord,
    SimulationRecord,
)
from fieldsafe.risk.types import RiskScore
from fieldsafe.trends.types import ComplianceTrend, MonitoringConfig, PeriodType


@runtime_checkable
class EntityAccessor(Protocol):
    """Read and write boundary between the engine and the record store."""

    # Evidence reads

    async def fetch_entities(
        self,
        facility_id: int,
        entity_type: EntityType,
        filter: Mapping[str, Any] | None = None,
        *,
        simulation_id: int | None = None,
    ) -> list[EvidenceRecord]:
        """Fetch the population of one entity type for a facility.

        ``audit_response`` rows come from ``simulation_id`` when given,
        otherwise from the facility's latest simulation.
        ``filter`` keeps rows whose fields equal the given values (a list
        value means membership).
        """
        ...

    async def fetch_enabled_modules(self, facility_id: int) -> list[str]:
        """Module codes applicable to the facility."""
        ...

    async def fetch_simulation(self, simulation_id: int) -> SimulationRecord | None:
        ...

    async def fetch_latest_simulation(self, facility_id: int) -> SimulationRecord | None:
        ...

    async def fetch_responses(self, simulation_id: int) -> list[AuditResponseRecord]:
        """Responses of a simulation joined to their questions."""
        ...

    async def fetch_open_findings(self, facility_id: int) -> list[FindingRecord]:
        ...

    async def fetch_rule_rows(self) -> list[dict[str, Any]]:
        """Raw compliance rule definitions, active or not."""
        ...

    async def fetch_requirements(self, module_codes: Sequence[str]) -> list[RequirementRecord]:
        """Requirements of the given modules with their evidence links."""
        ...

    # Derived reads

    async def fetch_latest_assessment(
        self,
        facility_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        scope: AssessmentScope | None = None,
    ) -> ComplianceAssessment | None:
        """Most recent saved assessment, optionally inside ``[start, end)``.

        ``scope`` restricts the search to facility-wide or module runs.
        """
        ...

    async def fetch_rule_results(self, assessment_id: UUID) -> list[RuleResult]:
        ...

    async def fetch_trend(
        self,
        facility_id: int,
        period_type: PeriodType,
        period_start: date,
    ) -> ComplianceTrend | None:
        ...

    async def fetch_trends(self, facility_id: int) -> list[ComplianceTrend]:
        """All trend rows for a facility, oldest period first."""
        ...

    async def fetch_risk_scores(self, facility_id: int) -> list[RiskScore]:
        """All risk score rows for a facility, oldest first."""
        ...

    async def fetch_monitoring_config(self, facility_id: int) -> MonitoringConfig | None:
        ...

    # Writes

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Unit of work: commit on success, roll back on error."""
        ...

    async def insert_assessment(self, assessment: ComplianceAssessment) -> None:
        ...

    async def insert_rule_results(self, results: Sequence[RuleResult]) -> None:
        ...

    async def insert_risk_scores(self, scores: Sequence[RiskScore]) -> None:
        ...

    async def insert_findings(self, findings: Sequence[FindingRecord]) -> list[FindingRecord]:
        """Insert audit findings derived by a run.

        Returns:
            The stored findings with their ids
        """
        ...

    async def upsert_trend(self, trend: ComplianceTrend) -> ComplianceTrend:
        """Insert or replace the row for the trend's period key.

        Returns:
            The stored row (keeps the existing row id on replace)
        """
        ...

    async def save_monitoring_config(self, config: MonitoringConfig) -> None:
        ...
