"""In-memory record store.

``InMemoryRecordStore`` holds the data; ``InMemoryEntityAccessor`` is the
per-run view over it. Writes made inside ``transaction()`` are staged on
the accessor and applied to the store only when the block exits cleanly.
"""

from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any
from uuid import UUID

from fieldsafe.assessment.types import AssessmentScope, ComplianceAssessment
from fieldsafe.compliance.conditions import record_matches
from fieldsafe.compliance.types import RuleResult
from fieldsafe.core.exceptions import RecordStoreError
from fieldsafe.core.logging import get_logger
from fieldsafe.evidence.types import (
    ENTITY_RECORD_TYPES,
    AuditResponseRecord,
    EntityType,
    EvidenceRecord,
    FindingRecord,
    RequirementRecord,
    SimulationRecord,
)
from fieldsafe.risk.types import RiskScore
from fieldsafe.trends.types import ComplianceTrend, MonitoringConfig, PeriodType

logger = get_logger(__name__)

_ENTITY_TYPE_BY_RECORD = {record: entity for entity, record in ENTITY_RECORD_TYPES.items()}

TrendKey = tuple[int, PeriodType, date]


class InMemoryRecordStore:
    """Record store held in process memory, for tests and local runs.

    Example:
        store = InMemoryRecordStore()
        store.add_records(12, [SOPRecord(...), CAPARecord(...)])
        accessor = store.accessor()
    """

    def __init__(self) -> None:
        self.evidence: dict[tuple[int, EntityType], list[EvidenceRecord]] = {}
        self.simulations: dict[int, SimulationRecord] = {}
        self.responses: dict[int, list[AuditResponseRecord]] = {}
        self.enabled_modules: dict[int, list[str]] = {}
        self.rule_rows: list[dict[str, Any]] = []
        self.requirements: list[RequirementRecord] = []
        self.monitoring_configs: dict[int, MonitoringConfig] = {}

        self.assessments: list[ComplianceAssessment] = []
        self.rule_results: list[RuleResult] = []
        self.risk_scores: list[RiskScore] = []
        self.trends: dict[TrendKey, ComplianceTrend] = {}

        self.unavailable = False
        """When set, every accessor call raises RecordStoreError."""

    def accessor(self) -> "InMemoryEntityAccessor":
        """Create a per-run accessor over this store."""
        return InMemoryEntityAccessor(self)

    @asynccontextmanager
    async def open_accessor(self) -> AsyncIterator["InMemoryEntityAccessor"]:
        """Accessor factory for ComplianceService."""
        yield InMemoryEntityAccessor(self)

    # Seeding helpers

    def add_records(self, facility_id: int, records: Iterable[EvidenceRecord]) -> None:
        """Add evidence records for a facility; findings and simulations included."""
        for record in records:
            if isinstance(record, SimulationRecord):
                self.simulations[record.simulation_id] = record
                continue
            if isinstance(record, AuditResponseRecord):
                self.responses.setdefault(record.simulation_id, []).append(record)
                continue
            entity_type = _ENTITY_TYPE_BY_RECORD[type(record)]
            self.evidence.setdefault((facility_id, entity_type), []).append(record)

    def add_simulation(
        self,
        simulation: SimulationRecord,
        responses: Iterable[AuditResponseRecord] = (),
    ) -> None:
        """Add a simulation with its responses."""
        self.simulations[simulation.simulation_id] = simulation
        self.responses.setdefault(simulation.simulation_id, []).extend(responses)

    def set_enabled_modules(self, facility_id: int, module_codes: Sequence[str]) -> None:
        self.enabled_modules[facility_id] = list(module_codes)

    def set_rule_rows(self, rows: Iterable[Mapping[str, Any]]) -> None:
        self.rule_rows = [dict(row) for row in rows]

    def add_requirements(self, requirements: Iterable[RequirementRecord]) -> None:
        self.requirements.extend(requirements)

    def set_monitoring_config(self, config: MonitoringConfig) -> None:
        self.monitoring_configs[config.facility_id] = config


class InMemoryEntityAccessor:
    """Per-run accessor over an InMemoryRecordStore."""

    def __init__(self, store: InMemoryRecordStore):
        self._store = store
        self._pending: list[tuple[str, Any]] | None = None

    def _check_available(self, operation: str) -> None:
        if self._store.unavailable:
            raise RecordStoreError("record store unavailable", operation)

    # Evidence reads

    async def fetch_entities(
        self,
        facility_id: int,
        entity_type: EntityType,
        filter: Mapping[str, Any] | None = None,
        *,
        simulation_id: int | None = None,
    ) -> list[EvidenceRecord]:
        self._check_available("fetch_entities")
        if entity_type == EntityType.AUDIT_RESPONSE:
            if simulation_id is None:
                latest = await self.fetch_latest_simulation(facility_id)
                simulation_id = latest.simulation_id if latest else None
            records: list[EvidenceRecord] = (
                list(self._store.responses.get(simulation_id, []))
                if simulation_id is not None
                else []
            )
        else:
            records = list(self._store.evidence.get((facility_id, entity_type), []))
        return [r for r in records if record_matches(r, filter)]

    async def fetch_enabled_modules(self, facility_id: int) -> list[str]:
        self._check_available("fetch_enabled_modules")
        return list(self._store.enabled_modules.get(facility_id, []))

    async def fetch_simulation(self, simulation_id: int) -> SimulationRecord | None:
        self._check_available("fetch_simulation")
        return self._store.simulations.get(simulation_id)

    async def fetch_latest_simulation(self, facility_id: int) -> SimulationRecord | None:
        self._check_available("fetch_latest_simulation")
        candidates = [s for s in self._store.simulations.values() if s.facility_id == facility_id]
        if not candidates:
            return None
        return max(candidates, key=lambda s: (s.simulation_date or date.min, s.simulation_id))

    async def fetch_responses(self, simulation_id: int) -> list[AuditResponseRecord]:
        self._check_available("fetch_responses")
        return list(self._store.responses.get(simulation_id, []))

    async def fetch_open_findings(self, facility_id: int) -> list[FindingRecord]:
        self._check_available("fetch_open_findings")
        findings = self._store.evidence.get((facility_id, EntityType.AUDIT_FINDING), [])
        return [f for f in findings if isinstance(f, FindingRecord) and f.is_open]

    async def fetch_rule_rows(self) -> list[dict[str, Any]]:
        self._check_available("fetch_rule_rows")
        return [dict(row) for row in self._store.rule_rows]

    async def fetch_requirements(self, module_codes: Sequence[str]) -> list[RequirementRecord]:
        self._check_available("fetch_requirements")
        wanted = set(module_codes)
        return [r for r in self._store.requirements if r.module_code in wanted]

    # Derived reads

    async def fetch_latest_assessment(
        self,
        facility_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        scope: AssessmentScope | None = None,
    ) -> ComplianceAssessment | None:
        self._check_available("fetch_latest_assessment")
        candidates = [
            a
            for a in self._store.assessments
            if a.facility_id == facility_id
            and (scope is None or a.scope == scope)
            and (start is None or a.assessment_date >= start)
            and (end is None or a.assessment_date < end)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda a: (a.assessment_date, a.id))

    async def fetch_rule_results(self, assessment_id: UUID) -> list[RuleResult]:
        self._check_available("fetch_rule_results")
        return [r for r in self._store.rule_results if r.assessment_id == assessment_id]

    async def fetch_trend(
        self,
        facility_id: int,
        period_type: PeriodType,
        period_start: date,
    ) -> ComplianceTrend | None:
        self._check_available("fetch_trend")
        return self._store.trends.get((facility_id, period_type, period_start))

    async def fetch_trends(self, facility_id: int) -> list[ComplianceTrend]:
        self._check_available("fetch_trends")
        trends = [t for t in self._store.trends.values() if t.facility_id == facility_id]
        return sorted(trends, key=lambda t: (t.period_start, t.period_type.value))

    async def fetch_risk_scores(self, facility_id: int) -> list[RiskScore]:
        self._check_available("fetch_risk_scores")
        return [s for s in self._store.risk_scores if s.facility_id == facility_id]

    async def fetch_monitoring_config(self, facility_id: int) -> MonitoringConfig | None:
        self._check_available("fetch_monitoring_config")
        return self._store.monitoring_configs.get(facility_id)

    # Writes

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Stage writes and apply them only if the block succeeds."""
        if self._pending is not None:
            # Nested block joins the outer unit of work
            yield
            return

        self._pending = []
        try:
            yield
            self._check_available("commit")
            for kind, payload in self._pending:
                self._apply(kind, payload)
        except Exception:
            logger.debug("memory_transaction_rolled_back", staged=len(self._pending))
            raise
        finally:
            self._pending = None

    def _write(self, kind: str, payload: Any) -> None:
        if self._pending is None:
            self._apply(kind, payload)
        else:
            self._pending.append((kind, payload))

    def _apply(self, kind: str, payload: Any) -> None:
        store = self._store
        if kind == "assessment":
            store.assessments.append(payload)
        elif kind == "rule_results":
            store.rule_results.extend(payload)
        elif kind == "risk_scores":
            store.risk_scores.extend(payload)
        elif kind == "findings":
            for finding in payload:
                key = (finding.facility_id, EntityType.AUDIT_FINDING)
                store.evidence.setdefault(key, []).append(finding)
        elif kind == "trend":
            store.trends[payload.key] = payload
        elif kind == "monitoring_config":
            store.monitoring_configs[payload.facility_id] = payload

    async def insert_assessment(self, assessment: ComplianceAssessment) -> None:
        self._check_available("insert_assessment")
        self._write("assessment", assessment)

    async def insert_rule_results(self, results: Sequence[RuleResult]) -> None:
        self._check_available("insert_rule_results")
        self._write("rule_results", list(results))

    async def insert_risk_scores(self, scores: Sequence[RiskScore]) -> None:
        self._check_available("insert_risk_scores")
        self._write("risk_scores", list(scores))

    async def insert_findings(self, findings: Sequence[FindingRecord]) -> list[FindingRecord]:
        self._check_available("insert_findings")
        next_id = self._next_finding_id()
        stored = [
            finding.model_copy(update={"finding_id": next_id + offset})
            for offset, finding in enumerate(findings)
        ]
        self._write("findings", stored)
        return stored

    def _next_finding_id(self) -> int:
        ids = [
            record.finding_id
            for (_, entity_type), records in self._store.evidence.items()
            if entity_type == EntityType.AUDIT_FINDING
            for record in records
            if isinstance(record, FindingRecord) and record.finding_id is not None
        ]
        for kind, payload in self._pending or []:
            if kind == "findings":
                ids.extend(f.finding_id for f in payload)
        return max(ids, default=0) + 1

    async def upsert_trend(self, trend: ComplianceTrend) -> ComplianceTrend:
        self._check_available("upsert_trend")
        existing = self._store.trends.get(trend.key)
        if existing is not None:
            trend = trend.model_copy(update={"id": existing.id})
        self._write("trend", trend)
        return trend

    async def save_monitoring_config(self, config: MonitoringConfig) -> None:
        self._check_available("save_monitoring_config")
        self._write("monitoring_config", config)
