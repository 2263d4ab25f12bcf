"""Unit tests for the in-memory record store."""

from datetime import UTC, date, datetime

import pytest

from fieldsafe.assessment.types import AssessmentScope, ComplianceAssessment
from fieldsafe.core.exceptions import RecordStoreError
from fieldsafe.evidence.types import (
    EntityType,
    FindingRecord,
    RequirementRecord,
    Severity,
    SimulationRecord,
)
from fieldsafe.trends.types import ComplianceTrend, PeriodType

FACILITY_ID = 12
NOW = datetime(2024, 6, 14, 10, 30, tzinfo=UTC)


def _assessment(score: float = 80.0, at: datetime = NOW, **kwargs) -> ComplianceAssessment:
    return ComplianceAssessment(
        facility_id=FACILITY_ID,
        assessment_date=at,
        overall_score=score,
        overall_grade="B",
        sop_readiness_pct=100.0,
        checklist_submissions_pct=100.0,
        audit_coverage_pct=100.0,
        **kwargs,
    )


def _trend(assessment: ComplianceAssessment) -> ComplianceTrend:
    return ComplianceTrend(
        facility_id=FACILITY_ID,
        period_type=PeriodType.MONTHLY,
        period_start=date(2024, 6, 1),
        period_end=date(2024, 6, 30),
        assessment_id=assessment.id,
        overall_score=assessment.overall_score,
        overall_grade=assessment.overall_grade,
        sop_readiness_pct=100.0,
        checklist_submissions_pct=100.0,
        audit_coverage_pct=100.0,
        recorded_at=NOW,
    )


class TestReads:
    """Tests for evidence reads."""

    @pytest.mark.asyncio
    async def test_fetch_with_filter(self, seeded_store):
        """Test filters narrow the population."""
        accessor = seeded_store.accessor()

        sops = await accessor.fetch_entities(FACILITY_ID, EntityType.SOP)
        haccp = await accessor.fetch_entities(
            FACILITY_ID, EntityType.SOP, {"module_code": "HACCP"}
        )

        assert len(sops) == 3
        assert [s.sop_id for s in haccp] == [3]

    @pytest.mark.asyncio
    async def test_audit_responses_come_from_latest_simulation(self, seeded_store, response_factory):
        """Test audit responses are read from the newest simulation."""
        seeded_store.add_simulation(
            SimulationRecord(
                simulation_id=3, facility_id=FACILITY_ID, simulation_date=date(2024, 1, 5)
            ),
            [response_factory(9, 10, 0, simulation_id=3)],
        )

        responses = await seeded_store.accessor().fetch_entities(
            FACILITY_ID, EntityType.AUDIT_RESPONSE
        )

        assert {r.simulation_id for r in responses} == {7}

    @pytest.mark.asyncio
    async def test_audit_responses_for_given_simulation(self, seeded_store, response_factory):
        """Test an explicit simulation is read instead of the latest one."""
        seeded_store.add_simulation(
            SimulationRecord(
                simulation_id=3, facility_id=FACILITY_ID, simulation_date=date(2024, 1, 5)
            ),
            [response_factory(9, 10, 0, simulation_id=3)],
        )

        responses = await seeded_store.accessor().fetch_entities(
            FACILITY_ID, EntityType.AUDIT_RESPONSE, simulation_id=3
        )

        assert [(r.simulation_id, r.question_id) for r in responses] == [(3, 9)]

    @pytest.mark.asyncio
    async def test_requirements_by_module(self, store):
        """Test requirements are served for the requested modules only."""
        store.add_requirements(
            [
                RequirementRecord(requirement_id=1, requirement_code="GMP-R1", module_code="GMP"),
                RequirementRecord(
                    requirement_id=2, requirement_code="HACCP-R1", module_code="HACCP"
                ),
            ]
        )
        accessor = store.accessor()

        haccp = await accessor.fetch_requirements(["HACCP"])

        assert [r.requirement_code for r in haccp] == ["HACCP-R1"]
        assert await accessor.fetch_requirements([]) == []

    @pytest.mark.asyncio
    async def test_latest_assessment_by_scope(self, store):
        """Test the scope filter skips later module-scoped assessments."""
        accessor = store.accessor()
        facility = _assessment(70.0)
        module = _assessment(
            20.0,
            at=datetime(2024, 6, 14, 11, 30, tzinfo=UTC),
            scope=AssessmentScope.MODULE,
            module_code="HACCP",
        )
        await accessor.insert_assessment(facility)
        await accessor.insert_assessment(module)

        assert (await accessor.fetch_latest_assessment(FACILITY_ID)).id == module.id
        latest_facility = await accessor.fetch_latest_assessment(
            FACILITY_ID, scope=AssessmentScope.FACILITY
        )
        assert latest_facility.id == facility.id

    @pytest.mark.asyncio
    async def test_other_facility_is_empty(self, seeded_store):
        """Test evidence is scoped by facility."""
        accessor = seeded_store.accessor()

        assert await accessor.fetch_entities(99, EntityType.SOP) == []
        assert await accessor.fetch_latest_simulation(99) is None
        assert await accessor.fetch_enabled_modules(99) == []

    @pytest.mark.asyncio
    async def test_unavailable(self, seeded_store):
        """Test an unavailable store raises RecordStoreError."""
        seeded_store.unavailable = True

        with pytest.raises(RecordStoreError) as exc_info:
            await seeded_store.accessor().fetch_open_findings(FACILITY_ID)

        assert exc_info.value.operation == "fetch_open_findings"


class TestTransaction:
    """Tests for staged writes."""

    @pytest.mark.asyncio
    async def test_commit_applies_writes(self, store):
        """Test writes appear only after the block exits."""
        accessor = store.accessor()
        assessment = _assessment()

        async with accessor.transaction():
            await accessor.insert_assessment(assessment)
            assert store.assessments == []

        assert store.assessments == [assessment]

    @pytest.mark.asyncio
    async def test_rollback_discards_writes(self, store):
        """Test an exception discards every staged write."""
        accessor = store.accessor()

        with pytest.raises(RuntimeError):
            async with accessor.transaction():
                await accessor.insert_assessment(_assessment())
                raise RuntimeError("boom")

        assert store.assessments == []

    @pytest.mark.asyncio
    async def test_nested_block_joins_outer(self, store):
        """Test a nested block commits with the outer one."""
        accessor = store.accessor()

        with pytest.raises(RuntimeError):
            async with accessor.transaction():
                async with accessor.transaction():
                    await accessor.insert_assessment(_assessment())
                assert store.assessments == []
                raise RuntimeError("boom")

        assert store.assessments == []

    @pytest.mark.asyncio
    async def test_upsert_trend_keeps_id(self, store):
        """Test an upsert for the same period reuses the stored id."""
        accessor = store.accessor()
        first = await accessor.upsert_trend(_trend(_assessment(60.0)))
        second = await accessor.upsert_trend(_trend(_assessment(90.0)))

        assert second.id == first.id
        assert len(store.trends) == 1
        [stored] = await accessor.fetch_trends(FACILITY_ID)
        assert stored.overall_score == 90.0

    @pytest.mark.asyncio
    async def test_insert_findings_assigns_ids(self, seeded_store):
        """Test new findings get ids after every stored or staged finding."""
        accessor = seeded_store.accessor()

        def derived(question_code: str) -> FindingRecord:
            return FindingRecord(
                facility_id=FACILITY_ID,
                severity=Severity.MINOR,
                simulation_id=7,
                question_code=question_code,
            )

        async with accessor.transaction():
            first = await accessor.insert_findings([derived("GMP-Q1")])
            second = await accessor.insert_findings([derived("GMP-Q2"), derived("GMP-Q3")])
            assert len(await accessor.fetch_open_findings(FACILITY_ID)) == 1

        assert [f.finding_id for f in first + second] == [2, 3, 4]
        stored = await accessor.fetch_entities(
            FACILITY_ID, EntityType.AUDIT_FINDING, {"simulation_id": 7}
        )
        assert [f.question_code for f in stored] == ["GMP-Q1", "GMP-Q2", "GMP-Q3"]
