"""Unit tests for trend periods and the trend recorder."""

from datetime import UTC, date, datetime

import pytest
from pydantic import ValidationError

from fieldsafe.assessment.types import AssessmentScope, ComplianceAssessment, FindingCounts
from fieldsafe.compliance.types import RuleResult, Verdict
from fieldsafe.trends.periods import next_period_start, period_bounds
from fieldsafe.trends.recorder import TrendRecorder
from fieldsafe.trends.types import ComplianceTrend, MonitoringConfig, PeriodType

FACILITY_ID = 12
NOW = datetime(2024, 6, 14, 10, 30, tzinfo=UTC)


def _assessment(at: datetime, score: float = 80.0, **kwargs) -> ComplianceAssessment:
    return ComplianceAssessment(
        facility_id=FACILITY_ID,
        assessment_date=at,
        overall_score=score,
        overall_grade="B",
        sop_readiness_pct=90.0,
        checklist_submissions_pct=70.0,
        audit_coverage_pct=80.0,
        findings=FindingCounts(critical=1, major=2),
        **kwargs,
    )


@pytest.fixture
def recorder(store) -> TrendRecorder:
    return TrendRecorder(store.accessor(), clock=lambda: NOW)


class TestPeriodBounds:
    """Tests for period arithmetic."""

    def test_weekly_runs_sunday_to_saturday(self):
        """Test a Friday falls in the week starting the previous Sunday."""
        assert period_bounds(PeriodType.WEEKLY, date(2024, 6, 14)) == (
            date(2024, 6, 9),
            date(2024, 6, 15),
        )

    def test_weekly_on_sunday(self):
        """Test a Sunday starts its own week."""
        assert period_bounds(PeriodType.WEEKLY, date(2024, 6, 9))[0] == date(2024, 6, 9)

    def test_monthly_leap_february(self):
        """Test February of a leap year ends on the 29th."""
        assert period_bounds(PeriodType.MONTHLY, date(2024, 2, 10)) == (
            date(2024, 2, 1),
            date(2024, 2, 29),
        )

    @pytest.mark.parametrize(
        ("as_of", "start", "end"),
        [
            (date(2024, 1, 1), date(2024, 1, 1), date(2024, 3, 31)),
            (date(2024, 5, 20), date(2024, 4, 1), date(2024, 6, 30)),
            (date(2024, 11, 3), date(2024, 10, 1), date(2024, 12, 31)),
        ],
    )
    def test_quarterly(self, as_of, start, end):
        """Test calendar quarters."""
        assert period_bounds(PeriodType.QUARTERLY, as_of) == (start, end)

    def test_next_period_start(self):
        """Test the next period begins the day after the current one ends."""
        assert next_period_start(PeriodType.WEEKLY, date(2024, 6, 14)) == date(2024, 6, 16)
        assert next_period_start(PeriodType.MONTHLY, date(2024, 12, 5)) == date(2025, 1, 1)
        assert next_period_start(PeriodType.QUARTERLY, date(2024, 8, 1)) == date(2024, 10, 1)


class TestComplianceTrend:
    """Tests for the trend model."""

    def test_period_end_before_start_rejected(self):
        """Test a trend cannot end before it starts."""
        with pytest.raises(ValidationError):
            ComplianceTrend(
                facility_id=FACILITY_ID,
                period_type=PeriodType.MONTHLY,
                period_start=date(2024, 6, 30),
                period_end=date(2024, 6, 1),
                assessment_id=_assessment(NOW).id,
                overall_score=80.0,
                overall_grade="B",
                sop_readiness_pct=90.0,
                checklist_submissions_pct=70.0,
                audit_coverage_pct=80.0,
                recorded_at=NOW,
            )


class TestSnapshot:
    """Tests for TrendRecorder.snapshot."""

    @pytest.mark.asyncio
    async def test_gap_when_no_assessment(self, store, recorder):
        """Test a period without an assessment gets no row."""
        trend = await recorder.snapshot(
            FACILITY_ID, PeriodType.MONTHLY, date(2024, 6, 1), date(2024, 6, 30)
        )

        assert trend is None
        assert store.trends == {}

    @pytest.mark.asyncio
    async def test_uses_latest_assessment_in_window(self, store, recorder):
        """Test the most recent assessment inside the period is copied."""
        accessor = store.accessor()
        early = _assessment(datetime(2024, 6, 2, tzinfo=UTC), score=60.0)
        late = _assessment(datetime(2024, 6, 30, 23, 59, tzinfo=UTC), score=85.0)
        outside = _assessment(datetime(2024, 7, 1, tzinfo=UTC), score=10.0)
        for assessment in (early, late, outside):
            await accessor.insert_assessment(assessment)

        trend = await recorder.snapshot(
            FACILITY_ID, PeriodType.MONTHLY, date(2024, 6, 1), date(2024, 6, 30)
        )

        assert trend.assessment_id == late.id
        assert trend.overall_score == 85.0
        assert trend.critical_findings == 1
        assert trend.major_findings == 2
        assert trend.recorded_at == NOW

    @pytest.mark.asyncio
    async def test_counts_from_rule_results(self, store, recorder):
        """Test rule counts come from the assessment's rule results."""
        accessor = store.accessor()
        assessment = _assessment(NOW, rules_passed=9, rules_failed=9)
        await accessor.insert_assessment(assessment)
        await accessor.insert_rule_results(
            [
                RuleResult(
                    rule_code=code,
                    facility_id=FACILITY_ID,
                    assessment_id=assessment.id,
                    verdict=verdict,
                    evaluated_at=NOW,
                )
                for code, verdict in [
                    ("A", Verdict.PASS),
                    ("B", Verdict.FAIL),
                    ("C", Verdict.NOT_APPLICABLE),
                ]
            ]
        )

        trend = await recorder.snapshot(
            FACILITY_ID, PeriodType.WEEKLY, date(2024, 6, 9), date(2024, 6, 15)
        )

        assert (trend.rules_passed, trend.rules_failed, trend.rules_total) == (1, 1, 3)

    @pytest.mark.asyncio
    async def test_counts_fall_back_to_assessment(self, store, recorder):
        """Test an assessment without stored results supplies its own counts."""
        await store.accessor().insert_assessment(
            _assessment(NOW, rules_passed=4, rules_failed=1, rules_not_applicable=2)
        )

        trend = await recorder.snapshot(
            FACILITY_ID, PeriodType.WEEKLY, date(2024, 6, 9), date(2024, 6, 15)
        )

        assert (trend.rules_passed, trend.rules_failed, trend.rules_total) == (4, 1, 7)

    @pytest.mark.asyncio
    async def test_resnapshot_replaces_row(self, store, recorder):
        """Test snapshotting a period twice leaves one row with the newer values."""
        accessor = store.accessor()
        await accessor.insert_assessment(_assessment(datetime(2024, 6, 3, tzinfo=UTC), 60.0))
        first = await recorder.snapshot(
            FACILITY_ID, PeriodType.MONTHLY, date(2024, 6, 1), date(2024, 6, 30)
        )

        await accessor.insert_assessment(_assessment(datetime(2024, 6, 10, tzinfo=UTC), 90.0))
        second = await recorder.snapshot(
            FACILITY_ID, PeriodType.MONTHLY, date(2024, 6, 1), date(2024, 6, 30)
        )

        assert len(store.trends) == 1
        assert second.id == first.id
        assert second.overall_score == 90.0
        [stored] = await accessor.fetch_trends(FACILITY_ID)
        assert stored.overall_score == 90.0

    @pytest.mark.asyncio
    async def test_ignores_module_scoped_assessments(self, store, recorder):
        """Test a later module run does not displace the facility-wide assessment."""
        accessor = store.accessor()
        facility = _assessment(NOW, score=62.0)
        haccp = _assessment(
            datetime(2024, 6, 14, 11, 30, tzinfo=UTC),
            score=20.0,
            scope=AssessmentScope.MODULE,
            module_code="HACCP",
        )
        await accessor.insert_assessment(facility)
        await accessor.insert_assessment(haccp)

        trend = await recorder.snapshot(
            FACILITY_ID, PeriodType.MONTHLY, date(2024, 6, 1), date(2024, 6, 30)
        )

        assert trend.assessment_id == facility.id
        assert trend.overall_score == 62.0

    @pytest.mark.asyncio
    async def test_only_module_assessments_is_a_gap(self, store, recorder):
        """Test a period with module runs only gets no row."""
        await store.accessor().insert_assessment(
            _assessment(NOW, scope=AssessmentScope.MODULE, module_code="GMP")
        )

        trend = await recorder.snapshot(
            FACILITY_ID, PeriodType.MONTHLY, date(2024, 6, 1), date(2024, 6, 30)
        )

        assert trend is None
        assert store.trends == {}

    @pytest.mark.asyncio
    async def test_given_assessment_and_results(self, store, recorder):
        """Test an assessment passed by the caller is snapshotted without being stored."""
        assessment = _assessment(NOW, score=71.0)
        results = [
            RuleResult(
                rule_code="A",
                facility_id=FACILITY_ID,
                assessment_id=assessment.id,
                verdict=Verdict.FAIL,
                evaluated_at=NOW,
            )
        ]

        trend = await recorder.snapshot(
            FACILITY_ID,
            PeriodType.MONTHLY,
            date(2024, 6, 1),
            date(2024, 6, 30),
            assessment=assessment,
            rule_results=results,
        )

        assert trend.assessment_id == assessment.id
        assert trend.overall_score == 71.0
        assert (trend.rules_passed, trend.rules_failed, trend.rules_total) == (0, 1, 1)
        assert store.assessments == []

    @pytest.mark.asyncio
    async def test_given_assessment_outside_period(self, recorder):
        """Test an assessment from another period is rejected."""
        with pytest.raises(ValueError):
            await recorder.snapshot(
                FACILITY_ID,
                PeriodType.MONTHLY,
                date(2024, 5, 1),
                date(2024, 5, 31),
                assessment=_assessment(NOW),
            )

    @pytest.mark.asyncio
    async def test_given_module_assessment_rejected(self, recorder):
        """Test a module-scoped assessment cannot be snapshotted."""
        with pytest.raises(ValueError):
            await recorder.snapshot(
                FACILITY_ID,
                PeriodType.MONTHLY,
                date(2024, 6, 1),
                date(2024, 6, 30),
                assessment=_assessment(
                    NOW, scope=AssessmentScope.MODULE, module_code="HACCP"
                ),
            )

    @pytest.mark.asyncio
    async def test_invalid_period(self, recorder):
        """Test an inverted period is rejected."""
        with pytest.raises(ValueError):
            await recorder.snapshot(
                FACILITY_ID, PeriodType.MONTHLY, date(2024, 6, 30), date(2024, 6, 1)
            )


class TestRecordIfDue:
    """Tests for schedule-driven snapshots."""

    @pytest.mark.asyncio
    async def test_not_due(self, store, recorder):
        """Test nothing is recorded before next_run."""
        await store.accessor().insert_assessment(_assessment(NOW))
        store.set_monitoring_config(
            MonitoringConfig(
                facility_id=FACILITY_ID, next_run=datetime(2024, 7, 1, tzinfo=UTC)
            )
        )

        assert await recorder.record_if_due(FACILITY_ID) is None
        assert store.trends == {}

    @pytest.mark.asyncio
    async def test_without_config(self, store, recorder):
        """Test a facility without a schedule is never due."""
        await store.accessor().insert_assessment(_assessment(NOW))

        assert await recorder.record_if_due(FACILITY_ID) is None

    @pytest.mark.asyncio
    async def test_inactive_config(self, store, recorder):
        """Test an inactive schedule is never due."""
        await store.accessor().insert_assessment(_assessment(NOW))
        store.set_monitoring_config(MonitoringConfig(facility_id=FACILITY_ID, is_active=False))

        assert await recorder.record_if_due(FACILITY_ID) is None

    @pytest.mark.asyncio
    async def test_due_records_current_period_and_advances(self, store, recorder):
        """Test an elapsed next_run snapshots the current period only."""
        await store.accessor().insert_assessment(_assessment(NOW))
        store.set_monitoring_config(
            MonitoringConfig(
                facility_id=FACILITY_ID,
                frequency=PeriodType.WEEKLY,
                next_run=datetime(2024, 5, 1, tzinfo=UTC),
            )
        )

        trend = await recorder.record_if_due(FACILITY_ID)

        assert trend.period_start == date(2024, 6, 9)
        assert trend.period_end == date(2024, 6, 15)
        assert len(store.trends) == 1
        assert store.monitoring_configs[FACILITY_ID].next_run == datetime(
            2024, 6, 16, tzinfo=UTC
        )

    @pytest.mark.asyncio
    async def test_gap_keeps_schedule(self, store, recorder):
        """Test next_run is not advanced when the period has no assessment."""
        store.set_monitoring_config(MonitoringConfig(facility_id=FACILITY_ID))

        assert await recorder.record_if_due(FACILITY_ID) is None
        assert store.monitoring_configs[FACILITY_ID].next_run is None

    @pytest.mark.asyncio
    async def test_due_with_given_assessment(self, store, recorder):
        """Test the caller's assessment is snapshotted and the schedule advanced together."""
        store.set_monitoring_config(MonitoringConfig(facility_id=FACILITY_ID))
        assessment = _assessment(NOW, score=77.0)

        accessor = store.accessor()
        async with accessor.transaction():
            trend = await TrendRecorder(accessor, clock=lambda: NOW).record_if_due(
                FACILITY_ID, as_of=NOW, assessment=assessment, rule_results=[]
            )
            assert store.trends == {}

        assert trend.assessment_id == assessment.id
        assert store.trends[trend.key].overall_score == 77.0
        assert store.monitoring_configs[FACILITY_ID].next_run == datetime(
            2024, 7, 1, tzinfo=UTC
        )
