"""Trend Recorder for periodic compliance snapshots.

Copies the most recent facility-wide assessment inside a period window into a
ComplianceTrend row keyed by (facility, period_type, period_start). Gaps
are explicit: a period without an assessment gets no row.
"""

from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING

from fieldsafe.assessment.types import AssessmentScope, ComplianceAssessment
from fieldsafe.compliance.engine import summarize_results
from fieldsafe.compliance.types import RuleResult
from fieldsafe.core.logging import get_logger
from fieldsafe.trends.periods import next_period_start, period_bounds
from fieldsafe.trends.types import ComplianceTrend, PeriodType

if TYPE_CHECKING:
    from fieldsafe.store.accessor import EntityAccessor

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


class TrendRecorder:
    """Writes one overwritable trend row per facility and period.

    Example:
        ```python
        recorder = TrendRecorder(accessor)
        start, end = period_bounds(PeriodType.MONTHLY, date(2024, 6, 14))
        trend = await recorder.snapshot(12, PeriodType.MONTHLY, start, end)
        ```
    """

    def __init__(
        self,
        accessor: "EntityAccessor",
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._accessor = accessor
        self._clock = clock

    async def snapshot(
        self,
        facility_id: int,
        period_type: PeriodType,
        period_start: date,
        period_end: date,
        *,
        assessment: ComplianceAssessment | None = None,
        rule_results: Sequence[RuleResult] | None = None,
    ) -> ComplianceTrend | None:
        """Snapshot the latest facility-wide assessment inside a period.

        Re-snapshotting a period replaces its row. Manual calls are not
        subject to the monitoring schedule. Module-scoped assessments are
        never snapshotted.

        Args:
            facility_id: Facility to snapshot
            period_type: Bucket size
            period_start: First day of the period
            period_end: Last day of the period (inclusive)
            assessment: Assessment to snapshot instead of the latest
                stored one, e.g. one being saved in the caller's
                transaction
            rule_results: Rule results of ``assessment``

        Returns:
            The stored trend row, or None when the period has no assessment

        Raises:
            ValueError: If period_end precedes period_start, or the given
                assessment is module-scoped or outside the period
            RecordStoreError: If the store fails; nothing is written
        """
        if period_end < period_start:
            raise ValueError("period_end must not precede period_start")

        window_start = _start_of_day(period_start)
        window_end = _start_of_day(period_end + timedelta(days=1))
        if assessment is None:
            assessment = await self._accessor.fetch_latest_assessment(
                facility_id,
                start=window_start,
                end=window_end,
                scope=AssessmentScope.FACILITY,
            )
        else:
            if assessment.scope != AssessmentScope.FACILITY:
                raise ValueError("only facility-wide assessments are snapshotted")
            if not window_start <= assessment.assessment_date < window_end:
                raise ValueError("assessment falls outside the period")

        if assessment is None:
            logger.info(
                "trend_period_gap",
                facility_id=facility_id,
                period_type=period_type.value,
                period_start=period_start.isoformat(),
            )
            return None

        if rule_results is None:
            rule_results = await self._accessor.fetch_rule_results(assessment.id)
        if rule_results:
            summary = summarize_results(rule_results)
            passed, failed, total = summary.passed, summary.failed, summary.total
        else:
            passed = assessment.rules_passed
            failed = assessment.rules_failed
            total = assessment.rules_total

        trend = ComplianceTrend(
            facility_id=facility_id,
            period_type=period_type,
            period_start=period_start,
            period_end=period_end,
            assessment_id=assessment.id,
            overall_score=assessment.overall_score,
            overall_grade=assessment.overall_grade,
            sop_readiness_pct=assessment.sop_readiness_pct,
            checklist_submissions_pct=assessment.checklist_submissions_pct,
            audit_coverage_pct=assessment.audit_coverage_pct,
            critical_findings=assessment.findings.critical,
            major_findings=assessment.findings.major,
            minor_findings=assessment.findings.minor,
            rules_passed=passed,
            rules_failed=failed,
            rules_total=total,
            recorded_at=self._clock(),
        )

        async with self._accessor.transaction():
            stored = await self._accessor.upsert_trend(trend)

        logger.info(
            "trend_recorded",
            facility_id=facility_id,
            period_type=period_type.value,
            period_start=period_start.isoformat(),
            assessment_id=str(assessment.id),
            overall_score=stored.overall_score,
        )
        return stored

    async def record_if_due(
        self,
        facility_id: int,
        as_of: datetime | None = None,
        *,
        assessment: ComplianceAssessment | None = None,
        rule_results: Sequence[RuleResult] | None = None,
    ) -> ComplianceTrend | None:
        """Snapshot the current period when the monitoring config is due.

        Only the period containing ``as_of`` is recorded; missed periods
        are not backfilled. After a successful snapshot the config's
        ``next_run`` moves to the start of the following period, in the
        same transaction as the trend row.

        Args:
            facility_id: Facility to snapshot
            as_of: Time the schedule is checked against (default: now)
            assessment: Facility-wide assessment to snapshot, see ``snapshot``
            rule_results: Rule results of ``assessment``

        Returns:
            The stored trend row, or None when not due or nothing to record
        """
        as_of = as_of or self._clock()
        config = await self._accessor.fetch_monitoring_config(facility_id)
        if config is None or not config.is_due(as_of):
            logger.debug(
                "trend_not_due",
                facility_id=facility_id,
                next_run=config.next_run.isoformat() if config and config.next_run else None,
            )
            return None

        start, end = period_bounds(config.frequency, as_of.date())
        async with self._accessor.transaction():
            trend = await self.snapshot(
                facility_id,
                config.frequency,
                start,
                end,
                assessment=assessment,
                rule_results=rule_results,
            )
            if trend is None:
                return None

            advanced = config.model_copy(
                update={
                    "next_run": _start_of_day(next_period_start(config.frequency, as_of.date()))
                }
            )
            await self._accessor.save_monitoring_config(advanced)
        return trend
