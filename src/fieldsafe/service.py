"""Compliance service: the trigger boundary of the engine.

Wires a fresh accessor and aggregator for every run, serializes runs for
the same facility and lets different facilities proceed concurrently.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import UTC, date, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsafe.assessment.aggregator import AssessmentRun, ComplianceAggregator
from fieldsafe.assessment.types import AssessmentOptions, ComplianceAssessment
from fieldsafe.compliance.rules import RuleLibrary
from fieldsafe.config.settings import Settings, get_settings
from fieldsafe.core.locks import FacilityLocks
from fieldsafe.core.logging import get_logger
from fieldsafe.db.config import get_session_factory
from fieldsafe.store import EntityAccessor, SQLEntityAccessor
from fieldsafe.trends.recorder import TrendRecorder
from fieldsafe.trends.types import ComplianceTrend, PeriodType

logger = get_logger(__name__)

AccessorFactory = Callable[[], AbstractAsyncContextManager[EntityAccessor]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def sql_accessor_factory(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AccessorFactory:
    """Accessor factory opening one database session per run.

    Args:
        session_factory: Session factory to use (default: process-wide factory)
    """

    @asynccontextmanager
    async def open_accessor() -> AsyncIterator[EntityAccessor]:
        factory = session_factory or get_session_factory()
        async with factory() as session:
            yield SQLEntityAccessor(session)

    return open_accessor


class ComplianceService:
    """Entry point for assessments and trend snapshots.

    Example:
        ```python
        service = ComplianceService(sql_accessor_factory())
        assessment = await service.assess(
            12, AssessmentOptions(simulation_id=7, save_assessment=True)
        )
        ```
    """

    def __init__(
        self,
        accessor_factory: AccessorFactory,
        *,
        library: RuleLibrary | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
        locks: FacilityLocks | None = None,
    ):
        """Initialize the service.

        Args:
            accessor_factory: Opens a per-run accessor as an async context manager
            library: Rule library shared by every run (loaded per run if None)
            settings: Settings for grading and risk configuration
            clock: Source of run timestamps
            locks: Per-facility lock registry (a private one if None)
        """
        self._accessor_factory = accessor_factory
        self.library = library
        self.settings = settings or get_settings()
        self._clock = clock
        self.locks = locks or FacilityLocks()

    async def assess(
        self,
        facility_id: int,
        options: AssessmentOptions | None = None,
    ) -> ComplianceAssessment:
        """Assess one facility.

        Raises:
            RecordStoreError: If the store fails; nothing partial is written
        """
        run = await self.run(facility_id, options)
        return run.assessment

    async def run(
        self,
        facility_id: int,
        options: AssessmentOptions | None = None,
    ) -> AssessmentRun:
        """Assess one facility and return every derived record of the run."""
        async with self.locks.hold(facility_id):
            async with self._accessor_factory() as accessor:
                aggregator = ComplianceAggregator(
                    accessor,
                    library=self.library,
                    settings=self.settings,
                    clock=self._clock,
                )
                return await aggregator.run(facility_id, options)

    async def assess_many(
        self,
        facility_ids: Iterable[int],
        options: AssessmentOptions | None = None,
    ) -> dict[int, ComplianceAssessment]:
        """Assess several facilities concurrently.

        Duplicate ids are assessed once. The first failing run's error
        propagates after the other runs finish.
        """
        ids = list(dict.fromkeys(facility_ids))
        logger.info("assess_many_started", facility_count=len(ids))
        results = await asyncio.gather(
            *(self.assess(facility_id, options) for facility_id in ids),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return dict(zip(ids, results, strict=True))

    async def snapshot(
        self,
        facility_id: int,
        period_type: PeriodType,
        period_start: date,
        period_end: date,
    ) -> ComplianceTrend | None:
        """Record the trend row for one facility and period."""
        async with self.locks.hold(facility_id):
            async with self._accessor_factory() as accessor:
                recorder = TrendRecorder(accessor, clock=self._clock)
                return await recorder.snapshot(facility_id, period_type, period_start, period_end)
