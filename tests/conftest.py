"""Pytest fixtures for fieldsafe tests."""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, date, datetime

import pytest
import pytest_asyncio
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fieldsafe.compliance.rules import RuleLibrary
from fieldsafe.config.settings import Settings
from fieldsafe.db.models.base import Base
from fieldsafe.evidence.types import (
    AuditResponseRecord,
    CAPARecord,
    CertificationRecord,
    ChecklistRecord,
    FindingRecord,
    Severity,
    SimulationRecord,
    SOPRecord,
    SOPStatus,
)
from fieldsafe.store.memory import InMemoryRecordStore

FACILITY_ID = 12
NOW = datetime(2024, 6, 14, 10, 30, tzinfo=UTC)
TODAY = NOW.date()


# =============================================================================
# Structlog Configuration Fixture
# =============================================================================


@pytest.fixture(scope="function", autouse=True)
def reset_structlog_after_test():
    """Reset structlog configuration after each test.

    This ensures tests that modify structlog global state
    don't affect other tests.
    """
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create settings for testing."""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        ENVIRONMENT="test",
        DEBUG=True,
        log_level="DEBUG",
    )


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Fixed clock at NOW."""
    return lambda: NOW


@pytest.fixture
def empty_library() -> RuleLibrary:
    return RuleLibrary()


# =============================================================================
# Evidence Fixtures
# =============================================================================


def _make_sop(sop_id: int, status: SOPStatus = SOPStatus.CURRENT, **kwargs) -> SOPRecord:
    return SOPRecord(
        sop_id=sop_id,
        sop_code=kwargs.pop("sop_code", f"SOP-{sop_id:03d}"),
        title=kwargs.pop("title", f"Procedure {sop_id}"),
        status=status,
        **kwargs,
    )


def _make_response(
    question_id: int,
    points: int,
    score: int | None,
    *,
    module_code: str = "GMP",
    simulation_id: int = 7,
    is_auto_fail: bool = False,
) -> AuditResponseRecord:
    return AuditResponseRecord(
        response_id=question_id,
        simulation_id=simulation_id,
        question_id=question_id,
        question_code=f"{module_code}-Q{question_id}",
        module_code=module_code,
        points=points,
        is_auto_fail=is_auto_fail,
        score=score,
    )


@pytest.fixture
def sop_factory() -> Callable[..., SOPRecord]:
    return _make_sop


@pytest.fixture
def response_factory() -> Callable[..., AuditResponseRecord]:
    return _make_response


@pytest.fixture
def store() -> InMemoryRecordStore:
    """Empty in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def seeded_store() -> InMemoryRecordStore:
    """Record store with one facility's evidence.

    - 3 applicable SOPs, 2 current (readiness 66.67)
    - 2 checklists, 1 submitted within its window (50.0)
    - Modules GMP and HACCP enabled; simulation 7 answers GMP only (50.0)
    - One open critical finding, one overdue CAPA, one expired certification
    """
    store = InMemoryRecordStore()
    store.set_enabled_modules(FACILITY_ID, ["GMP", "HACCP"])
    store.add_records(
        FACILITY_ID,
        [
            _make_sop(1, module_code="GMP"),
            _make_sop(2, module_code="GMP"),
            _make_sop(3, SOPStatus.NEEDS_REVIEW, module_code="HACCP"),
            ChecklistRecord(
                template_id=1,
                name="Daily sanitation",
                module_code="GMP",
                frequency_days=7,
                last_submitted=date(2024, 6, 12),
                submission_count=40,
            ),
            ChecklistRecord(
                template_id=2,
                name="Thermometer calibration",
                module_code="HACCP",
                frequency_days=30,
                last_submitted=date(2024, 3, 1),
                submission_count=3,
            ),
            CertificationRecord(
                certification_id=1,
                cert_name="SQF",
                supplier_id=1,
                supplier_name="Acme Produce",
                expiry_date=date(2025, 1, 1),
            ),
            CertificationRecord(
                certification_id=2,
                cert_name="Organic",
                supplier_id=2,
                supplier_name="Valley Dairy",
                expiry_date=date(2024, 5, 1),
            ),
            CAPARecord(
                capa_id=1,
                description="Repair cooler door seal",
                status="open",
                severity=Severity.MAJOR,
                module_code="HACCP",
                target_completion_date=date(2024, 6, 4),
            ),
            FindingRecord(
                finding_id=1,
                facility_id=FACILITY_ID,
                severity=Severity.CRITICAL,
                status="open",
                module_code="HACCP",
                question_code="HACCP-Q9",
            ),
        ],
    )
    store.add_simulation(
        SimulationRecord(
            simulation_id=7,
            facility_id=FACILITY_ID,
            name="June mock audit",
            simulation_date=date(2024, 6, 10),
            status="completed",
        ),
        [
            _make_response(1, 10, 10),
            _make_response(2, 10, 5),
        ],
    )
    return store


# Database fixtures


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine on a shared in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()
