"""Unit tests for facility risk scoring."""

from datetime import UTC, date, datetime

import pytest
from uuid_utils.compat import uuid7

from fieldsafe.compliance.default_rules import get_default_rule_rows
from fieldsafe.compliance.rules import RuleLibrary
from fieldsafe.compliance.types import RuleResult, Verdict
from fieldsafe.config.settings import RiskScorerConfig
from fieldsafe.evidence.types import CAPARecord, FindingRecord, Severity, SOPStatus
from fieldsafe.risk.risk_scorer import RiskScorer, create_risk_scorer
from fieldsafe.risk.types import FactorKind, RiskFactor, RiskLevel

FACILITY_ID = 12
NOW = datetime(2024, 6, 14, 10, 30, tzinfo=UTC)
TODAY = NOW.date()


@pytest.fixture
def library() -> RuleLibrary:
    return RuleLibrary.from_records(get_default_rule_rows())


@pytest.fixture
def scorer(store, library) -> RiskScorer:
    return RiskScorer(store.accessor(), library=library, clock=lambda: NOW)


def _result(rule_code: str, verdict: Verdict = Verdict.FAIL) -> RuleResult:
    return RuleResult(
        rule_code=rule_code, facility_id=FACILITY_ID, verdict=verdict, evaluated_at=NOW
    )


def _finding(finding_id: int, severity: Severity, status: str = "open") -> FindingRecord:
    return FindingRecord(
        finding_id=finding_id,
        facility_id=FACILITY_ID,
        severity=severity,
        status=status,
        module_code="HACCP",
    )


class TestCollectFactors:
    """Tests for turning inputs into weighted factors."""

    def test_finding_weights(self, scorer, library):
        """Test open findings are weighted by severity and closed ones ignored."""
        factors = scorer.collect_factors(
            findings=[
                _finding(1, Severity.CRITICAL),
                _finding(2, Severity.MAJOR),
                _finding(3, Severity.MINOR),
                _finding(4, Severity.CRITICAL, status="closed"),
            ],
            capas=[],
            rule_results=[],
            library=library,
            today=TODAY,
        )

        assert [f.points for f in factors] == [15.0, 5.0, 2.0]
        assert all(f.kind == FactorKind.FINDING for f in factors)

    def test_overdue_capa_points(self, scorer, library):
        """Test overdue CAPAs add base points plus capped per-day points."""
        capas = [
            CAPARecord(capa_id=1, description="a", target_completion_date=date(2024, 6, 4)),
            CAPARecord(capa_id=2, description="b", target_completion_date=date(2023, 6, 4)),
            CAPARecord(capa_id=3, description="c", target_completion_date=date(2024, 7, 1)),
            CAPARecord(
                capa_id=4,
                description="d",
                status="closed",
                target_completion_date=date(2024, 1, 1),
            ),
        ]

        factors = scorer.collect_factors(
            findings=[], capas=capas, rule_results=[], library=library, today=TODAY
        )

        assert [(f.reference, f.points) for f in factors] == [
            ("capa:1", 9.0),
            ("capa:2", 19.0),
        ]

    def test_failed_rules_weighted_by_severity(self, scorer, library):
        """Test only failed, known rules contribute."""
        factors = scorer.collect_factors(
            findings=[],
            capas=[],
            rule_results=[
                _result("SUP-001"),
                _result("CHK-002"),
                _result("CHK-001", Verdict.PASS),
                _result("UNKNOWN-1"),
            ],
            library=library,
            today=TODAY,
        )

        assert [(f.reference, f.points) for f in factors] == [
            ("rule:SUP-001", 10.0),
            ("rule:CHK-002", 2.0),
        ]

    def test_sop_readiness_gap(self, scorer, library, sop_factory):
        """Test a module's non-current SOPs add points per missing percentage point."""
        sops = [
            sop_factory(1, module_code="HACCP"),
            sop_factory(2, SOPStatus.DRAFT, module_code="HACCP"),
            sop_factory(3, SOPStatus.MISSING, module_code="HACCP", is_applicable=False),
            sop_factory(4, SOPStatus.NEEDS_REVIEW, module_code="GMP"),
        ]

        factors = scorer.collect_factors(
            findings=[],
            capas=[],
            rule_results=[],
            library=library,
            today=TODAY,
            sops=sops,
            modules=["HACCP"],
        )

        [factor] = factors
        assert factor.kind == FactorKind.SOP_READINESS
        assert factor.reference == "sop_readiness:HACCP"
        assert factor.module_code == "HACCP"
        # 1 of 2 applicable current: (100 - 50) * 0.3
        assert factor.points == 15.0

    def test_no_sop_factor_when_ready_or_empty(self, scorer, library, sop_factory):
        """Test fully current modules and modules without SOPs add nothing."""
        factors = scorer.collect_factors(
            findings=[],
            capas=[],
            rule_results=[],
            library=library,
            today=TODAY,
            sops=[sop_factory(1, module_code="GMP")],
            modules=["GMP", "HACCP"],
        )

        assert factors == []

    @pytest.mark.parametrize(
        ("audit_pct", "points"),
        [
            (40.0, 15.0),
            (69.5, 0.25),
            (70.0, None),
            (95.0, None),
        ],
    )
    def test_audit_score_gap(self, scorer, library, audit_pct, points):
        """Test a module audit score below the pass mark adds points per missing point."""
        factors = scorer.collect_factors(
            findings=[],
            capas=[],
            rule_results=[],
            library=library,
            today=TODAY,
            audit_scores={"GMP": audit_pct},
            modules=["GMP"],
        )

        if points is None:
            assert factors == []
        else:
            [factor] = factors
            assert factor.kind == FactorKind.AUDIT_SCORE
            assert factor.reference == "audit_score:GMP"
            assert factor.points == points

    def test_module_without_audit_score(self, scorer, library):
        """Test a module the audit did not cover adds no audit factor."""
        factors = scorer.collect_factors(
            findings=[],
            capas=[],
            rule_results=[],
            library=library,
            today=TODAY,
            audit_scores={"GMP": 10.0},
            modules=["HACCP"],
        )

        assert factors == []

    def test_gap_weights_configurable(self, store, library, sop_factory):
        """Test the readiness and audit weights come from the config."""
        scorer = RiskScorer(
            store.accessor(),
            RiskScorerConfig(
                sop_gap_points_per_pct=1.0, audit_pass_pct=80.0, audit_gap_points_per_pct=2.0
            ),
            library,
            clock=lambda: NOW,
        )

        factors = scorer.collect_factors(
            findings=[],
            capas=[],
            rule_results=[],
            library=library,
            today=TODAY,
            sops=[sop_factory(1, SOPStatus.DRAFT, module_code="GMP")],
            audit_scores={"GMP": 75.0},
            modules=["GMP"],
        )

        assert [(f.kind, f.points) for f in factors] == [
            (FactorKind.SOP_READINESS, 100.0),
            (FactorKind.AUDIT_SCORE, 10.0),
        ]

    def test_unsaved_finding_reference(self, scorer, library):
        """Test a finding without an id is referenced by its simulation and question."""
        finding = FindingRecord(
            facility_id=FACILITY_ID,
            severity=Severity.MAJOR,
            module_code="GMP",
            simulation_id=7,
            question_code="GMP-Q4",
        )

        [factor] = scorer.collect_factors(
            findings=[finding], capas=[], rule_results=[], library=library, today=TODAY
        )

        assert factor.reference == "finding:simulation-7:GMP-Q4"
        assert factor.points == 5.0


class TestBuildScore:
    """Tests for score assembly and levels."""

    @pytest.mark.parametrize(
        ("score", "level"),
        [
            (0.0, RiskLevel.LOW),
            (24.99, RiskLevel.LOW),
            (25.0, RiskLevel.MEDIUM),
            (50.0, RiskLevel.HIGH),
            (75.0, RiskLevel.CRITICAL),
            (100.0, RiskLevel.CRITICAL),
        ],
    )
    def test_levels(self, scorer, score, level):
        """Test threshold boundaries belong to the higher level."""
        assert scorer.level_for(score) == level

    def test_capped_at_100(self, scorer):
        """Test the total is capped and factors ranked by points."""
        factors = [
            RiskFactor(
                kind=FactorKind.FINDING,
                reference=f"finding:{i}",
                description="Open critical finding",
                points=15.0,
            )
            for i in range(8)
        ]
        factors.append(
            RiskFactor(
                kind=FactorKind.FAILED_RULE,
                reference="rule:SOP-001",
                description="Failed rule",
                points=30.0,
            )
        )

        score = scorer.build_score(
            FACILITY_ID, factors, module_code=None, assessment_id=None, calculated_at=NOW
        )

        assert score.risk_score == 100.0
        assert score.risk_level == RiskLevel.CRITICAL
        assert score.contributing_factors[0].reference == "rule:SOP-001"
        assert len(score.contributing_factors) == 9
        assert score.recommendations[0].startswith("Escalate")

    def test_max_factors(self, store, library):
        """Test the number of kept factors is configurable."""
        scorer = RiskScorer(
            store.accessor(), RiskScorerConfig(max_factors=2), library, clock=lambda: NOW
        )
        factors = [
            RiskFactor(kind=FactorKind.FINDING, reference=f"finding:{i}", description="x", points=2.0)
            for i in range(5)
        ]

        score = scorer.build_score(
            FACILITY_ID, factors, module_code=None, assessment_id=None, calculated_at=NOW
        )

        assert score.risk_score == 10.0
        assert [f.reference for f in score.contributing_factors] == ["finding:0", "finding:1"]

    def test_no_factors(self, scorer):
        """Test a clean facility is low risk with a maintenance recommendation."""
        score = scorer.build_score(
            FACILITY_ID, [], module_code="GMP", assessment_id=None, calculated_at=NOW
        )

        assert score.risk_score == 0.0
        assert score.risk_level == RiskLevel.LOW
        assert score.is_facility_wide is False
        assert score.recommendations == ["No action required; maintain current controls"]


class TestScore:
    """Tests for RiskScorer.score against a store."""

    @pytest.mark.asyncio
    async def test_facility_and_module_scores(self, seeded_store, library):
        """Test the facility-wide score comes first, then one per module."""
        scorer = RiskScorer(seeded_store.accessor(), library=library, clock=lambda: NOW)
        assessment_id = uuid7()

        scores = await scorer.score(
            FACILITY_ID,
            rule_results=[_result("SUP-001"), _result("HACCP-SOP-001")],
            assessment_id=assessment_id,
        )

        assert [s.module_code for s in scores] == [None, "GMP", "HACCP"]
        overall, gmp, haccp = scores
        # critical finding 15 + overdue CAPA 9 + SUP-001 10 + HACCP-SOP-001 10
        # + HACCP SOP readiness 0% of 100 at 0.3 per point
        assert overall.risk_score == 74.0
        assert overall.risk_level == RiskLevel.HIGH
        # GMP SOPs are current and its June audit score of 75% passes
        assert gmp.risk_score == 0.0
        # SUP-001 is facility-wide; the rest belong to HACCP
        assert haccp.risk_score == 64.0
        assert haccp.risk_level == RiskLevel.HIGH
        assert all(s.assessment_id == assessment_id for s in scores)
        assert all(s.calculated_at == NOW for s in scores)

    @pytest.mark.asyncio
    async def test_uses_latest_assessment_results(self, seeded_store, library):
        """Test results default to the latest saved assessment's results."""
        scorer = create_risk_scorer(seeded_store.accessor())
        scores = await scorer.score(FACILITY_ID, library=library, modules=[])

        # No saved assessment: critical finding 15 plus a CAPA overdue past the day cap
        assert scores[0].risk_score == 34.0
        assert scores[0].risk_level == RiskLevel.MEDIUM
        assert len(scores) == 1

    @pytest.mark.asyncio
    async def test_module_rows_only(self, seeded_store, library):
        """Test a module-scoped call can skip the facility-wide row."""
        scorer = RiskScorer(seeded_store.accessor(), library=library, clock=lambda: NOW)

        scores = await scorer.score(
            FACILITY_ID, rule_results=[], modules=["HACCP"], include_facility=False
        )

        [haccp] = scores
        assert haccp.module_code == "HACCP"
        # critical finding 15 + overdue CAPA 9 + SOP readiness gap 30
        assert haccp.risk_score == 54.0

    @pytest.mark.asyncio
    async def test_given_findings_and_audit_scores(self, seeded_store, library):
        """Test caller-supplied findings and audit scores replace the stored ones."""
        scorer = RiskScorer(seeded_store.accessor(), library=library, clock=lambda: NOW)

        scores = await scorer.score(
            FACILITY_ID,
            rule_results=[],
            modules=["GMP"],
            findings=[_finding(8, Severity.MINOR)],
            audit_scores={"GMP": 50.0},
        )

        overall, gmp = scores
        # minor finding 2 + overdue CAPA 9 + GMP audit (70 - 50) * 0.5
        assert overall.risk_score == 21.0
        assert gmp.risk_score == 10.0
        assert [f.kind for f in gmp.contributing_factors] == [FactorKind.AUDIT_SCORE]
        assert any("re-audit" in r for r in gmp.recommendations)

    @pytest.mark.asyncio
    async def test_audit_scores_from_latest_simulation(
        self, seeded_store, library, response_factory
    ):
        """Test module audit scores default to the latest simulation's responses."""
        seeded_store.responses[7].append(response_factory(3, 20, 0, module_code="HACCP"))
        scorer = RiskScorer(seeded_store.accessor(), library=library, clock=lambda: NOW)

        scores = await scorer.score(FACILITY_ID, rule_results=[], modules=["HACCP"])

        haccp = scores[1]
        # finding 15 + CAPA 9 + SOP readiness gap 30 + HACCP audit 0%: 70 * 0.5
        assert haccp.risk_score == 89.0
        assert haccp.risk_level == RiskLevel.CRITICAL
        assert {f.kind for f in haccp.contributing_factors} == {
            FactorKind.FINDING,
            FactorKind.OVERDUE_CAPA,
            FactorKind.SOP_READINESS,
            FactorKind.AUDIT_SCORE,
        }
