"""Unit tests for evidence coverage ratios."""

from datetime import date

from fieldsafe.assessment.coverage import (
    audit_coverage_pct,
    checklist_is_current,
    checklist_submissions_pct,
    sop_readiness_pct,
)
from fieldsafe.evidence.types import ChecklistRecord, SOPStatus

TODAY = date(2024, 6, 14)


def _checklist(template_id: int, last_submitted: date | None, **kwargs) -> ChecklistRecord:
    return ChecklistRecord(
        template_id=template_id,
        name=f"Checklist {template_id}",
        last_submitted=last_submitted,
        **kwargs,
    )


class TestSOPReadiness:
    """Tests for sop_readiness_pct."""

    def test_two_of_three_current(self, sop_factory):
        """Test 2 of 3 applicable SOPs current is 66.67."""
        sops = [
            sop_factory(1),
            sop_factory(2),
            sop_factory(3, SOPStatus.DRAFT),
        ]
        assert sop_readiness_pct(sops) == 66.67

    def test_not_applicable_excluded(self, sop_factory):
        """Test non-applicable SOPs leave the denominator."""
        sops = [sop_factory(1), sop_factory(2, SOPStatus.MISSING, is_applicable=False)]
        assert sop_readiness_pct(sops) == 100.0

    def test_nothing_applicable_is_vacuous(self):
        """Test an empty population is 100%."""
        assert sop_readiness_pct([]) == 100.0


class TestChecklistSubmissions:
    """Tests for checklist_submissions_pct."""

    def test_template_window_inclusive(self):
        """Test a submission exactly frequency_days ago is current."""
        checklist = _checklist(1, date(2024, 6, 7), frequency_days=7)
        assert checklist_is_current(checklist, TODAY, 90)
        stale = _checklist(2, date(2024, 6, 6), frequency_days=7)
        assert not checklist_is_current(stale, TODAY, 90)

    def test_default_window(self):
        """Test templates without a frequency use the default window."""
        checklists = [
            _checklist(1, date(2024, 4, 1)),
            _checklist(2, date(2024, 1, 2)),
        ]
        assert checklist_submissions_pct(checklists, TODAY, default_window_days=90) == 50.0
        assert checklist_submissions_pct(checklists, TODAY, default_window_days=30) == 0.0

    def test_never_submitted(self):
        """Test a template without submissions is not current."""
        assert checklist_submissions_pct([_checklist(1, None)], TODAY) == 0.0

    def test_not_applicable_excluded(self):
        """Test non-applicable templates leave the denominator."""
        checklists = [
            _checklist(1, date(2024, 6, 1)),
            _checklist(2, None, is_applicable=False),
        ]
        assert checklist_submissions_pct(checklists, TODAY) == 100.0

    def test_empty_is_vacuous(self):
        """Test no templates is 100%."""
        assert checklist_submissions_pct([], TODAY) == 100.0


class TestAuditCoverage:
    """Tests for audit_coverage_pct."""

    def test_half_the_modules_answered(self, response_factory):
        """Test one of two enabled modules answered is 50%."""
        responses = [response_factory(1, 10, 10, module_code="GMP")]
        assert audit_coverage_pct(["GMP", "HACCP"], responses) == 50.0

    def test_responses_outside_enabled_modules_ignored(self, response_factory):
        """Test responses for modules that are not enabled do not count."""
        responses = [response_factory(1, 10, 10, module_code="ALLERGEN")]
        assert audit_coverage_pct(["GMP"], responses) == 0.0

    def test_no_enabled_modules(self):
        """Test a facility with no enabled modules is vacuously covered."""
        assert audit_coverage_pct([], []) == 100.0

    def test_one_of_three_rounds(self, response_factory):
        """Test coverage rounds half-up."""
        responses = [response_factory(1, 10, 10, module_code="GMP")]
        assert audit_coverage_pct(["GMP", "HACCP", "SANITATION"], responses) == 33.33
