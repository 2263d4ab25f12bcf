"""Evidence coverage ratios.

Every ratio is total: a facility with nothing applicable is vacuously
compliant (100.0), and every value is rounded half-up to two decimals.
"""

from collections.abc import Iterable, Sequence
from datetime import date

from fieldsafe.evidence.types import AuditResponseRecord, ChecklistRecord, SOPRecord
from fieldsafe.utils.numbers import percentage


def sop_readiness_pct(sops: Iterable[SOPRecord]) -> float:
    """Applicable SOPs with status ``current`` over applicable SOPs."""
    applicable = [sop for sop in sops if sop.is_applicable]
    current = sum(1 for sop in applicable if sop.is_current)
    return percentage(current, len(applicable))


def checklist_is_current(checklist: ChecklistRecord, today: date, default_window_days: int) -> bool:
    """Check whether a template's last submission falls within its window."""
    if checklist.last_submitted is None:
        return False
    window = checklist.frequency_days or default_window_days
    return (today - checklist.last_submitted).days <= window


def checklist_submissions_pct(
    checklists: Iterable[ChecklistRecord],
    today: date,
    default_window_days: int = 90,
) -> float:
    """Applicable templates submitted within their window over applicable templates.

    Args:
        checklists: Templates with the facility's last submission date
        today: Evaluation date
        default_window_days: Window for templates without a frequency
    """
    applicable = [c for c in checklists if c.is_applicable]
    current = sum(1 for c in applicable if checklist_is_current(c, today, default_window_days))
    return percentage(current, len(applicable))


def audit_coverage_pct(
    enabled_modules: Sequence[str],
    responses: Iterable[AuditResponseRecord],
) -> float:
    """Enabled modules with at least one response over enabled modules."""
    enabled = set(enabled_modules)
    covered = {r.module_code for r in responses if r.module_code in enabled}
    return percentage(len(covered), len(enabled))
