"""Default compliance rule catalog.

Rules are plain rows in the same shape the admin surface stores, so the
catalog goes through the same validation as any authored rule:
- Evidence checks: SOPs current, no auto-fail item scored zero
- Frequency: checklist templates submitted within their window
- Expiration: SOP review age, CAPA target dates, supplier certifications

These rules are loaded by RuleLibrary.from_records(get_default_rule_rows()).
"""

from typing import Any


def get_default_rule_rows() -> list[dict[str, Any]]:
    """Get the default compliance rule rows.

    Returns:
        Raw rule definitions for the default catalog
    """
    rows: list[dict[str, Any]] = []
    rows.extend(_evidence_rules())
    rows.extend(_frequency_rules())
    rows.extend(_expiration_rules())
    return rows


def _evidence_rules() -> list[dict[str, Any]]:
    """Evidence presence and status checks."""
    return [
        {
            "rule_code": "SOP-001",
            "name": "Applicable SOPs are current",
            "rule_type": "evidence_check",
            "severity": "major",
            "condition": {
                "entity_type": "sop",
                "field": "status",
                "operator": "equals",
                "value": "current",
                "filter": {"is_applicable": True},
            },
        },
        {
            "rule_code": "HACCP-SOP-001",
            "name": "HACCP plan SOPs are current",
            "rule_type": "evidence_check",
            "severity": "critical",
            "module_code": "HACCP",
            "condition": {
                "entity_type": "sop",
                "field": "status",
                "operator": "equals",
                "value": "current",
                "filter": {"module_code": "HACCP", "is_applicable": True},
                "require_presence": True,
            },
        },
        {
            "rule_code": "AUD-001",
            "name": "No auto-fail item scored zero in the latest simulation",
            "rule_type": "evidence_check",
            "severity": "critical",
            "condition": {
                "entity_type": "audit_response",
                "field": "score",
                "operator": "gt",
                "value": 0,
                "filter": {"is_auto_fail": True},
            },
        },
        {
            "rule_code": "FND-001",
            "name": "No open critical audit findings",
            "rule_type": "evidence_check",
            "severity": "critical",
            "condition": {
                "entity_type": "audit_finding",
                "field": "status",
                "operator": "equals",
                "value": "closed",
                "filter": {"severity": "critical"},
            },
        },
    ]


def _frequency_rules() -> list[dict[str, Any]]:
    """Submission frequency checks."""
    return [
        {
            "rule_code": "CHK-001",
            "name": "Checklists submitted within the last 90 days",
            "rule_type": "frequency",
            "severity": "major",
            "condition": {
                "entity_type": "checklist",
                "field": "last_submitted",
                "operator": "within_days",
                "value": 90,
                "filter": {"is_applicable": True},
            },
        },
        {
            "rule_code": "CHK-002",
            "name": "Checklists have at least one submission",
            "rule_type": "evidence_check",
            "severity": "minor",
            "condition": {
                "entity_type": "checklist",
                "field": "submission_count",
                "operator": "gte",
                "value": 1,
                "filter": {"is_applicable": True},
            },
        },
    ]


def _expiration_rules() -> list[dict[str, Any]]:
    """Expiry and review age checks."""
    return [
        {
            "rule_code": "SOP-002",
            "name": "SOPs reviewed within the last year",
            "rule_type": "expiration",
            "severity": "minor",
            "condition": {
                "entity_type": "sop",
                "field": "last_reviewed",
                "operator": "within_days",
                "value": 365,
                "filter": {"is_applicable": True},
            },
        },
        {
            "rule_code": "CAPA-001",
            "name": "Open corrective actions are not past due",
            "rule_type": "expiration",
            "severity": "major",
            "condition": {
                "entity_type": "capa",
                "field": "target_completion_date",
                "operator": "not_past_due",
                "filter": {"status": ["open", "in_progress"]},
            },
        },
        {
            "rule_code": "SUP-001",
            "name": "Active supplier certifications are not expired",
            "rule_type": "expiration",
            "severity": "critical",
            "condition": {
                "entity_type": "certification",
                "field": "expiry_date",
                "operator": "not_expired",
                "filter": {"supplier_active": True},
            },
        },
    ]
