"""Compliance rules: declarative conditions, rule library and rules engine."""

from fieldsafe.compliance.conditions import ConditionEvaluator, ConditionOutcome
from fieldsafe.compliance.default_rules import get_default_rule_rows
from fieldsafe.compliance.engine import RulesEngine, summarize_results
from fieldsafe.compliance.rules import RuleLibrary, parse_rule
from fieldsafe.compliance.types import (
    ComparisonCondition,
    ComplianceRule,
    Condition,
    DeadlineCondition,
    InvalidRule,
    Operator,
    RuleResult,
    RuleRunSummary,
    RuleType,
    Verdict,
    WindowCondition,
)

__all__ = [
    "ComparisonCondition",
    "ComplianceRule",
    "Condition",
    "ConditionEvaluator",
    "ConditionOutcome",
    "DeadlineCondition",
    "InvalidRule",
    "Operator",
    "RuleLibrary",
    "RuleResult",
    "RuleRunSummary",
    "RuleType",
    "RulesEngine",
    "Verdict",
    "WindowCondition",
    "get_default_rule_rows",
    "parse_rule",
    "summarize_results",
]
