"""Compliance rule type definitions.

This module defines the core enums and models for the rules engine:
- Verdict: Outcome of evaluating a rule or a single condition
- Operator: The fixed set of condition operators
- Condition: Tagged union of comparison, window and deadline conditions
- ComplianceRule: A declarative rule with stable ``rule_code`` identity
- RuleResult: One verdict per (rule, facility, assessment)
"""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from uuid_utils.compat import uuid7

from fieldsafe.evidence.types import EntityType, Severity


class Verdict(str, Enum):
    """Outcome of a rule or condition evaluation."""

    PASS = "pass"
    FAIL = "fail"
    NOT_APPLICABLE = "not_applicable"


class Operator(str, Enum):
    """Condition operators.

    Comparison operators compare a field against ``value``. Window
    operators measure a date field's age in whole days. Deadline operators
    compare a date field against today with an inclusive boundary.
    """

    # Comparison
    EQUALS = "equals"
    GTE = "gte"
    LTE = "lte"
    GT = "gt"
    LT = "lt"

    # Window
    OLDER_THAN_DAYS = "older_than_days"  # age > N
    WITHIN_DAYS = "within_days"  # age <= N

    # Deadline
    NOT_EXPIRED = "not_expired"  # date >= today
    NOT_PAST_DUE = "not_past_due"  # date >= today


class RuleType(str, Enum):
    """Descriptive category of a rule, used for reporting only."""

    EVIDENCE_CHECK = "evidence_check"
    THRESHOLD = "threshold"
    FREQUENCY = "frequency"
    EXPIRATION = "expiration"


ScalarValue = bool | int | float | str | date


class _ConditionBase(BaseModel):
    """Fields shared by every condition shape.

    ``filter`` restricts which rows of the population qualify: each key is
    a field name and each value is the required value, or a list of
    accepted values. Rows that do not match are excluded from the rule's
    denominator.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    entity_type: EntityType
    field: str = Field(min_length=1)
    filter: dict[str, Any] = Field(default_factory=dict)
    require_presence: bool = False


class ComparisonCondition(_ConditionBase):
    """Compare a field against a scalar value."""

    operator: Literal["equals", "gte", "lte", "gt", "lt"]
    value: ScalarValue


class WindowCondition(_ConditionBase):
    """Compare a date field's age in days against a day count."""

    operator: Literal["older_than_days", "within_days"]
    value: int = Field(ge=0)


class DeadlineCondition(_ConditionBase):
    """Check that a date field has not passed."""

    operator: Literal["not_expired", "not_past_due"]
    value: None = None


Condition = Annotated[
    ComparisonCondition | WindowCondition | DeadlineCondition,
    Field(discriminator="operator"),
]


class ComplianceRule(BaseModel):
    """A declarative compliance rule.

    Rules are immutable once created. The only permitted change is
    toggling activation, which yields a new instance via ``with_active``.

    Attributes:
        rule_code: Stable identity referenced by rule results
        name: Operator-facing name
        condition: Validated condition evaluated against each entity row
        severity: Impact of a failure on risk scoring
        module_code: Optional module scope (None = facility-wide)
        rule_type: Reporting category
        is_active: Inactive rules are not evaluated
    """

    model_config = ConfigDict(frozen=True)

    rule_code: str = Field(min_length=1)
    name: str = ""
    description: str | None = None
    condition: Condition
    severity: Severity = Severity.MAJOR
    module_code: str | None = None
    rule_type: RuleType | None = None
    is_active: bool = True

    def with_active(self, is_active: bool) -> Self:
        """Return a copy with activation toggled."""
        return self.model_copy(update={"is_active": is_active})


class InvalidRule(BaseModel):
    """A rule row that failed validation at load time.

    Kept in the library so that every authored rule still produces a
    result row.
    """

    model_config = ConfigDict(frozen=True)

    rule_code: str
    name: str = ""
    module_code: str | None = None
    is_active: bool = True
    errors: list[str] = Field(default_factory=list)


class RuleResult(BaseModel):
    """Verdict of one rule for one facility in one run.

    Created fresh on every engine run and never mutated. The rule is
    referenced by ``rule_code`` only.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid7)
    rule_code: str
    facility_id: int
    assessment_id: UUID | None = None
    verdict: Verdict
    details: dict[str, Any] = Field(default_factory=dict)
    evaluated_at: datetime


class RuleRunSummary(BaseModel):
    """Verdict counts for one rules engine run."""

    passed: int = 0
    failed: int = 0
    not_applicable: int = 0

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.not_applicable
