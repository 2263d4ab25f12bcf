"""Rule condition evaluator.

Interprets one validated condition against one entity record. The
evaluator is pure: it only reads the record and the evaluation date it
was constructed with.
"""

import operator as op
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from fieldsafe.compliance.types import (
    ComparisonCondition,
    Condition,
    DeadlineCondition,
    Operator,
    Verdict,
    WindowCondition,
)

_MISSING = object()

_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    Operator.EQUALS.value: op.eq,
    Operator.GTE.value: op.ge,
    Operator.LTE.value: op.le,
    Operator.GT.value: op.gt,
    Operator.LT.value: op.lt,
}

_TRUE_STRINGS = frozenset({"true", "yes", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "0"})


@dataclass(frozen=True)
class ConditionOutcome:
    """Verdict of one condition against one row, with an optional diagnostic."""

    verdict: Verdict
    note: str | None = None


def resolve_field(entity: Any, path: str) -> Any:
    """Resolve a dotted field path on a record or mapping.

    Returns:
        The value, or the module sentinel when any segment is absent
    """
    current = entity
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        else:
            current = getattr(current, part, _MISSING)
        if current is _MISSING:
            return _MISSING
    return current


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce_like(value: Any, like: Any) -> Any:
    """Coerce ``value`` to the type of ``like``.

    Raises:
        ValueError: If the value cannot represent that type
        TypeError: If the types are incompatible
    """
    if isinstance(like, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise ValueError(f"cannot interpret {value!r} as a boolean")

    if isinstance(like, (int, float)):
        if isinstance(value, bool):
            raise TypeError("boolean is not a number")
        return float(value)

    if isinstance(like, datetime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime.combine(value, datetime.min.time(), tzinfo=like.tzinfo)
        return datetime.fromisoformat(str(value))

    if isinstance(like, date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value))

    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _coerce_pair(actual: Any, expected: Any) -> tuple[Any, Any]:
    """Bring a field value and a comparison value to a common type."""
    if isinstance(actual, Enum):
        actual = actual.value
    if isinstance(actual, (int, float)) and not isinstance(actual, bool):
        return float(actual), _coerce_like(expected, actual)
    if (
        isinstance(actual, str)
        and isinstance(expected, (int, float))
        and not isinstance(expected, bool)
    ):
        return float(actual.strip()), float(expected)
    return actual, _coerce_like(expected, actual)


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise TypeError(f"{type(value).__name__} is not a date")


def _filter_equal(actual: Any, expected: Any) -> bool:
    if actual is None or expected is None:
        return actual is None and expected is None
    try:
        left, right = _coerce_pair(actual, expected)
    except (TypeError, ValueError):
        return False
    return left == right


def record_matches(entity: Any, filter: Mapping[str, Any] | None) -> bool:
    """Check a row against an equality filter.

    A list value means membership. A value that cannot be coerced to the
    field's type does not match; neither does an absent field.
    """
    for path, expected in (filter or {}).items():
        actual = resolve_field(entity, path)
        if actual is _MISSING:
            return False
        accepted = expected if isinstance(expected, (list, tuple, set, frozenset)) else [expected]
        if not any(_filter_equal(actual, candidate) for candidate in accepted):
            return False
    return True


class ConditionEvaluator:
    """Evaluates conditions against entity records as of a fixed date.

    Usage:
        evaluator = ConditionEvaluator(today=date(2024, 6, 1))
        if evaluator.matches_filter(condition, record):
            outcome = evaluator.evaluate(condition, record)
    """

    def __init__(self, today: date):
        self.today = today

    def matches_filter(self, condition: Condition, entity: Any) -> bool:
        """Check whether a row qualifies for the condition's population.

        See ``record_matches``.
        """
        return record_matches(entity, condition.filter)

    def evaluate(self, condition: Condition, entity: Any) -> ConditionOutcome:
        """Evaluate a condition against one row.

        Args:
            condition: Validated condition
            entity: Record or mapping holding the field

        Returns:
            ConditionOutcome with verdict and diagnostic note
        """
        actual = resolve_field(entity, condition.field)
        if actual is _MISSING:
            return ConditionOutcome(
                Verdict.NOT_APPLICABLE, f"field '{condition.field}' not present"
            )

        if isinstance(condition, ComparisonCondition):
            return self._compare(condition, actual)
        if isinstance(condition, WindowCondition):
            return self._window(condition, actual)
        if isinstance(condition, DeadlineCondition):
            return self._deadline(condition, actual)

        return ConditionOutcome(
            Verdict.NOT_APPLICABLE, f"unsupported operator '{condition.operator}'"
        )

    def _compare(self, condition: ComparisonCondition, actual: Any) -> ConditionOutcome:
        if _is_empty(actual):
            if condition.operator == Operator.EQUALS:
                return ConditionOutcome(Verdict.FAIL, f"'{condition.field}' is empty")
            return ConditionOutcome(
                Verdict.NOT_APPLICABLE, f"'{condition.field}' is empty"
            )

        try:
            left, right = _coerce_pair(actual, condition.value)
            passed = _COMPARATORS[condition.operator](left, right)
        except (TypeError, ValueError) as e:
            return ConditionOutcome(
                Verdict.NOT_APPLICABLE,
                f"cannot compare '{condition.field}'={actual!r} with {condition.value!r}: {e}",
            )
        return ConditionOutcome(Verdict.PASS if passed else Verdict.FAIL)

    def _window(self, condition: WindowCondition, actual: Any) -> ConditionOutcome:
        if _is_empty(actual):
            return ConditionOutcome(Verdict.NOT_APPLICABLE, f"'{condition.field}' has no date")
        try:
            age = (self.today - _as_date(actual)).days
        except (TypeError, ValueError) as e:
            return ConditionOutcome(
                Verdict.NOT_APPLICABLE, f"'{condition.field}'={actual!r} is not a date: {e}"
            )

        if condition.operator == Operator.OLDER_THAN_DAYS:
            passed = age > condition.value
        else:
            passed = age <= condition.value
        if passed:
            return ConditionOutcome(Verdict.PASS)
        return ConditionOutcome(Verdict.FAIL, f"'{condition.field}' is {age} days old")

    def _deadline(self, condition: DeadlineCondition, actual: Any) -> ConditionOutcome:
        if _is_empty(actual):
            return ConditionOutcome(Verdict.NOT_APPLICABLE, f"'{condition.field}' has no date")
        try:
            deadline = _as_date(actual)
        except (TypeError, ValueError) as e:
            return ConditionOutcome(
                Verdict.NOT_APPLICABLE, f"'{condition.field}'={actual!r} is not a date: {e}"
            )

        if deadline >= self.today:
            return ConditionOutcome(Verdict.PASS)
        return ConditionOutcome(Verdict.FAIL, f"'{condition.field}' passed on {deadline.isoformat()}")
