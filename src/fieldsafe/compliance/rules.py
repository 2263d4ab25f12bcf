"""Compliance rule library.

This module provides the RuleLibrary for loading rule definitions from
raw rows (admin surface, database, default catalog), validating their
conditions up front, and querying the active rules for a run.
"""

import json
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from fieldsafe.compliance.types import ComplianceRule, InvalidRule
from fieldsafe.core.exceptions import DuplicateRuleError, RuleValidationError
from fieldsafe.core.logging import get_logger
from fieldsafe.evidence.types import ENTITY_RECORD_TYPES, record_attributes

logger = get_logger(__name__)

LibraryEntry = ComplianceRule | InvalidRule


def _format_errors(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return messages


def validate_rule_fields(rule: ComplianceRule) -> list[str]:
    """Check that a rule's field and filter keys exist on its entity type.

    Only the first segment of a dotted path is checked.

    Returns:
        Validation messages (empty when valid)
    """
    condition = rule.condition
    known = record_attributes(ENTITY_RECORD_TYPES[condition.entity_type])
    errors = []
    if condition.field.split(".")[0] not in known:
        errors.append(
            f"condition.field: unknown field '{condition.field}' for {condition.entity_type.value}"
        )
    for key in condition.filter:
        if key.split(".")[0] not in known:
            errors.append(
                f"condition.filter: unknown field '{key}' for {condition.entity_type.value}"
            )
    return errors


def parse_rule(row: Mapping[str, Any]) -> ComplianceRule:
    """Parse and validate one raw rule row.

    Raises:
        RuleValidationError: If the row is malformed
    """
    rule_code = str(row.get("rule_code") or "")
    data = dict(row)
    if isinstance(data.get("condition"), str):
        try:
            data["condition"] = json.loads(data["condition"])
        except json.JSONDecodeError as e:
            raise RuleValidationError(rule_code, [f"condition: invalid JSON ({e.msg})"]) from e
    try:
        rule = ComplianceRule.model_validate(data)
    except ValidationError as e:
        raise RuleValidationError(rule_code, _format_errors(e)) from e

    errors = validate_rule_fields(rule)
    if errors:
        raise RuleValidationError(rule.rule_code, errors)
    return rule


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _invalid_entry(
    row: Mapping[str, Any], error: RuleValidationError, *, position: int
) -> InvalidRule:
    """Library entry for a malformed row, with its fields normalized."""
    is_active = row.get("is_active", True)
    if isinstance(is_active, str):
        is_active = is_active.strip().lower() not in {"false", "no", "0", ""}
    return InvalidRule(
        rule_code=error.rule_code or f"<invalid:{position}>",
        name=str(row.get("name") or ""),
        module_code=_optional_str(row.get("module_code")),
        is_active=bool(is_active),
        errors=[str(message) for message in error.errors],
    )


class RuleLibrary:
    """Indexed collection of compliance rules.

    Malformed rows are kept as InvalidRule entries unless loading is
    strict, so that every authored rule still produces a result.

    Usage:
        library = RuleLibrary.from_records(rows)
        for entry in library.active_rules(module_code="HACCP"):
            ...
    """

    def __init__(self, rules: Sequence[LibraryEntry] | None = None):
        """Initialize library with optional rules.

        Args:
            rules: Initial entries to load

        Raises:
            DuplicateRuleError: If two entries share a rule_code
        """
        self._entries: dict[str, LibraryEntry] = {}
        self._by_module: dict[str | None, list[str]] = {}

        if rules:
            self.load_rules(rules)

    @classmethod
    def from_records(
        cls,
        rows: Iterable[Mapping[str, Any]],
        *,
        strict: bool = False,
    ) -> "RuleLibrary":
        """Build a library from raw rule rows.

        Args:
            rows: Raw rule definitions
            strict: Raise on the first malformed row instead of keeping it

        Raises:
            RuleValidationError: If strict and a row is malformed
            DuplicateRuleError: If two rows share a rule_code
        """
        entries: list[LibraryEntry] = []
        for row in rows:
            try:
                entries.append(parse_rule(row))
            except RuleValidationError as e:
                if strict:
                    raise
                logger.warning(
                    "rule_invalid",
                    rule_code=e.rule_code,
                    errors=e.errors,
                )
                entries.append(_invalid_entry(row, e, position=len(entries)))
        return cls(entries)

    def load_rules(self, rules: Sequence[LibraryEntry]) -> None:
        """Load entries into the library."""
        for rule in rules:
            self._add_rule(rule)

    def _add_rule(self, rule: LibraryEntry) -> None:
        if rule.rule_code in self._entries:
            raise DuplicateRuleError(rule.rule_code)
        self._entries[rule.rule_code] = rule
        self._by_module.setdefault(rule.module_code, []).append(rule.rule_code)

    def get(self, rule_code: str) -> LibraryEntry | None:
        """Get an entry by rule_code."""
        return self._entries.get(rule_code)

    def active_rules(self, module_code: str | None = None) -> list[LibraryEntry]:
        """Get active entries in load order.

        Args:
            module_code: When given, only rules scoped to this module

        Returns:
            Active rules, including invalid entries
        """
        if module_code is None:
            entries = list(self._entries.values())
        else:
            entries = [self._entries[code] for code in self._by_module.get(module_code, [])]
        return [entry for entry in entries if entry.is_active]

    def set_active(self, rule_code: str, is_active: bool) -> ComplianceRule:
        """Toggle activation of a valid rule.

        Raises:
            KeyError: If no valid rule has this code
        """
        rule = self._entries.get(rule_code)
        if not isinstance(rule, ComplianceRule):
            raise KeyError(rule_code)
        updated = rule.with_active(is_active)
        self._entries[rule_code] = updated
        return updated

    @property
    def rules(self) -> list[ComplianceRule]:
        """All valid rules, active or not."""
        return [e for e in self._entries.values() if isinstance(e, ComplianceRule)]

    @property
    def invalid_rules(self) -> list[InvalidRule]:
        """Entries that failed validation."""
        return [e for e in self._entries.values() if isinstance(e, InvalidRule)]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, rule_code: object) -> bool:
        return rule_code in self._entries
