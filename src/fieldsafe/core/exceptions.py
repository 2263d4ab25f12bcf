"""Core exceptions for the compliance engine."""

from fieldsafe.utils.exceptions import FieldsafeError


class RecordStoreError(FieldsafeError):
    """Raised when the record store cannot serve a read or accept a write.

    This is fatal for the current run: nothing from the run is persisted
    and the caller sees the error.

    Attributes:
        operation: The accessor operation that failed (e.g., "fetch_entities")
    """

    def __init__(self, message: str, operation: str):
        super().__init__(message)
        self.operation = operation

    def __str__(self) -> str:
        return f"RecordStoreError({self.operation}): {self.args[0]}"


class RuleValidationError(FieldsafeError):
    """Raised when a compliance rule definition is malformed.

    Only raised by strict rule loading; the default loader records the
    rule as invalid and keeps going.

    Attributes:
        rule_code: Code of the offending rule (may be empty if missing)
        errors: Validation messages
    """

    def __init__(self, rule_code: str, errors: list[str]):
        super().__init__(f"Invalid compliance rule {rule_code or '<unknown>'}")
        self.rule_code = rule_code
        self.errors = errors

    def __str__(self) -> str:
        return f"RuleValidationError: {self.args[0]} ({'; '.join(self.errors)})"


class DuplicateRuleError(FieldsafeError):
    """Raised when two rules in one library share a rule_code.

    Attributes:
        rule_code: The duplicated code
    """

    def __init__(self, rule_code: str):
        super().__init__(f"Duplicate rule_code in library: {rule_code}")
        self.rule_code = rule_code
