"""Core infrastructure: logging, exceptions and run serialization."""

from fieldsafe.core.exceptions import (
    DuplicateRuleError,
    RecordStoreError,
    RuleValidationError,
)
from fieldsafe.core.locks import FacilityLocks
from fieldsafe.core.logging import LogContext, get_logger, setup_logging

__all__ = [
    "DuplicateRuleError",
    "FacilityLocks",
    "LogContext",
    "RecordStoreError",
    "RuleValidationError",
    "get_logger",
    "setup_logging",
]
