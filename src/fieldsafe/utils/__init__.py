"""Utility modules for fieldsafe."""

from fieldsafe.utils.exceptions import (
    ConfigurationError,
    FieldsafeError,
)
from fieldsafe.utils.numbers import percentage, round_half_up

__all__ = [
    "FieldsafeError",
    "ConfigurationError",
    "percentage",
    "round_half_up",
]
