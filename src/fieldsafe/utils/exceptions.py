"""Custom exceptions for fieldsafe."""


class FieldsafeError(Exception):
    """Base exception for all fieldsafe errors."""

    pass


class ConfigurationError(FieldsafeError):
    """Error in configuration or settings."""

    pass
