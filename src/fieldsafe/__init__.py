"""fieldsafe - compliance assessment and rules evaluation for food-safety facilities."""

__version__ = "0.1.0"
