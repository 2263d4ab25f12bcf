"""Configuration module for fieldsafe."""

from fieldsafe.config.settings import (
    GradeBand,
    GradingConfig,
    RequirementScoringConfig,
    RiskScorerConfig,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "GradeBand",
    "GradingConfig",
    "RequirementScoringConfig",
    "RiskScorerConfig",
]
