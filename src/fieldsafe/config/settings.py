"""Application settings loaded from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GradeBand(BaseModel):
    """Minimum percentage for a letter grade."""

    grade: str
    min_pct: float = Field(ge=0.0, le=100.0)


class GradingConfig(BaseModel):
    """Letter grade table for audit and assessment scores.

    Bands are checked from the highest threshold down; a score below every
    band gets ``failing_grade``. An auto-fail always gets ``failing_grade``.
    """

    bands: list[GradeBand] = Field(
        default_factory=lambda: [
            GradeBand(grade="A", min_pct=90.0),
            GradeBand(grade="B", min_pct=80.0),
            GradeBand(grade="C", min_pct=70.0),
            GradeBand(grade="D", min_pct=60.0),
        ]
    )
    failing_grade: str = "F"

    @model_validator(mode="after")
    def sort_bands(self) -> "GradingConfig":
        """Keep bands ordered from highest threshold to lowest."""
        self.bands = sorted(self.bands, key=lambda b: b.min_pct, reverse=True)
        if any(b.grade == self.failing_grade for b in self.bands):
            raise ValueError("failing_grade must not also be a passing band")
        return self


class RiskScorerConfig(BaseModel):
    """Weights and cut points for facility risk scoring."""

    # Open audit findings, points per finding
    critical_finding_points: float = Field(default=15.0, ge=0.0)
    """Points added per open critical finding."""

    major_finding_points: float = Field(default=5.0, ge=0.0)
    """Points added per open major finding."""

    minor_finding_points: float = Field(default=2.0, ge=0.0)
    """Points added per open minor finding."""

    # Overdue CAPAs
    overdue_capa_base_points: float = Field(default=4.0, ge=0.0)
    """Points added for any overdue corrective action."""

    overdue_capa_points_per_day: float = Field(default=0.5, ge=0.0)
    """Points added per day a corrective action is past its target date."""

    overdue_capa_day_cap: int = Field(default=30, ge=0)
    """Days overdue beyond this count no further."""

    # Failed compliance rules, points per failed rule by rule severity
    failed_rule_critical_points: float = Field(default=10.0, ge=0.0)
    failed_rule_major_points: float = Field(default=5.0, ge=0.0)
    failed_rule_minor_points: float = Field(default=2.0, ge=0.0)

    # Module readiness gaps
    sop_gap_points_per_pct: float = Field(default=0.3, ge=0.0)
    """Points per percentage point of a module's SOPs that are not current."""

    audit_pass_pct: float = Field(default=70.0, ge=0.0, le=100.0)
    """Module audit score below which the shortfall adds risk."""

    audit_gap_points_per_pct: float = Field(default=0.5, ge=0.0)
    """Points per percentage point a module audit score is below ``audit_pass_pct``."""

    # Level cut points
    medium_threshold: float = Field(default=25.0, ge=0.0, le=100.0)
    high_threshold: float = Field(default=50.0, ge=0.0, le=100.0)
    critical_threshold: float = Field(default=75.0, ge=0.0, le=100.0)

    max_factors: int = Field(default=10, ge=1)
    """Contributing factors kept per score."""

    @model_validator(mode="after")
    def validate_thresholds(self) -> "RiskScorerConfig":
        """Cut points must be strictly increasing."""
        if not self.medium_threshold < self.high_threshold < self.critical_threshold:
            raise ValueError("risk thresholds must satisfy medium < high < critical")
        return self


class RequirementScoringConfig(BaseModel):
    """Weights and evidence windows for requirement-based module scores."""

    critical_weight: int = Field(default=3, ge=0)
    major_weight: int = Field(default=2, ge=0)
    minor_weight: int = Field(default=1, ge=0)

    checklist_window_days: int = Field(default=90, ge=1)
    """A linked checklist counts when submitted within this many days."""

    audit_pass_pct: float = Field(default=70.0, ge=0.0, le=100.0)
    """A linked audit question counts when scored at or above this percentage."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Runtime
    ENVIRONMENT: Literal["development", "test", "staging", "production"] = "development"
    DEBUG: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Record store
    DATABASE_URL: str = "sqlite+aiosqlite:///./fieldsafe.db"
    DATABASE_ECHO: bool = False

    # Assessment
    default_checklist_window_days: int = Field(default=90, ge=1)
    """Submission window for checklist templates without their own frequency."""

    grading: GradingConfig = GradingConfig()
    risk: RiskScorerConfig = RiskScorerConfig()
    requirements: RequirementScoringConfig = RequirementScoringConfig()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
