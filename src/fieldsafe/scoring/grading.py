"""Letter grade mapping shared by audit scoring and assessments."""

from enum import Enum

from fieldsafe.config.settings import GradingConfig


class ScoreOutcome(str, Enum):
    """Why a score passed or failed.

    Lets reporting distinguish a low score from a failed critical item.
    """

    PASSED = "passed"
    FAILED_ON_POINTS = "failed_on_points"
    FAILED_ON_CRITICAL_ITEM = "failed_on_critical_item"


class GradeTable:
    """Ordered percentage bands mapped to letter grades.

    Example:
        table = GradeTable()
        table.grade_for(92.5)  # "A"
        table.grade_for(92.5, has_auto_fail=True)  # "F"
    """

    def __init__(self, config: GradingConfig | None = None):
        self.config = config or GradingConfig()

    @property
    def failing_grade(self) -> str:
        return self.config.failing_grade

    def grade_for(self, pct: float, has_auto_fail: bool = False) -> str:
        """Get the letter grade for a percentage.

        Args:
            pct: Score in [0, 100]
            has_auto_fail: Force the failing grade

        Returns:
            Letter grade
        """
        if has_auto_fail:
            return self.config.failing_grade
        for band in self.config.bands:
            if pct >= band.min_pct:
                return band.grade
        return self.config.failing_grade

    def outcome_for(self, pct: float, has_auto_fail: bool = False) -> ScoreOutcome:
        """Classify a score as passed or failed, and why."""
        if has_auto_fail:
            return ScoreOutcome.FAILED_ON_CRITICAL_ITEM
        if self.grade_for(pct) == self.config.failing_grade:
            return ScoreOutcome.FAILED_ON_POINTS
        return ScoreOutcome.PASSED
