"""Periodic compliance trend snapshots."""

from fieldsafe.trends.periods import next_period_start, period_bounds
from fieldsafe.trends.recorder import TrendRecorder
from fieldsafe.trends.types import ComplianceTrend, MonitoringConfig, PeriodType

__all__ = [
    "ComplianceTrend",
    "MonitoringConfig",
    "PeriodType",
    "TrendRecorder",
    "next_period_start",
    "period_bounds",
]
