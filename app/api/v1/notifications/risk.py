"""Attendance risk tiers."""

import math
from dataclasses import dataclass
from enum import Enum

from app.core.exceptions import ValidationError

CRITICAL_THRESHOLD = 75
WARNING_THRESHOLD = 85
EXCELLENT_THRESHOLD = 95


class RiskTier(str, Enum):
    critical = "critical"
    warning = "warning"
    good = "good"
    excellent = "excellent"


ESCALATED_TIERS = frozenset({RiskTier.critical, RiskTier.warning})


@dataclass(frozen=True)
class RiskLevel:
    level: RiskTier
    priority: int  # 1 = most severe
    color: str

    @property
    def is_escalated(self) -> bool:
        return self.level in ESCALATED_TIERS


_CRITICAL = RiskLevel(RiskTier.critical, 1, "red")
_WARNING = RiskLevel(RiskTier.warning, 2, "orange")
_GOOD = RiskLevel(RiskTier.good, 3, "yellow")
_EXCELLENT = RiskLevel(RiskTier.excellent, 4, "green")


def classify_risk(percentage: float) -> RiskLevel:
    """Map an attendance percentage to its tier. Lower bounds are inclusive: 75 is warning."""
    if percentage is None or math.isnan(percentage) or percentage < 0 or percentage > 100:
        raise ValidationError(f"Attendance percentage must be between 0 and 100, got {percentage}")
    if percentage < CRITICAL_THRESHOLD:
        return _CRITICAL
    if percentage < WARNING_THRESHOLD:
        return _WARNING
    if percentage < EXCELLENT_THRESHOLD:
        return _GOOD
    return _EXCELLENT
