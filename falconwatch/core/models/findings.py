"""
Findings — results produced by the bug/health scanner.

Findings are produced fresh on every scan. They are never stored as
such; the self-audit stage records them as health metrics.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict

from falconwatch.core.models.audit import HealthStatus


class FindingSeverity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FindingCategory(StrEnum):
    FUNCTION_ERROR = "function_error"
    MISSING_ROUTE = "missing_route"
    MISSING_FUNCTION = "missing_function"
    PERFORMANCE = "performance"
    SECURITY = "security"


class BugScanResult(BaseModel):
    """One finding from the health scanner."""

    model_config = ConfigDict(frozen=True)

    severity: FindingSeverity
    category: FindingCategory
    description: str
    location: str
    fix_recommendation: str
    auto_fixable: bool = False

    @property
    def is_severe(self) -> bool:
        """Critical or high — counts against overall system health."""
        return self.severity in (FindingSeverity.CRITICAL, FindingSeverity.HIGH)

    @property
    def health_status(self) -> HealthStatus:
        """Health status used when the finding is recorded as a metric."""
        if self.is_severe:
            return HealthStatus.CRITICAL
        if self.severity == FindingSeverity.MEDIUM:
            return HealthStatus.WARNING
        return HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
