"""
Auto-fix — narrow, idempotent remediation for auto-fixable findings.

    memory pressure      force a garbage-collection pass
    failed-login burst   switch the rate limiter to strict mode
    missing route        record the gap as a health metric

Every attempt is audited (``auto_fix_applied`` / ``auto_fix_failed``).
``apply`` returns only the fixes that actually took effect.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from falconwatch.adapters.base import RateLimiter
from falconwatch.core.models.audit import AuditSeverity, HealthStatus
from falconwatch.core.models.findings import BugScanResult, FindingCategory
from falconwatch.core.services.audit_sink import AuditSink
from falconwatch.core.services.bug_scanner import AUTH_LOCATION, MEMORY_LOCATION

logger = logging.getLogger(__name__)

GC_FIX = "Forced garbage collection to free memory"
RATE_LIMIT_FIX = "Enhanced rate limiting activated"


class AutoFixer:

    def __init__(
        self,
        sink: AuditSink,
        rate_limiter: RateLimiter,
        gc_collect: Callable[[], Any] | None,
    ):
        self._sink = sink
        self._rate_limiter = rate_limiter
        self._gc_collect = gc_collect

    def apply(self, findings: Iterable[BugScanResult]) -> list[str]:
        applied: list[str] = []

        for finding in findings:
            if not finding.auto_fixable:
                continue

            try:
                fix = self._remediate(finding)
            except Exception as e:
                logger.warning("Auto-fix failed for %r: %s", finding.description, e)
                self._sink.record(
                    "auto_fix_failed",
                    resource="auto_fix",
                    details={"finding": finding.to_dict(), "error": str(e)},
                    severity=AuditSeverity.WARNING,
                )
                continue

            if fix is None:
                self._sink.record(
                    "auto_fix_failed",
                    resource="auto_fix",
                    details={"finding": finding.to_dict(), "error": "no remediation available"},
                    severity=AuditSeverity.WARNING,
                )
                continue

            self._sink.record(
                "auto_fix_applied",
                resource="auto_fix",
                details={"finding": finding.to_dict(), "fix": fix},
            )
            applied.append(fix)

        logger.info("Applied %d automatic fixes", len(applied))
        return applied

    def _remediate(self, finding: BugScanResult) -> str | None:
        if finding.category == FindingCategory.PERFORMANCE and finding.location == MEMORY_LOCATION:
            if self._gc_collect is None:
                return None
            collected = self._gc_collect()
            logger.info("Garbage collection freed %s objects", collected)
            return GC_FIX

        if finding.category == FindingCategory.SECURITY and finding.location == AUTH_LOCATION:
            if self._rate_limiter.enable_strict(finding.description):
                return RATE_LIMIT_FIX
            return None

        if finding.category == FindingCategory.MISSING_ROUTE:
            self._sink.metric(
                "routes",
                "missing_route_detected",
                {"route": finding.location},
                status=HealthStatus.WARNING,
            )
            return f"Logged missing route: {finding.location}"

        return None
